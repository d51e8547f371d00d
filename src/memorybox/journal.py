"""AI-assisted journal entries for stored media."""

import asyncio
import logging
from uuid import UUID

from .config import Settings
from .models.schemas import SuggestionType
from .storage import MediaNotFoundError, StorageManager
from .vision import VisionManager, build_journal_prompt

logger = logging.getLogger(__name__)


class JournalSuggestionError(Exception):
    """Raised when the vision model cannot produce journal text."""


def append_journal(existing: str, addition: str) -> str:
    """Append generated text to a journal, separated by a blank line."""
    if not existing:
        return addition
    return f"{existing}\n\n{addition}"


class JournalAssistant:
    """Generates journal text for a stored media item."""

    def __init__(
        self, storage: StorageManager, vision: VisionManager, settings: Settings
    ):
        self.storage = storage
        self.vision = vision
        self.settings = settings

    async def suggest(
        self, owner_id: str, item_id: UUID, suggestion_type: SuggestionType
    ) -> str:
        """
        Generate journal text for one of the owner's items.

        Raises:
            MediaNotFoundError: If the owner has no such item
            JournalSuggestionError: If the vision call fails or returns nothing
        """
        item = await asyncio.to_thread(self.storage.get_media_item, owner_id, item_id)
        if item is None:
            raise MediaNotFoundError(f"Media item not found: {item_id}")

        path = await asyncio.to_thread(self.storage.get_media_path, owner_id, item_id)
        data = await asyncio.to_thread(path.read_bytes)

        instruction = build_journal_prompt(suggestion_type, item.type)
        timeout = self.settings.vision_timeout_seconds

        try:
            response = await asyncio.wait_for(
                self.vision.analyze(data, item.mime_type, instruction),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise JournalSuggestionError("AI suggestion timed out") from e
        except Exception as e:
            logger.error(f"Journal suggestion failed for {item_id}: {e}")
            raise JournalSuggestionError("Failed to get AI suggestion") from e

        text = (response.content or "").strip()
        if not text:
            raise JournalSuggestionError("AI returned an empty suggestion")
        return text
