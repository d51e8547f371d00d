"""
Upload-and-enrich pipeline.

Given an uploaded file, decide whether it duplicates an image the owner
already has and, if not, ask the vision model for a caption and
categories. Every enrichment step degrades instead of failing: the only
errors that reach the caller are bad input and an unreadable category
vocabulary.
"""

import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from typing import Optional, Union

from .config import Settings
from .hashing import PerceptualHashError, compute_phash_async
from .models.schemas import MediaItem, MediaType, Suggestions
from .parsing import parse_suggestion
from .storage import StorageError, StorageManager
from .validation import is_valid_file_type
from .vision import VisionManager, build_suggestion_prompt

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "Warning: A very similar image already exists in your collection."
SUGGESTIONS_MESSAGE = "File processed for suggestions"

DEFAULT_MIME_TYPES = {
    MediaType.IMAGE: "image/jpeg",
    MediaType.VIDEO: "video/mp4",
}


class UploadValidationError(Exception):
    """Raised when a required upload field is missing or invalid."""


@dataclass(frozen=True)
class DuplicateOutcome:
    """The owner already has an image with this fingerprint."""

    existing_id: str
    phash: str
    message: str = DUPLICATE_MESSAGE


@dataclass(frozen=True)
class SuggestionOutcome:
    """Best-effort suggestions for a new upload."""

    suggestions: Suggestions
    phash: Optional[str] = None
    message: str = SUGGESTIONS_MESSAGE


UploadOutcome = Union[DuplicateOutcome, SuggestionOutcome]


def _resolve_mime_type(
    kind: MediaType, mime_type: Optional[str], filename: Optional[str]
) -> str:
    """Concrete MIME type for the vision call; providers reject wildcards."""
    if mime_type and is_valid_file_type(mime_type, kind):
        return mime_type
    guessed = mimetypes.guess_type(filename)[0] if filename else None
    if guessed and is_valid_file_type(guessed, kind):
        return guessed
    return DEFAULT_MIME_TYPES[kind]


class UploadOrchestrator:
    """Runs vocabulary lookup, hashing, duplicate check and AI suggestion."""

    def __init__(
        self, storage: StorageManager, vision: VisionManager, settings: Settings
    ):
        self.storage = storage
        self.vision = vision
        self.settings = settings

    async def suggest(
        self,
        data: Optional[bytes],
        owner_id: Optional[str],
        media_type: Optional[str],
        mime_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> UploadOutcome:
        """
        Process one upload.

        Args:
            data: Raw file bytes
            owner_id: Owning user
            media_type: "image" or "video"
            mime_type: Declared MIME type of the file
            filename: Original filename, used when the MIME type is unusable

        Returns:
            DuplicateOutcome or SuggestionOutcome

        Raises:
            UploadValidationError: If a required field is missing
            StorageError: If the owner's vocabulary cannot be read
        """
        owner_id = (owner_id or "").strip()
        if not data or not owner_id or not media_type:
            raise UploadValidationError("Missing required fields")
        try:
            kind = MediaType(media_type)
        except ValueError as e:
            raise UploadValidationError(f"Invalid media type: {media_type}") from e

        categories = await asyncio.to_thread(self.storage.get_categories, owner_id)
        vocabulary = [category.name for category in categories]

        phash: Optional[str] = None
        if kind == MediaType.IMAGE:
            try:
                phash = await compute_phash_async(
                    data, self.settings.hash_timeout_seconds
                )
            except PerceptualHashError as e:
                logger.warning(f"pHash error for owner {owner_id}: {e}")

            existing = await self._find_duplicate(owner_id, phash) if phash else None
            if existing is not None:
                logger.info(
                    f"Duplicate image for owner {owner_id}: matches {existing.id}"
                )
                return DuplicateOutcome(existing_id=str(existing.id), phash=phash)

        suggestions = await self._ask_vision(
            data, _resolve_mime_type(kind, mime_type, filename), kind, vocabulary
        )
        return SuggestionOutcome(suggestions=suggestions, phash=phash)

    async def _find_duplicate(self, owner_id: str, phash: str) -> Optional[MediaItem]:
        """Duplicate lookup; an unreadable index counts as no match."""
        try:
            return await asyncio.to_thread(
                self.storage.find_duplicate, owner_id, MediaType.IMAGE, phash
            )
        except StorageError as e:
            logger.warning(f"Duplicate lookup failed for owner {owner_id}: {e}")
            return None

    async def _ask_vision(
        self, data: bytes, mime_type: str, kind: MediaType, vocabulary
    ) -> Suggestions:
        instruction = build_suggestion_prompt(kind, vocabulary)
        timeout = self.settings.vision_timeout_seconds

        try:
            response = await asyncio.wait_for(
                self.vision.analyze(data, mime_type, instruction), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Vision call timed out after {timeout:.1f}s")
            return Suggestions()
        except Exception as e:
            logger.error(f"Vision error: {e}")
            return Suggestions()

        return parse_suggestion(response.content if response else None, vocabulary)
