"""
Parsing of vision model suggestion replies.

Models are asked for ``{"description": ..., "categories": [...]}`` but
often wrap it in a markdown fence or add prose around it. Decoding is
best effort: it never raises, and falls back to using the whole reply
as the description.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from .models.schemas import Suggestions

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"```[\w+-]*[ \t]*\n?(.*?)\s*```", re.DOTALL)
_OPENING_FENCE = re.compile(r"^```[\w+-]*")


@dataclass(frozen=True)
class DecodedSuggestion:
    """Reply that decoded to JSON; fields already validated."""

    description: str = ""
    categories: List[str] = field(default_factory=list)

    def to_suggestions(self) -> Suggestions:
        return Suggestions(description=self.description, categories=self.categories)


@dataclass(frozen=True)
class UndecodedSuggestion:
    """Reply that could not be decoded as JSON."""

    raw_text: str
    error: str

    def to_suggestions(self) -> Suggestions:
        return Suggestions(description=self.raw_text, categories=[])


SuggestionDecodeResult = Union[DecodedSuggestion, UndecodedSuggestion]


def extract_json_text(raw: str) -> str:
    """
    Locate the JSON payload inside a model reply.

    A fenced block wins (any language tag, or none). Otherwise the span
    from the first ``{`` to the last ``}`` is used, and failing that the
    trimmed text itself.
    """
    text = raw.strip()

    match = _FENCE_PATTERN.search(text)
    if match:
        return match.group(1).strip()

    # Unterminated fence: drop the opening marker.
    text = _OPENING_FENCE.sub("", text).strip()

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]

    return text


def decode_suggestion(raw: str, vocabulary: Sequence[str]) -> SuggestionDecodeResult:
    """
    Decode a model reply into a caption and vocabulary-filtered categories.

    Args:
        raw: Text returned by the vision model
        vocabulary: Category names the owner has defined

    Returns:
        DecodedSuggestion on JSON success, UndecodedSuggestion otherwise
    """
    try:
        payload = json.loads(extract_json_text(raw))
    except ValueError as e:
        logger.warning(f"Failed to parse vision JSON response: {e}")
        return UndecodedSuggestion(raw_text=raw, error=str(e))

    if not isinstance(payload, dict):
        return DecodedSuggestion()

    description = payload.get("description")
    if not isinstance(description, str):
        description = ""

    categories: List[str] = []
    suggested = payload.get("categories")
    if isinstance(suggested, list):
        known = set(vocabulary)
        categories = [
            name for name in suggested if isinstance(name, str) and name in known
        ]

    return DecodedSuggestion(description=description, categories=categories)


def parse_suggestion(raw: Optional[str], vocabulary: Sequence[str]) -> Suggestions:
    """Best-effort suggestions from a reply; empty when there is no reply."""
    if raw is None or not raw.strip():
        return Suggestions()
    return decode_suggestion(raw, vocabulary).to_suggestions()
