"""
Mock implementations for Memorybox testing.

This module provides lightweight stand-ins for the remote vision model
and for a failing storage backend.
"""

import asyncio
import io
import random
from typing import List, Optional, Tuple

from PIL import Image, ImageDraw

from memorybox.storage import StorageError
from memorybox.vision import VisionError, VisionProvider, VisionResponse

SUGGESTION_REPLY = (
    '```json\n{"description": "A sunny beach", '
    '"categories": ["Beach", "NotAReal"]}\n```'
)


def make_noise_image(seed: int, size: int = 64, fmt: str = "PNG") -> bytes:
    """Deterministic noise image; different seeds give different fingerprints."""
    rng = random.Random(seed)
    image = Image.new("RGB", (size, size))
    image.putdata(
        [
            (rng.randint(0, 255), rng.randint(0, 255), rng.randint(0, 255))
            for _ in range(size * size)
        ]
    )
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def make_split_image(size: int = 128, fmt: str = "PNG") -> bytes:
    """Black left half, white right half."""
    image = Image.new("RGB", (size, size), color="white")
    ImageDraw.Draw(image).rectangle([0, 0, size // 2 - 1, size - 1], fill="black")
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


class MockVisionManager:
    """Vision manager that records calls and returns a canned reply."""

    def __init__(
        self,
        content: Optional[str] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.content = content
        self.error = error
        self.delay = delay
        self.calls: List[Tuple[bytes, str, str]] = []
        self.providers = {}
        self.current_provider = VisionProvider.GEMINI

    async def analyze(
        self,
        media: bytes,
        mime_type: str,
        instruction: str,
        provider: Optional[VisionProvider] = None,
    ) -> VisionResponse:
        self.calls.append((media, mime_type, instruction))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return VisionResponse(
            content=self.content,
            provider="mock",
            model="mock-vision",
            processing_time_ms=0,
        )

    def get_available_providers(self) -> List[VisionProvider]:
        return list(self.providers.keys())

    def get_current_provider(self) -> VisionProvider:
        return self.current_provider

    def switch_provider(self, provider: VisionProvider):
        raise VisionError(f"Provider {provider.value} not available")

    @property
    def call_count(self) -> int:
        return len(self.calls)


class BrokenVocabularyStorage:
    """Storage whose category lookup always fails."""

    is_connected = True

    def __init__(self):
        self.duplicate_lookups = 0

    def connect(self):
        pass

    def close(self):
        pass

    def get_categories(self, owner_id: str):
        raise StorageError("Database unavailable")

    def find_duplicate(self, owner_id, media_type, phash):
        self.duplicate_lookups += 1
        return None
