"""
Perceptual hashing for uploaded images.

Visually near-identical images map to the same 64-bit DCT fingerprint,
which is what duplicate detection keys on.
"""

import asyncio
import io
import logging

import imagehash
from PIL import Image

logger = logging.getLogger(__name__)


class PerceptualHashError(Exception):
    """Perceptual hash computation errors."""


def compute_phash(data: bytes) -> str:
    """
    Compute the perceptual hash of encoded image bytes.

    Args:
        data: Encoded image file contents

    Returns:
        16-character lowercase hexadecimal fingerprint

    Raises:
        PerceptualHashError: If the bytes cannot be decoded or hashed
    """
    if not data:
        raise PerceptualHashError("No image data to hash")

    try:
        with Image.open(io.BytesIO(data)) as image:
            fingerprint = imagehash.phash(image.convert("RGB"))
    except Exception as e:
        raise PerceptualHashError(f"Failed to hash image: {e}") from e

    return str(fingerprint)


async def compute_phash_async(data: bytes, timeout: float) -> str:
    """Hash in a worker thread so the event loop keeps serving requests."""
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(compute_phash, data), timeout=timeout
        )
    except asyncio.TimeoutError as e:
        raise PerceptualHashError(
            f"Hashing timed out after {timeout:.1f}s"
        ) from e
