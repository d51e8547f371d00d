"""Upload checks applied before a media item is stored."""

from .config import Settings
from .models.schemas import MediaType


def is_valid_file_type(mime_type: str, media_type: MediaType) -> bool:
    """The declared MIME type must match the media kind."""
    if not mime_type:
        return False
    return mime_type.startswith(f"{MediaType(media_type).value}/")


def is_valid_file_size(size: int, media_type: MediaType, settings: Settings) -> bool:
    if MediaType(media_type) == MediaType.IMAGE:
        return size <= settings.max_image_size
    return size <= settings.max_video_size


def format_file_size(size: int) -> str:
    """Human readable size, as shown in error messages."""
    if size < 1024:
        return f"{size} bytes"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"
