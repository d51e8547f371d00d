"""
Tests for upload type and size checks.
"""

import pytest

from memorybox.models.schemas import MediaType
from memorybox.validation import format_file_size, is_valid_file_size, is_valid_file_type


@pytest.mark.parametrize(
    "mime_type,media_type,expected",
    [
        ("image/png", MediaType.IMAGE, True),
        ("image/jpeg", "image", True),
        ("video/mp4", MediaType.VIDEO, True),
        ("video/mp4", MediaType.IMAGE, False),
        ("imagery/png", MediaType.IMAGE, False),
        ("", MediaType.IMAGE, False),
    ],
)
def test_file_type(mime_type, media_type, expected):
    assert is_valid_file_type(mime_type, media_type) is expected


def test_file_size_limits(test_settings):
    image_limit = test_settings.max_image_size
    video_limit = test_settings.max_video_size

    assert is_valid_file_size(image_limit, MediaType.IMAGE, test_settings)
    assert not is_valid_file_size(image_limit + 1, MediaType.IMAGE, test_settings)
    assert is_valid_file_size(image_limit + 1, MediaType.VIDEO, test_settings)
    assert not is_valid_file_size(video_limit + 1, MediaType.VIDEO, test_settings)


@pytest.mark.parametrize(
    "size,expected",
    [
        (512, "512 bytes"),
        (2048, "2.0 KB"),
        (2 * 1024 * 1024, "2.0 MB"),
    ],
)
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected
