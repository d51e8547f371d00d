"""
Test configuration and shared fixtures for the Memorybox test suite.

This module provides common test fixtures, utilities, and configuration
for maintaining consistency across all test categories.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from memorybox.api import create_app
from memorybox.config import Settings
from memorybox.storage import StorageManager

from .mocks import SUGGESTION_REPLY, MockVisionManager, make_noise_image


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_settings(temp_dir: Path) -> Settings:
    """Test-specific settings with isolated storage."""
    return Settings(
        media_storage_path=temp_dir / "media",
        database_path=temp_dir / "test.db",
        hash_timeout_seconds=5.0,
        vision_timeout_seconds=5.0,
        gemini_api_key=None,
        openai_api_key=None,
        local_vision_enabled=False,
        log_level="DEBUG",
    )


@pytest.fixture
def storage_manager(test_settings: Settings) -> Generator[StorageManager, None, None]:
    """Connected storage manager backed by a temporary database."""
    storage = StorageManager(test_settings)
    storage.connect()
    try:
        yield storage
    finally:
        storage.close()


@pytest.fixture
def vocabulary(storage_manager: StorageManager):
    """Owner 'alice' with the Beach/Family vocabulary."""
    storage_manager.create_category("alice", "Beach")
    storage_manager.create_category("alice", "Family")
    return ["Beach", "Family"]


@pytest.fixture
def mock_vision() -> MockVisionManager:
    """Vision manager that answers with a fenced JSON suggestion."""
    return MockVisionManager(content=SUGGESTION_REPLY)


@pytest.fixture
def test_image() -> bytes:
    """Generate test image data."""
    return make_noise_image(seed=1)


@pytest.fixture
def client(
    test_settings: Settings,
    storage_manager: StorageManager,
    mock_vision: MockVisionManager,
) -> TestClient:
    """FastAPI test client with a mocked vision model."""
    app = create_app(test_settings, storage=storage_manager, vision=mock_vision)
    return TestClient(app)
