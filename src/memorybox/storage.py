"""
Storage layer for media files, categories and media metadata.

This module handles file storage, metadata persistence and the
per-owner duplicate index for the Memorybox application.
"""

import json
import logging
import mimetypes
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from .config import DEFAULT_CATEGORIES, Settings
from .models.schemas import Category, MediaItem, MediaType

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Storage related errors."""


class CategoryValidationError(StorageError):
    """Raised when an item references categories outside the vocabulary."""


class MediaNotFoundError(StorageError):
    """Raised when a media item does not exist for the given owner."""


class StorageManager:
    """
    Persistence handle for categories, media items and media files.

    The handle is created once per application and opened with
    ``connect()``; every query runs on the single shared SQLite
    connection under a lock.
    """

    def __init__(self, settings: Settings):
        """
        Initialize storage manager.

        Args:
            settings: Application settings
        """
        assert settings is not None, "Settings object is required"

        self.settings = settings
        self.media_storage_path = Path(settings.media_storage_path)
        self.db_path = Path(settings.database_path)

        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def connect(self) -> None:
        """
        Open the database and prepare directories. Safe to call repeatedly.

        Raises:
            StorageError: If initialization fails
        """
        with self._lock:
            if self._conn is not None:
                return

            try:
                self.media_storage_path.mkdir(parents=True, exist_ok=True)
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

                conn = sqlite3.connect(self.db_path, check_same_thread=False)
                conn.row_factory = sqlite3.Row
                self._setup_schema(conn)
            except Exception as e:
                error_msg = f"Failed to connect storage: {e}"
                logger.error(error_msg)
                raise StorageError(error_msg) from e

            self._conn = conn
            logger.info(f"Storage connected: {self.db_path}")

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            logger.info("Storage connection closed")

    def _setup_schema(self, conn: sqlite3.Connection) -> None:
        """Create tables and indexes."""
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS categories (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                name TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS media_items (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                type TEXT NOT NULL,
                phash TEXT,
                description TEXT NOT NULL DEFAULT '',
                categories TEXT NOT NULL DEFAULT '[]',
                journal TEXT NOT NULL DEFAULT '',
                filename TEXT NOT NULL,
                file_path TEXT NOT NULL,
                mime_type TEXT NOT NULL,
                file_size INTEGER NOT NULL,
                created_at TEXT NOT NULL
            )
        """
        )

        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_categories_owner
            ON categories (owner_id)
        """
        )

        # Not unique: concurrent uploads of the same image may both land.
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_media_owner_type_phash
            ON media_items (owner_id, type, phash)
        """
        )

        conn.commit()

    def _execute(self, query: str, params: Sequence = ()) -> List[sqlite3.Row]:
        """Run a statement on the shared connection and return its rows."""
        with self._lock:
            if self._conn is None:
                raise StorageError("Storage is not connected")
            cursor = self._conn.execute(query, params)
            rows = cursor.fetchall()
            self._conn.commit()
            return rows

    def _row_to_category(self, row: sqlite3.Row) -> Category:
        return Category(
            id=UUID(row["id"]),
            name=row["name"],
            owner_id=row["owner_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def _row_to_media_item(self, row: sqlite3.Row) -> MediaItem:
        """
        Create MediaItem instance from database row.

        Args:
            row: Database row containing media metadata

        Returns:
            MediaItem instance
        """
        return MediaItem(
            id=UUID(row["id"]),
            owner_id=row["owner_id"],
            type=MediaType(row["type"]),
            phash=row["phash"],
            description=row["description"],
            categories=json.loads(row["categories"]),
            journal=row["journal"],
            filename=row["filename"],
            mime_type=row["mime_type"],
            file_size=row["file_size"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # ========================================
    # CATEGORIES
    # ========================================

    def get_categories(self, owner_id: str) -> List[Category]:
        """
        Get an owner's category vocabulary in creation order.

        Raises:
            StorageError: If retrieval fails
        """
        assert owner_id, "Owner ID is required"

        try:
            rows = self._execute(
                "SELECT * FROM categories WHERE owner_id = ? "
                "ORDER BY created_at, rowid",
                (owner_id,),
            )
        except StorageError:
            raise
        except Exception as e:
            error_msg = f"Failed to get categories: {e}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

        return [self._row_to_category(row) for row in rows]

    def create_category(self, owner_id: str, name: str) -> Category:
        """
        Add a category to an owner's vocabulary.

        Raises:
            StorageError: If creation fails
        """
        assert owner_id, "Owner ID is required"
        assert name and name.strip(), "Category name cannot be empty"

        category = Category(
            id=uuid4(),
            name=name.strip(),
            owner_id=owner_id,
            created_at=datetime.utcnow(),
        )

        try:
            self._execute(
                "INSERT INTO categories (id, owner_id, name, created_at) "
                "VALUES (?, ?, ?, ?)",
                (
                    str(category.id),
                    category.owner_id,
                    category.name,
                    category.created_at.isoformat(),
                ),
            )
        except StorageError:
            raise
        except Exception as e:
            error_msg = f"Failed to create category: {e}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

        logger.info(f"Created category {category.name!r} for owner {owner_id}")
        return category

    def delete_category(self, owner_id: str, category_id: UUID) -> bool:
        """
        Remove a category from an owner's vocabulary.

        Returns:
            True if deleted, False if not found
        """
        assert owner_id, "Owner ID is required"

        existing = self._execute(
            "SELECT id FROM categories WHERE id = ? AND owner_id = ?",
            (str(category_id), owner_id),
        )
        if not existing:
            return False

        self._execute(
            "DELETE FROM categories WHERE id = ? AND owner_id = ?",
            (str(category_id), owner_id),
        )
        return True

    def seed_default_categories(self, owner_id: str) -> List[Category]:
        """Give an owner the default vocabulary if they have none yet."""
        existing = self.get_categories(owner_id)
        if existing:
            return existing

        return [self.create_category(owner_id, name) for name in DEFAULT_CATEGORIES]

    def _validate_categories(
        self, owner_id: str, categories: List[str]
    ) -> List[str]:
        vocabulary = {category.name for category in self.get_categories(owner_id)}
        unknown = [name for name in categories if name not in vocabulary]
        if unknown:
            raise CategoryValidationError(
                f"Unknown categories for owner: {', '.join(unknown)}"
            )
        return list(dict.fromkeys(categories))

    # ========================================
    # DUPLICATE INDEX
    # ========================================

    def find_duplicate(
        self, owner_id: str, media_type: MediaType, phash: Optional[str]
    ) -> Optional[MediaItem]:
        """
        Find an existing item of the same owner and type with this fingerprint.

        Raises:
            StorageError: If the lookup fails
        """
        assert owner_id, "Owner ID is required"

        if not phash:
            return None

        try:
            rows = self._execute(
                "SELECT * FROM media_items "
                "WHERE owner_id = ? AND type = ? AND phash = ? "
                "ORDER BY created_at LIMIT 1",
                (owner_id, MediaType(media_type).value, phash),
            )
        except StorageError:
            raise
        except Exception as e:
            error_msg = f"Failed to query duplicate index: {e}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

        if not rows:
            return None
        return self._row_to_media_item(rows[0])

    # ========================================
    # MEDIA ITEMS
    # ========================================

    def create_media_item(
        self,
        owner_id: str,
        media_type: MediaType,
        data: bytes,
        filename: str,
        mime_type: str,
        description: str = "",
        categories: Optional[List[str]] = None,
        journal: str = "",
        phash: Optional[str] = None,
    ) -> MediaItem:
        """
        Store a media file and its metadata.

        Args:
            owner_id: Owning user
            media_type: image or video
            data: File contents
            filename: Original filename
            mime_type: Declared MIME type
            description: Caption
            categories: Category names, must belong to the owner's vocabulary
            journal: Initial journal text
            phash: Perceptual fingerprint (images only)

        Returns:
            The stored media item

        Raises:
            CategoryValidationError: If a category is not in the vocabulary
            StorageError: If storage fails
        """
        assert owner_id, "Owner ID is required"
        assert data, "Media data is required"

        media_type = MediaType(media_type)
        checked_categories = self._validate_categories(owner_id, categories or [])

        item = MediaItem(
            id=uuid4(),
            owner_id=owner_id,
            type=media_type,
            phash=phash if media_type == MediaType.IMAGE else None,
            description=description or "",
            categories=checked_categories,
            journal=journal or "",
            filename=filename or "unknown",
            mime_type=mime_type or "application/octet-stream",
            file_size=len(data),
            created_at=datetime.utcnow(),
        )

        extension = Path(item.filename).suffix
        if not extension:
            extension = mimetypes.guess_extension(item.mime_type) or ""
        file_path = self.media_storage_path / f"{item.id}{extension}"

        try:
            file_path.write_bytes(data)
            self._execute(
                """
                INSERT INTO media_items (
                    id, owner_id, type, phash, description, categories,
                    journal, filename, file_path, mime_type, file_size,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    str(item.id),
                    item.owner_id,
                    item.type.value,
                    item.phash,
                    item.description,
                    json.dumps(item.categories),
                    item.journal,
                    item.filename,
                    str(file_path),
                    item.mime_type,
                    item.file_size,
                    item.created_at.isoformat(),
                ),
            )
        except Exception as e:
            file_path.unlink(missing_ok=True)
            error_msg = f"Failed to store media item: {e}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

        logger.info(f"Stored {item.type.value} {item.id} for owner {owner_id}")
        return item

    def get_media_item(self, owner_id: str, item_id: UUID) -> Optional[MediaItem]:
        """Get one of the owner's media items, or None."""
        assert owner_id, "Owner ID is required"

        rows = self._execute(
            "SELECT * FROM media_items WHERE id = ? AND owner_id = ?",
            (str(item_id), owner_id),
        )
        if not rows:
            return None
        return self._row_to_media_item(rows[0])

    def list_media_items(
        self,
        owner_id: str,
        media_type: Optional[MediaType] = None,
        category: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[MediaItem], int]:
        """
        List an owner's media items, newest first.

        Args:
            owner_id: Owning user
            media_type: Only items of this type
            category: Only items carrying this category
            limit: Maximum number of results
            offset: Results offset

        Returns:
            Tuple of (list of media items, total count)
        """
        assert owner_id, "Owner ID is required"
        assert limit > 0, f"Invalid limit: {limit}"
        assert offset >= 0, f"Invalid offset: {offset}"

        conditions = ["owner_id = ?"]
        params: List = [owner_id]

        if media_type is not None:
            conditions.append("type = ?")
            params.append(MediaType(media_type).value)

        if category:
            conditions.append(
                "EXISTS (SELECT 1 FROM json_each(media_items.categories) "
                "WHERE json_each.value = ?)"
            )
            params.append(category)

        where_clause = " WHERE " + " AND ".join(conditions)

        try:
            total_count = self._execute(
                f"SELECT COUNT(*) FROM media_items{where_clause}", params
            )[0][0]
            rows = self._execute(
                f"SELECT * FROM media_items{where_clause} "
                f"ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
                params + [limit, offset],
            )
        except StorageError:
            raise
        except Exception as e:
            error_msg = f"Failed to list media items: {e}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

        return [self._row_to_media_item(row) for row in rows], total_count

    def update_media_item(
        self,
        owner_id: str,
        item_id: UUID,
        journal: Optional[str] = None,
        description: Optional[str] = None,
        categories: Optional[List[str]] = None,
    ) -> Optional[MediaItem]:
        """
        Update the editable fields of a media item.

        Type, fingerprint and creation time are never changed.

        Returns:
            Updated item, or None if the owner has no such item

        Raises:
            CategoryValidationError: If a category is not in the vocabulary
        """
        existing = self.get_media_item(owner_id, item_id)
        if existing is None:
            return None

        update_fields = []
        params: List = []

        if journal is not None:
            update_fields.append("journal = ?")
            params.append(journal)

        if description is not None:
            update_fields.append("description = ?")
            params.append(description)

        if categories is not None:
            update_fields.append("categories = ?")
            params.append(
                json.dumps(self._validate_categories(owner_id, categories))
            )

        if not update_fields:
            return existing

        params.extend([str(item_id), owner_id])
        self._execute(
            f"UPDATE media_items SET {', '.join(update_fields)} "
            f"WHERE id = ? AND owner_id = ?",
            params,
        )

        return self.get_media_item(owner_id, item_id)

    def get_media_path(self, owner_id: str, item_id: UUID) -> Path:
        """
        Locate the stored file of a media item.

        Raises:
            MediaNotFoundError: If the item or its file is missing
        """
        rows = self._execute(
            "SELECT file_path FROM media_items WHERE id = ? AND owner_id = ?",
            (str(item_id), owner_id),
        )
        if not rows:
            raise MediaNotFoundError(f"Media item not found: {item_id}")

        path = Path(rows[0]["file_path"])
        if not path.exists():
            raise MediaNotFoundError(f"Media file missing: {item_id}")
        return path

    def count_media_items(self) -> int:
        try:
            return self._execute("SELECT COUNT(*) FROM media_items")[0][0]
        except Exception as e:
            logger.error(f"Failed to count media items: {e}")
            return 0
