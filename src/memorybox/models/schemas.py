"""
Memorybox schemas.

Domain and request/response models for:
- Media items: create, list, get, patch (never deleted)
- Categories: per-owner vocabulary CRUD
- Upload suggestions: duplicate warnings and AI caption/category suggestions
- Journal: AI-assisted journal suggestions
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class MediaType(str, Enum):
    """Kinds of media an item can hold."""

    IMAGE = "image"
    VIDEO = "video"


class SuggestionType(str, Enum):
    """Journal suggestion flavours offered to the user."""

    SPECIAL_DAY = "special-day"
    MOOD = "mood"
    POETIC = "poetic"


# ========================================
# DOMAIN SCHEMAS
# ========================================


class Category(BaseModel):
    """A category in an owner's vocabulary."""

    id: UUID = Field(..., description="Unique category identifier")
    name: str = Field(..., description="Category name")
    owner_id: str = Field(..., alias="ownerId", description="Owning user")
    created_at: datetime = Field(
        ..., alias="createdAt", description="Creation timestamp"
    )

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class MediaItem(BaseModel):
    """A stored photo or video with its caption, categories and journal."""

    id: UUID = Field(..., description="Unique media identifier")
    owner_id: str = Field(..., alias="ownerId", description="Owning user")
    type: MediaType = Field(..., description="Media type, fixed at creation")
    phash: Optional[str] = Field(
        None, description="Perceptual fingerprint, images only"
    )
    description: str = Field("", description="Caption")
    categories: List[str] = Field(
        default_factory=list, description="Category names from the vocabulary"
    )
    journal: str = Field("", description="Free-text journal entry")
    filename: str = Field(..., description="Original filename")
    mime_type: str = Field(..., alias="mimeType", description="MIME type")
    file_size: int = Field(..., alias="fileSize", description="File size in bytes")
    created_at: datetime = Field(
        ..., alias="createdAt", description="Creation timestamp"
    )

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class Suggestions(BaseModel):
    """Caption and categories proposed by the vision model."""

    description: str = Field("", description="Suggested caption")
    categories: List[str] = Field(
        default_factory=list, description="Suggested categories"
    )


# ========================================
# UPLOAD SCHEMAS
# ========================================


class UploadSuggestionResponse(BaseModel):
    """Response for a processed upload."""

    message: str = Field(..., description="Status message")
    suggestions: Suggestions = Field(..., description="AI suggestions")


class DuplicateWarningResponse(BaseModel):
    """Response when a near-identical image already exists."""

    message: str = Field(..., description="Warning message")
    is_duplicate: bool = Field(True, alias="isDuplicate")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class MessageResponse(BaseModel):
    """Plain message body used for errors."""

    message: str = Field(..., description="Status message")


# ========================================
# MEDIA SCHEMAS
# ========================================


class MediaItemListResponse(BaseModel):
    """Response for media listing."""

    items: List[MediaItem] = Field(..., description="Media items")
    total_count: int = Field(..., alias="totalCount", description="Total items")
    limit: int = Field(..., description="Query limit")
    offset: int = Field(..., description="Query offset")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True


class MediaItemUpdateRequest(BaseModel):
    """Request for updating a media item."""

    journal: Optional[str] = Field(None, description="New journal text")
    description: Optional[str] = Field(None, description="New caption")
    categories: Optional[List[str]] = Field(None, description="New categories")

    @field_validator("categories")
    @classmethod
    def clean_categories(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Strip blanks and drop repeated names, keeping order."""
        if v is None:
            return None
        cleaned = [name.strip() for name in v if name.strip()]
        return list(dict.fromkeys(cleaned))


# ========================================
# JOURNAL SCHEMAS
# ========================================


class JournalSuggestionRequest(BaseModel):
    """Request for an AI journal suggestion."""

    media_id: UUID = Field(..., alias="mediaId", description="Media item ID")
    suggestion_type: SuggestionType = Field(
        ..., alias="suggestionType", description="Suggestion flavour"
    )
    user_id: str = Field(..., alias="userId", description="Owning user")
    append: bool = Field(
        False, description="Append the suggestion to the stored journal"
    )

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("userId cannot be empty")
        return v.strip()


class JournalSuggestionResponse(BaseModel):
    """Response carrying generated journal text."""

    suggestion: str = Field(..., description="Generated text")
    journal: Optional[str] = Field(
        None, description="Stored journal after appending, if requested"
    )


# ========================================
# CATEGORY SCHEMAS
# ========================================


class CategoryCreateRequest(BaseModel):
    """Request for creating a category."""

    user_id: str = Field(..., alias="userId", description="Owning user")
    name: str = Field(..., description="Category name")

    class Config:
        """Pydantic configuration."""

        populate_by_name = True

    @field_validator("user_id", "name")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Value cannot be empty")
        return v.strip()


class CategoryListResponse(BaseModel):
    """Response for category listing."""

    categories: List[Category] = Field(..., description="Owner vocabulary")


# ========================================
# VISION SCHEMAS
# ========================================


class VisionProviderInfo(BaseModel):
    """Vision provider information."""

    name: str = Field(..., description="Provider name")
    available: bool = Field(..., description="Provider availability")
    model: Optional[str] = Field(None, description="Current model")


class VisionProvidersResponse(BaseModel):
    """Response for vision providers list."""

    current_provider: str = Field(..., description="Current active provider")
    providers: List[VisionProviderInfo] = Field(..., description="Providers")


class VisionSwitchRequest(BaseModel):
    """Request to switch vision provider."""

    provider: str = Field(..., description="Provider to switch to")

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate provider name."""
        valid_providers = ["gemini", "openai", "local"]
        if v.lower() not in valid_providers:
            raise ValueError(f"Provider must be one of: {', '.join(valid_providers)}")
        return v.lower()


class VisionSwitchResponse(BaseModel):
    """Response for vision provider switch."""

    previous_provider: str = Field(..., description="Previous provider")
    current_provider: str = Field(..., description="New current provider")
    message: str = Field(..., description="Status message")


# ========================================
# SYSTEM SCHEMAS
# ========================================


class HealthResponse(BaseModel):
    """System health check response."""

    status: str = Field(..., description="Overall system status")
    components: Dict[str, Any] = Field(..., description="Component status details")
