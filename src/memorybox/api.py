"""
Memorybox API.

- Upload: duplicate check and AI caption/category suggestions
- Media items: create, list, get, patch, file download
- Journal: AI-assisted journal suggestions
- Categories: per-owner vocabulary CRUD
- Vision: provider listing and switching
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional
from uuid import UUID

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings
from .hashing import PerceptualHashError, compute_phash_async
from .journal import JournalAssistant, JournalSuggestionError, append_journal
from .models.schemas import (
    Category,
    CategoryCreateRequest,
    CategoryListResponse,
    DuplicateWarningResponse,
    HealthResponse,
    JournalSuggestionRequest,
    JournalSuggestionResponse,
    MediaItem,
    MediaItemListResponse,
    MediaItemUpdateRequest,
    MediaType,
    MessageResponse,
    UploadSuggestionResponse,
    VisionProviderInfo,
    VisionProvidersResponse,
    VisionSwitchRequest,
    VisionSwitchResponse,
)
from .pipeline import (
    DuplicateOutcome,
    UploadOrchestrator,
    UploadValidationError,
)
from .storage import (
    CategoryValidationError,
    MediaNotFoundError,
    StorageError,
    StorageManager,
)
from .validation import format_file_size, is_valid_file_size, is_valid_file_type
from .vision import VisionError, VisionManager, VisionProvider

logger = logging.getLogger(__name__)

MISSING_FIELDS = "Missing required fields"
INTERNAL_ERROR = "Internal server error"


def _owner_from(user_id: Optional[str], owner_id: Optional[str]) -> str:
    return (user_id or "").strip() or (owner_id or "").strip()


def _require_owner(user_id: Optional[str], owner_id: Optional[str]) -> str:
    owner = _owner_from(user_id, owner_id)
    if not owner:
        raise HTTPException(status_code=400, detail=MISSING_FIELDS)
    return owner


def _split_categories(values: Optional[List[str]]) -> List[str]:
    """Accept repeated form fields as well as comma separated values."""
    names: List[str] = []
    for value in values or []:
        names.extend(part.strip() for part in value.split(",") if part.strip())
    return list(dict.fromkeys(names))


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[StorageManager] = None,
    vision: Optional[VisionManager] = None,
) -> FastAPI:
    """Create Memorybox FastAPI application."""
    if settings is None:
        settings = Settings()
    assert settings is not None, "Settings must be provided or created"

    storage_manager = storage or StorageManager(settings)
    storage_manager.connect()

    vision_manager = vision or VisionManager(settings)
    orchestrator = UploadOrchestrator(storage_manager, vision_manager, settings)
    journal_assistant = JournalAssistant(storage_manager, vision_manager, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        storage_manager.connect()
        yield
        storage_manager.close()

    app = FastAPI(
        title="Memorybox API",
        description="Personal media gallery with AI-assisted captions and journals",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code, content={"message": str(exc.detail)}
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request, exc: RequestValidationError):
        errors = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        return JSONResponse(
            status_code=400, content={"message": f"Invalid request: {errors}"}
        )

    # Dependency providers
    def get_storage_manager() -> StorageManager:
        assert storage_manager is not None, "Storage manager not initialized"
        return storage_manager

    def get_vision_manager() -> VisionManager:
        assert vision_manager is not None, "Vision manager not initialized"
        return vision_manager

    def get_orchestrator() -> UploadOrchestrator:
        return orchestrator

    def get_journal_assistant() -> JournalAssistant:
        return journal_assistant

    # ========================================
    # UPLOAD
    # ========================================

    @app.post(
        "/api/upload",
        response_model=None,
        tags=["Upload"],
        summary="Analyze an upload",
        description=(
            "Check an upload for duplicates and get AI caption and category "
            "suggestions. Nothing is stored."
        ),
        responses={
            200: {"model": UploadSuggestionResponse},
            400: {"model": MessageResponse},
            500: {"model": MessageResponse},
        },
    )
    async def upload_for_suggestions(
        file: Optional[UploadFile] = File(None),
        user_id: Optional[str] = Form(None, alias="userId"),
        owner_id: Optional[str] = Form(None, alias="ownerId"),
        media_type: Optional[str] = Form(None, alias="type"),
        orchestrator: UploadOrchestrator = Depends(get_orchestrator),
    ) -> JSONResponse:
        """Run the upload pipeline and return suggestions or a duplicate warning."""
        try:
            data = await file.read() if file is not None else None
            outcome = await orchestrator.suggest(
                data=data,
                owner_id=_owner_from(user_id, owner_id),
                media_type=media_type,
                mime_type=file.content_type if file is not None else None,
                filename=file.filename if file is not None else None,
            )
        except UploadValidationError as e:
            logger.warning(f"Rejected upload: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error(f"Upload error: {e}")
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

        if isinstance(outcome, DuplicateOutcome):
            body = DuplicateWarningResponse(message=outcome.message)
        else:
            body = UploadSuggestionResponse(
                message=outcome.message, suggestions=outcome.suggestions
            )
        return JSONResponse(
            status_code=200, content=body.model_dump(by_alias=True, mode="json")
        )

    # ========================================
    # MEDIA ITEMS
    # ========================================

    @app.post(
        "/api/media",
        response_model=MediaItem,
        status_code=201,
        tags=["Media"],
        summary="Store a media item",
        description="Store an uploaded file with its caption and categories.",
    )
    async def create_media_item(
        file: Optional[UploadFile] = File(None),
        user_id: Optional[str] = Form(None, alias="userId"),
        owner_id: Optional[str] = Form(None, alias="ownerId"),
        media_type: Optional[str] = Form(None, alias="type"),
        description: str = Form(""),
        categories: Optional[List[str]] = Form(None),
        journal: str = Form(""),
        storage: StorageManager = Depends(get_storage_manager),
    ) -> MediaItem:
        """Persist a media item, fingerprinting images on the way in."""
        owner = _require_owner(user_id, owner_id)
        if file is None or not media_type:
            raise HTTPException(status_code=400, detail=MISSING_FIELDS)
        try:
            kind = MediaType(media_type)
        except ValueError:
            raise HTTPException(
                status_code=400, detail=f"Invalid media type: {media_type}"
            )

        data = await file.read()
        if not data:
            raise HTTPException(status_code=400, detail=MISSING_FIELDS)

        mime_type = file.content_type or ""
        if not is_valid_file_type(mime_type, kind):
            raise HTTPException(
                status_code=400,
                detail=f"Invalid file type {mime_type!r} for {kind.value}",
            )
        if not is_valid_file_size(len(data), kind, settings):
            limit = (
                settings.max_image_size
                if kind == MediaType.IMAGE
                else settings.max_video_size
            )
            raise HTTPException(
                status_code=400,
                detail=(
                    f"File too large ({format_file_size(len(data))}), "
                    f"maximum is {format_file_size(limit)}"
                ),
            )

        phash = None
        if kind == MediaType.IMAGE:
            try:
                phash = await compute_phash_async(data, settings.hash_timeout_seconds)
            except PerceptualHashError as e:
                logger.warning(f"pHash error, storing without fingerprint: {e}")

        try:
            return await asyncio.to_thread(
                storage.create_media_item,
                owner_id=owner,
                media_type=kind,
                data=data,
                filename=file.filename or "unknown",
                mime_type=mime_type,
                description=description,
                categories=_split_categories(categories),
                journal=journal,
                phash=phash,
            )
        except CategoryValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error(f"Media creation failed: {e}")
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

    @app.get(
        "/api/media",
        response_model=MediaItemListResponse,
        tags=["Media"],
        summary="List media items",
    )
    async def list_media_items(
        user_id: Optional[str] = Query(None, alias="userId"),
        owner_id: Optional[str] = Query(None, alias="ownerId"),
        media_type: Optional[MediaType] = Query(None, alias="type"),
        category: Optional[str] = Query(None),
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
        storage: StorageManager = Depends(get_storage_manager),
    ) -> MediaItemListResponse:
        owner = _require_owner(user_id, owner_id)
        try:
            items, total_count = await asyncio.to_thread(
                storage.list_media_items,
                owner,
                media_type=media_type,
                category=category,
                limit=limit,
                offset=offset,
            )
        except Exception as e:
            logger.error(f"Media listing failed: {e}")
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

        return MediaItemListResponse(
            items=items, total_count=total_count, limit=limit, offset=offset
        )

    @app.get(
        "/api/media/file/{item_id}",
        tags=["Media"],
        summary="Download media file",
    )
    async def get_media_file(
        item_id: UUID,
        user_id: Optional[str] = Query(None, alias="userId"),
        owner_id: Optional[str] = Query(None, alias="ownerId"),
        storage: StorageManager = Depends(get_storage_manager),
    ) -> FileResponse:
        owner = _require_owner(user_id, owner_id)
        try:
            item = await asyncio.to_thread(storage.get_media_item, owner, item_id)
            if item is None:
                raise MediaNotFoundError(f"Media item not found: {item_id}")
            path = await asyncio.to_thread(storage.get_media_path, owner, item_id)
        except MediaNotFoundError:
            raise HTTPException(status_code=404, detail="Media not found")
        except Exception as e:
            logger.error(f"Media file retrieval failed: {e}")
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

        return FileResponse(
            path,
            media_type=item.mime_type,
            filename=item.filename,
            content_disposition_type="inline",
        )

    @app.post(
        "/api/media/suggest",
        response_model=JournalSuggestionResponse,
        tags=["Journal"],
        summary="Generate journal text",
        description="Ask the vision model for journal text about a stored item.",
    )
    async def suggest_journal(
        request: JournalSuggestionRequest,
        assistant: JournalAssistant = Depends(get_journal_assistant),
        storage: StorageManager = Depends(get_storage_manager),
    ) -> JournalSuggestionResponse:
        try:
            suggestion = await assistant.suggest(
                request.user_id, request.media_id, request.suggestion_type
            )
        except MediaNotFoundError:
            raise HTTPException(status_code=404, detail="Media not found")
        except JournalSuggestionError as e:
            raise HTTPException(status_code=502, detail=str(e))
        except Exception as e:
            logger.error(f"Journal suggestion failed: {e}")
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

        if not request.append:
            return JournalSuggestionResponse(suggestion=suggestion)

        try:
            item = await asyncio.to_thread(
                storage.get_media_item, request.user_id, request.media_id
            )
            if item is None:
                raise HTTPException(status_code=404, detail="Media not found")
            updated = await asyncio.to_thread(
                storage.update_media_item,
                request.user_id,
                request.media_id,
                journal=append_journal(item.journal, suggestion),
            )
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Journal append failed: {e}")
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

        return JournalSuggestionResponse(suggestion=suggestion, journal=updated.journal)

    @app.get(
        "/api/media/{item_id}",
        response_model=MediaItem,
        tags=["Media"],
        summary="Get media item",
    )
    async def get_media_item(
        item_id: UUID,
        user_id: Optional[str] = Query(None, alias="userId"),
        owner_id: Optional[str] = Query(None, alias="ownerId"),
        storage: StorageManager = Depends(get_storage_manager),
    ) -> MediaItem:
        owner = _require_owner(user_id, owner_id)
        try:
            item = await asyncio.to_thread(storage.get_media_item, owner, item_id)
        except Exception as e:
            logger.error(f"Media retrieval failed: {e}")
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

        if item is None:
            raise HTTPException(status_code=404, detail="Media not found")
        return item

    @app.patch(
        "/api/media/{item_id}",
        response_model=MediaItem,
        tags=["Media"],
        summary="Update media item",
        description="Update the journal, caption or categories of an item.",
    )
    async def update_media_item(
        item_id: UUID,
        request: MediaItemUpdateRequest,
        user_id: Optional[str] = Query(None, alias="userId"),
        owner_id: Optional[str] = Query(None, alias="ownerId"),
        storage: StorageManager = Depends(get_storage_manager),
    ) -> MediaItem:
        owner = _require_owner(user_id, owner_id)
        try:
            item = await asyncio.to_thread(
                storage.update_media_item,
                owner,
                item_id,
                journal=request.journal,
                description=request.description,
                categories=request.categories,
            )
        except CategoryValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error(f"Media update failed: {e}")
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

        if item is None:
            raise HTTPException(status_code=404, detail="Media not found")
        return item

    # ========================================
    # CATEGORIES
    # ========================================

    @app.get(
        "/api/categories",
        response_model=CategoryListResponse,
        tags=["Categories"],
        summary="List categories",
    )
    async def list_categories(
        user_id: Optional[str] = Query(None, alias="userId"),
        owner_id: Optional[str] = Query(None, alias="ownerId"),
        storage: StorageManager = Depends(get_storage_manager),
    ) -> CategoryListResponse:
        owner = _require_owner(user_id, owner_id)
        try:
            categories = await asyncio.to_thread(storage.get_categories, owner)
        except Exception as e:
            logger.error(f"Category listing failed: {e}")
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)
        return CategoryListResponse(categories=categories)

    @app.post(
        "/api/categories",
        response_model=Category,
        status_code=201,
        tags=["Categories"],
        summary="Create category",
    )
    async def create_category(
        request: CategoryCreateRequest,
        storage: StorageManager = Depends(get_storage_manager),
    ) -> Category:
        try:
            return await asyncio.to_thread(
                storage.create_category, request.user_id, request.name
            )
        except Exception as e:
            logger.error(f"Category creation failed: {e}")
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

    @app.post(
        "/api/categories/defaults",
        response_model=CategoryListResponse,
        tags=["Categories"],
        summary="Seed default categories",
        description="Give an owner the default vocabulary if they have none.",
    )
    async def seed_default_categories(
        user_id: Optional[str] = Query(None, alias="userId"),
        owner_id: Optional[str] = Query(None, alias="ownerId"),
        storage: StorageManager = Depends(get_storage_manager),
    ) -> CategoryListResponse:
        owner = _require_owner(user_id, owner_id)
        try:
            categories = await asyncio.to_thread(
                storage.seed_default_categories, owner
            )
        except Exception as e:
            logger.error(f"Category seeding failed: {e}")
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)
        return CategoryListResponse(categories=categories)

    @app.delete(
        "/api/categories/{category_id}",
        response_model=MessageResponse,
        tags=["Categories"],
        summary="Delete category",
    )
    async def delete_category(
        category_id: UUID,
        user_id: Optional[str] = Query(None, alias="userId"),
        owner_id: Optional[str] = Query(None, alias="ownerId"),
        storage: StorageManager = Depends(get_storage_manager),
    ) -> MessageResponse:
        owner = _require_owner(user_id, owner_id)
        try:
            deleted = await asyncio.to_thread(
                storage.delete_category, owner, category_id
            )
        except Exception as e:
            logger.error(f"Category deletion failed: {e}")
            raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

        if not deleted:
            raise HTTPException(status_code=404, detail="Category not found")
        return MessageResponse(message="Category deleted")

    # ========================================
    # VISION
    # ========================================

    @app.get(
        "/api/vision/providers",
        response_model=VisionProvidersResponse,
        tags=["Vision"],
        summary="List vision providers",
    )
    async def list_vision_providers(
        vision: VisionManager = Depends(get_vision_manager),
    ) -> VisionProvidersResponse:
        available = vision.get_available_providers()
        providers = [
            VisionProviderInfo(
                name=provider.value,
                available=provider in available,
                model=(
                    vision.providers[provider].get_model_name()
                    if provider in available
                    else None
                ),
            )
            for provider in VisionProvider
        ]
        return VisionProvidersResponse(
            current_provider=vision.get_current_provider().value,
            providers=providers,
        )

    @app.post(
        "/api/vision/switch",
        response_model=VisionSwitchResponse,
        tags=["Vision"],
        summary="Switch vision provider",
    )
    async def switch_vision_provider(
        request: VisionSwitchRequest,
        vision: VisionManager = Depends(get_vision_manager),
    ) -> VisionSwitchResponse:
        previous = vision.get_current_provider()
        try:
            vision.switch_provider(VisionProvider(request.provider))
        except VisionError as e:
            logger.error(f"Vision provider switch failed: {e}")
            raise HTTPException(status_code=400, detail=str(e))

        return VisionSwitchResponse(
            previous_provider=previous.value,
            current_provider=request.provider,
            message=f"Switched to {request.provider} provider",
        )

    # ========================================
    # SYSTEM
    # ========================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check(
        storage: StorageManager = Depends(get_storage_manager),
        vision: VisionManager = Depends(get_vision_manager),
    ) -> HealthResponse:
        storage_status = {
            "connected": storage.is_connected,
            "total_media_items": (
                await asyncio.to_thread(storage.count_media_items)
                if storage.is_connected
                else 0
            ),
            "media_path": str(storage.media_storage_path),
            "database_path": str(storage.db_path),
        }
        vision_status = {
            "current_provider": vision.get_current_provider().value,
            "available_providers": [
                provider.value for provider in vision.get_available_providers()
            ],
        }

        return HealthResponse(
            status="healthy" if storage.is_connected else "degraded",
            components={"storage": storage_status, "vision": vision_status},
        )

    return app
