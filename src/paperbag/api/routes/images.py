"""Image upload, transformation and gallery endpoints.

- POST /api/images/upload-url - Signed URL for uploading a photo
- POST /api/images - Register an uploaded photo as a pending image
- POST /api/images/transform - Request a cartoon transformation
- GET /api/images - Page through the caller's images
- GET /api/images/{image_id} - Current status of one image
"""

from dataclasses import replace
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from paperbag.api.dependencies import get_request_context, get_services
from paperbag.models.image import FILE_NAME_MAX_LENGTH, ImageRecord
from paperbag.security.middleware import RequestContext
from paperbag.services.container import Services

router = APIRouter(prefix="/api/images", tags=["images"])


# Request/Response Models


class UploadUrlResponse(BaseModel):
    upload_url: str


class SaveImageRequest(BaseModel):
    """Metadata of a photo the client has uploaded to blob storage."""

    storage_id: str = Field(..., min_length=1, max_length=255)
    user_id: str = Field(..., min_length=1, max_length=255)
    file_name: str | None = Field(default=None, max_length=FILE_NAME_MAX_LENGTH)
    file_size: int | None = Field(default=None, ge=0)
    file_type: str | None = Field(default=None, max_length=100)


class SaveImageResponse(BaseModel):
    image_id: UUID


class TransformRequest(BaseModel):
    """Cartoon transformation request.

    `style` is validated by the handler so unsupported values are audit-logged.
    """

    storage_id: str = Field(..., min_length=1, max_length=255)
    style: Any = None
    user_agent: str | None = Field(default=None, max_length=500)
    ip_address: str | None = Field(default=None, max_length=100)


class TransformResponse(BaseModel):
    """Image status after the request.

    `success` is false when a concurrent request for the same image won the
    claim and the image is no longer processing (for example back at pending
    after that request failed to schedule); no job was started and the
    request may be repeated.
    """

    success: bool
    status: str


class ImageDTO(BaseModel):
    """Data Transfer Object for image records in API responses."""

    id: UUID
    user_id: str
    status: str = Field(
        ..., description="Transformation status (pending, processing, completed, failed, error)"
    )
    original_storage_id: str
    original_image_url: str | None = None
    cartoon_image_url: str | None = Field(
        default=None, description="Generated cartoon URL (null until completed)"
    )
    style: str | None = None
    file_name: str | None = None
    error_message: str | None = None
    created_at: int
    updated_at: int

    @classmethod
    def from_record(cls, image: ImageRecord) -> "ImageDTO":
        return cls(
            id=image.id,
            user_id=image.user_id,
            status=image.status.value,
            original_storage_id=image.original_storage_id,
            original_image_url=image.original_image_url,
            cartoon_image_url=image.cartoon_image_url,
            style=image.style,
            file_name=image.file_name,
            error_message=image.error_message,
            created_at=image.created_at,
            updated_at=image.updated_at,
        )


class ImageListResponse(BaseModel):
    images: list[ImageDTO]
    has_more: bool
    next_cursor: str | None = None


# Endpoints


@router.post("/upload-url", response_model=UploadUrlResponse)
async def generate_upload_url(
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
) -> UploadUrlResponse:
    upload_url = await services.images.generate_upload_url(ctx)
    return UploadUrlResponse(upload_url=upload_url)


@router.post("", response_model=SaveImageResponse)
async def save_uploaded_image(
    request: SaveImageRequest,
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
) -> SaveImageResponse:
    image_id = await services.images.save_uploaded_image(
        ctx,
        request.storage_id,
        request.user_id,
        file_name=request.file_name,
        file_size=request.file_size,
        file_type=request.file_type,
    )
    return SaveImageResponse(image_id=image_id)


@router.post("/transform", response_model=TransformResponse)
async def request_transformation(
    request: TransformRequest,
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
) -> TransformResponse:
    # Client-reported metadata takes precedence for audit entries
    ctx = replace(
        ctx,
        user_agent=request.user_agent or ctx.user_agent,
        ip_address=request.ip_address or ctx.ip_address,
    )
    result = await services.transformations.request_transformation(
        ctx, request.storage_id, request.style
    )
    return TransformResponse(success=result.success, status=result.status.value)


@router.get("", response_model=ImageListResponse)
async def list_images(
    user_id: str = Query(..., min_length=1),
    limit: int | None = Query(default=None, ge=1),
    cursor: str | None = Query(default=None),
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
) -> ImageListResponse:
    page = await services.images.list_images(ctx, user_id, limit=limit, cursor=cursor)
    return ImageListResponse(
        images=[ImageDTO.from_record(image) for image in page.images],
        has_more=page.has_more,
        next_cursor=page.next_cursor,
    )


@router.get("/{image_id}", response_model=ImageDTO)
async def get_image(
    image_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    services: Services = Depends(get_services),
) -> ImageDTO:
    image = await services.images.get_image(ctx, image_id)
    return ImageDTO.from_record(image)
