from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, validator

from studio_api.models.event import EventStatus


class ThumbnailDescriptor(BaseModel):
    """One entry of a photo's thumbnail manifest"""
    size: int = Field(..., description="Longest edge in pixels")
    path: str = Field(..., description="Storage key of the thumbnail")
    url: str = Field(..., description="Public URL of the thumbnail")


class EventSummary(BaseModel):
    id: UUID
    title: str
    access_code: str
    status: EventStatus
    event_date: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class PhotoResponse(BaseModel):
    """Photo record as returned by the API"""
    id: UUID
    event_id: Optional[UUID] = None
    uploaded_by: UUID
    filename: str = Field(..., description="Generated storage filename")
    original_filename: str = Field(..., description="Filename supplied by the uploader")
    storage_path: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    description: Optional[str] = None
    is_featured: bool
    is_approved: bool
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("photo_metadata", "metadata"),
    )
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PhotoWithEventResponse(PhotoResponse):
    event: Optional[EventSummary] = None


class FailedUpload(BaseModel):
    filename: str
    original_filename: str
    error: str


class UploadResults(BaseModel):
    successful: List[PhotoResponse]
    failed: List[FailedUpload]


class UploadSummary(BaseModel):
    total: int
    successful: int
    failed: int


class BulkUploadResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    results: UploadResults
    summary: UploadSummary


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_previous: bool


class PhotoListResponse(BaseModel):
    photos: List[PhotoWithEventResponse]
    pagination: Pagination


class GalleryResponse(BaseModel):
    event: EventSummary
    photos: List[PhotoResponse]
    pagination: Pagination


class BulkPhotoOperation(BaseModel):
    photo_ids: List[UUID] = Field(..., min_length=1, description="Photos to operate on")
    operation: Literal["approve", "reject", "feature", "unfeature", "delete"]
    value: Optional[bool] = None


class BulkOperationResponse(BaseModel):
    success: bool = True
    message: str
    affected_count: int
    updated_photos: Optional[List[PhotoResponse]] = None


class PhotoMetadataUpdate(BaseModel):
    camera: Optional[str] = None
    lens: Optional[str] = None
    iso: Optional[int] = Field(None, ge=50, le=25600)
    aperture: Optional[str] = None
    shutterSpeed: Optional[str] = None
    focalLength: Optional[float] = Field(None, ge=1, le=2000)
    flash: Optional[bool] = None
    captureDate: Optional[datetime] = None
    tags: Optional[List[str]] = Field(None, max_length=20)
    colorProfile: Optional[str] = Field(None, max_length=100)
    orientation: Optional[int] = Field(None, ge=1, le=8)

    @validator("tags")
    def validate_tags(cls, v):
        if v is not None and any(not tag or len(tag) > 50 for tag in v):
            raise ValueError("Tags must be between 1 and 50 characters")
        return v


class PhotoUpdate(BaseModel):
    description: Optional[str] = Field(None, max_length=1000)
    is_featured: Optional[bool] = None
    is_approved: Optional[bool] = None
    metadata: Optional[PhotoMetadataUpdate] = None


class UploadConfigResponse(BaseModel):
    max_file_size: int
    max_files_per_upload: int
    raw_extensions: List[str]
    allowed_content_types: List[str]
    thumbnail_sizes: List[int]


class ReconcileResponse(BaseModel):
    dry_run: bool
    scanned: int
    orphaned: List[str]
    deleted: List[str]
    errors: Dict[str, str]
