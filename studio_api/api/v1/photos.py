import logging
import uuid
from typing import List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from studio_api.auth.dependencies import get_current_admin, get_current_user
from studio_api.config import settings
from studio_api.core.file_security import ALLOWED_MIME_TYPES, RAW_EXTENSIONS
from studio_api.core.s3_config import S3Config
from studio_api.core.uploads import MultipartUpload
from studio_api.database import get_session
from studio_api.models.user import User
from studio_api.schemas.photo import (
	BulkOperationResponse,
	BulkPhotoOperation,
	BulkUploadResponse,
	PhotoListResponse,
	PhotoResponse,
	PhotoUpdate,
	PhotoWithEventResponse,
	ReconcileResponse,
	UploadConfigResponse,
)
from studio_api.services.ingestion_service import IngestOptions, IngestionService
from studio_api.services.photo_service import PhotoService, build_pagination
from studio_api.services.reconciliation_service import ReconciliationService
from studio_api.services.report_service import report_batch
from studio_api.services.storage_service import StorageService, get_storage_service, photo_object_paths

router = APIRouter()
logger = logging.getLogger(__name__)

PAST_TENSE = {
	"approve": "approved",
	"reject": "rejected",
	"feature": "featured",
	"unfeature": "unfeatured",
	"delete": "deleted",
}


def _check_batch_size(files: Optional[List[UploadFile]]) -> List[UploadFile]:
	files = [f for f in files or [] if f is not None]
	if not files:
		raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files provided")
	if len(files) > settings.MAX_FILES_PER_UPLOAD:
		raise HTTPException(
			status_code=status.HTTP_400_BAD_REQUEST,
			detail=f"Too many files: at most {settings.MAX_FILES_PER_UPLOAD} per upload"
		)
	return files


@router.get("/config", response_model=UploadConfigResponse)
async def get_upload_config():
	"""Upload limits and accepted formats, for clients that validate before sending"""
	return UploadConfigResponse(
		max_file_size=S3Config.MAX_FILE_SIZE,
		max_files_per_upload=settings.MAX_FILES_PER_UPLOAD,
		raw_extensions=sorted(RAW_EXTENSIONS),
		allowed_content_types=sorted(ALLOWED_MIME_TYPES),
		thumbnail_sizes=list(S3Config.THUMBNAIL_SIZES),
	)


@router.get("/storage/check")
async def check_storage(
		current_user: User = Depends(get_current_admin),
		storage: StorageService = Depends(get_storage_service)
):
	ok, error = storage.check_configuration()
	return {
		"bucket": storage.bucket_name,
		"accessible": ok,
		"error": error,
	}


@router.post("/storage/reconcile", response_model=ReconcileResponse)
async def reconcile_storage(
		dry_run: bool = Query(True, description="Only report orphans, delete nothing"),
		current_user: User = Depends(get_current_admin),
		session: AsyncSession = Depends(get_session),
		storage: StorageService = Depends(get_storage_service)
):
	"""Sweep storage objects that no photo record references"""
	report = await ReconciliationService(session, storage).reconcile(dry_run=dry_run)
	return ReconcileResponse(
		dry_run=report.dry_run,
		scanned=report.scanned,
		orphaned=report.orphaned,
		deleted=report.deleted,
		errors=report.errors,
	)


@router.post("", response_model=BulkUploadResponse)
async def upload_event_photos(
		event_id: Optional[str] = Form(None),
		files: Optional[List[UploadFile]] = File(None),
		description: Optional[str] = Form(None),
		is_featured: bool = Form(False),
		auto_approve: bool = Form(True),
		current_user: User = Depends(get_current_admin),
		session: AsyncSession = Depends(get_session),
		storage: StorageService = Depends(get_storage_service)
):
	"""
	Upload photos into an event.

	Every file is processed independently; the response lists successful
	photos and per-file failures.
	"""
	if not event_id:
		raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Event ID is required")
	try:
		event_uuid = uuid.UUID(event_id)
	except ValueError:
		raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid event ID")

	files = _check_batch_size(files)

	photos = PhotoService(session)
	if not await photos.get_event(event_uuid):
		raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Event not found")

	# Read before ingesting; a failed insert rolls back and expires the user
	uploader_id = current_user.id
	logger.info(f"{current_user.username} uploading {len(files)} files to event {event_uuid}")

	batch = await IngestionService(storage, photos).ingest(
		[MultipartUpload(f) for f in files],
		IngestOptions(
			event_id=event_uuid,
			description=description,
			is_featured=is_featured,
			auto_approve=auto_approve,
		),
		uploader_id,
	)
	return report_batch(batch, privileged=True)


@router.post("/free-upload", response_model=BulkUploadResponse)
async def free_upload(
		files: Optional[List[UploadFile]] = File(None),
		description: Optional[str] = Form(None),
		is_featured: bool = Form(False),
		auto_approve: bool = Form(False),
		current_user: User = Depends(get_current_user),
		session: AsyncSession = Depends(get_session),
		storage: StorageService = Depends(get_storage_service)
):
	"""Upload photos that belong to no event"""
	files = _check_batch_size(files)

	uploader_id = current_user.id
	privileged = current_user.is_admin
	logger.info(f"{current_user.username} free-uploading {len(files)} files")

	batch = await IngestionService(storage, PhotoService(session)).ingest(
		[MultipartUpload(f) for f in files],
		IngestOptions(
			event_id=None,
			description=description,
			is_featured=is_featured,
			auto_approve=auto_approve,
		),
		uploader_id,
	)
	return report_batch(batch, privileged=privileged, with_message=True)


@router.get("", response_model=PhotoListResponse)
async def list_photos(
		page: int = Query(1, ge=1),
		limit: int = Query(20, ge=1, le=100),
		event_id: Optional[uuid.UUID] = Query(None),
		search: Optional[str] = Query(None, max_length=200),
		featured: Optional[bool] = Query(None),
		approved: Optional[bool] = Query(None),
		sort: Literal["upload_date", "filename", "file_size"] = Query("upload_date"),
		order: Literal["asc", "desc"] = Query("desc"),
		current_user: User = Depends(get_current_user),
		session: AsyncSession = Depends(get_session)
):
	photos, total = await PhotoService(session).list_photos(
		current_user,
		page=page,
		limit=limit,
		event_id=event_id,
		search=search,
		featured=featured,
		approved=approved,
		sort=sort,
		order=order,
	)
	return PhotoListResponse(
		photos=[PhotoWithEventResponse.model_validate(p) for p in photos],
		pagination=build_pagination(page, limit, total),
	)


@router.patch("", response_model=BulkOperationResponse)
async def bulk_operation(
		request: BulkPhotoOperation,
		background_tasks: BackgroundTasks,
		current_user: User = Depends(get_current_admin),
		session: AsyncSession = Depends(get_session),
		storage: StorageService = Depends(get_storage_service)
):
	"""Moderate or delete several photos at once"""
	photos = PhotoService(session)
	photo_ids = list(dict.fromkeys(request.photo_ids))

	if request.operation == "delete":
		removed = await photos.delete_photos(photo_ids)

		paths = [p for path, metadata in removed for p in photo_object_paths(path, metadata)]
		if paths:
			# Rows are gone already; storage cleanup is best-effort
			background_tasks.add_task(storage.delete, paths)

		return BulkOperationResponse(
			message=f"Successfully deleted {len(removed)} photos",
			affected_count=len(removed),
		)

	updated = await photos.bulk_update(photo_ids, request.operation)
	return BulkOperationResponse(
		message=f"Successfully {PAST_TENSE[request.operation]} {len(updated)} photos",
		affected_count=len(updated),
		updated_photos=[PhotoResponse.model_validate(p) for p in updated],
	)


@router.patch("/{photo_id}", response_model=PhotoResponse)
async def update_photo(
		photo_id: uuid.UUID,
		request: PhotoUpdate,
		current_user: User = Depends(get_current_admin),
		session: AsyncSession = Depends(get_session)
):
	photo = await PhotoService(session).update_photo(photo_id, request)
	if not photo:
		raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Photo not found")
	return PhotoResponse.model_validate(photo)
