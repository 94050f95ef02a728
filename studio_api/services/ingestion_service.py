"""
Photo ingestion pipeline.

Each file walks ``pending -> validating -> (rejected | uploading) ->
(upload_failed | uploaded) -> thumbnailing -> (db_insert_failed | completed)``.
Files are independent: a failure at any stage is recorded for that file and
the rest of the batch carries on. Storage and image work for several files
may overlap (bounded by ``concurrency``); record inserts share one session and
are serialized.
"""
import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional, Sequence
from uuid import UUID

from fastapi.concurrency import run_in_threadpool

from studio_api.config import settings
from studio_api.core.file_security import generate_safe_filename, validate_image_file
from studio_api.core.uploads import UploadedFile
from studio_api.monitoring.metrics import photo_ingestion, photo_ingestion_duration
from studio_api.schemas.photo import PhotoResponse
from studio_api.services.metadata_service import extract_image_metadata
from studio_api.services.photo_service import PersistenceError, PhotoService
from studio_api.services.storage_service import (
    StorageConflictError,
    StorageError,
    StorageService,
    generate_photo_path,
    photo_object_paths,
)
from studio_api.services.thumbnail_service import ThumbnailService

logger = logging.getLogger(__name__)

UNNAMED_FILE = "unnamed_file"


class FileStage(str, enum.Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    REJECTED = "rejected"
    UPLOADING = "uploading"
    UPLOAD_FAILED = "upload_failed"
    UPLOADED = "uploaded"
    THUMBNAILING = "thumbnailing"
    DB_INSERT_FAILED = "db_insert_failed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class IngestOptions:
    event_id: Optional[UUID] = None
    description: Optional[str] = None
    is_featured: bool = False
    auto_approve: bool = True

    @property
    def upload_type(self) -> str:
        return "event" if self.event_id else "free"


@dataclass
class FileFailure:
    filename: str
    original_filename: str
    stage: FileStage
    message: str
    detail: Optional[str] = None


@dataclass
class BatchResult:
    successful: List[PhotoResponse] = field(default_factory=list)
    failed: List[FileFailure] = field(default_factory=list)
    total: int = 0


@dataclass
class _FileProgress:
    """Storage key a file claimed, if it got that far"""
    path: Optional[str] = None


class _FileFailed(Exception):
    def __init__(self, stage: FileStage, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.stage = stage
        self.message = message
        self.detail = detail


class IngestionService:
    def __init__(
        self,
        storage: StorageService,
        photos: PhotoService,
        thumbnails: Optional[ThumbnailService] = None,
        concurrency: int = settings.UPLOAD_CONCURRENCY,
        file_timeout: Optional[float] = settings.UPLOAD_FILE_TIMEOUT,
        name_generator: Callable[[str], str] = generate_safe_filename,
        today: Optional[Callable[[], date]] = None,
    ):
        self.storage = storage
        self.photos = photos
        self.thumbnails = thumbnails or ThumbnailService(storage)
        self.concurrency = max(1, concurrency)
        self.file_timeout = file_timeout
        self.name_generator = name_generator
        self.today = today
        self._insert_lock = asyncio.Lock()

    async def ingest(
        self,
        files: Sequence[UploadedFile],
        options: IngestOptions,
        uploader_id: Optional[UUID],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> BatchResult:
        """Run every file to a terminal state and collect the outcomes"""
        batch = BatchResult(total=len(files))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(file: UploadedFile) -> None:
            async with semaphore:
                # Cancellation is honoured between files, never mid-file
                if cancel_event is not None and cancel_event.is_set():
                    name = file.name or UNNAMED_FILE
                    batch.failed.append(FileFailure(
                        name, name, FileStage.CANCELLED, "Upload cancelled before processing"
                    ))
                    photo_ingestion.labels(outcome=FileStage.CANCELLED.value).inc()
                    return
                outcome = await self._ingest_file(file, options, uploader_id)
                if isinstance(outcome, FileFailure):
                    batch.failed.append(outcome)
                else:
                    batch.successful.append(outcome)

        await asyncio.gather(*(run(f) for f in files))

        logger.info(
            f"Ingestion finished: {len(batch.successful)} successful, "
            f"{len(batch.failed)} failed, {batch.total} total"
        )
        return batch

    async def _ingest_file(self, file: UploadedFile, options: IngestOptions, uploader_id: Optional[UUID]):
        started = time.monotonic()
        original_name = (file.name or "").strip()
        display_name = original_name or UNNAMED_FILE
        progress = _FileProgress()

        try:
            if not original_name:
                raise _FileFailed(FileStage.REJECTED, "File name is missing or invalid")

            if self.file_timeout:
                stored, prepared = await asyncio.wait_for(
                    self._store(file, options, progress), timeout=self.file_timeout
                )
            else:
                stored, prepared = await self._store(file, options, progress)

            async with self._insert_lock:
                photo = await self._insert(file, options, uploader_id, stored, prepared)

        except _FileFailed as failure:
            logger.warning(f"{display_name}: {failure.stage.value} - {failure.message}")
            photo_ingestion.labels(outcome=failure.stage.value).inc()
            return FileFailure(display_name, display_name, failure.stage, failure.message, failure.detail)
        except asyncio.TimeoutError:
            logger.warning(f"{display_name}: timed out after {self.file_timeout}s")
            await self._discard(progress)
            photo_ingestion.labels(outcome=FileStage.UPLOAD_FAILED.value).inc()
            return FileFailure(
                display_name, display_name, FileStage.UPLOAD_FAILED,
                "Upload timed out", f"timeout after {self.file_timeout}s",
            )
        except Exception as e:
            # Unexpected faults stay confined to this file
            logger.exception(f"{display_name}: processing failed")
            await self._discard(progress)
            photo_ingestion.labels(outcome=FileStage.UPLOAD_FAILED.value).inc()
            return FileFailure(
                display_name, display_name, FileStage.UPLOAD_FAILED,
                "Processing failed", type(e).__name__,
            )
        finally:
            photo_ingestion_duration.observe(time.monotonic() - started)

        photo_ingestion.labels(outcome=FileStage.COMPLETED.value).inc()
        logger.info(f"{display_name}: completed as {photo.storage_path}")
        return photo

    async def _store(self, file: UploadedFile, options: IngestOptions, progress: _FileProgress):
        """Validation, metadata, original upload and thumbnails for one file"""
        logger.debug(f"{file.name}: {FileStage.VALIDATING.value}")
        validation = validate_image_file(file)
        if not validation.is_valid:
            raise _FileFailed(FileStage.REJECTED, validation.error)

        logger.debug(f"{file.name}: {FileStage.UPLOADING.value}")
        data = await file.read_bytes()
        metadata = await run_in_threadpool(
            extract_image_metadata, data, file.size or len(data), file.content_type, file.last_modified
        )

        safe_name = self.name_generator(file.name)
        path = generate_photo_path(options.event_id, safe_name, self.today() if self.today else None)
        content_type = file.content_type or "application/octet-stream"

        progress.path = path
        try:
            stored = await run_in_threadpool(self.storage.upload, path, data, content_type)
        except StorageConflictError as e:
            # The key belongs to another photo
            progress.path = None
            raise _FileFailed(FileStage.UPLOAD_FAILED, "A file with the same storage name already exists", e.code)
        except StorageError as e:
            raise _FileFailed(FileStage.UPLOAD_FAILED, str(e), e.code)

        logger.debug(f"{file.name}: {FileStage.THUMBNAILING.value}")
        thumbnails = await self.thumbnails.generate_all(data, stored.path)
        return stored, (safe_name, metadata, thumbnails.succeeded)

    async def _insert(self, file: UploadedFile, options: IngestOptions, uploader_id, stored, prepared) -> PhotoResponse:
        safe_name, metadata, thumbnails = prepared

        bag = {
            "thumbnails": [t.model_dump() for t in thumbnails],
            "upload_type": options.upload_type,
            **metadata.exif_fields(),
        }
        record = {
            "event_id": options.event_id,
            "uploaded_by": uploader_id,
            "filename": safe_name,
            "original_filename": file.name[:255],
            "storage_path": stored.path,
            "file_size": file.size,
            "mime_type": file.content_type,
            "width": metadata.width,
            "height": metadata.height,
            "description": options.description or None,
            "is_featured": options.is_featured,
            "is_approved": options.auto_approve,
            "photo_metadata": bag,
        }

        try:
            return await self.photos.create_photo(record)
        except PersistenceError as e:
            # Nothing references the objects just written; drop them now
            await run_in_threadpool(
                self.storage.delete, photo_object_paths(stored.path, bag)
            )
            raise _FileFailed(FileStage.DB_INSERT_FAILED, e.message, e.detail)

    async def _discard(self, progress: _FileProgress) -> None:
        """Best-effort removal of whatever an abandoned file wrote"""
        if not progress.path:
            return
        # Cancelled threadpool calls run to completion first, so no write lands after this
        result = await run_in_threadpool(self.storage.delete, photo_object_paths(progress.path))
        if result.errors:
            logger.warning(f"Left {len(result.errors)} objects behind for {progress.path}")
