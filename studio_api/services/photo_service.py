import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from studio_api.models.event import Event, VISIBLE_EVENT_STATUSES
from studio_api.models.photo import Photo
from studio_api.models.user import User
from studio_api.schemas.photo import Pagination, PhotoResponse, PhotoUpdate

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
	"upload_date": Photo.created_at,
	"filename": Photo.original_filename,
	"file_size": Photo.file_size,
}

BULK_UPDATES = {
	"approve": {"is_approved": True},
	"reject": {"is_approved": False},
	"feature": {"is_featured": True},
	"unfeature": {"is_featured": False},
}

PERMISSION_DENIED = "Permission denied: uploads must be attributed to the authenticated user"


class PersistenceError(Exception):
	"""A photo record could not be written.

	``message`` is safe to show to any caller; ``detail`` carries the
	database error class/code for administrators.
	"""

	def __init__(self, message: str, detail: Optional[str] = None):
		super().__init__(message)
		self.message = message
		self.detail = detail


def translate_persistence_error(error: Exception) -> PersistenceError:
	"""Map a database failure to a sanitized, cause-specific message"""
	orig = getattr(error, "orig", None) or error
	text = str(orig).lower()
	code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
	detail = type(orig).__name__ + (f" [{code}]" if code else "")

	if "row-level security" in text or "permission denied" in text or code == "42501":
		return PersistenceError(PERMISSION_DENIED, detail)
	if isinstance(error, IntegrityError):
		if "unique" in text or "duplicate key" in text:
			return PersistenceError("A photo with this storage path already exists", detail)
		if "foreign key" in text:
			return PersistenceError("The referenced event or uploader no longer exists", detail)
		if "not null" in text or "not-null" in text or "check constraint" in text:
			return PersistenceError("Photo record failed a database constraint", detail)
	return PersistenceError("Failed to save photo record", detail)


def build_pagination(page: int, limit: int, total: int) -> Pagination:
	offset = (page - 1) * limit
	return Pagination(
		page=page,
		limit=limit,
		total=total,
		total_pages=math.ceil(total / limit) if limit else 0,
		has_next=offset + limit < total,
		has_previous=page > 1,
	)


class PhotoService:
	"""Photo record store and queries over one session"""

	def __init__(self, session: AsyncSession):
		self.session = session

	async def get_event(self, event_id: UUID) -> Optional[Event]:
		result = await self.session.execute(select(Event).where(Event.id == event_id))
		return result.scalar_one_or_none()

	async def create_photo(self, data: Dict[str, Any]) -> PhotoResponse:
		"""Insert one photo row and commit it on its own"""
		if not data.get("uploaded_by"):
			raise PersistenceError(PERMISSION_DENIED, "uploaded_by missing")

		photo = Photo(**data)
		self.session.add(photo)
		try:
			await self.session.commit()
			await self.session.refresh(photo)
		except SQLAlchemyError as e:
			await self.session.rollback()
			logger.error(f"Database error saving {data.get('storage_path')}: {e}")
			raise translate_persistence_error(e) from e

		return PhotoResponse.model_validate(photo)

	async def list_photos(
			self,
			current_user: User,
			page: int = 1,
			limit: int = 20,
			event_id: Optional[UUID] = None,
			search: Optional[str] = None,
			featured: Optional[bool] = None,
			approved: Optional[bool] = None,
			sort: str = "upload_date",
			order: str = "desc",
	) -> Tuple[Sequence[Photo], int]:
		query = select(Photo)

		if not current_user.is_admin:
			# Non-admins only see approved photos of published/completed events
			query = query.join(Event, Photo.event_id == Event.id).where(
				Photo.is_approved.is_(True),
				Event.status.in_(VISIBLE_EVENT_STATUSES),
			)

		filters = []
		if event_id:
			filters.append(Photo.event_id == event_id)
		if search:
			filters.append(or_(
				Photo.original_filename.ilike(f"%{search}%"),
				Photo.description.ilike(f"%{search}%"),
			))
		if featured is not None:
			filters.append(Photo.is_featured.is_(featured))
		if approved is not None and current_user.is_admin:
			filters.append(Photo.is_approved.is_(approved))

		if filters:
			query = query.where(*filters)

		count_query = select(func.count()).select_from(query.subquery())
		total = await self.session.scalar(count_query) or 0

		column = SORT_COLUMNS.get(sort, Photo.created_at)
		ordering = column.asc() if order == "asc" else column.desc()
		query = (
			query.options(selectinload(Photo.event))
			.order_by(ordering, Photo.id)
			.offset((page - 1) * limit)
			.limit(limit)
		)
		result = await self.session.execute(query)
		return result.scalars().all(), total

	async def get_gallery(self, access_code: str, page: int = 1, limit: int = 50) -> Optional[Tuple[Event, Sequence[Photo], int]]:
		"""Approved photos of a visible event looked up by its access code"""
		result = await self.session.execute(
			select(Event).where(
				Event.access_code == access_code.strip().upper(),
				Event.status.in_(VISIBLE_EVENT_STATUSES),
			)
		)
		event = result.scalar_one_or_none()
		if not event:
			return None

		query = select(Photo).where(Photo.event_id == event.id, Photo.is_approved.is_(True))
		total = await self.session.scalar(select(func.count()).select_from(query.subquery())) or 0
		photos = await self.session.execute(
			query.order_by(Photo.is_featured.desc(), Photo.created_at.desc())
			.offset((page - 1) * limit)
			.limit(limit)
		)
		return event, photos.scalars().all(), total

	async def bulk_update(self, photo_ids: List[UUID], operation: str) -> List[Photo]:
		values = BULK_UPDATES[operation]
		await self.session.execute(
			update(Photo).where(Photo.id.in_(photo_ids)).values(**values)
		)
		await self.session.commit()

		result = await self.session.execute(
			select(Photo).where(Photo.id.in_(photo_ids)).execution_options(populate_existing=True)
		)
		photos = list(result.scalars().all())
		logger.info(f"Bulk {operation}: {len(photos)} photos updated")
		return photos

	async def delete_photos(self, photo_ids: List[UUID]) -> List[Tuple[str, Dict[str, Any]]]:
		"""Delete rows and return (storage_path, metadata) of what was removed"""
		result = await self.session.execute(
			select(Photo.storage_path, Photo.photo_metadata).where(Photo.id.in_(photo_ids))
		)
		removed = [(path, metadata or {}) for path, metadata in result.all()]

		await self.session.execute(delete(Photo).where(Photo.id.in_(photo_ids)))
		await self.session.commit()

		logger.info(f"Deleted {len(removed)} photo records")
		return removed

	async def update_photo(self, photo_id: UUID, changes: PhotoUpdate) -> Optional[Photo]:
		result = await self.session.execute(select(Photo).where(Photo.id == photo_id))
		photo = result.scalar_one_or_none()
		if not photo:
			return None

		fields = changes.model_dump(exclude_unset=True, exclude={"metadata"})
		for field, value in fields.items():
			setattr(photo, field, value)

		if changes.metadata is not None:
			merged = dict(photo.photo_metadata or {})
			# The thumbnail manifest is owned by ingestion and never replaced here
			merged.update(changes.metadata.model_dump(mode="json", exclude_unset=True))
			photo.photo_metadata = merged

		await self.session.commit()
		await self.session.refresh(photo)
		return photo

	async def existing_storage_paths(self, paths: Iterable[str]) -> Set[str]:
		candidates = list(set(paths))
		found: Set[str] = set()
		# Keep IN lists bounded
		for start in range(0, len(candidates), 500):
			chunk = candidates[start:start + 500]
			result = await self.session.execute(
				select(Photo.storage_path).where(Photo.storage_path.in_(chunk))
			)
			found.update(result.scalars().all())
		return found
