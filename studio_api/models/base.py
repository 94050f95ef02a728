import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Uuid


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


class BaseModel:
	"""Common primary key and timestamps"""

	id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
	created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
	updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
