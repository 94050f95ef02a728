import enum
import secrets

from sqlalchemy import Column, String, Text, Date, Enum
from sqlalchemy.orm import relationship

from studio_api.database import Base
from studio_api.models.base import BaseModel


class EventStatus(str, enum.Enum):
	DRAFT = "draft"
	PUBLISHED = "published"
	COMPLETED = "completed"
	CANCELLED = "cancelled"


# Statuses whose galleries are visible to non-admin callers
VISIBLE_EVENT_STATUSES = (EventStatus.PUBLISHED, EventStatus.COMPLETED)


def generate_access_code() -> str:
	"""Six upper-case hex characters, e.g. 'A3F09C'"""
	return secrets.token_hex(3).upper()


class Event(Base, BaseModel):
	__tablename__ = "events"

	title = Column(String(255), nullable=False)
	event_date = Column(Date)
	description = Column(Text)
	access_code = Column(String(32), unique=True, nullable=False, index=True, default=generate_access_code)
	status = Column(Enum(EventStatus), nullable=False, default=EventStatus.DRAFT, index=True)

	photos = relationship("Photo", back_populates="event")
