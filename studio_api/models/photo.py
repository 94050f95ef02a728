from sqlalchemy import Column, ForeignKey, String, Text, BigInteger, Integer, Boolean, JSON, Uuid
from sqlalchemy.orm import relationship

from studio_api.database import Base
from studio_api.models.base import BaseModel
from studio_api.models.event import Event
from studio_api.models.user import User


class Photo(Base, BaseModel):
	__tablename__ = "photos"

	event_id = Column(Uuid(as_uuid=True), ForeignKey("events.id", ondelete="SET NULL"), nullable=True, index=True)
	uploaded_by = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
	filename = Column(String(255), nullable=False)
	original_filename = Column(String(255), nullable=False)
	storage_path = Column(String(500), nullable=False, unique=True)
	file_size = Column(BigInteger)
	mime_type = Column(String(100))
	width = Column(Integer)
	height = Column(Integer)
	description = Column(Text)
	is_featured = Column(Boolean, nullable=False, default=False, index=True)
	is_approved = Column(Boolean, nullable=False, default=True, index=True)
	# "metadata" is reserved on declarative classes
	photo_metadata = Column("metadata", JSON, nullable=False, default=dict)

	event = relationship(Event, back_populates="photos")
	uploader = relationship(User, back_populates="photos")
