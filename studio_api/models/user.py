import enum

from sqlalchemy import Column, String, Enum, Boolean
from sqlalchemy.orm import relationship

from studio_api.database import Base
from studio_api.models.base import BaseModel


class UserRole(str, enum.Enum):
	ADMIN = "admin"
	CLIENT = "client"


class User(Base, BaseModel):
	__tablename__ = "users"

	username = Column(String(255), unique=True, nullable=False, index=True)
	hashed_password = Column(String(255), nullable=False)
	full_name = Column(String(255))
	role = Column(Enum(UserRole), nullable=False, default=UserRole.CLIENT)
	is_active = Column(Boolean, default=True)

	# Relationships
	photos = relationship("Photo", back_populates="uploader")

	@property
	def is_admin(self) -> bool:
		return self.role == UserRole.ADMIN
