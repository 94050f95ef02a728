from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from dotenv import load_dotenv
load_dotenv()


class Settings(BaseSettings):
	# App
	APP_NAME: str = "Studio Photos API"
	APP_VERSION: str = "1.0.0"
	API_V1_PREFIX: str = "/api/v1"
	DEBUG: bool = False
	ENVIRONMENT: str = "development" # development, staging, production

	# Database
	DATABASE_URL: str
	DB_POOL_SIZE: int = 20
	DB_MAX_OVERFLOW: int = 40
	DB_POOL_PRE_PING: bool = True
	DB_ECHO: bool = False

	# Redis (Celery broker)
	REDIS_URL: str = "redis://localhost:6379/0"

	# JWT
	JWT_SECRET: str
	JWT_ALGORITHM: str = "HS256"
	JWT_EXPIRATION_HOURS: int = 24
	JWT_REFRESH_EXPIRATION_DAYS: int = 7

	# S3 Storage
	S3_ENDPOINT_URL: Optional[str] = None
	S3_PUBLIC_URL: Optional[str] = None
	AWS_ACCESS_KEY_ID: str
	AWS_SECRET_ACCESS_KEY: str
	S3_BUCKET_NAME: str = "photos"
	S3_REGION: str = "us-east-1"
	S3_CONDITIONAL_WRITES: bool = True
	S3_CACHE_CONTROL: str = "max-age=3600"

	# Uploads
	MAX_UPLOAD_SIZE: int = 50 * 1024 * 1024  # 50MB
	MAX_FILES_PER_UPLOAD: int = 50
	UPLOAD_CONCURRENCY: int = 4
	UPLOAD_FILE_TIMEOUT: float = 60.0

	# Thumbnails
	THUMBNAIL_SIZES: List[int] = [150, 300, 600, 1200]
	THUMBNAIL_QUALITY: int = 75
	THUMBNAIL_WORKERS: int = 4

	# Storage reconciliation
	ORPHAN_GRACE_MINUTES: int = 60
	RECONCILE_INTERVAL_MINUTES: int = 360

	# CORS
	CORS_ORIGINS: List[str] = ["http://localhost:3000"]
	ALLOWED_HOSTS: List[str] = ["*"]

	# Monitoring
	EXPOSE_METRICS: bool = True

	model_config = SettingsConfigDict(
		env_file=".env",
		env_file_encoding="utf-8",
		case_sensitive=True
	)


@lru_cache()
def get_settings() -> Settings:
	return Settings()


settings = get_settings()
