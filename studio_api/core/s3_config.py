# Object storage and upload limits shared by the photo pipeline
from studio_api.config import settings


class S3Config:
    """Photo bucket and pipeline limits"""
    ENDPOINT_URL = settings.S3_ENDPOINT_URL
    PUBLIC_URL = settings.S3_PUBLIC_URL
    ACCESS_KEY_ID = settings.AWS_ACCESS_KEY_ID
    SECRET_ACCESS_KEY = settings.AWS_SECRET_ACCESS_KEY
    BUCKET_NAME = settings.S3_BUCKET_NAME
    REGION = settings.S3_REGION
    CONDITIONAL_WRITES = settings.S3_CONDITIONAL_WRITES
    CACHE_CONTROL = settings.S3_CACHE_CONTROL
    MAX_FILE_SIZE = settings.MAX_UPLOAD_SIZE
    THUMBNAIL_SIZES = tuple(sorted(settings.THUMBNAIL_SIZES))
    THUMBNAIL_QUALITY = settings.THUMBNAIL_QUALITY
    # S3 DeleteObjects accepts at most 1000 keys per call
    DELETE_BATCH_SIZE = 1000
