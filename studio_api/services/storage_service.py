import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from functools import lru_cache
from typing import Iterable, List, Optional, Tuple, Union
from uuid import UUID

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from studio_api.core.best_effort import BestEffortResult
from studio_api.core.s3_config import S3Config

logger = logging.getLogger(__name__)

FREE_UPLOAD_PREFIX = "free"
PHOTO_ROOT_PREFIX = "events/"


class StorageError(Exception):
    """An object store call failed"""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class StorageConflictError(StorageError):
    """The destination key already holds an object"""


@dataclass(frozen=True)
class StoredObject:
    path: str
    url: str


@dataclass(frozen=True)
class ObjectInfo:
    key: str
    size: int
    last_modified: datetime


def generate_photo_path(
    event_id: Optional[Union[UUID, str]],
    filename: str,
    today: Optional[date] = None,
) -> str:
    """events/{event_id|free}/{YYYY-MM-DD}/{filename}"""
    day = today or datetime.now(timezone.utc).date()
    owner = str(event_id) if event_id else FREE_UPLOAD_PREFIX
    return f"events/{owner}/{day.isoformat()}/{filename}"


def generate_thumbnail_path(original_path: str, size: int) -> str:
    """Insert ``_thumb_{size}`` before the extension of the original key"""
    directory, _, filename = original_path.rpartition("/")
    stem, dot, extension = filename.rpartition(".")
    if not dot:
        stem, extension = filename, ""
    thumb = f"{stem}_thumb_{size}" + (f".{extension}" if extension else "")
    return f"{directory}/{thumb}" if directory else thumb


def photo_object_paths(storage_path: str, metadata: Optional[dict] = None) -> List[str]:
    """Original key plus every thumbnail key a photo may own"""
    paths = [storage_path]
    recorded = [
        t.get("path") for t in (metadata or {}).get("thumbnails", []) if isinstance(t, dict)
    ]
    paths.extend(p for p in recorded if p)
    # Thumbnails missing from the manifest may still have been written
    paths.extend(generate_thumbnail_path(storage_path, size) for size in S3Config.THUMBNAIL_SIZES)
    return list(dict.fromkeys(paths))


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", "Unknown"))


class StorageService:
    """S3 operations for photo originals and their derivatives"""

    def __init__(self, client=None, bucket_name: Optional[str] = None):
        self.s3_client = client or boto3.client(
            "s3",
            endpoint_url=S3Config.ENDPOINT_URL,
            aws_access_key_id=S3Config.ACCESS_KEY_ID,
            aws_secret_access_key=S3Config.SECRET_ACCESS_KEY,
            region_name=S3Config.REGION,
            config=BotoConfig(
                signature_version="s3v4",
                request_checksum_calculation="when_required",
                response_checksum_validation="when_required",
                s3={"addressing_style": "path"},
            ),
        )
        self.bucket_name = bucket_name or S3Config.BUCKET_NAME

    def public_url(self, path: str) -> str:
        if S3Config.PUBLIC_URL:
            return f"{S3Config.PUBLIC_URL.rstrip('/')}/{path}"
        endpoint = S3Config.ENDPOINT_URL or f"https://s3.{S3Config.REGION}.amazonaws.com"
        return f"{endpoint.rstrip('/')}/{self.bucket_name}/{path}"

    def exists(self, path: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=path)
            return True
        except ClientError as e:
            if _error_code(e) in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"Could not check object {path}", code=_error_code(e)) from e

    def upload(self, path: str, data: bytes, content_type: str) -> StoredObject:
        """
        Write one object. Never overwrites: an existing key raises
        StorageConflictError and nothing is written.
        """
        if self.exists(path):
            raise StorageConflictError(f"Object already exists: {path}", code="ObjectExists")

        params = {
            "Bucket": self.bucket_name,
            "Key": path,
            "Body": data,
            "ContentType": content_type,
            "CacheControl": S3Config.CACHE_CONTROL,
        }
        if S3Config.CONDITIONAL_WRITES:
            params["IfNoneMatch"] = "*"

        try:
            self.s3_client.put_object(**params)
        except ClientError as e:
            code = _error_code(e)
            if code in ("PreconditionFailed", "412", "ConditionalRequestConflict"):
                raise StorageConflictError(f"Object already exists: {path}", code=code) from e
            logger.error(f"S3 upload failed for {path}: {e}")
            raise StorageError("Failed to upload file to storage", code=code) from e
        except BotoCoreError as e:
            logger.error(f"S3 upload failed for {path}: {e}")
            raise StorageError("Failed to upload file to storage", code=type(e).__name__) from e

        return StoredObject(path=path, url=self.public_url(path))

    def delete(self, paths: Iterable[str]) -> BestEffortResult[str]:
        """Remove objects; missing keys count as removed, failures are reported not raised"""
        result: BestEffortResult[str] = BestEffortResult()
        keys = list(dict.fromkeys(paths))

        for start in range(0, len(keys), S3Config.DELETE_BATCH_SIZE):
            batch = keys[start:start + S3Config.DELETE_BATCH_SIZE]
            try:
                response = self.s3_client.delete_objects(
                    Bucket=self.bucket_name,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as e:
                logger.warning(f"S3 batch delete failed ({len(batch)} keys): {e}")
                for key in batch:
                    result.fail(key, str(e))
                continue

            failed = {err.get("Key"): err.get("Code", "Unknown") for err in response.get("Errors", [])}
            for key in batch:
                if key in failed:
                    result.fail(key, failed[key])
                else:
                    result.add(key)

        if result.errors:
            logger.warning(f"Storage cleanup left {len(result.errors)} objects behind")
        return result

    def list_objects(self, prefix: str = PHOTO_ROOT_PREFIX) -> List[ObjectInfo]:
        """List every object under a prefix"""
        objects = []
        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                for obj in page.get("Contents", []):
                    objects.append(ObjectInfo(
                        key=obj["Key"],
                        size=obj.get("Size", 0),
                        last_modified=obj["LastModified"],
                    ))
        except ClientError as e:
            logger.error(f"Error listing objects under {prefix}: {e}")
            raise StorageError("Failed to list storage objects", code=_error_code(e)) from e
        return objects

    def check_configuration(self) -> Tuple[bool, Optional[str]]:
        """Whether the bucket is reachable with the configured credentials"""
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True, None
        except ClientError as e:
            logger.error(f"Bucket check failed for {self.bucket_name}: {e}")
            return False, _error_code(e)
        except BotoCoreError as e:
            logger.error(f"Bucket check failed for {self.bucket_name}: {e}")
            return False, str(e)


@lru_cache()
def get_storage_service() -> StorageService:
    return StorageService()
