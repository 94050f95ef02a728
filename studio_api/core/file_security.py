# studio_api/core/file_security.py
import os
import re
import secrets
import string
import time
from dataclasses import dataclass
from typing import Any, Optional

from studio_api.core.s3_config import S3Config

# Camera RAW extensions, accepted whatever MIME type the client declares
RAW_EXTENSIONS = frozenset({
    ".cr2", ".cr3", ".crw",          # Canon
    ".nef", ".nrw",                  # Nikon
    ".arw", ".srf", ".sr2",          # Sony
    ".dng",                          # Adobe
    ".orf",                          # Olympus
    ".rw2", ".raw",                  # Panasonic
    ".raf",                          # Fuji
    ".pef", ".ptx",                  # Pentax
    ".x3f",                          # Sigma
    ".dcr", ".kdc",                  # Kodak
    ".mrw",                          # Minolta
    ".rwl", ".dcs",                  # Leica
    ".3fr",                          # Hasselblad
    ".mef",                          # Mamiya
    ".iiq",                          # Phase One
})

STANDARD_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/gif",
})

RAW_MIME_TYPES = frozenset({
    "image/x-canon-cr2",
    "image/x-canon-cr3",
    "image/x-canon-crw",
    "image/x-nikon-nef",
    "image/x-nikon-nrw",
    "image/x-sony-arw",
    "image/x-sony-srf",
    "image/x-sony-sr2",
    "image/x-adobe-dng",
    "image/x-olympus-orf",
    "image/x-panasonic-rw2",
    "image/x-panasonic-raw",
    "image/x-fuji-raf",
    "image/x-pentax-pef",
    "image/x-pentax-ptx",
    "image/x-sigma-x3f",
    "image/x-kodak-dcr",
    "image/x-kodak-kdc",
    "image/x-minolta-mrw",
    "image/x-leica-rwl",
    "image/x-hasselblad-3fr",
    "image/x-mamiya-mef",
    "image/x-phaseone-iiq",
    "image/x-dcraw",
    "image/x-raw",
})

# Some browsers report unknown extensions as generic binary data
FALLBACK_MIME_TYPES = frozenset({"image/tiff", "application/octet-stream"})

ALLOWED_MIME_TYPES = STANDARD_MIME_TYPES | RAW_MIME_TYPES | FALLBACK_MIME_TYPES

MAX_BASE_NAME_LENGTH = 50
MAX_EXTENSION_LENGTH = 10
TOKEN_LENGTH = 6
DEFAULT_EXTENSION = "jpg"

SIZE_ERROR = f"File size must be less than {S3Config.MAX_FILE_SIZE // 1024 // 1024}MB"
TYPE_ERROR = "Only JPEG, PNG, WebP, GIF, TIFF and camera RAW files are allowed"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_REPEATED_UNDERSCORES = re.compile(r"_+")
_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None


def file_extension(filename: Optional[str]) -> str:
    """Lower-cased extension including the dot, '' when there is none"""
    if not filename:
        return ""
    return os.path.splitext(filename)[1].lower()


def is_raw_file(filename: Optional[str]) -> bool:
    return file_extension(filename) in RAW_EXTENSIONS


def validate_image_file(file: Any, max_size: int = S3Config.MAX_FILE_SIZE) -> ValidationResult:
    """
    Classify an incoming upload as an accepted photo or reject it.

    ``file`` only needs ``name``, ``size`` and ``content_type`` attributes.
    The check is pure and must be repeated server-side whatever the client
    already decided.
    """
    name = getattr(file, "name", None) or ""
    size = getattr(file, "size", None)
    content_type = (getattr(file, "content_type", None) or "").lower().strip()

    if not isinstance(size, int) or isinstance(size, bool) or size < 0:
        return ValidationResult(False, "File size could not be determined")

    if size > max_size:
        return ValidationResult(False, SIZE_ERROR)

    if is_raw_file(name):
        return ValidationResult(True)

    if content_type in ALLOWED_MIME_TYPES:
        return ValidationResult(True)

    return ValidationResult(False, TYPE_ERROR)


def _random_token(length: int = TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def generate_safe_filename(
    original_name: Optional[str],
    now_ms: Optional[int] = None,
    token: Optional[str] = None,
) -> str:
    """
    Build a collision-resistant storage filename from an untrusted name.

    Format: ``{milliseconds}_{token}_{sanitized base}.{ext}``.
    """
    original_name = original_name or ""
    base, ext = os.path.splitext(original_name)
    if not ext and original_name.startswith("."):
        # ".cr2" style names: splitext treats them as a bare base
        base, ext = "", original_name

    extension = re.sub(r"[^a-z0-9]", "", ext.lower())[:MAX_EXTENSION_LENGTH] or DEFAULT_EXTENSION

    safe_base = _UNSAFE_CHARS.sub("_", base)
    safe_base = _REPEATED_UNDERSCORES.sub("_", safe_base).strip("_")
    safe_base = safe_base[:MAX_BASE_NAME_LENGTH] or "photo"

    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    token = token or _random_token()

    return f"{timestamp}_{token}_{safe_base}.{extension}"
