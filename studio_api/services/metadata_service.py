import io
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from fractions import Fraction
from typing import Any, Dict, Optional

from PIL import ExifTags, Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Errors Pillow raises on undecodable input (RAW files, truncated data)
DECODE_ERRORS = (UnidentifiedImageError, OSError, EOFError, ValueError, SyntaxError, Image.DecompressionBombError)


@dataclass
class ImageMetadata:
	size: int
	type: Optional[str]
	last_modified: int
	width: Optional[int] = None
	height: Optional[int] = None
	camera: Optional[str] = None
	lens: Optional[str] = None
	iso: Optional[int] = None
	aperture: Optional[str] = None
	shutter_speed: Optional[str] = None
	focal_length: Optional[float] = None
	captured_at: Optional[str] = None

	def exif_fields(self) -> Dict[str, Any]:
		"""Camera fields for the photo metadata bag, absent ones dropped"""
		fields = {
			"camera": self.camera,
			"lens": self.lens,
			"iso": self.iso,
			"aperture": self.aperture,
			"shutterSpeed": self.shutter_speed,
			"focalLength": self.focal_length,
			"captureDate": self.captured_at,
		}
		return {k: v for k, v in fields.items() if v is not None}

	def to_dict(self) -> Dict[str, Any]:
		return asdict(self)


def _clean(value: Any) -> Optional[str]:
	if value is None:
		return None
	if isinstance(value, bytes):
		value = value.decode("utf-8", errors="ignore")
	text = str(value).replace("\x00", "").strip()
	return text or None


def _as_float(value: Any) -> Optional[float]:
	try:
		return float(value)
	except (TypeError, ValueError, ZeroDivisionError):
		return None


def format_shutter_speed(exposure: Any) -> Optional[str]:
	seconds = _as_float(exposure)
	if not seconds or seconds <= 0:
		return None
	if seconds >= 1:
		return f"{seconds:g}s"
	fraction = Fraction(seconds).limit_denominator(8000)
	return f"{fraction.numerator}/{fraction.denominator}"


def format_aperture(f_number: Any) -> Optional[str]:
	value = _as_float(f_number)
	if not value or value <= 0:
		return None
	return f"f/{value:g}"


def _read_exif(image: Image.Image, metadata: ImageMetadata) -> None:
	exif = image.getexif()
	if not exif:
		return

	make = _clean(exif.get(ExifTags.Base.Make))
	model = _clean(exif.get(ExifTags.Base.Model))
	if model and make and not model.lower().startswith(make.lower()):
		metadata.camera = f"{make} {model}"
	else:
		metadata.camera = model or make

	details = exif.get_ifd(ExifTags.IFD.Exif)
	metadata.lens = _clean(details.get(ExifTags.Base.LensModel))

	iso = details.get(ExifTags.Base.ISOSpeedRatings)
	if isinstance(iso, (tuple, list)):
		iso = iso[0] if iso else None
	iso_value = _as_float(iso)
	metadata.iso = int(iso_value) if iso_value else None

	metadata.aperture = format_aperture(details.get(ExifTags.Base.FNumber))
	metadata.shutter_speed = format_shutter_speed(details.get(ExifTags.Base.ExposureTime))
	focal = _as_float(details.get(ExifTags.Base.FocalLength))
	metadata.focal_length = round(focal, 1) if focal else None

	taken = _clean(details.get(ExifTags.Base.DateTimeOriginal))
	if taken:
		try:
			metadata.captured_at = datetime.strptime(taken, "%Y:%m:%d %H:%M:%S").isoformat()
		except ValueError:
			pass


def extract_image_metadata(
	data: bytes,
	size: int,
	content_type: Optional[str],
	last_modified: int,
) -> ImageMetadata:
	"""
	Read pixel dimensions and, when present, camera EXIF from image bytes.

	Undecodable input (camera RAW, corrupt files) degrades to size/type/
	last_modified only; this function does not raise for bad image data.
	"""
	metadata = ImageMetadata(size=size, type=content_type, last_modified=last_modified)

	try:
		with io.BytesIO(data) as buffer, Image.open(buffer) as image:
			metadata.width, metadata.height = image.size
			try:
				_read_exif(image, metadata)
			except Exception as e:
				# EXIF is optional; a broken block must not lose the dimensions
				logger.debug(f"Ignoring unreadable EXIF: {e}")
	except DECODE_ERRORS as e:
		logger.info(f"Could not decode image ({content_type}): {e}")
		metadata.width = metadata.height = None

	return metadata
