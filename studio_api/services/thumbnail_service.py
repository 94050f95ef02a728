import asyncio
import io
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional, Sequence, Tuple

from fastapi.concurrency import run_in_threadpool
from PIL import Image, ImageOps

from studio_api.config import settings
from studio_api.core.best_effort import BestEffortResult
from studio_api.core.s3_config import S3Config
from studio_api.monitoring.metrics import thumbnail_generation
from studio_api.schemas.photo import ThumbnailDescriptor
from studio_api.services.storage_service import StorageService, generate_thumbnail_path

logger = logging.getLogger(__name__)

# Decode/encode is CPU-bound; keep it off the event loop
_executor = ThreadPoolExecutor(
    max_workers=settings.THUMBNAIL_WORKERS,
    thread_name_prefix="thumbnails",
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_thumbnail_dimensions(width: int, height: int, target: int) -> Tuple[int, int]:
    """Fit the longer edge to ``target`` keeping the aspect ratio, never upscaling"""
    if width <= 0 or height <= 0 or target <= 0:
        raise ValueError(f"Invalid dimensions: {width}x{height} -> {target}")

    aspect_ratio = width / height
    if width > height:
        new_width = min(target, width)
        new_height = _round_half_up(new_width / aspect_ratio)
    else:
        new_height = min(target, height)
        new_width = _round_half_up(new_height * aspect_ratio)

    return max(new_width, 1), max(new_height, 1)


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    output = io.BytesIO()
    image.save(output, format="JPEG", quality=quality, optimize=True)
    return output.getvalue()


def render_thumbnails(
    data: bytes,
    targets: Sequence[int],
    quality: int = S3Config.THUMBNAIL_QUALITY,
) -> Dict[int, bytes]:
    """Decode ``data`` once and return a JPEG per target, keyed by target.

    Targets are rendered largest first, each one downscaled from the previous
    result. Targets that resolve to the same dimensions share one encoding.
    """
    rendered: Dict[int, bytes] = {}
    with io.BytesIO(data) as source, Image.open(source) as image:
        working = ImageOps.exif_transpose(image)
        if working.mode not in ("RGB", "L"):
            working = working.convert("RGB")
        width, height = working.size

        previous: Optional[Tuple[Tuple[int, int], bytes]] = None
        for target in sorted(set(targets), reverse=True):
            size = calculate_thumbnail_dimensions(width, height, target)
            if previous is not None and previous[0] == size:
                rendered[target] = previous[1]
                continue
            if working.size != size:
                working = working.resize(size, Image.Resampling.LANCZOS)
            encoded = _encode_jpeg(working, quality)
            rendered[target] = encoded
            previous = (size, encoded)

    return rendered


def render_thumbnail(data: bytes, target: int, quality: int = S3Config.THUMBNAIL_QUALITY) -> bytes:
    """Decode ``data`` and return a JPEG whose longer edge is at most ``target``"""
    return render_thumbnails(data, [target], quality)[target]


class ThumbnailService:
    """Renders and stores downsized derivatives of an uploaded photo"""

    def __init__(
        self,
        storage: StorageService,
        sizes: Optional[Sequence[int]] = None,
        quality: int = S3Config.THUMBNAIL_QUALITY,
    ):
        self.storage = storage
        self.sizes = tuple(sizes or S3Config.THUMBNAIL_SIZES)
        self.quality = quality

    async def store(self, original_path: str, size: int, thumbnail: bytes) -> ThumbnailDescriptor:
        path = generate_thumbnail_path(original_path, size)
        stored = await run_in_threadpool(self.storage.upload, path, thumbnail, "image/jpeg")
        return ThumbnailDescriptor(size=size, path=stored.path, url=stored.url)

    async def generate_all(self, data: bytes, original_path: str) -> BestEffortResult[ThumbnailDescriptor]:
        """Every configured size; a failing size is skipped, never raised"""
        result: BestEffortResult[ThumbnailDescriptor] = BestEffortResult()

        loop = asyncio.get_running_loop()
        try:
            rendered = await loop.run_in_executor(
                _executor, render_thumbnails, data, self.sizes, self.quality
            )
        except Exception as e:
            logger.warning(f"Failed to render thumbnails for {original_path}: {e}")
            for size in self.sizes:
                result.fail(str(size), str(e) or type(e).__name__)
                thumbnail_generation.labels(outcome="failure").inc()
            return result

        for size in self.sizes:
            try:
                result.add(await self.store(original_path, size, rendered[size]))
                thumbnail_generation.labels(outcome="success").inc()
            except Exception as e:
                logger.warning(f"Failed to store thumbnail size {size} for {original_path}: {e}")
                result.fail(str(size), str(e) or type(e).__name__)
                thumbnail_generation.labels(outcome="failure").inc()

        return result
