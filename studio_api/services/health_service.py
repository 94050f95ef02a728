import logging
import platform
from datetime import datetime, timezone
from typing import Any, Dict

import psutil
from fastapi.concurrency import run_in_threadpool

from studio_api.config import settings
from studio_api.database import check_db_connection
from studio_api.services.storage_service import StorageService

logger = logging.getLogger(__name__)


async def get_detailed_health(storage: StorageService) -> Dict[str, Any]:
    """Database, object storage and host metrics"""
    health_status = {
        "services": {},
        "system": {},
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    db_healthy = await check_db_connection()
    health_status["services"]["database"] = {
        "healthy": db_healthy,
        "status": "connected" if db_healthy else "disconnected",
    }

    s3_healthy, s3_error = await run_in_threadpool(storage.check_configuration)
    health_status["services"]["storage"] = {
        "healthy": s3_healthy,
        "type": "S3-compatible",
        "bucket": storage.bucket_name,
        "status": "connected" if s3_healthy else "disconnected",
    }
    if s3_error:
        health_status["services"]["storage"]["error"] = s3_error

    try:
        health_status["system"] = {
            "cpu_percent": psutil.cpu_percent(interval=0.1),
            "memory_percent": psutil.virtual_memory().percent,
            "disk_percent": psutil.disk_usage("/").percent,
            "python_version": platform.python_version(),
            "uptime_seconds": datetime.now(timezone.utc).timestamp() - psutil.boot_time(),
        }
    except (psutil.Error, OSError) as e:
        logger.error(f"Failed to get system metrics: {e}")

    all_services_healthy = all(s["healthy"] for s in health_status["services"].values())
    health_status["overall_health"] = "healthy" if all_services_healthy else "degraded"
    return health_status
