import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from starlette.middleware.gzip import GZipMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from studio_api.config import settings
from studio_api.api.v1 import auth, events, photos
from studio_api.database import close_db, init_db
from studio_api.middleware.logging import LoggingMiddleware
from studio_api.middleware.monitoring import MonitoringMiddleware
from studio_api.middleware.request_id import RequestIDMiddleware
from studio_api.middleware.security import SecurityHeadersMiddleware
from studio_api.monitoring import metrics
from studio_api.services.health_service import get_detailed_health
from studio_api.services.storage_service import StorageService, get_storage_service

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Schema migrations are managed outside the app in production
    if settings.DEBUG:
        await init_db()
    yield
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    description="""
    **Studio Photos API** - photo ingestion and galleries for a photo studio

    ## Features
		* **Event uploads** for admins, **free uploads** for any signed-in user
		* Standard and camera **RAW** formats, up to 50MB per file
		* Thumbnails (150/300/600/1200 px) and EXIF metadata on ingest
		* Bulk moderation: approve, reject, feature, delete
		* Client galleries by event **access code**
    """,
    version=settings.APP_VERSION,
    openapi_tags=[
        {"name": "auth", "description": "Authentication operations"},
        {"name": "photos", "description": "Photo ingestion and moderation"},
        {"name": "events", "description": "Client galleries"},
        {"name": "monitoring", "description": "System monitoring"},
    ],
    docs_url="/docs",
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else "/api/openapi.json",
    lifespan=lifespan,
)

# =====================================
# Configure Middleware Stack
# =====================================

app.add_middleware(GZipMiddleware, minimum_size=1000)

if not settings.DEBUG:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)

app.add_middleware(MonitoringMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(LoggingMiddleware)
# Outermost, so the id is set before the request is logged
app.add_middleware(RequestIDMiddleware)

# Include routers
app.include_router(auth.router, prefix=f"{settings.API_V1_PREFIX}/auth", tags=["auth"])
app.include_router(photos.router, prefix=f"{settings.API_V1_PREFIX}/photos", tags=["photos"])
app.include_router(events.router, prefix=f"{settings.API_V1_PREFIX}/events", tags=["events"])

if settings.EXPOSE_METRICS:
    app.include_router(
        metrics.router,
        prefix="/internal",
        tags=["monitoring"]
    )


@app.get("/health", tags=["monitoring"])
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.APP_VERSION
    }


@app.get("/health/detailed", tags=["monitoring"])
async def detailed_health_check(storage: StorageService = Depends(get_storage_service)):
    return await get_detailed_health(storage)
