from prometheus_client import Counter, Histogram, Gauge, generate_latest
from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter()

# Define metrics
request_count = Counter(
	'http_requests_total',
	'Total HTTP requests',
	['method', 'endpoint', 'status']
)

request_duration = Histogram(
	'http_request_duration_seconds',
	'HTTP request duration',
	['method', 'endpoint'],
	buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)
)

active_requests = Gauge(
	'http_requests_active',
	'Number of active HTTP requests'
)

photo_ingestion = Counter(
	'photo_ingestion_total',
	'Files processed by the ingestion pipeline, by terminal state',
	['outcome']
)

photo_ingestion_duration = Histogram(
	'photo_ingestion_file_seconds',
	'Time spent ingesting a single file',
	buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)
)

thumbnail_generation = Counter(
	'thumbnail_generation_total',
	'Thumbnail derivatives generated',
	['outcome']
)

storage_orphans_deleted = Counter(
	'storage_orphans_deleted_total',
	'Orphaned storage objects removed by reconciliation'
)


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics():
	"""Prometheus metrics endpoint"""
	return generate_latest()
