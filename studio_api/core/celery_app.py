from celery import Celery
from studio_api.config import settings

celery_app = Celery(
    "studio_api",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_time_limit=60 * 30,
    task_soft_time_limit=60 * 25,
    worker_max_tasks_per_child=100,
    worker_prefetch_multiplier=1,
    result_expires=3600,
    task_track_started=True,
    timezone="UTC",
    include=["studio_api.workers.scheduled_tasks"],
)

celery_app.conf.beat_schedule = {
    "reconcile-storage": {
        "task": "studio_api.workers.scheduled_tasks.reconcile_storage",
        "schedule": settings.RECONCILE_INTERVAL_MINUTES * 60.0,
    },
}
