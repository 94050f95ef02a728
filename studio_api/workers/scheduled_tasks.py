import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from studio_api.config import settings
from studio_api.core.celery_app import celery_app
from studio_api.database import AsyncSessionLocal
from studio_api.services.reconciliation_service import ReconciliationService
from studio_api.services.storage_service import get_storage_service

logger = logging.getLogger(__name__)


@celery_app.task(name="studio_api.workers.scheduled_tasks.reconcile_storage")
def reconcile_storage(dry_run: bool = False, grace_minutes: Optional[int] = None) -> Dict[str, Any]:
	"""Periodic sweep of storage objects left without a photo record"""
	loop = asyncio.new_event_loop()
	asyncio.set_event_loop(loop)
	try:
		return loop.run_until_complete(_reconcile_storage_async(dry_run, grace_minutes))
	finally:
		loop.close()


async def _reconcile_storage_async(dry_run: bool, grace_minutes: Optional[int]) -> Dict[str, Any]:
	grace = timedelta(minutes=grace_minutes if grace_minutes is not None else settings.ORPHAN_GRACE_MINUTES)

	async with AsyncSessionLocal() as db:
		report = await ReconciliationService(db, get_storage_service()).reconcile(dry_run=dry_run, grace=grace)

	if report.errors:
		logger.warning(f"Reconciliation could not delete {len(report.errors)} objects")

	return {
		"dry_run": report.dry_run,
		"scanned": report.scanned,
		"orphaned": len(report.orphaned),
		"deleted": len(report.deleted),
		"errors": report.errors,
	}
