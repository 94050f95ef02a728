import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession

from studio_api.config import settings
from studio_api.monitoring.metrics import storage_orphans_deleted
from studio_api.services.photo_service import PhotoService
from studio_api.services.storage_service import PHOTO_ROOT_PREFIX, StorageService

logger = logging.getLogger(__name__)

_THUMB_SUFFIX = re.compile(r"_thumb_\d+(?=(\.[^./]*)?$)")


def original_path_for(key: str) -> str:
	"""Map a thumbnail key back to its original; other keys map to themselves"""
	return _THUMB_SUFFIX.sub("", key, count=1)


@dataclass
class ReconcileReport:
	dry_run: bool
	scanned: int = 0
	orphaned: List[str] = field(default_factory=list)
	deleted: List[str] = field(default_factory=list)
	errors: Dict[str, str] = field(default_factory=dict)


class ReconciliationService:
	"""
	Removes storage objects that no photo row points at.

	Uploads whose record insert failed and bulk deletes both leave objects
	behind; this sweep collects them once they are older than the grace
	period, so in-flight uploads are never touched.
	"""

	def __init__(self, session: AsyncSession, storage: StorageService):
		self.photos = PhotoService(session)
		self.storage = storage

	async def find_orphans(self, grace: timedelta, now: Optional[datetime] = None) -> ReconcileReport:
		now = now or datetime.now(timezone.utc)
		objects = await run_in_threadpool(self.storage.list_objects, PHOTO_ROOT_PREFIX)
		report = ReconcileReport(dry_run=True, scanned=len(objects))

		cutoff = now - grace
		candidates = [o.key for o in objects if o.last_modified <= cutoff]
		if not candidates:
			return report

		lookup = set(candidates) | {original_path_for(k) for k in candidates}
		live = await self.photos.existing_storage_paths(lookup)

		report.orphaned = [
			key for key in candidates
			if key not in live and original_path_for(key) not in live
		]
		return report

	async def reconcile(
			self,
			dry_run: bool = False,
			grace: Optional[timedelta] = None,
			now: Optional[datetime] = None,
	) -> ReconcileReport:
		grace = grace if grace is not None else timedelta(minutes=settings.ORPHAN_GRACE_MINUTES)
		report = await self.find_orphans(grace, now)
		report.dry_run = dry_run

		if dry_run or not report.orphaned:
			logger.info(f"Reconciliation: {len(report.orphaned)} orphans of {report.scanned} objects (dry_run={dry_run})")
			return report

		result = await run_in_threadpool(self.storage.delete, report.orphaned)
		report.deleted = result.succeeded
		report.errors = result.errors
		storage_orphans_deleted.inc(len(result.succeeded))

		logger.info(
			f"Reconciliation: deleted {len(report.deleted)} orphans, "
			f"{len(report.errors)} failures, {report.scanned} objects scanned"
		)
		return report
