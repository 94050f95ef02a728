from datetime import datetime, timedelta, timezone

from studio_api.services.reconciliation_service import ReconciliationService, original_path_for
from studio_api.services.storage_service import generate_thumbnail_path

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
OLD = NOW - timedelta(hours=3)
RECENT = NOW - timedelta(minutes=5)
GRACE = timedelta(minutes=60)

LIVE = "events/free/2026-05-01/1_aaaaaa_live.jpg"
ORPHAN = "events/free/2026-05-01/2_bbbbbb_orphan.jpg"
YOUNG = "events/free/2026-05-01/3_cccccc_young.jpg"
# An original whose own name looks like a thumbnail key
TRICKY = "events/free/2026-05-01/4_dddddd_party_thumb_300.jpg"


def test_original_path_for():
	assert original_path_for(generate_thumbnail_path(LIVE, 150)) == LIVE
	assert original_path_for(LIVE) == LIVE
	assert original_path_for("events/free/2026-05-01/5_e_a_thumb_600") == "events/free/2026-05-01/5_e_a"


async def _seed(storage, make_photo):
	await make_photo(storage_path=LIVE)
	await make_photo(storage_path=TRICKY)
	for path in (LIVE, ORPHAN, TRICKY):
		storage.put(path, modified=OLD)
		storage.put(generate_thumbnail_path(path, 150), modified=OLD)
	storage.put(YOUNG, modified=RECENT)


async def test_reconcile_deletes_only_old_unreferenced_objects(storage, db_session, make_photo):
	await _seed(storage, make_photo)

	report = await ReconciliationService(db_session, storage).reconcile(grace=GRACE, now=NOW)

	orphans = {ORPHAN, generate_thumbnail_path(ORPHAN, 150)}
	assert report.dry_run is False
	assert report.scanned == 7
	assert set(report.orphaned) == orphans
	assert set(report.deleted) == orphans
	assert report.errors == {}

	assert LIVE in storage.objects
	assert generate_thumbnail_path(LIVE, 150) in storage.objects
	assert TRICKY in storage.objects
	assert generate_thumbnail_path(TRICKY, 150) in storage.objects
	assert YOUNG in storage.objects
	assert ORPHAN not in storage.objects


async def test_dry_run_deletes_nothing(storage, db_session, make_photo):
	await _seed(storage, make_photo)

	report = await ReconciliationService(db_session, storage).reconcile(dry_run=True, grace=GRACE, now=NOW)

	assert report.dry_run is True
	assert ORPHAN in report.orphaned
	assert report.deleted == []
	assert storage.deleted == []


async def test_nothing_old_enough(storage, db_session):
	storage.put(YOUNG, modified=RECENT)

	report = await ReconciliationService(db_session, storage).reconcile(grace=GRACE, now=NOW)

	assert report.scanned == 1
	assert report.orphaned == []
	assert storage.deleted == []


async def test_scheduled_sweep(monkeypatch, engine, storage):
	from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

	from studio_api.workers import scheduled_tasks

	monkeypatch.setattr(
		scheduled_tasks, "AsyncSessionLocal",
		async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False),
	)
	monkeypatch.setattr(scheduled_tasks, "get_storage_service", lambda: storage)
	storage.put(ORPHAN, modified=datetime(2020, 1, 1, tzinfo=timezone.utc))

	result = await scheduled_tasks._reconcile_storage_async(dry_run=False, grace_minutes=60)

	assert result == {"dry_run": False, "scanned": 1, "orphaned": 1, "deleted": 1, "errors": {}}
	assert storage.objects == {}
