import uuid
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from studio_api.config import settings
from studio_api.models.event import EventStatus
from studio_api.models.photo import Photo
from tests.fakes import make_image

PHOTOS_URL = "/api/v1/photos"


def _files(*names):
	return [("files", (name, make_image(), "image/jpeg")) for name in names]


async def _photo_count(session) -> int:
	return await session.scalar(select(func.count()).select_from(Photo))


# =====================================
# Uploads
# =====================================

@pytest.mark.asyncio
async def test_event_upload(client: AsyncClient, admin_headers, admin_user, event, storage):
	admin_id, event_id = str(admin_user.id), str(event.id)

	response = await client.post(
		PHOTOS_URL,
		headers=admin_headers,
		data={"event_id": event_id, "description": "First dance", "is_featured": "true"},
		files=_files("a.jpg", "b.jpg") + [("files", ("notes.txt", b"hello", "text/plain"))],
	)

	assert response.status_code == 200
	body = response.json()
	assert body["success"] is True
	assert body["summary"] == {"total": 3, "successful": 2, "failed": 1}
	assert body["results"]["failed"][0]["filename"] == "notes.txt"
	assert body["results"]["failed"][0]["original_filename"] == "notes.txt"

	for photo in body["results"]["successful"]:
		assert photo["event_id"] == event_id
		assert photo["uploaded_by"] == admin_id
		assert photo["is_approved"] is True
		assert photo["is_featured"] is True
		assert photo["description"] == "First dance"
		assert photo["storage_path"] in storage.objects
		assert len(photo["metadata"]["thumbnails"]) == 4


@pytest.mark.asyncio
async def test_free_upload_by_client(client: AsyncClient, client_headers, client_user, db_session):
	client_id = str(client_user.id)

	response = await client.post(
		f"{PHOTOS_URL}/free-upload",
		headers=client_headers,
		data={"auto_approve": "false"},
		files=_files("a.jpg", "b.jpg"),
	)

	assert response.status_code == 200
	body = response.json()
	assert body["message"] == "Upload complete! 2 successful, 0 failed out of 2 total files."
	assert body["summary"] == {"total": 2, "successful": 2, "failed": 0}
	for photo in body["results"]["successful"]:
		assert photo["event_id"] is None
		assert photo["is_approved"] is False
		assert photo["uploaded_by"] == client_id
		assert photo["storage_path"].startswith("events/free/")
	assert await _photo_count(db_session) == 2


@pytest.mark.asyncio
async def test_free_upload_is_not_approved_by_default(client: AsyncClient, admin_headers):
	response = await client.post(f"{PHOTOS_URL}/free-upload", headers=admin_headers, files=_files("a.jpg"))

	assert response.status_code == 200
	assert response.json()["results"]["successful"][0]["is_approved"] is False


@pytest.mark.asyncio
async def test_event_upload_requires_authentication(client: AsyncClient, event, storage, db_session):
	response = await client.post(PHOTOS_URL, data={"event_id": str(event.id)}, files=_files("a.jpg"))

	assert response.status_code == 401
	assert storage.objects == {}
	assert await _photo_count(db_session) == 0


@pytest.mark.asyncio
async def test_event_upload_requires_admin(client: AsyncClient, client_headers, event, storage, db_session):
	response = await client.post(
		PHOTOS_URL, headers=client_headers, data={"event_id": str(event.id)}, files=_files("a.jpg")
	)

	assert response.status_code == 403
	assert storage.objects == {}
	assert await _photo_count(db_session) == 0


@pytest.mark.asyncio
async def test_free_upload_requires_authentication(client: AsyncClient, storage):
	response = await client.post(f"{PHOTOS_URL}/free-upload", files=_files("a.jpg"))

	assert response.status_code == 401
	assert storage.objects == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("data, expected", [
	({}, "Event ID is required"),
	({"event_id": "not-a-uuid"}, "Invalid event ID"),
])
async def test_event_upload_bad_event_id(client: AsyncClient, admin_headers, storage, data, expected):
	response = await client.post(PHOTOS_URL, headers=admin_headers, data=data, files=_files("a.jpg"))

	assert response.status_code == 400
	assert response.json()["detail"] == expected
	assert storage.objects == {}


@pytest.mark.asyncio
async def test_event_upload_without_files(client: AsyncClient, admin_headers, event):
	response = await client.post(PHOTOS_URL, headers=admin_headers, data={"event_id": str(event.id)})

	assert response.status_code == 400
	assert response.json()["detail"] == "No files provided"


@pytest.mark.asyncio
async def test_event_upload_too_many_files(client: AsyncClient, admin_headers, event, storage, monkeypatch):
	monkeypatch.setattr(settings, "MAX_FILES_PER_UPLOAD", 1)

	response = await client.post(
		PHOTOS_URL, headers=admin_headers, data={"event_id": str(event.id)}, files=_files("a.jpg", "b.jpg")
	)

	assert response.status_code == 400
	assert storage.objects == {}


@pytest.mark.asyncio
async def test_event_upload_unknown_event(client: AsyncClient, admin_headers, storage):
	response = await client.post(
		PHOTOS_URL, headers=admin_headers, data={"event_id": str(uuid.uuid4())}, files=_files("a.jpg")
	)

	assert response.status_code == 404
	assert storage.objects == {}


# =====================================
# Listing
# =====================================

@pytest.fixture
async def catalogue(make_event, make_photo):
	published = await make_event(EventStatus.PUBLISHED, title="Published")
	draft = await make_event(EventStatus.DRAFT, title="Draft")
	photos = {
		"visible": await make_photo(event_id=published.id, original_filename="ceremony.jpg", file_size=300),
		"pending": await make_photo(event_id=published.id, original_filename="pending.jpg", is_approved=False, file_size=100),
		"draft": await make_photo(event_id=draft.id, original_filename="draft.jpg", file_size=400),
		"free": await make_photo(event_id=None, original_filename="free.jpg", is_featured=True, file_size=200),
	}
	return {"published": published, "draft": draft, "photos": {k: str(v.id) for k, v in photos.items()}}


@pytest.mark.asyncio
async def test_clients_only_see_approved_photos_of_visible_events(client: AsyncClient, client_headers, catalogue):
	response = await client.get(PHOTOS_URL, headers=client_headers, params={"approved": "false"})

	assert response.status_code == 200
	body = response.json()
	assert [p["id"] for p in body["photos"]] == [catalogue["photos"]["visible"]]
	assert body["photos"][0]["event"]["title"] == "Published"
	assert body["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_admin_sees_everything_and_can_filter(client: AsyncClient, admin_headers, catalogue):
	response = await client.get(PHOTOS_URL, headers=admin_headers)
	assert response.json()["pagination"]["total"] == 4

	response = await client.get(PHOTOS_URL, headers=admin_headers, params={"approved": "false"})
	assert [p["id"] for p in response.json()["photos"]] == [catalogue["photos"]["pending"]]

	response = await client.get(PHOTOS_URL, headers=admin_headers, params={"featured": "true"})
	assert [p["id"] for p in response.json()["photos"]] == [catalogue["photos"]["free"]]
	assert response.json()["photos"][0]["event"] is None

	response = await client.get(
		PHOTOS_URL, headers=admin_headers, params={"event_id": str(catalogue["draft"].id)}
	)
	assert [p["id"] for p in response.json()["photos"]] == [catalogue["photos"]["draft"]]

	response = await client.get(PHOTOS_URL, headers=admin_headers, params={"search": "CEREMONY"})
	assert [p["id"] for p in response.json()["photos"]] == [catalogue["photos"]["visible"]]


@pytest.mark.asyncio
async def test_sort_and_pagination(client: AsyncClient, admin_headers, catalogue):
	response = await client.get(
		PHOTOS_URL, headers=admin_headers,
		params={"sort": "file_size", "order": "asc", "limit": 3, "page": 1},
	)
	body = response.json()
	assert [p["file_size"] for p in body["photos"]] == [100, 200, 300]
	assert body["pagination"] == {
		"page": 1, "limit": 3, "total": 4, "total_pages": 2, "has_next": True, "has_previous": False,
	}

	response = await client.get(
		PHOTOS_URL, headers=admin_headers,
		params={"sort": "file_size", "order": "asc", "limit": 3, "page": 2},
	)
	body = response.json()
	assert [p["file_size"] for p in body["photos"]] == [400]
	assert body["pagination"]["has_next"] is False
	assert body["pagination"]["has_previous"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("params", [{"limit": 101}, {"page": 0}, {"sort": "size"}, {"order": "up"}])
async def test_invalid_list_parameters(client: AsyncClient, admin_headers, params):
	response = await client.get(PHOTOS_URL, headers=admin_headers, params=params)
	assert response.status_code == 422


@pytest.mark.asyncio
async def test_listing_requires_authentication(client: AsyncClient):
	response = await client.get(PHOTOS_URL)
	assert response.status_code == 401


# =====================================
# Bulk operations
# =====================================

@pytest.mark.asyncio
async def test_bulk_approve(client: AsyncClient, admin_headers, make_photo):
	first = await make_photo(is_approved=False)
	second = await make_photo(is_approved=False)

	response = await client.patch(
		PHOTOS_URL, headers=admin_headers,
		json={"photo_ids": [str(first.id), str(second.id)], "operation": "approve"},
	)

	assert response.status_code == 200
	body = response.json()
	assert body["success"] is True
	assert body["affected_count"] == 2
	assert body["message"] == "Successfully approved 2 photos"
	assert all(p["is_approved"] for p in body["updated_photos"])


@pytest.mark.asyncio
@pytest.mark.parametrize("operation, field, value", [
	("reject", "is_approved", False),
	("feature", "is_featured", True),
	("unfeature", "is_featured", False),
])
async def test_bulk_moderation(client: AsyncClient, admin_headers, make_photo, operation, field, value):
	photo = await make_photo(is_approved=True, is_featured=not value if field == "is_featured" else False)

	response = await client.patch(
		PHOTOS_URL, headers=admin_headers, json={"photo_ids": [str(photo.id)], "operation": operation}
	)

	assert response.status_code == 200
	assert response.json()["updated_photos"][0][field] is value


@pytest.mark.asyncio
async def test_bulk_delete_does_not_depend_on_storage(client: AsyncClient, admin_headers, make_photo, storage, db_session):
	first = await make_photo()
	second = await make_photo()
	# The first object was already removed out of band
	storage.put(second.storage_path)
	first_path, second_path = first.storage_path, second.storage_path

	response = await client.patch(
		PHOTOS_URL, headers=admin_headers,
		json={"photo_ids": [str(first.id), str(second.id)], "operation": "delete"},
	)

	assert response.status_code == 200
	body = response.json()
	assert body["affected_count"] == 2
	assert body["message"] == "Successfully deleted 2 photos"
	assert await _photo_count(db_session) == 0
	assert first_path in storage.deleted and second_path in storage.deleted
	assert second_path not in storage.objects


@pytest.mark.asyncio
async def test_bulk_delete_counts_only_existing_rows(client: AsyncClient, admin_headers, make_photo):
	photo = await make_photo()

	response = await client.patch(
		PHOTOS_URL, headers=admin_headers,
		json={"photo_ids": [str(photo.id), str(uuid.uuid4())], "operation": "delete"},
	)

	assert response.json()["affected_count"] == 1


@pytest.mark.asyncio
async def test_bulk_operations_require_admin(client: AsyncClient, client_headers, make_photo, db_session):
	photo = await make_photo()

	response = await client.patch(
		PHOTOS_URL, headers=client_headers, json={"photo_ids": [str(photo.id)], "operation": "delete"}
	)

	assert response.status_code == 403
	assert await _photo_count(db_session) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
	{"photo_ids": [], "operation": "approve"},
	{"photo_ids": [str(uuid.uuid4())], "operation": "archive"},
])
async def test_bulk_operation_validation(client: AsyncClient, admin_headers, payload):
	response = await client.patch(PHOTOS_URL, headers=admin_headers, json=payload)
	assert response.status_code == 422


# =====================================
# Single photo edits
# =====================================

@pytest.mark.asyncio
async def test_metadata_edit_keeps_thumbnail_manifest(client: AsyncClient, admin_headers, make_photo):
	thumbnails = [{"size": 150, "path": "events/free/x_thumb_150.jpg", "url": "https://cdn.test/x"}]
	photo = await make_photo(photo_metadata={"thumbnails": thumbnails, "upload_type": "free", "camera": "Old"})

	response = await client.patch(
		f"{PHOTOS_URL}/{photo.id}", headers=admin_headers,
		json={
			"description": "Golden hour",
			"is_featured": True,
			"metadata": {"camera": "Canon EOS R5", "iso": 400, "tags": ["sunset", "couple"]},
		},
	)

	assert response.status_code == 200
	body = response.json()
	assert body["description"] == "Golden hour"
	assert body["is_featured"] is True
	assert body["metadata"]["thumbnails"] == thumbnails
	assert body["metadata"]["upload_type"] == "free"
	assert body["metadata"]["camera"] == "Canon EOS R5"
	assert body["metadata"]["iso"] == 400
	assert body["metadata"]["tags"] == ["sunset", "couple"]


@pytest.mark.asyncio
async def test_metadata_edit_validation(client: AsyncClient, admin_headers, make_photo):
	photo = await make_photo()

	response = await client.patch(
		f"{PHOTOS_URL}/{photo.id}", headers=admin_headers, json={"metadata": {"iso": 10}}
	)

	assert response.status_code == 422


@pytest.mark.asyncio
async def test_edit_unknown_photo(client: AsyncClient, admin_headers):
	response = await client.patch(f"{PHOTOS_URL}/{uuid.uuid4()}", headers=admin_headers, json={"is_featured": True})
	assert response.status_code == 404


# =====================================
# Configuration and storage
# =====================================

@pytest.mark.asyncio
async def test_upload_config(client: AsyncClient):
	response = await client.get(f"{PHOTOS_URL}/config")

	assert response.status_code == 200
	body = response.json()
	assert body["max_file_size"] == 50 * 1024 * 1024
	assert ".cr2" in body["raw_extensions"]
	assert "application/octet-stream" in body["allowed_content_types"]
	assert body["thumbnail_sizes"] == [150, 300, 600, 1200]


@pytest.mark.asyncio
async def test_storage_check(client: AsyncClient, admin_headers, client_headers):
	response = await client.get(f"{PHOTOS_URL}/storage/check", headers=admin_headers)
	assert response.json() == {"bucket": "test-photos", "accessible": True, "error": None}

	response = await client.get(f"{PHOTOS_URL}/storage/check", headers=client_headers)
	assert response.status_code == 403


@pytest.mark.asyncio
async def test_reconcile_defaults_to_dry_run(client: AsyncClient, admin_headers, storage):
	storage.put("events/free/2020-01-01/1_t_orphan.jpg", modified=datetime(2020, 1, 1, tzinfo=timezone.utc))

	response = await client.post(f"{PHOTOS_URL}/storage/reconcile", headers=admin_headers)

	assert response.status_code == 200
	body = response.json()
	assert body["dry_run"] is True
	assert body["orphaned"] == ["events/free/2020-01-01/1_t_orphan.jpg"]
	assert body["deleted"] == []
	assert "events/free/2020-01-01/1_t_orphan.jpg" in storage.objects
