import os
from typing import AsyncGenerator, Dict

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("DEBUG", "true")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from studio_api.auth.jwt import auth_service
from studio_api.database import Base, get_session
from studio_api.main import app
from studio_api.models.event import Event, EventStatus
from studio_api.models.photo import Photo
from studio_api.models.user import User, UserRole
from studio_api.services.storage_service import get_storage_service
from tests.fakes import FakeStorage

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def engine():
	engine = create_async_engine(
		TEST_DATABASE_URL,
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
	)
	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)

	yield engine

	await engine.dispose()


@pytest.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
	async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
	async with async_session() as session:
		yield session


@pytest.fixture
def storage() -> FakeStorage:
	return FakeStorage()


@pytest.fixture
async def client(db_session: AsyncSession, storage: FakeStorage) -> AsyncGenerator[AsyncClient, None]:
	async def override_get_session():
		yield db_session

	app.dependency_overrides[get_session] = override_get_session
	app.dependency_overrides[get_storage_service] = lambda: storage

	async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
		yield client

	app.dependency_overrides.clear()


async def _create_user(session: AsyncSession, username: str, password: str, role: UserRole) -> User:
	user = User(
		username=username,
		hashed_password=auth_service.hash_password(password),
		full_name=username.title(),
		role=role,
		is_active=True
	)
	session.add(user)
	await session.commit()
	await session.refresh(user)
	return user


@pytest.fixture
async def admin_user(db_session: AsyncSession) -> User:
	return await _create_user(db_session, "admin", "adminpass123", UserRole.ADMIN)


@pytest.fixture
async def client_user(db_session: AsyncSession) -> User:
	return await _create_user(db_session, "client", "clientpass123", UserRole.CLIENT)


@pytest.fixture
def admin_headers(admin_user: User) -> Dict[str, str]:
	return {"Authorization": f"Bearer {auth_service.create_access_token(admin_user)}"}


@pytest.fixture
def client_headers(client_user: User) -> Dict[str, str]:
	return {"Authorization": f"Bearer {auth_service.create_access_token(client_user)}"}


@pytest.fixture
def make_event(db_session: AsyncSession):
	async def factory(status: EventStatus = EventStatus.PUBLISHED, title: str = "Wedding") -> Event:
		event = Event(title=title, status=status)
		db_session.add(event)
		await db_session.commit()
		await db_session.refresh(event)
		return event
	return factory


@pytest.fixture
async def event(make_event) -> Event:
	return await make_event()


@pytest.fixture
def make_photo(db_session: AsyncSession, admin_user: User):
	counter = {"n": 0}

	async def factory(**overrides) -> Photo:
		counter["n"] += 1
		n = counter["n"]
		values = {
			"uploaded_by": admin_user.id,
			"filename": f"1700000000000_abc{n:03d}_photo{n}.jpg",
			"original_filename": f"photo{n}.jpg",
			"storage_path": f"events/free/2026-01-01/1700000000000_abc{n:03d}_photo{n}.jpg",
			"file_size": 1024 * n,
			"mime_type": "image/jpeg",
			"is_featured": False,
			"is_approved": True,
			"photo_metadata": {"thumbnails": [], "upload_type": "free"},
		}
		values.update(overrides)
		photo = Photo(**values)
		db_session.add(photo)
		await db_session.commit()
		await db_session.refresh(photo)
		return photo
	return factory
