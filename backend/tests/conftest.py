import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("CLEANUP_ENABLED", "false")
os.environ.setdefault("EMAIL_ENABLED", "false")

from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

import skieshare.models  # noqa: F401
from skieshare.core import database
from skieshare.core import minio_client as storage
from skieshare.core.database import Base, get_db
from skieshare.core.security import create_access_token
from skieshare.models import File, Folder, Profile, User
from skieshare.services.credentials import hash_password
from skieshare.utils import email as email_utils


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'skieshare-test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    monkeypatch.setattr(database, "SessionLocal", factory)
    return factory


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class FakeObject:
    def __init__(self, data: bytes):
        self._data = data
        self.closed = False

    def read(self, n=-1):
        if n is None or n < 0:
            n = len(self._data)
        chunk, self._data = self._data[:n], self._data[n:]
        return chunk

    def close(self):
        self.closed = True

    def release_conn(self):
        pass


class FakeStorage:
    def __init__(self):
        self.objects = {}
        self.removed = []
        self.fail_removes = 0

    async def upload_path(self, object_name, path, content_type="application/octet-stream"):
        with open(path, "rb") as fh:
            self.objects[object_name] = fh.read()

    async def get_object(self, object_name):
        if object_name not in self.objects:
            raise KeyError(object_name)
        return FakeObject(self.objects[object_name])

    async def remove_object(self, object_name):
        if self.fail_removes:
            self.fail_removes -= 1
            raise ConnectionError("minio unavailable")
        self.objects.pop(object_name, None)
        self.removed.append(object_name)


@pytest.fixture
def fake_storage(monkeypatch):
    fake = FakeStorage()
    monkeypatch.setattr(storage, "upload_path", fake.upload_path)
    monkeypatch.setattr(storage, "get_object", fake.get_object)
    monkeypatch.setattr(storage, "remove_object", fake.remove_object)
    return fake


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    async def fake_send(to_email, subject, body):
        sent.append({"to": to_email, "subject": subject, "body": body})
        return True

    monkeypatch.setattr(email_utils, "send_email", fake_send)
    return sent


@pytest.fixture
async def client(session_factory, fake_storage, sent_emails):
    from skieshare.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


async def make_user(db, email, password="password123", tier="free", storage_limit=6442450944,
                    daily_upload_limit=100, storage_used=0):
    user = User(email=email, hashed_password=hash_password(password))
    db.add(user)
    await db.flush()
    db.add(Profile(
        id=user.id,
        subscription_tier=tier,
        storage_limit=storage_limit,
        storage_used=storage_used,
        daily_upload_limit=daily_upload_limit,
    ))
    await db.commit()
    return user


async def make_file(db, user, name="report.pdf", size=1024, **fields):
    f = File(
        user_id=user.id,
        original_name=name,
        file_size=size,
        file_type=fields.pop("file_type", "application/pdf"),
        storage_path=fields.pop("storage_path", f"{user.id}/{name}"),
        created_at=fields.pop("created_at", datetime.utcnow()),
        **fields,
    )
    db.add(f)
    await db.commit()
    return f


async def make_folder(db, user, name="Docs", parent_id=None):
    folder = Folder(user_id=user.id, name=name, parent_id=parent_id)
    db.add(folder)
    await db.commit()
    return folder


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token({'sub': user.email})}"}


@pytest.fixture
async def alice(db):
    return await make_user(db, "alice@example.com")


@pytest.fixture
async def bob(db):
    return await make_user(db, "bob@example.com")


@pytest.fixture
async def carol(db):
    return await make_user(db, "carol@example.com")
