"""
Shared fixtures.

The environment is configured before anything from ``groupchat`` is
imported: an in-memory SQLite database, a throwaway static directory and a
fixed server URL so generated links are predictable.
"""
import io
import itertools
import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("SERVER_URL", "http://testserver")
os.environ.setdefault("STATIC_DIR", tempfile.mkdtemp(prefix="groupchat-static-"))

import pytest
from jose import jwt
from PIL import Image

from groupchat.core.config import settings
from groupchat.db import init_db  # noqa: F401  registers every model on Base
from groupchat.db.database import Base, SessionLocal, engine
from groupchat.models.user import User
from groupchat.services.media_service import LocalMediaStorage


class RecordingNotifier:
    """Collects emitted events instead of pushing them to sockets."""

    def __init__(self):
        self.events = []

    async def emit(self, user_id, event, data):
        self.events.append((user_id, event, data))
        return True

    def recipients(self, event):
        return [user_id for user_id, name, _ in self.events if name == event]

    def payloads(self, event):
        return [data for _, name, data in self.events if name == event]


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(username=None):
        user = User(username=username or f"user{next(counter)}")
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def users(make_user):
    """u1 .. u5"""
    return [make_user(f"u{i}") for i in range(1, 6)]


@pytest.fixture
def storage(tmp_path):
    return LocalMediaStorage(tmp_path)


@pytest.fixture
def image_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (800, 600), color=(200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def auth_header():
    def _header(user):
        token = jwt.encode({"user_id": user.id}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        return {"Authorization": f"Bearer {token}"}

    return _header
