"""Shared fixtures: a mocked Mongo database and a TestClient with auth overridden."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from bson.objectid import ObjectId
from fastapi.testclient import TestClient

from nagarsathi.core.auth import optional_auth, require_auth
from nagarsathi.core.database import get_db_dependency, get_fs_dependency
from nagarsathi.main import app


class FakeCursor:
    """Stands in for a Motor cursor: chainable, awaitable to_list, async iterable."""

    def __init__(self, docs=None):
        self.docs = list(docs or [])
        self.calls = []

    def sort(self, *args, **kwargs):
        self.calls.append(("sort", args))
        return self

    def skip(self, value):
        self.calls.append(("skip", value))
        return self

    def limit(self, value):
        self.calls.append(("limit", value))
        return self

    async def to_list(self, length=None):
        return list(self.docs)

    def __aiter__(self):
        self._iter = iter(self.docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


@pytest.fixture
def user():
    return {"_id": ObjectId(), "clerkUserId": "user_123", "name": "Asha", "email": "asha@example.com", "role": "user"}


@pytest.fixture
def other_user():
    return {"_id": ObjectId(), "clerkUserId": "user_456", "name": "Ravi", "email": "ravi@example.com", "role": "user"}


@pytest.fixture
def admin():
    return {"_id": ObjectId(), "clerkUserId": "user_admin", "name": "Admin", "email": "admin@example.com", "role": "admin"}


@pytest.fixture
def db():
    database = MagicMock()
    for name in ("issues", "users", "comments", "upvotes"):
        collection = getattr(database, name)
        collection.find = MagicMock(return_value=FakeCursor())
        collection.aggregate = MagicMock(return_value=FakeCursor())
    return database


@pytest.fixture
def fs():
    bucket = MagicMock()
    bucket.upload_from_stream = AsyncMock(side_effect=lambda *args, **kwargs: ObjectId())
    bucket.delete = AsyncMock()
    return bucket


@pytest.fixture
def make_client(db, fs):
    """Build a TestClient; pass a user document to act as that signed-in user."""
    app.state.clerk = MagicMock()
    app.state.geocoder = MagicMock()

    def _make(current_user=None):
        app.dependency_overrides[get_db_dependency] = lambda: db
        app.dependency_overrides[get_fs_dependency] = lambda: fs
        app.dependency_overrides[optional_auth] = lambda: current_user
        if current_user is not None:
            app.dependency_overrides[require_auth] = lambda: current_user
        else:
            app.dependency_overrides.pop(require_auth, None)
        return TestClient(app, raise_server_exceptions=False)

    yield _make
    app.dependency_overrides.clear()
