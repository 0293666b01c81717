from datetime import datetime

import psycopg2
import pytest
from fastapi.testclient import TestClient

from earntask import database
from earntask.app import app
from earntask.auth import get_current_user
from earntask.coins import clear_coin_cache

NOW = datetime(2024, 5, 1, 12, 0, 0)


class FakeCursor:
    """Stands in for a RealDictCursor: records queries and replays queued rows."""

    def __init__(self, results, failures=None):
        self.results = results
        self.queries = []
        self.failures = failures if failures is not None else []

    def execute(self, query, params=None):
        query = " ".join(query.split())
        self.queries.append((query, params))
        for fragment, exc in self.failures:
            if fragment in query:
                raise exc

    def fetchone(self):
        return self.results.pop(0) if self.results else None

    def fetchall(self):
        return self.results.pop(0) if self.results else []

    def close(self):
        pass


class FakeConnection:
    def __init__(self, cursor):
        self._cursor = cursor
        self.committed = False
        self.rolled_back = False

    def cursor(self):
        return self._cursor

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        pass


class FakeDatabase:
    def __init__(self):
        self.results = []
        self.cursor = FakeCursor(self.results)
        self.connections = []

    def queue(self, *results):
        """Queue what the next fetchone/fetchall calls return, in order."""
        self.results.extend(results)

    def fail_on(self, fragment, exc=None):
        """Make any query containing ``fragment`` raise, like a failing statement would."""
        self.cursor.failures.append((fragment, exc or psycopg2.OperationalError("statement failed")))

    def connect(self):
        conn = FakeConnection(self.cursor)
        self.connections.append(conn)
        return conn

    @property
    def queries(self):
        return self.cursor.queries

    def find(self, fragment):
        return [(q, p) for q, p in self.cursor.queries if fragment in q]

    @property
    def rolled_back(self):
        return any(conn.rolled_back for conn in self.connections)


@pytest.fixture
def db(monkeypatch):
    fake = FakeDatabase()
    monkeypatch.setattr(database, "get_connection", fake.connect)
    clear_coin_cache()
    yield fake
    clear_coin_cache()


@pytest.fixture
def client():
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user():
    def _make_user(**overrides):
        user = {
            "id": 1,
            "email": "user@example.com",
            "password": "not-a-real-hash",
            "name": "Test User",
            "username": "testuser",
            "instagram_id": None,
            "avatar": None,
            "coins": 0,
            "total_earned": 0,
            "total_withdrawn": 0,
            "referral_code": "1AB12CD3",
            "referred_by": None,
            "is_active": True,
            "role": "user",
            "is_creator": False,
            "creator_status": None,
            "creator_approved_by": None,
            "creator_approved_at": None,
            "creator_rejection_reason": None,
            "creator_wallet": 0,
            "creator_youtube_url": None,
            "creator_instagram_url": None,
            "created_at": NOW,
            "updated_at": NOW,
        }
        user.update(overrides)
        return user
    return _make_user


@pytest.fixture
def login_as():
    """Authenticate every request in the test as the given user row."""
    def _login_as(user):
        app.dependency_overrides[get_current_user] = lambda: user
        return user
    yield _login_as
    app.dependency_overrides.clear()


@pytest.fixture
def make_task():
    def _make_task(**overrides):
        task = {
            "id": 10,
            "type": "watch_video",
            "title": "Watch Demo",
            "description": "Watch the demo video",
            "coins": 10,
            "video_url": "https://example.com/video.mp4",
            "video_duration": 100,
            "instagram_url": None,
            "youtube_url": None,
            "thumbnail": None,
            "is_active": True,
            "created_by": None,
            "is_creator_task": False,
            "reward_per_user": None,
            "max_users": None,
            "total_budget": None,
            "coins_used": 0,
            "created_at": NOW,
            "updated_at": NOW,
        }
        task.update(overrides)
        return task
    return _make_task
