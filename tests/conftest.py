from datetime import datetime, timedelta, timezone

import mongomock
import pytest

from officehub.db import ensure_indexes
from officehub.models import Identity, Role


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def db():
    database = mongomock.MongoClient()["officehub-test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def admin():
    return Identity(uid="admin-1", name="Alice Admin", email="alice@example.com", department="Programming", role=Role.ADMIN)


@pytest.fixture
def manager():
    return Identity(uid="mgr-1", name="Priya", email="priya@example.com", department="Programming", role=Role.MANAGER)


@pytest.fixture
def other_manager():
    return Identity(uid="mgr-2", name="Omar", email="omar@example.com", department="UI/UX", role=Role.MANAGER)


@pytest.fixture
def user_a():
    return Identity(uid="user-a", name="John", email="john@example.com", department="Programming", role=Role.SPECIALIST)


@pytest.fixture
def user_b():
    return Identity(uid="user-b", name="Sarah", email="sarah@example.com", department="UI/UX", role=Role.VIEWER)
