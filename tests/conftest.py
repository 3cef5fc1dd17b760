from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fan_entitlements import alerts
from fan_entitlements.db.base import Base
from fan_entitlements.ledger import InMemorySubscriptionLedger
from fan_entitlements.models import (
    AccessLevel,
    ContentItem,
    ContentKind,
    SubscriptionRecord,
    SubscriptionStatus,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.zsets = {}

    def ping(self):
        return True

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self.store.pop(key, None)
        self.ttls.pop(key, None)

    def zadd(self, key, members):
        z = self.zsets.setdefault(key, {})
        z.update(members)

    def zscore(self, key, member):
        return self.zsets.get(key, {}).get(member)

    def zrangebyscore(self, key, min_score, max_score):
        z = self.zsets.get(key, {})
        return [m for m, s in z.items() if min_score <= s <= max_score]

    def zrem(self, key, member):
        self.zsets.get(key, {}).pop(member, None)


def make_track(level="subscriber", artist_id="A1", item_id="t1", **kwargs):
    if level == AccessLevel.PURCHASE.value and "price_cents" not in kwargs:
        kwargs["price_cents"] = 500
    kwargs.setdefault("asset_url", f"https://cdn.example.com/{item_id}.mp3")
    kwargs.setdefault("duration_seconds", 210)
    return ContentItem(
        item_id=item_id,
        owner_artist_id=artist_id,
        access_level=level,
        kind=ContentKind.TRACK,
        **kwargs,
    )


def make_post(level="subscriber", artist_id="A1", item_id="p1"):
    return ContentItem(
        item_id=item_id,
        owner_artist_id=artist_id,
        access_level=level,
        kind=ContentKind.POST,
        price_cents=500 if level == AccessLevel.PURCHASE.value else None,
    )


def make_record(
    viewer_id="U1",
    artist_id="A1",
    status=SubscriptionStatus.ACTIVE,
    period_start=None,
    period_end=None,
    purchase=False,
):
    start = period_start or NOW - timedelta(days=20)
    end = None if purchase else (period_end or NOW + timedelta(days=10))
    return SubscriptionRecord(
        viewer_id=viewer_id,
        artist_id=artist_id,
        status=status,
        period_start=start,
        period_end=end,
    )


@pytest.fixture(autouse=True)
def reset_alert_counters():
    alerts.reset_deny_counts()
    yield
    alerts.reset_deny_counts()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def ledger():
    return InMemorySubscriptionLedger(clock=lambda: NOW)


@pytest.fixture
def session_factory():
    """
    In-memory SQLite behind a single shared connection.

    Every session from this factory sees the same database; ledger reads open
    their own session on the lookup pool thread.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    yield SessionLocal

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()
