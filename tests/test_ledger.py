"""
Ledger adapters: in-memory double, subscriptions table reads, timeouts.
"""

import threading
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from conftest import NOW, make_record
from fan_entitlements.db.subscription import SubscriptionRow
from fan_entitlements.errors import LookupFailure
from fan_entitlements.ledger import (
    InMemorySubscriptionLedger,
    SqlSubscriptionLedger,
    TimeoutLookup,
)
from fan_entitlements.models import SubscriptionStatus


def _add_row(session, **overrides):
    values = {
        "fan_id": "U1",
        "artist_id": "A1",
        "status": "active",
        "current_period_start": NOW - timedelta(days=20),
        "current_period_end": NOW + timedelta(days=10),
    }
    values.update(overrides)
    row = SubscriptionRow(**values)
    session.add(row)
    session.commit()
    return row


# ----- In-memory ledger -----

def test_in_memory_returns_most_recent_started_record(ledger):
    older = make_record(period_start=NOW - timedelta(days=60), period_end=NOW - timedelta(days=30))
    current = make_record(period_start=NOW - timedelta(days=30), period_end=NOW + timedelta(days=1))
    future = make_record(period_start=NOW + timedelta(days=1), period_end=NOW + timedelta(days=31))
    for record in (older, future, current):
        ledger.add(record)

    assert ledger("U1", "A1") == current


def test_in_memory_most_recent_canceled_row_shadows_older_rows(ledger):
    ledger.add(make_record(period_start=NOW - timedelta(days=60), period_end=NOW + timedelta(days=5)))
    canceled = make_record(status=SubscriptionStatus.CANCELED, period_start=NOW - timedelta(days=1))
    ledger.add(canceled)

    assert ledger.lookup("U1", "A1") == canceled


def test_in_memory_miss_and_call_log(ledger):
    assert ledger("U1", "A1") is None
    assert ledger.calls == [("U1", "A1")]


def test_in_memory_accepts_initial_records():
    ledger = InMemorySubscriptionLedger([make_record()], clock=lambda: NOW)
    assert ledger("U1", "A1") is not None
    ledger.clear()
    assert ledger("U1", "A1") is None


# ----- SQL ledger -----

def test_sql_ledger_returns_active_unexpired_row(db_session, session_factory):
    _add_row(db_session)

    record = SqlSubscriptionLedger(session_factory, clock=lambda: NOW)("U1", "A1")

    assert record is not None
    assert record.viewer_id == "U1"
    assert record.artist_id == "A1"
    assert record.status is SubscriptionStatus.ACTIVE
    assert record.period_end == NOW + timedelta(days=10)
    assert record.period_end.tzinfo is not None


@pytest.mark.parametrize(
    "overrides",
    [
        {"status": "past_due"},
        {"status": "canceled"},
        {"current_period_end": NOW - timedelta(seconds=1)},
        {"current_period_end": NOW},
        {"fan_id": "U2"},
        {"artist_id": "A2"},
        {"current_period_start": NOW + timedelta(days=1), "current_period_end": NOW + timedelta(days=31)},
    ],
)
def test_sql_ledger_filters_non_granting_rows(db_session, session_factory, overrides):
    _add_row(db_session, **overrides)

    assert SqlSubscriptionLedger(session_factory, clock=lambda: NOW)("U1", "A1") is None


def test_sql_ledger_reads_purchase_rows(db_session, session_factory):
    _add_row(db_session, current_period_end=None, tier_id=None)

    record = SqlSubscriptionLedger(session_factory, clock=lambda: NOW).lookup("U1", "A1")

    assert record is not None
    assert record.is_purchase is True


def test_sql_ledger_prefers_most_recent_period(db_session, session_factory):
    _add_row(db_session, current_period_start=NOW - timedelta(days=40), current_period_end=NOW + timedelta(days=1))
    _add_row(db_session, current_period_start=NOW - timedelta(days=2), current_period_end=NOW + timedelta(days=28))

    record = SqlSubscriptionLedger(session_factory, clock=lambda: NOW)("U1", "A1")

    assert record.period_start == NOW - timedelta(days=2)


def test_sql_ledger_wraps_database_errors():
    session = MagicMock()
    session.query.side_effect = OperationalError("SELECT", {}, Exception("connection reset"))

    with pytest.raises(LookupFailure) as exc:
        SqlSubscriptionLedger(lambda: session, clock=lambda: NOW)("U1", "A1")

    assert exc.value.error_code == "ENTITLEMENT_LOOKUP_FAILED"
    assert exc.value.to_dict()["artist_id"] == "A1"
    session.close.assert_called_once()


def test_sql_ledger_reads_on_its_own_session_per_lookup(db_session, session_factory):
    _add_row(db_session)
    opened = []

    def tracking_factory():
        session = session_factory()
        opened.append(session)
        return session

    ledger = SqlSubscriptionLedger(tracking_factory, clock=lambda: NOW)
    bounded = TimeoutLookup(ledger, timeout_seconds=5.0)

    assert bounded("U1", "A1") is not None
    assert bounded("U1", "A1") is not None

    assert len(opened) == 2
    assert all(session is not db_session for session in opened)


# ----- Timeouts -----

def test_timeout_lookup_passes_through_result():
    record = make_record()
    bounded = TimeoutLookup(lambda v, a: record, timeout_seconds=1.0)
    assert bounded("U1", "A1") is record


def test_timeout_lookup_raises_lookup_failure_when_slow():
    release = threading.Event()

    def slow_lookup(viewer_id, artist_id):
        release.wait(5)
        return make_record()

    bounded = TimeoutLookup(slow_lookup, timeout_seconds=0.05)
    try:
        with pytest.raises(LookupFailure, match="timed out"):
            bounded("U1", "A1")
    finally:
        release.set()


def test_timeout_lookup_propagates_errors():
    def broken(viewer_id, artist_id):
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        TimeoutLookup(broken, timeout_seconds=1.0)("U1", "A1")
