"""
Subscription ledger lookups.

Every adapter satisfies the lookup signature the engine expects:
    lookup(viewer_id, artist_id) -> SubscriptionRecord | None

Provides:
- InMemorySubscriptionLedger: test double holding raw ledger rows
- SqlSubscriptionLedger: reads the subscriptions table
- TimeoutLookup: bounds any lookup; a timeout becomes a LookupFailure
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fan_entitlements import config
from fan_entitlements.db.base import as_utc
from fan_entitlements.db.subscription import SubscriptionRow
from fan_entitlements.errors import LookupFailure
from fan_entitlements.models import SubscriptionRecord, SubscriptionStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemorySubscriptionLedger:
    """Holds every historical row; lookups return the most recent overlapping one."""

    def __init__(self, records=None, clock: Optional[Clock] = None) -> None:
        self._clock = clock or _utcnow
        self._lock = Lock()
        self._rows: Dict[Tuple[str, str], List[SubscriptionRecord]] = {}
        self.calls: List[Tuple[str, str]] = []
        for record in records or []:
            self.add(record)

    def add(self, record: SubscriptionRecord) -> None:
        with self._lock:
            self._rows.setdefault((record.viewer_id, record.artist_id), []).append(record)

    def clear(self) -> None:
        with self._lock:
            self._rows.clear()

    def __call__(self, viewer_id: str, artist_id: str) -> Optional[SubscriptionRecord]:
        return self.lookup(viewer_id, artist_id)

    def lookup(self, viewer_id: str, artist_id: str) -> Optional[SubscriptionRecord]:
        now = self._clock()
        with self._lock:
            self.calls.append((viewer_id, artist_id))
            rows = list(self._rows.get((viewer_id, artist_id), []))
        started = [r for r in rows if r.period_start <= now]
        if not started:
            return None
        return max(started, key=lambda r: r.period_start)


class SqlSubscriptionLedger:
    """
    Reads the subscriptions table.

    Only rows that are active and unexpired are candidates; among them the
    most recently started one is returned.

    Each lookup opens and closes its own session from session_factory, so the
    read stays on whichever thread runs it (TimeoutLookup runs it on a pool).
    """

    def __init__(self, session_factory: Callable[[], Session], clock: Optional[Clock] = None) -> None:
        self._session_factory = session_factory
        self._clock = clock or _utcnow

    def __call__(self, viewer_id: str, artist_id: str) -> Optional[SubscriptionRecord]:
        return self.lookup(viewer_id, artist_id)

    def lookup(self, viewer_id: str, artist_id: str) -> Optional[SubscriptionRecord]:
        now = self._clock()
        session = self._session_factory()
        try:
            row = (
                session.query(SubscriptionRow)
                .filter(
                    SubscriptionRow.fan_id == viewer_id,
                    SubscriptionRow.artist_id == artist_id,
                    SubscriptionRow.status == SubscriptionStatus.ACTIVE.value,
                    SubscriptionRow.current_period_start <= now,
                    or_(
                        SubscriptionRow.current_period_end.is_(None),
                        SubscriptionRow.current_period_end > now,
                    ),
                )
                .order_by(SubscriptionRow.current_period_start.desc())
                .first()
            )
            return row_to_record(row) if row is not None else None
        except SQLAlchemyError as exc:
            logger.error(
                "Subscription ledger query failed",
                extra={"viewer_id": viewer_id, "artist_id": artist_id, "error": str(exc)},
            )
            raise LookupFailure(viewer_id, artist_id, "ledger query failed", cause=exc) from exc
        finally:
            session.close()


def row_to_record(row: SubscriptionRow) -> SubscriptionRecord:
    return SubscriptionRecord(
        viewer_id=row.fan_id,
        artist_id=row.artist_id,
        status=row.status,
        period_start=as_utc(row.current_period_start),
        period_end=as_utc(row.current_period_end),
    )


class TimeoutLookup:
    """
    Runs a lookup on a worker thread and gives up after timeout_seconds.

    The abandoned read is left to finish in the background; its result is discarded.
    """

    def __init__(
        self,
        lookup: Callable[[str, str], Optional[SubscriptionRecord]],
        timeout_seconds: Optional[float] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self._lookup = lookup
        self._timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else config.LEDGER_LOOKUP_TIMEOUT_SECONDS
        )
        self._executor = executor or _shared_executor()

    def __call__(self, viewer_id: str, artist_id: str) -> Optional[SubscriptionRecord]:
        future = self._executor.submit(self._lookup, viewer_id, artist_id)
        try:
            return future.result(timeout=self._timeout_seconds)
        except FutureTimeoutError as exc:
            future.cancel()
            raise LookupFailure(
                viewer_id,
                artist_id,
                f"ledger lookup timed out after {self._timeout_seconds}s",
                cause=exc,
            ) from exc


_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = Lock()


def _shared_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="ledger-lookup")
        return _executor
