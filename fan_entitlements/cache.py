from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Optional
from urllib.parse import quote, unquote

from fan_entitlements import config
from fan_entitlements.models import SubscriptionRecord

logger = logging.getLogger(__name__)

CACHE_SCHEMA_VERSION = 1


class EntitlementCache:
    """
    Redis-backed cache of granting ledger records with in-memory fallback.

    Keyed on (viewer_id, artist_id). An entry never outlives the period_end of
    the record it holds.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._ttl_seconds = ttl_seconds if ttl_seconds is not None else config.ENTITLEMENT_CACHE_TTL_SECONDS
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._redis = None
        self._mem: Dict[str, tuple[float, dict]] = {}
        redis_url = config.get_redis_url() if redis_url is None else redis_url

        if redis_url:
            try:
                import redis

                self._redis = redis.from_url(redis_url, decode_responses=True)
                self._redis.ping()
            except Exception as exc:
                logger.warning("Redis unavailable, using in-memory entitlement cache: %s", exc)
                self._redis = None

    @staticmethod
    def _require(value: str, name: str) -> str:
        normalized = str(value).strip()
        if not normalized:
            raise ValueError(f"{name} is required")
        return normalized

    @staticmethod
    def _member(viewer_id: str, artist_id: str) -> str:
        # Ids are percent-encoded so the separator cannot appear inside them
        return f"{quote(viewer_id, safe='')}:{quote(artist_id, safe='')}"

    @staticmethod
    def _split_member(member: str) -> tuple[str, str]:
        viewer_id, _, artist_id = member.partition(":")
        return unquote(viewer_id), unquote(artist_id)

    @property
    def uses_redis(self) -> bool:
        return self._redis is not None

    @classmethod
    def _key(cls, viewer_id: str, artist_id: str) -> str:
        return f"entitlements:v{CACHE_SCHEMA_VERSION}:{cls._member(viewer_id, artist_id)}"

    @staticmethod
    def _expiry_index_key() -> str:
        return "entitlements:period_end"

    def _ttl_for(self, record: SubscriptionRecord, now: datetime) -> int:
        if record.period_end is None:
            return self._ttl_seconds
        remaining = (record.period_end - now).total_seconds()
        return int(min(self._ttl_seconds, remaining))

    def get(self, viewer_id: str, artist_id: str) -> Optional[SubscriptionRecord]:
        viewer_id = self._require(viewer_id, "viewer_id")
        artist_id = self._require(artist_id, "artist_id")
        key = self._key(viewer_id, artist_id)
        now = self._clock()

        if self._redis is not None:
            raw = self._redis.get(key)
            if not raw:
                return None
            record = _decode_record(json.loads(raw))
        else:
            data = self._mem.get(key)
            if not data:
                return None
            expires_at, payload = data
            if now.timestamp() >= expires_at:
                self._mem.pop(key, None)
                return None
            record = _decode_record(payload)

        # Redis TTLs are whole seconds; the record itself is authoritative
        if not record.is_granting(now):
            self.invalidate(viewer_id, artist_id)
            return None
        return record

    def set(self, record: SubscriptionRecord) -> bool:
        """Cache a granting record. Returns False when it was not stored."""
        now = self._clock()
        if not record.is_granting(now):
            return False
        ttl = self._ttl_for(record, now)
        if ttl <= 0:
            return False

        key = self._key(record.viewer_id, record.artist_id)
        payload = _encode_record(record)

        if self._redis is not None:
            self._redis.setex(key, ttl, json.dumps(payload))
            if record.period_end is not None:
                self._redis.zadd(
                    self._expiry_index_key(),
                    {self._member(record.viewer_id, record.artist_id): int(record.period_end.timestamp())},
                )
            return True

        self._prune_memory(now)
        self._mem[key] = (now.timestamp() + ttl, payload)
        return True

    def _prune_memory(self, now: datetime) -> None:
        # Without Redis nothing else evicts pairs that are never read again
        cutoff = now.timestamp()
        for key, (expires_at, _) in list(self._mem.items()):
            if expires_at <= cutoff:
                self._mem.pop(key, None)

    def invalidate(self, viewer_id: str, artist_id: str) -> None:
        viewer_id = self._require(viewer_id, "viewer_id")
        artist_id = self._require(artist_id, "artist_id")
        key = self._key(viewer_id, artist_id)
        if self._redis is not None:
            self._redis.delete(key)
            self._redis.zrem(self._expiry_index_key(), self._member(viewer_id, artist_id))
        self._mem.pop(key, None)

    def invalidate_expired(self, *, now: Optional[datetime] = None) -> list[str]:
        """Evict entries whose period_end has passed. Returns 'viewer:artist' members."""
        compare_at = now or self._clock()
        invalidated: list[str] = []

        if self._redis is None:
            for key, (_, payload) in list(self._mem.items()):
                record = _decode_record(payload)
                if not record.is_granting(compare_at):
                    self._mem.pop(key, None)
                    invalidated.append(self._member(record.viewer_id, record.artist_id))
            return invalidated

        due = self._redis.zrangebyscore(self._expiry_index_key(), 0, int(compare_at.timestamp()))
        for member in due:
            viewer_id, artist_id = self._split_member(member)
            self.invalidate(viewer_id, artist_id)
            invalidated.append(member)
        return invalidated


class CachedLookup:
    """Ledger lookup that consults the cache first and stores granting records."""

    def __init__(
        self,
        lookup: Callable[[str, str], Optional[SubscriptionRecord]],
        cache: EntitlementCache,
    ) -> None:
        self._lookup = lookup
        self.cache = cache

    def __call__(self, viewer_id: str, artist_id: str) -> Optional[SubscriptionRecord]:
        try:
            cached = self.cache.get(viewer_id, artist_id)
        except Exception as exc:
            logger.warning("Entitlement cache get failed: %s", exc)
            cached = None
        if cached is not None:
            return cached

        record = self._lookup(viewer_id, artist_id)
        if record is not None:
            try:
                self.cache.set(record)
            except Exception as exc:
                logger.warning("Entitlement cache set failed: %s", exc)
        return record


def _encode_record(record: SubscriptionRecord) -> dict:
    return {
        "schema_version": CACHE_SCHEMA_VERSION,
        "viewer_id": record.viewer_id,
        "artist_id": record.artist_id,
        "status": getattr(record.status, "value", record.status),
        "period_start": record.period_start.isoformat(),
        "period_end": record.period_end.isoformat() if record.period_end else None,
    }


def _decode_record(raw: dict) -> SubscriptionRecord:
    if int(raw.get("schema_version", CACHE_SCHEMA_VERSION)) != CACHE_SCHEMA_VERSION:
        raise ValueError("Unsupported entitlement cache schema version")

    period_end = raw.get("period_end")
    return SubscriptionRecord(
        viewer_id=raw["viewer_id"],
        artist_id=raw["artist_id"],
        status=raw["status"],
        period_start=datetime.fromisoformat(raw["period_start"]),
        period_end=datetime.fromisoformat(period_end) if period_end else None,
    )
