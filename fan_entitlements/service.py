"""
Content access service: the single entry point for track and post gating.

Wraps the ledger lookup with caching and a timeout, loads catalog items, and
reports failures. Decisions themselves come from fan_entitlements.engine.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from fan_entitlements import alerts, config, engine
from fan_entitlements.cache import CachedLookup, EntitlementCache
from fan_entitlements.errors import ContentNotFound, InvalidContent
from fan_entitlements.ledger import TimeoutLookup
from fan_entitlements.models import (
    AccessDecision,
    ContentAccessor,
    ContentItem,
    DecisionOutcome,
    SubscriptionRecord,
    Viewer,
)

logger = logging.getLogger(__name__)

SubscriptionLookup = Callable[[str, str], Optional[SubscriptionRecord]]


@dataclass(frozen=True)
class AccessResult:
    """A decision together with the artifact the caller should serve."""

    item_id: str
    kind: str
    item: Optional[ContentItem]
    decision: AccessDecision
    asset_url: Optional[str] = None


class ContentAccessService:
    """Per-request evaluation with optional cache, bounded lookups and alert sinks."""

    def __init__(
        self,
        *,
        catalog,
        lookup: SubscriptionLookup,
        cache: Optional[EntitlementCache] = None,
        timeout_seconds: Optional[float] = config.LEDGER_LOOKUP_TIMEOUT_SECONDS,
        window_seconds: Optional[int] = None,
        audit_sink: Optional[Callable[[str, dict], None]] = None,
        alert_sink: Optional[Callable[[str, dict], None]] = None,
    ) -> None:
        self.catalog = catalog
        self.cache = cache
        self._window_seconds = window_seconds
        self._audit_sink = audit_sink or (lambda event, payload: None)
        self._alert_sink = alert_sink or (lambda code, payload: None)

        bounded: SubscriptionLookup = lookup
        if timeout_seconds is not None:
            bounded = TimeoutLookup(lookup, timeout_seconds)
        if cache is not None:
            bounded = CachedLookup(bounded, cache)
        self._lookup = self._observed(bounded)

    def _observed(self, lookup: SubscriptionLookup) -> SubscriptionLookup:
        def _lookup(viewer_id: str, artist_id: str) -> Optional[SubscriptionRecord]:
            try:
                return lookup(viewer_id, artist_id)
            except Exception as exc:
                self._report_lookup_failure(viewer_id, artist_id, exc)
                raise

        return _lookup

    def _report_lookup_failure(self, viewer_id: str, artist_id: str, exc: Exception) -> None:
        payload = {
            "viewer_id": viewer_id,
            "artist_id": artist_id,
            "error": str(exc),
            "error_code": getattr(exc, "error_code", "ENTITLEMENT_LOOKUP_FAILED"),
            "occurred_at": datetime.now(timezone.utc).isoformat(),
        }
        alerts.emit_lookup_failure(viewer_id, artist_id, str(exc))
        self._audit_sink("content_access.lookup_failed", payload)
        self._alert_sink("ENTITLEMENT_LOOKUP_FAILED", payload)

    def evaluate(
        self,
        viewer: Union[Viewer, str, None],
        item: ContentAccessor,
        *,
        now: Optional[datetime] = None,
    ) -> AccessDecision:
        resolved_viewer = viewer if isinstance(viewer, Viewer) else Viewer(viewer)
        decision = engine.evaluate(
            resolved_viewer,
            item,
            self._lookup,
            now=now,
            window_seconds=self._window_seconds,
        )

        item_id = getattr(item, "item_id", "")
        if decision.error_code == InvalidContent.error_code:
            alerts.emit_invalid_content(item_id, getattr(getattr(item, "kind", None), "value", ""), decision.access_level)

        if decision.outcome == DecisionOutcome.DENIED:
            self._audit_sink(
                "content_access.denied",
                {
                    "viewer_id": resolved_viewer.viewer_id,
                    "item_id": item_id,
                    "access_level": decision.access_level,
                    "reason": decision.reason,
                    "error_code": decision.error_code,
                },
            )
            if not resolved_viewer.is_anonymous:
                alerts.record_deny_and_alert(resolved_viewer.viewer_id, item_id)
        return decision

    def check_track(self, viewer: Union[Viewer, str, None], track_id: str, *, now: Optional[datetime] = None) -> AccessDecision:
        return self.resolve_track(viewer, track_id, now=now).decision

    def check_post(self, viewer: Union[Viewer, str, None], post_id: str, *, now: Optional[datetime] = None) -> AccessDecision:
        return self.resolve_post(viewer, post_id, now=now).decision

    def resolve_track(self, viewer, track_id: str, *, now: Optional[datetime] = None) -> "AccessResult":
        return self._resolve("track", self.catalog.get_track, viewer, track_id, now)

    def resolve_post(self, viewer, post_id: str, *, now: Optional[datetime] = None) -> "AccessResult":
        return self._resolve("post", self.catalog.get_post, viewer, post_id, now)

    def _resolve(self, kind, loader, viewer, item_id, now) -> "AccessResult":
        try:
            item = loader(item_id)
        except InvalidContent as exc:
            alerts.emit_invalid_content(item_id, kind, None)
            logger.warning("Catalog row rejected: %s", exc.message, extra={"item_id": item_id, "kind": kind})
            decision = AccessDecision.denied("", engine.REASON_INVALID_CONTENT, error_code=InvalidContent.error_code)
            return AccessResult(item_id=item_id, kind=kind, item=None, decision=decision)
        if item is None:
            raise ContentNotFound(kind, item_id)
        decision = self.evaluate(viewer, item, now=now)
        return AccessResult(
            item_id=item_id,
            kind=kind,
            item=item,
            decision=decision,
            asset_url=engine.served_asset_url(decision, item),
        )

    def handle_ledger_update(self, viewer_id: str, artist_id: str) -> None:
        """Drop the cached record after the payment flow changed the ledger."""
        if not str(viewer_id).strip() or not str(artist_id).strip():
            raise ValueError("viewer_id and artist_id are required")
        if self.cache is not None:
            self.cache.invalidate(viewer_id, artist_id)
        self._audit_sink(
            "content_access.ledger_updated",
            {"viewer_id": viewer_id, "artist_id": artist_id},
        )
