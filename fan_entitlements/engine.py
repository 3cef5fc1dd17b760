"""
Content access evaluation: level -> viewer -> ledger. Fails closed on errors.

A single decision function shared by every track and post call site. It never
caches and performs at most one ledger read per call.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from fan_entitlements import config
from fan_entitlements.errors import InvalidContent, LookupFailure
from fan_entitlements.models import (
    AccessDecision,
    AccessLevel,
    ContentAccessor,
    SubscriptionRecord,
    Viewer,
)

logger = logging.getLogger(__name__)

SubscriptionLookup = Callable[[str, str], Optional[SubscriptionRecord]]

REASON_SUBSCRIPTION_REQUIRED = "subscription required"
REASON_LOOKUP_FAILED = "entitlement check failed"
REASON_INVALID_CONTENT = "invalid content"


def preview_window(
    content_item: ContentAccessor,
    window_seconds: Optional[int] = None,
) -> Optional[int]:
    """
    Length of the preview clip in seconds, or None when no preview exists.

    Only gated audio has a preview. Free content needs none and posts are shown
    as a locked placeholder instead.
    """
    if not content_item.is_audio:
        return None
    if AccessLevel.parse(content_item.access_level) == AccessLevel.FREE:
        return None
    return window_seconds if window_seconds is not None else config.PREVIEW_WINDOW_SECONDS


def is_granting(record: Optional[SubscriptionRecord], now: datetime) -> bool:
    """True if the record is active and now falls before its period_end."""
    return record is not None and record.is_granting(now)


def _coerce_viewer(viewer: Union[Viewer, str, None]) -> Viewer:
    if isinstance(viewer, Viewer):
        return viewer
    return Viewer(viewer)


def _level_label(raw_level: object) -> str:
    level = AccessLevel.parse(raw_level)
    if level is not None:
        return level.value
    return "" if raw_level is None else str(raw_level)


def _not_entitled(content_item: ContentAccessor, level: AccessLevel, window_seconds: Optional[int]) -> AccessDecision:
    seconds = preview_window(content_item, window_seconds)
    if seconds is None:
        return AccessDecision.denied(level.value, REASON_SUBSCRIPTION_REQUIRED)
    return AccessDecision.preview_only(level.value, seconds, REASON_SUBSCRIPTION_REQUIRED)


def evaluate(
    viewer: Union[Viewer, str, None],
    content_item: ContentAccessor,
    lookup_subscription: SubscriptionLookup,
    *,
    now: Optional[datetime] = None,
    window_seconds: Optional[int] = None,
) -> AccessDecision:
    """
    Decide whether a viewer gets the full asset, a preview, or nothing.

    Args:
        viewer: Viewer, raw viewer id, or None for anonymous
        content_item: Anything exposing access_level, owner_artist_id, is_audio
        lookup_subscription: Ledger read for (viewer_id, artist_id)
        now: Evaluation time (timezone-aware); defaults to the current UTC time
        window_seconds: Preview length override

    Returns:
        AccessDecision. Never raises for ledger failures or bad content.
    """
    evaluated_at = now or datetime.now(timezone.utc)
    if evaluated_at.tzinfo is None:
        raise ValueError("now must be timezone-aware")

    level = AccessLevel.parse(content_item.access_level)
    if level is None:
        return AccessDecision.denied(
            _level_label(content_item.access_level),
            REASON_INVALID_CONTENT,
            error_code=InvalidContent.error_code,
        )

    if level == AccessLevel.FREE:
        return AccessDecision.granted(level.value)

    resolved_viewer = _coerce_viewer(viewer)
    if resolved_viewer.is_anonymous:
        return _not_entitled(content_item, level, window_seconds)

    viewer_id = resolved_viewer.viewer_id
    artist_id = content_item.owner_artist_id
    try:
        record = lookup_subscription(viewer_id, artist_id)
    except Exception as exc:  # fail closed: any ledger error resolves to Denied
        logger.warning(
            "Subscription lookup failed; denying access",
            extra={
                "viewer_id": viewer_id,
                "artist_id": artist_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return AccessDecision.denied(level.value, REASON_LOOKUP_FAILED, error_code=LookupFailure.error_code)

    if record is not None and not (isinstance(record, SubscriptionRecord) and record.covers(viewer_id, artist_id)):
        logger.warning(
            "Ledger returned a record for a different pair; ignoring it",
            extra={"viewer_id": viewer_id, "artist_id": artist_id},
        )
        record = None

    if not is_granting(record, evaluated_at):
        return _not_entitled(content_item, level, window_seconds)

    return AccessDecision.granted(level.value)


def served_asset_url(decision: AccessDecision, content_item) -> Optional[str]:
    """
    URL of the artifact to serve for a decision.

    Previews use a media fragment so players stop at the window boundary.
    Locked placeholders serve nothing.
    """
    asset_url = getattr(content_item, "asset_url", None)
    if not asset_url:
        return None
    if decision.is_granted:
        return asset_url
    if decision.is_preview and decision.preview_seconds:
        base = asset_url.split("#", 1)[0]
        return f"{base}#t=0,{decision.preview_seconds}"
    return None
