from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol, Union

from .errors import InvalidContent


class AccessLevel(str, Enum):
    """Gating tier assigned to a track or community post."""

    FREE = "free"
    SUBSCRIBER = "subscriber"
    PURCHASE = "purchase"

    @classmethod
    def parse(cls, value: Any) -> Optional["AccessLevel"]:
        """Return the matching level, or None for missing/unknown values."""
        if isinstance(value, cls):
            return value
        if value is None:
            return None
        try:
            return cls(str(value).strip())
        except ValueError:
            return None


class ContentKind(str, Enum):
    TRACK = "track"
    POST = "post"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class DecisionOutcome(str, Enum):
    GRANTED = "granted"
    PREVIEW_ONLY = "preview_only"
    DENIED = "denied"


class ContentTransform(str, Enum):
    """What the presentation layer should serve for a decision."""

    FULL_ASSET = "full_asset"
    PREVIEW_CLIP = "preview_clip"
    LOCKED_PLACEHOLDER = "locked_placeholder"


class ContentAccessor(Protocol):
    """Read-only view of catalog metadata the engine needs."""

    @property
    def access_level(self) -> Any: ...

    @property
    def owner_artist_id(self) -> str: ...

    @property
    def is_audio(self) -> bool: ...

    @property
    def duration_seconds(self) -> Optional[int]: ...


@dataclass(frozen=True)
class ContentItem:
    """A gated track or community post as stored in the catalog."""

    item_id: str
    owner_artist_id: str
    access_level: Union[AccessLevel, str, None]
    kind: ContentKind = ContentKind.TRACK
    price_cents: Optional[int] = None
    asset_url: Optional[str] = None
    duration_seconds: Optional[int] = None
    # Placeholder metadata shown even when the body is locked
    author_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        item_id = str(self.item_id or "").strip()
        owner_artist_id = str(self.owner_artist_id or "").strip()
        if not item_id:
            raise InvalidContent("item_id is required", field="item_id")
        if not owner_artist_id:
            raise InvalidContent("owner_artist_id is required", item_id=item_id, field="owner_artist_id")
        try:
            kind = ContentKind(self.kind)
        except ValueError:
            raise InvalidContent(f"unknown content kind: {self.kind!r}", item_id=item_id, field="kind")

        # Unknown levels are kept verbatim so evaluation can deny them
        level = AccessLevel.parse(self.access_level)
        if level == AccessLevel.PURCHASE and (self.price_cents is None or self.price_cents <= 0):
            raise InvalidContent(
                "purchase content requires a positive price",
                item_id=item_id,
                field="price_cents",
            )
        if self.duration_seconds is not None and self.duration_seconds < 0:
            raise InvalidContent("duration_seconds must not be negative", item_id=item_id, field="duration_seconds")

        object.__setattr__(self, "item_id", item_id)
        object.__setattr__(self, "owner_artist_id", owner_artist_id)
        object.__setattr__(self, "kind", kind)
        if level is not None:
            object.__setattr__(self, "access_level", level)

    @property
    def level(self) -> Optional[AccessLevel]:
        return AccessLevel.parse(self.access_level)

    @property
    def is_audio(self) -> bool:
        return self.kind == ContentKind.TRACK


@dataclass(frozen=True)
class Viewer:
    """Anonymous visitor (viewer_id is None) or an authenticated fan."""

    viewer_id: Optional[str] = None

    def __post_init__(self) -> None:
        normalized = str(self.viewer_id).strip() if self.viewer_id is not None else ""
        object.__setattr__(self, "viewer_id", normalized or None)

    @classmethod
    def anonymous(cls) -> "Viewer":
        return cls(None)

    @classmethod
    def authenticated(cls, viewer_id: str) -> "Viewer":
        if not str(viewer_id or "").strip():
            raise ValueError("viewer_id is required")
        return cls(viewer_id)

    @property
    def is_anonymous(self) -> bool:
        return self.viewer_id is None


@dataclass(frozen=True)
class SubscriptionRecord:
    """
    A ledger row linking a fan to an artist over [period_start, period_end).

    A period_end of None marks a one-time purchase that never lapses.
    """

    viewer_id: str
    artist_id: str
    status: Union[SubscriptionStatus, str]
    period_start: datetime
    period_end: Optional[datetime] = None

    def __post_init__(self) -> None:
        viewer_id = str(self.viewer_id or "").strip()
        artist_id = str(self.artist_id or "").strip()
        if not viewer_id:
            raise ValueError("viewer_id is required")
        if not artist_id:
            raise ValueError("artist_id is required")
        if self.period_start.tzinfo is None:
            raise ValueError("period_start must be timezone-aware")
        if self.period_end is not None:
            if self.period_end.tzinfo is None:
                raise ValueError("period_end must be timezone-aware")
            if self.period_end <= self.period_start:
                raise ValueError("period_end must be after period_start")
        status: Union[SubscriptionStatus, str]
        if isinstance(self.status, SubscriptionStatus):
            status = self.status
        else:
            raw_status = str(self.status).strip()
            try:
                status = SubscriptionStatus(raw_status)
            except ValueError:
                status = raw_status

        object.__setattr__(self, "viewer_id", viewer_id)
        object.__setattr__(self, "artist_id", artist_id)
        object.__setattr__(self, "status", status)

    @property
    def is_purchase(self) -> bool:
        return self.period_end is None

    def covers(self, viewer_id: str, artist_id: str) -> bool:
        return self.viewer_id == viewer_id and self.artist_id == artist_id

    def is_granting(self, now: Optional[datetime] = None) -> bool:
        compare_at = now or datetime.now(timezone.utc)
        if self.status != SubscriptionStatus.ACTIVE:
            return False
        return self.period_end is None or compare_at < self.period_end


@dataclass(frozen=True)
class AccessDecision:
    """Outcome of evaluating one viewer against one content item."""

    outcome: DecisionOutcome
    access_level: str
    transform: ContentTransform
    preview_seconds: Optional[int] = None
    reason: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def granted(cls, access_level: str) -> "AccessDecision":
        return cls(
            outcome=DecisionOutcome.GRANTED,
            access_level=access_level,
            transform=ContentTransform.FULL_ASSET,
        )

    @classmethod
    def preview_only(cls, access_level: str, preview_seconds: int, reason: str) -> "AccessDecision":
        return cls(
            outcome=DecisionOutcome.PREVIEW_ONLY,
            access_level=access_level,
            transform=ContentTransform.PREVIEW_CLIP,
            preview_seconds=preview_seconds,
            reason=reason,
        )

    @classmethod
    def denied(cls, access_level: str, reason: str, error_code: Optional[str] = None) -> "AccessDecision":
        return cls(
            outcome=DecisionOutcome.DENIED,
            access_level=access_level,
            transform=ContentTransform.LOCKED_PLACEHOLDER,
            reason=reason,
            error_code=error_code,
        )

    @property
    def is_granted(self) -> bool:
        return self.outcome == DecisionOutcome.GRANTED

    @property
    def is_preview(self) -> bool:
        return self.outcome == DecisionOutcome.PREVIEW_ONLY

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "access_level": self.access_level,
            "transform": self.transform.value,
            "preview_seconds": self.preview_seconds,
            "reason": self.reason,
            "error_code": self.error_code,
        }
