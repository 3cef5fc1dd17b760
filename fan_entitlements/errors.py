"""
Entitlement error hierarchy.

Provides:
- EntitlementError: base for all entitlement failures
- LookupFailure: subscription ledger lookup failed or timed out (fail-closed)
- InvalidContent: content item carries a missing or unknown access level
- ContentNotFound: catalog has no item for the requested id
- PlaybackDenied: player refused to start a track the viewer may not hear
"""

from typing import Optional


class EntitlementError(Exception):
    """Base exception for entitlement-related failures."""

    error_code = "ENTITLEMENT_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class LookupFailure(EntitlementError):
    """
    Raised when the subscription ledger threw or timed out.

    The engine converts this into a Denied decision; it never reaches viewers.
    """

    error_code = "ENTITLEMENT_LOOKUP_FAILED"

    def __init__(
        self,
        viewer_id: str,
        artist_id: str,
        detail: str,
        cause: Optional[Exception] = None,
    ):
        self.viewer_id = viewer_id
        self.artist_id = artist_id
        self.detail = detail
        self.cause = cause
        super().__init__(
            f"Subscription lookup failed for viewer {viewer_id} / artist {artist_id}: {detail}"
        )

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.detail,
            "viewer_id": self.viewer_id,
            "artist_id": self.artist_id,
        }


class InvalidContent(EntitlementError):
    """Raised when a content item is malformed (e.g. purchase without a price)."""

    error_code = "INVALID_CONTENT"

    def __init__(self, message: str, item_id: Optional[str] = None, field: Optional[str] = None):
        self.item_id = item_id
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict:
        d: dict = {"error": self.error_code, "message": self.message}
        if self.item_id is not None:
            d["item_id"] = self.item_id
        if self.field is not None:
            d["field"] = self.field
        return d


class ContentNotFound(EntitlementError):
    """Raised when the catalog has no track or post for an id."""

    error_code = "CONTENT_NOT_FOUND"

    def __init__(self, kind: str, item_id: str):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"No {kind} found with id {item_id}")

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.message,
            "kind": self.kind,
            "item_id": self.item_id,
        }


class PlaybackDenied(EntitlementError):
    """Raised when the player is asked to start a track the viewer cannot hear at all."""

    error_code = "PLAYBACK_DENIED"

    def __init__(self, track_id: str, reason: Optional[str]):
        self.track_id = track_id
        self.reason = reason
        super().__init__(f"Playback of {track_id} denied: {reason or 'not entitled'}")

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.reason,
            "track_id": self.track_id,
        }
