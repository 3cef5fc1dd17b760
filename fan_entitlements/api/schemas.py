"""
Pydantic schemas for the content access API.

Decisions are UX hints; server-side rendering still calls the service directly.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class AccessDecisionResponse(BaseModel):
    """Response model for a single content access decision."""

    item_id: str = Field(..., description="Track or post identifier")
    kind: str = Field(..., description="Content kind: track or post")
    outcome: str = Field(..., description="granted, preview_only or denied")
    access_level: str = Field(..., description="Access level that produced the decision")
    transform: str = Field(..., description="full_asset, preview_clip or locked_placeholder")
    preview_seconds: Optional[int] = Field(None, description="Preview clip length for gated audio")
    asset_url: Optional[str] = Field(None, description="Artifact to serve; absent for locked content")
    reason: Optional[str] = Field(None, description="Why full access was not granted")
    error_code: Optional[str] = Field(None, description="Machine-readable cause for denials")
    author_id: Optional[str] = Field(None, description="Post author, shown on the locked placeholder")
    created_at: Optional[datetime] = Field(None, description="Post creation time, shown on the locked placeholder")


class LedgerEventRequest(BaseModel):
    """Notification that the payment flow changed a fan's ledger rows for an artist."""

    fan_id: str = Field(..., min_length=1, description="Fan (viewer) identifier")
    artist_id: str = Field(..., min_length=1, description="Artist identifier")


class LedgerEventResponse(BaseModel):
    invalidated: bool = Field(..., description="Whether the cached entitlement was dropped")
