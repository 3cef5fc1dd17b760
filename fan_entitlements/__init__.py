"""
Content entitlement engine for artist fan subscriptions.

This module provides:
- evaluate / preview_window: the pure access decision for tracks and posts
- ContentAccessService: the shared call site (catalog + cached, bounded ledger reads)
- EntitlementCache: Redis-backed ledger cache that never outlives period_end
- SqlSubscriptionLedger / SqlContentCatalog: relational adapters
- PlayerSession: queue and favorites state gated by the engine

Fail-closed: ledger errors, timeouts and unknown access levels resolve to Denied.
"""

from fan_entitlements.cache import CachedLookup, EntitlementCache
from fan_entitlements.catalog import InMemoryContentCatalog, SqlContentCatalog
from fan_entitlements.engine import evaluate, preview_window, served_asset_url
from fan_entitlements.errors import (
    ContentNotFound,
    EntitlementError,
    InvalidContent,
    LookupFailure,
    PlaybackDenied,
)
from fan_entitlements.ledger import InMemorySubscriptionLedger, SqlSubscriptionLedger, TimeoutLookup
from fan_entitlements.models import (
    AccessDecision,
    AccessLevel,
    ContentItem,
    ContentKind,
    ContentTransform,
    DecisionOutcome,
    SubscriptionRecord,
    SubscriptionStatus,
    Viewer,
)
from fan_entitlements.player import PlaybackGrant, PlayerSession, RepeatMode
from fan_entitlements.service import AccessResult, ContentAccessService

__all__ = [
    # Engine
    "evaluate",
    "preview_window",
    "served_asset_url",
    # Models
    "AccessDecision",
    "AccessLevel",
    "ContentItem",
    "ContentKind",
    "ContentTransform",
    "DecisionOutcome",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "Viewer",
    # Ledger & catalog
    "InMemorySubscriptionLedger",
    "SqlSubscriptionLedger",
    "TimeoutLookup",
    "InMemoryContentCatalog",
    "SqlContentCatalog",
    # Cache
    "EntitlementCache",
    "CachedLookup",
    # Service
    "ContentAccessService",
    "AccessResult",
    # Player
    "PlayerSession",
    "PlaybackGrant",
    "RepeatMode",
    # Errors
    "EntitlementError",
    "LookupFailure",
    "InvalidContent",
    "ContentNotFound",
    "PlaybackDenied",
]
