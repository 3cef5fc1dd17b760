"""
Relational storage for the ledger, the catalog and player state.

Tables mirror the platform's managed Postgres schema: subscriptions, tracks,
posts, favorites and play history.
"""

from fan_entitlements.db.base import Base, TimestampMixin
from fan_entitlements.db.catalog import PostRow, TrackRow
from fan_entitlements.db.favorites import FavoriteRow
from fan_entitlements.db.play_history import PlayHistoryRow
from fan_entitlements.db.session import create_session_factory
from fan_entitlements.db.subscription import SubscriptionRow

__all__ = [
    "Base",
    "TimestampMixin",
    "SubscriptionRow",
    "TrackRow",
    "PostRow",
    "FavoriteRow",
    "PlayHistoryRow",
    "create_session_factory",
]
