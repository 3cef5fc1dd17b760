"""
Content catalog lookups.

Turns track and post rows into ContentItem descriptors for evaluation.
"""

import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from fan_entitlements.db.base import as_utc
from fan_entitlements.db.catalog import PostRow, TrackRow
from fan_entitlements.models import ContentItem, ContentKind

logger = logging.getLogger(__name__)


class SqlContentCatalog:
    """Reads catalog metadata from the tracks and posts tables."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def get_track(self, track_id: str) -> Optional[ContentItem]:
        row = self.db.query(TrackRow).filter(TrackRow.id == track_id).first()
        if row is None:
            return None
        return track_to_item(row)

    def get_post(self, post_id: str) -> Optional[ContentItem]:
        row = self.db.query(PostRow).filter(PostRow.id == post_id).first()
        if row is None:
            return None
        return post_to_item(row)


class InMemoryContentCatalog:
    """Dictionary-backed catalog for tests and local tooling."""

    def __init__(self) -> None:
        self._items: Dict[tuple, ContentItem] = {}

    def add(self, item: ContentItem) -> ContentItem:
        self._items[(item.kind, item.item_id)] = item
        return item

    def get_track(self, track_id: str) -> Optional[ContentItem]:
        return self._items.get((ContentKind.TRACK, track_id))

    def get_post(self, post_id: str) -> Optional[ContentItem]:
        return self._items.get((ContentKind.POST, post_id))


def track_to_item(row: TrackRow) -> ContentItem:
    return ContentItem(
        item_id=row.id,
        owner_artist_id=row.artist_id,
        access_level=row.access_level,
        kind=ContentKind.TRACK,
        price_cents=row.price,
        asset_url=row.audio_url_320 or row.audio_url_128,
        duration_seconds=row.duration,
    )


def post_to_item(row: PostRow) -> ContentItem:
    # Posts are gated by the community's artist, not the author
    return ContentItem(
        item_id=row.id,
        owner_artist_id=row.artist_community_id,
        access_level=row.access_level,
        kind=ContentKind.POST,
        author_id=row.author_id,
        created_at=as_utc(row.created_at),
    )
