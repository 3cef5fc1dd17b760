"""
Player session state: queue, repeat/shuffle, favorites and play history for
one listener.

Playback rights always come from the access service; the session never
decides on its own whether a gated track may play.
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Protocol, Set

from sqlalchemy.orm import Session

from fan_entitlements.db.favorites import FavoriteRow
from fan_entitlements.db.play_history import PlayHistoryRow
from fan_entitlements.errors import PlaybackDenied
from fan_entitlements.models import ContentItem, Viewer

logger = logging.getLogger(__name__)

# A play counts as completed past this share of a track at least this long
COMPLETION_RATIO = 0.8
COMPLETION_MIN_TRACK_SECONDS = 30


class RepeatMode(str, Enum):
    OFF = "off"
    ALL = "all"
    ONE = "one"


_REPEAT_CYCLE = [RepeatMode.OFF, RepeatMode.ALL, RepeatMode.ONE]


@dataclass(frozen=True)
class PlaybackGrant:
    can_play: bool
    is_preview: bool
    max_seconds: Optional[int] = None
    reason: Optional[str] = None


class FavoritesStore(Protocol):
    def list_track_ids(self, user_id: str) -> Set[str]: ...

    def add(self, user_id: str, track_id: str) -> None: ...

    def remove(self, user_id: str, track_id: str) -> None: ...


class InMemoryFavoritesStore:
    def __init__(self) -> None:
        self._favorites: dict = {}

    def list_track_ids(self, user_id: str) -> Set[str]:
        return set(self._favorites.get(user_id, set()))

    def add(self, user_id: str, track_id: str) -> None:
        self._favorites.setdefault(user_id, set()).add(track_id)

    def remove(self, user_id: str, track_id: str) -> None:
        self._favorites.get(user_id, set()).discard(track_id)


class SqlFavoritesStore:
    """Favorites persisted in the favorites table."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def list_track_ids(self, user_id: str) -> Set[str]:
        rows = self.db.query(FavoriteRow.track_id).filter(FavoriteRow.user_id == user_id).all()
        return {row.track_id for row in rows}

    def add(self, user_id: str, track_id: str) -> None:
        exists = self.db.query(FavoriteRow).filter(
            FavoriteRow.user_id == user_id,
            FavoriteRow.track_id == track_id,
        ).first()
        if exists is None:
            self.db.add(FavoriteRow(user_id=user_id, track_id=track_id))
            self.db.commit()

    def remove(self, user_id: str, track_id: str) -> None:
        self.db.query(FavoriteRow).filter(
            FavoriteRow.user_id == user_id,
            FavoriteRow.track_id == track_id,
        ).delete()
        self.db.commit()


@dataclass(frozen=True)
class PlayHistoryEntry:
    user_id: str
    track_id: str
    duration_played: int
    completed: bool


class PlayHistoryStore(Protocol):
    def record(self, entry: PlayHistoryEntry) -> None: ...

    def list_entries(self, user_id: str) -> List[PlayHistoryEntry]: ...


class InMemoryPlayHistoryStore:
    def __init__(self) -> None:
        self._entries: List[PlayHistoryEntry] = []

    def record(self, entry: PlayHistoryEntry) -> None:
        self._entries.append(entry)

    def list_entries(self, user_id: str) -> List[PlayHistoryEntry]:
        return [entry for entry in self._entries if entry.user_id == user_id]


class SqlPlayHistoryStore:
    """Play history persisted in the play_history table."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def record(self, entry: PlayHistoryEntry) -> None:
        self.db.add(
            PlayHistoryRow(
                user_id=entry.user_id,
                track_id=entry.track_id,
                duration_played=entry.duration_played,
                completed=entry.completed,
            )
        )
        self.db.commit()

    def list_entries(self, user_id: str) -> List[PlayHistoryEntry]:
        rows = (
            self.db.query(PlayHistoryRow)
            .filter(PlayHistoryRow.user_id == user_id)
            .order_by(PlayHistoryRow.created_at)
            .all()
        )
        return [
            PlayHistoryEntry(
                user_id=row.user_id,
                track_id=row.track_id,
                duration_played=row.duration_played,
                completed=row.completed,
            )
            for row in rows
        ]


def is_completed_play(duration_played: int, track_duration: Optional[int]) -> bool:
    if not track_duration or track_duration < COMPLETION_MIN_TRACK_SECONDS:
        return False
    return duration_played >= track_duration * COMPLETION_RATIO


class PlayerSession:
    """
    Queue, favorites and play history owned by a single listener session.

    Args:
        access_service: ContentAccessService used for every playback decision
        viewer: The listener (anonymous listeners get previews only)
        favorites_store: Persistence for favorites; in-memory when omitted
        history_store: Where finished plays are logged; in-memory when omitted
        clock: Wall clock used to measure how long a track played
    """

    def __init__(
        self,
        access_service,
        viewer: Viewer,
        favorites_store: Optional[FavoritesStore] = None,
        rng=None,
        history_store: Optional[PlayHistoryStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.access_service = access_service
        self.viewer = viewer
        self.favorites_store = favorites_store or InMemoryFavoritesStore()
        self.history_store = history_store or InMemoryPlayHistoryStore()
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.queue: List[ContentItem] = []
        self.current_index = 0
        self.current_track: Optional[ContentItem] = None
        self.current_grant: Optional[PlaybackGrant] = None
        self.play_started_at: Optional[datetime] = None
        self.is_playing = False
        self.shuffle = False
        self.repeat = RepeatMode.OFF
        self.favorites: Set[str] = set()

    # ----- Gating -----

    def can_play(self, track: ContentItem) -> PlaybackGrant:
        decision = self.access_service.evaluate(self.viewer, track)
        if decision.is_granted:
            return PlaybackGrant(can_play=True, is_preview=False, max_seconds=track.duration_seconds)
        if decision.is_preview:
            seconds = decision.preview_seconds
            if track.duration_seconds is not None and seconds is not None:
                seconds = min(seconds, track.duration_seconds)
            return PlaybackGrant(can_play=True, is_preview=True, max_seconds=seconds, reason=decision.reason)
        return PlaybackGrant(can_play=False, is_preview=False, reason=decision.reason)

    def play(self, track: ContentItem) -> PlaybackGrant:
        grant = self.can_play(track)
        if not grant.can_play:
            logger.info(
                "Playback refused",
                extra={"track_id": track.item_id, "viewer_id": self.viewer.viewer_id, "reason": grant.reason},
            )
            raise PlaybackDenied(track.item_id, grant.reason)
        if self.current_track is None or self.current_track.item_id != track.item_id:
            self.log_play_history()
            self.current_track = track
            self.play_started_at = self._clock()
        self.current_grant = grant
        self.is_playing = True
        return grant

    def pause(self) -> None:
        self.is_playing = False

    def log_play_history(self) -> Optional[PlayHistoryEntry]:
        """Record how long the current track played. Anonymous listeners are not logged."""
        if self.viewer.is_anonymous or self.current_track is None or self.play_started_at is None:
            return None
        duration_played = max(0, int((self._clock() - self.play_started_at).total_seconds()))
        entry = PlayHistoryEntry(
            user_id=self.viewer.viewer_id,
            track_id=self.current_track.item_id,
            duration_played=duration_played,
            completed=is_completed_play(duration_played, self.current_track.duration_seconds),
        )
        self.history_store.record(entry)
        return entry

    # ----- Navigation -----

    def next(self) -> Optional[PlaybackGrant]:
        if not self.queue:
            return None
        if self.shuffle:
            next_index = self._rng.randrange(len(self.queue))
        else:
            next_index = self.current_index + 1
            if next_index >= len(self.queue) and self.repeat == RepeatMode.ALL:
                next_index = 0
        if next_index >= len(self.queue):
            self.is_playing = False
            return None
        return self._play_at(next_index)

    def previous(self) -> Optional[PlaybackGrant]:
        if not self.queue:
            return None
        prev_index = self.current_index - 1
        if prev_index < 0:
            if self.repeat != RepeatMode.ALL:
                return None
            prev_index = len(self.queue) - 1
        return self._play_at(prev_index)

    def _play_at(self, index: int) -> PlaybackGrant:
        # Index moves only once playback is allowed
        grant = self.play(self.queue[index])
        self.current_index = index
        return grant

    def on_track_end(self) -> Optional[PlaybackGrant]:
        if self.repeat == RepeatMode.ONE and self.current_track is not None:
            return self.play(self.current_track)
        if self.current_index < len(self.queue) - 1 or self.repeat == RepeatMode.ALL:
            return self.next()
        self.is_playing = False
        return None

    def toggle_shuffle(self) -> bool:
        self.shuffle = not self.shuffle
        return self.shuffle

    def toggle_repeat(self) -> RepeatMode:
        position = _REPEAT_CYCLE.index(self.repeat)
        self.repeat = _REPEAT_CYCLE[(position + 1) % len(_REPEAT_CYCLE)]
        return self.repeat

    # ----- Queue -----

    def add_to_queue(self, track: ContentItem) -> None:
        self.queue.append(track)

    def play_next(self, track: ContentItem) -> None:
        self.queue.insert(self.current_index + 1, track)

    def remove_from_queue(self, index: int) -> None:
        if not 0 <= index < len(self.queue):
            raise IndexError(f"queue index out of range: {index}")
        del self.queue[index]
        if index < self.current_index:
            self.current_index -= 1

    def clear_queue(self) -> None:
        self.queue = []
        self.current_index = 0

    def reorder_queue(self, start_index: int, end_index: int) -> None:
        if not 0 <= start_index < len(self.queue):
            raise IndexError(f"queue index out of range: {start_index}")
        track = self.queue.pop(start_index)
        self.queue.insert(end_index, track)
        if start_index == self.current_index:
            self.current_index = min(end_index, len(self.queue) - 1)
        elif start_index < self.current_index <= end_index:
            self.current_index -= 1
        elif end_index <= self.current_index < start_index:
            self.current_index += 1

    # ----- Favorites -----

    def load_favorites(self) -> Set[str]:
        if self.viewer.is_anonymous:
            self.favorites = set()
        else:
            self.favorites = self.favorites_store.list_track_ids(self.viewer.viewer_id)
        return self.favorites

    def is_favorite(self, track_id: str) -> bool:
        return track_id in self.favorites

    def toggle_favorite(self, track_id: str) -> bool:
        """Flip a favorite and persist it. Returns the new state."""
        if self.viewer.is_anonymous:
            raise PermissionError("sign in to save favorites")
        if track_id in self.favorites:
            self.favorites_store.remove(self.viewer.viewer_id, track_id)
            self.favorites.discard(track_id)
            return False
        self.favorites_store.add(self.viewer.viewer_id, track_id)
        self.favorites.add(track_id)
        return True
