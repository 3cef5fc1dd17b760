"""Track and community post tables (catalog metadata only)."""

import uuid

from sqlalchemy import Boolean, Column, Integer, String, Text

from fan_entitlements.db.base import Base, TimestampMixin


class TrackRow(Base, TimestampMixin):
    __tablename__ = "tracks"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    artist_id = Column(String(255), nullable=False, index=True)
    title = Column(String(500), nullable=False)

    audio_url_128 = Column(String(2048), nullable=True)
    audio_url_320 = Column(String(2048), nullable=True)
    duration = Column(Integer, nullable=True)

    # Plain string so unknown levels survive the round-trip and get denied
    access_level = Column(String(32), nullable=True, default="free")
    price = Column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<TrackRow(id={self.id}, artist_id={self.artist_id}, access_level={self.access_level})>"


class PostRow(Base, TimestampMixin):
    __tablename__ = "posts"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    author_id = Column(String(255), nullable=False)
    artist_community_id = Column(String(255), nullable=False, index=True)

    content = Column(Text, nullable=False, default="")
    post_type = Column(String(32), nullable=False, default="text")
    access_level = Column(String(32), nullable=True, default="free")
    pinned = Column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<PostRow(id={self.id}, artist_community_id={self.artist_community_id})>"
