import uuid

from sqlalchemy import Column, String, UniqueConstraint

from fan_entitlements.db.base import Base, TimestampMixin


class FavoriteRow(Base, TimestampMixin):
    __tablename__ = "favorites"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    track_id = Column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "track_id", name="uq_favorites_user_track"),
    )
