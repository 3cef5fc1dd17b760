import uuid

from sqlalchemy import Boolean, Column, Integer, String

from fan_entitlements.db.base import Base, TimestampMixin


class PlayHistoryRow(Base, TimestampMixin):
    __tablename__ = "play_history"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    track_id = Column(String(255), nullable=False, index=True)
    duration_played = Column(Integer, nullable=False, default=0)
    completed = Column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<PlayHistoryRow(user_id={self.user_id}, track_id={self.track_id}, completed={self.completed})>"
