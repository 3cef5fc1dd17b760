"""
Subscription ledger table.

Rows are written by the payment webhook flow (checkout completed, invoice paid,
payment failed, subscription deleted). This package only reads them.
One-time purchases are stored with a NULL current_period_end.
"""

import uuid

from sqlalchemy import Column, DateTime, Index, String

from fan_entitlements.db.base import Base, TimestampMixin


class SubscriptionRow(Base, TimestampMixin):
    __tablename__ = "subscriptions"

    id = Column(String(255), primary_key=True, default=lambda: str(uuid.uuid4()))

    fan_id = Column(String(255), nullable=False)
    artist_id = Column(String(255), nullable=False)
    tier_id = Column(String(255), nullable=True)

    stripe_subscription_id = Column(String(255), nullable=True, unique=True)
    stripe_customer_id = Column(String(255), nullable=True)

    status = Column(String(32), nullable=False, default="active")
    current_period_start = Column(DateTime(timezone=True), nullable=False)
    current_period_end = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_subscriptions_fan_artist", "fan_id", "artist_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<SubscriptionRow(fan_id={self.fan_id}, artist_id={self.artist_id}, "
            f"status={self.status}, current_period_end={self.current_period_end})>"
        )
