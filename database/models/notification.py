from sqlalchemy import Column, Text, TIMESTAMP, ForeignKey, Boolean, Integer, BigInteger, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from .base import Base, JSONType, BigIntPK


class NotificationEndpointRecord(Base):
    """
    A configured delivery destination.

    ``events`` holds an explicit list of event kinds; ``types`` is the
    optional bitmask filter. ``config`` is the channel-specific settings map.
    """
    __tablename__ = 'notification_endpoint'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    type = Column(Text, nullable=False, index=True)
    enabled = Column(Boolean, nullable=False, default=True, index=True)
    is_global = Column(Boolean, nullable=False, default=False, index=True)
    events = Column(JSONType, nullable=False, default=list)
    types = Column(Integer, nullable=False, default=0)
    config = Column(JSONType, nullable=False, default=dict)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    users = relationship("UserNotificationEndpoint", back_populates="endpoint", cascade="all, delete-orphan")


class UserNotificationEndpoint(Base):
    """Ownership link between a portal user and an endpoint."""
    __tablename__ = 'user_notification_endpoint'

    user_id = Column(BigInteger, primary_key=True, index=True)
    endpoint_id = Column(
        BigInteger, ForeignKey('notification_endpoint.id', ondelete='CASCADE'), primary_key=True, index=True
    )
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    endpoint = relationship("NotificationEndpointRecord", back_populates="users")


class NotificationDeliveryAttemptRecord(Base):
    """Audit row for one delivery attempt."""
    __tablename__ = 'notification_delivery_attempt'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    endpoint_id = Column(BigInteger, nullable=False)
    endpoint_type = Column(Text, nullable=False)
    event_type = Column(Text, nullable=False)
    attempt_number = Column(Integer, nullable=False)
    status = Column(Text, nullable=False)  # success, failure, skipped
    duration_ms = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    target_user_id = Column(BigInteger, nullable=True)
    # "metadata" is reserved on declarative classes
    attempt_metadata = Column('metadata', JSONType, nullable=False, default=dict)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index('idx_notification_delivery_attempt_endpoint', 'endpoint_id', 'created_at'),
        Index('idx_notification_delivery_attempt_event', 'event_type'),
        Index('idx_notification_delivery_attempt_status', 'status'),
    )
