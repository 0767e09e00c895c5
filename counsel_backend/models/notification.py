"""Notification model definitions."""

import enum

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, func
from counsel_backend.database import Base


class NotificationType(str, enum.Enum):
    BOOKING = 'booking'
    CANCELLATION = 'cancellation'
    RESCHEDULE = 'reschedule'
    MENTAL_HEALTH_ALERT = 'mental_health_alert'
    SYSTEM = 'system'
    SESSION_REMINDER = 'session_reminder'


class NotificationPriority(str, enum.Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    URGENT = 'urgent'


MAX_TITLE_LENGTH = 200
MAX_MESSAGE_LENGTH = 1000


def _enum_values(members):
    return [member.value for member in members]


class Notification(Base):
    """A message left for a user as a side effect of a booking or alert."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"))
    type = Column(
        Enum(NotificationType, name='notification_type', native_enum=False, values_callable=_enum_values),
        nullable=False,
    )
    title = Column(String(MAX_TITLE_LENGTH), nullable=False)
    message = Column(String(MAX_MESSAGE_LENGTH), nullable=False)
    priority = Column(
        Enum(NotificationPriority, name='notification_priority', native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=NotificationPriority.MEDIUM,
    )
    payload = Column(JSON)
    is_read = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
