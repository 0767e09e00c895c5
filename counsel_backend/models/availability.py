"""Availability model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, func
from counsel_backend.database import Base


class AvailabilityWindow(Base):
    """A recurring weekly interval during which a counsellor takes bookings.

    Times are minutes after midnight; ``day_of_week`` follows
    ``date.weekday()`` (Monday is 0).
    """
    __tablename__ = "availability_windows"

    id = Column(Integer, primary_key=True)
    counsellor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    day_of_week = Column(Integer, nullable=False)
    start_minute = Column(Integer, nullable=False)
    end_minute = Column(Integer, nullable=False)
    session_duration = Column(Integer, nullable=False, default=60)
    break_time = Column(Integer, nullable=False, default=15)
    max_sessions_per_slot = Column(Integer, nullable=False, default=1)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
