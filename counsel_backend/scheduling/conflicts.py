"""Overlap detection against a counsellor's active bookings.

Intervals are half-open, ``[start, end)``: a session ending at 10:00 and
one starting at 10:00 do not conflict.
"""

import logging
from datetime import datetime
from typing import Iterable

from sqlalchemy.orm import Session

from counsel_backend.models.availability import AvailabilityWindow
from counsel_backend.models.booking import ACTIVE_STATUSES, Booking
from counsel_backend.scheduling.slots import capacity_for_interval

logger = logging.getLogger(__name__)


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def count_overlapping(intervals: Iterable[tuple[datetime, datetime]], start: datetime, end: datetime) -> int:
    return sum(1 for other_start, other_end in intervals if intervals_overlap(start, end, other_start, other_end))


class ConflictDetector:
    """Decides whether a candidate interval still has room on a counsellor's calendar.

    Callers that go on to write must hold the counsellor's lock from the
    check until their commit.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def active_bookings(
        self,
        counsellor_id: int,
        range_start: datetime,
        range_end: datetime,
        exclude_booking_id: int | None = None,
    ) -> list[Booking]:
        query = self.db.query(Booking).filter(
            Booking.counsellor_id == counsellor_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.slot_start < range_end,
            Booking.slot_end > range_start,
        )
        if exclude_booking_id is not None:
            query = query.filter(Booking.id != exclude_booking_id)
        return query.order_by(Booking.slot_start.asc()).all()

    def capacity(self, counsellor_id: int, start: datetime, end: datetime) -> int:
        windows = self.db.query(AvailabilityWindow).filter(
            AvailabilityWindow.counsellor_id == counsellor_id,
            AvailabilityWindow.day_of_week == start.weekday(),
        ).all()
        return capacity_for_interval(windows, start, end)

    def count_conflicts(
        self,
        counsellor_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: int | None = None,
    ) -> int:
        bookings = self.active_bookings(counsellor_id, start, end, exclude_booking_id)
        return count_overlapping(((b.slot_start, b.slot_end) for b in bookings), start, end)

    def has_conflict(
        self,
        counsellor_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: int | None = None,
    ) -> bool:
        overlapping = self.count_conflicts(counsellor_id, start, end, exclude_booking_id)
        if not overlapping:
            return False

        capacity = self.capacity(counsellor_id, start, end)
        if overlapping >= capacity:
            logger.warning(
                'Conflict for counsellor %s on [%s, %s): %s active bookings, capacity %s',
                counsellor_id,
                start.isoformat(),
                end.isoformat(),
                overlapping,
                capacity,
            )
            return True
        return False
