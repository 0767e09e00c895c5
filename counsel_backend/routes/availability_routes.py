from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from counsel_backend.auth.actor import Actor
from counsel_backend.auth.dependencies import get_current_actor
from counsel_backend.database import get_db
from counsel_backend.models.availability import AvailabilityWindow
from counsel_backend.routes.dependencies import ensure_database_ready, get_booking_service
from counsel_backend.routes.errors import scheduling_errors_as_http
from counsel_backend.scheduling.bookings import BookingService
from counsel_backend.scheduling.slots import (
    Slot,
    WindowSpec,
    format_time_of_day,
    parse_time_of_day,
)
from counsel_backend.scheduling.templates import AvailabilityTemplateStore

router = APIRouter(tags=['availability'])


class AvailabilityWindowRequest(BaseModel):
    day_of_week: int
    start_time: str
    end_time: str
    session_duration: int = 60
    break_time: int = 15
    max_sessions_per_slot: int = 1
    is_available: bool = True


class ScheduleUpdateRequest(BaseModel):
    windows: list[AvailabilityWindowRequest] = Field(default_factory=list)


class AvailabilityWindowResponse(BaseModel):
    id: int
    day_of_week: int
    start_time: str
    end_time: str
    session_duration: int
    break_time: int
    max_sessions_per_slot: int
    is_available: bool


class SlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    capacity: int


def to_window_spec(index: int, window: AvailabilityWindowRequest) -> WindowSpec:
    return WindowSpec(
        day_of_week=window.day_of_week,
        start_minute=parse_time_of_day(window.start_time, f'windows[{index}].start_time'),
        end_minute=parse_time_of_day(window.end_time, f'windows[{index}].end_time'),
        session_duration=window.session_duration,
        break_time=window.break_time,
        max_sessions_per_slot=window.max_sessions_per_slot,
        is_available=window.is_available,
    )


def to_window_response(window: AvailabilityWindow) -> AvailabilityWindowResponse:
    return AvailabilityWindowResponse(
        id=window.id,
        day_of_week=window.day_of_week,
        start_time=format_time_of_day(window.start_minute),
        end_time=format_time_of_day(window.end_minute),
        session_duration=window.session_duration,
        break_time=window.break_time,
        max_sessions_per_slot=window.max_sessions_per_slot,
        is_available=window.is_available,
    )


def to_slot_response(slot: Slot) -> SlotResponse:
    return SlotResponse(
        start_time=slot.start,
        end_time=slot.end,
        duration_minutes=int((slot.end - slot.start).total_seconds() // 60),
        capacity=slot.capacity,
    )


@router.get('/{counsellor_id}/slots', response_model=list[SlotResponse])
def list_available_slots(
    counsellor_id: int,
    date: date = Query(...),
    service: BookingService = Depends(get_booking_service),
):
    with scheduling_errors_as_http():
        return [to_slot_response(slot) for slot in service.available_slots(counsellor_id, date)]


@router.get('/{counsellor_id}/schedule', response_model=list[AvailabilityWindowResponse])
def get_schedule(counsellor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    with scheduling_errors_as_http():
        windows = AvailabilityTemplateStore(db).list_windows(counsellor_id)
        return [to_window_response(window) for window in windows]


@router.put(
    '/{counsellor_id}/schedule',
    response_model=list[AvailabilityWindowResponse],
    status_code=status.HTTP_200_OK,
)
def replace_schedule(
    counsellor_id: int,
    data: ScheduleUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors_as_http():
        specs = [to_window_spec(index, window) for index, window in enumerate(data.windows)]
        windows = AvailabilityTemplateStore(db).replace_windows(actor, counsellor_id, specs)
        return [to_window_response(window) for window in windows]
