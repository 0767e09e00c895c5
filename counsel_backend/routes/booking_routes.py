from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator

from counsel_backend.auth.actor import Actor
from counsel_backend.auth.dependencies import get_current_actor, require_admin
from counsel_backend.models.booking import Booking, BookingStatus
from counsel_backend.routes.dependencies import get_booking_service
from counsel_backend.routes.errors import scheduling_errors_as_http
from counsel_backend.scheduling.bookings import MAX_NOTES_LENGTH, BookingService, TransitionPayload
from counsel_backend.scheduling.state_machine import Transition

router = APIRouter(tags=['bookings'])


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    if len(normalized) > MAX_NOTES_LENGTH:
        raise ValueError(f'Must be {MAX_NOTES_LENGTH} characters or fewer.')
    return normalized


class CreateBookingRequest(BaseModel):
    counsellor_id: int
    slot_start: datetime
    slot_end: datetime
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _optional_text(value)


class TransitionRequest(BaseModel):
    notes: str | None = None
    reason: str | None = None
    new_slot_start: datetime | None = None
    new_slot_end: datetime | None = None
    session_summary: str | None = None
    actual_start: datetime | None = None
    actual_end: datetime | None = None

    @field_validator('notes', 'reason')
    @classmethod
    def validate_text(cls, value: str | None) -> str | None:
        return _optional_text(value)

    def to_payload(self) -> TransitionPayload:
        return TransitionPayload(**self.model_dump())


class NotesUpdateRequest(BaseModel):
    counsellor_notes: str | None = None

    @field_validator('counsellor_notes')
    @classmethod
    def validate_counsellor_notes(cls, value: str | None) -> str | None:
        return _optional_text(value)


class BookingResponse(BaseModel):
    id: int
    student_id: int
    counsellor_id: int
    slot_start: datetime
    slot_end: datetime
    status: BookingStatus
    notes: str | None = None
    counsellor_notes: str | None = None
    session_summary: str | None = None
    cancellation_reason: str | None = None
    reschedule_reason: str | None = None
    actual_start_time: datetime | None = None
    actual_end_time: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class PurgeResponse(BaseModel):
    deleted: int


def to_booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse.model_validate(booking)


def parse_transition(name: str) -> Transition:
    try:
        transition = Transition(name.strip().lower().replace('-', '_'))
    except ValueError:
        transition = None

    if transition is None or transition == Transition.CREATE:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f'Unknown booking transition: {name}',
        )
    return transition


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: CreateBookingRequest,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    with scheduling_errors_as_http():
        booking = service.create_booking(
            actor,
            counsellor_id=data.counsellor_id,
            slot_start=data.slot_start,
            slot_end=data.slot_end,
            notes=data.notes,
        )
        return to_booking_response(booking)


@router.get('', response_model=list[BookingResponse])
def list_bookings(
    status_filter: BookingStatus | None = Query(default=None, alias='status'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    with scheduling_errors_as_http():
        bookings = service.list_bookings(actor, status=status_filter, limit=limit, offset=(page - 1) * limit)
        return [to_booking_response(booking) for booking in bookings]


@router.get('/pending', response_model=list[BookingResponse])
def list_pending_bookings(
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    if actor.is_student:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only counsellors and admins can view the approval queue.',
        )

    with scheduling_errors_as_http():
        bookings = service.list_bookings(actor, status=BookingStatus.PENDING, limit=100)
        return [to_booking_response(booking) for booking in bookings]


@router.get('/{booking_id}', response_model=BookingResponse)
def get_booking(
    booking_id: int,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    with scheduling_errors_as_http():
        return to_booking_response(service.get_booking(actor, booking_id))


@router.patch('/{booking_id}/notes', response_model=BookingResponse)
def update_booking_notes(
    booking_id: int,
    data: NotesUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    with scheduling_errors_as_http():
        return to_booking_response(service.update_notes(actor, booking_id, data.counsellor_notes))


@router.patch('/{booking_id}/{transition_name}', response_model=BookingResponse)
def transition_booking(
    booking_id: int,
    transition_name: str,
    data: TransitionRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    transition = parse_transition(transition_name)
    payload = data.to_payload() if data is not None else TransitionPayload()

    with scheduling_errors_as_http():
        return to_booking_response(service.transition(actor, booking_id, transition, payload))


@router.delete('/users/{user_id}', response_model=PurgeResponse)
def purge_user_bookings(
    user_id: int,
    actor: Actor = Depends(require_admin),
    service: BookingService = Depends(get_booking_service),
):
    with scheduling_errors_as_http():
        return PurgeResponse(deleted=service.purge_user_bookings(actor, user_id))
