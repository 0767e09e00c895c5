from functools import lru_cache

from fastapi import BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from counsel_backend.database import ensure_booking_schema, ensure_notification_schema, get_db
from counsel_backend.notifications.dispatcher import DeferredDispatcher, NotificationDispatcher, log_delivery
from counsel_backend.routes.errors import DATABASE_UNAVAILABLE_DETAIL
from counsel_backend.scheduling.bookings import BookingService


def ensure_database_ready() -> None:
    try:
        ensure_booking_schema()
        ensure_notification_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@lru_cache(maxsize=1)
def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(delivery_hooks=[log_delivery])


def get_booking_service(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BookingService:
    ensure_database_ready()
    return BookingService(db, DeferredDispatcher(dispatcher, background_tasks))
