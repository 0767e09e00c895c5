from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from counsel_backend.auth.actor import Actor
from counsel_backend.auth.dependencies import get_current_actor, require_admin
from counsel_backend.database import get_db
from counsel_backend.models.notification import NotificationPriority, NotificationType
from counsel_backend.notifications.inbox import NotificationInbox
from counsel_backend.routes.dependencies import ensure_database_ready
from counsel_backend.routes.errors import scheduling_errors_as_http

router = APIRouter(tags=['notifications'])


class NotificationResponse(BaseModel):
    id: int
    recipient_id: int
    sender_id: int | None = None
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority
    payload: dict[str, Any] | None = None
    is_read: bool
    expires_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class MarkAllReadResponse(BaseModel):
    updated: int


class NotificationTypeCount(BaseModel):
    type: NotificationType
    count: int
    unread: int


class NotificationStatsResponse(BaseModel):
    total_notifications: int
    total_unread: int
    by_type: list[NotificationTypeCount]


@router.get('', response_model=list[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(default=False),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors_as_http():
        return NotificationInbox(db).list_for(actor, unread_only=unread_only, limit=limit, offset=(page - 1) * limit)


@router.patch('/read-all', response_model=MarkAllReadResponse)
def mark_all_notifications_read(
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors_as_http():
        return MarkAllReadResponse(updated=NotificationInbox(db).mark_all_read(actor))


@router.patch('/{notification_id}/read', response_model=NotificationResponse)
def mark_notification_read(
    notification_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors_as_http():
        return NotificationInbox(db).mark_read(actor, notification_id)


@router.get('/stats', response_model=NotificationStatsResponse)
def notification_stats(
    _admin: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with scheduling_errors_as_http():
        return NotificationInbox(db).stats()
