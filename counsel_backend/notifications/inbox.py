from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from counsel_backend.auth.actor import Actor
from counsel_backend.core.errors import NotFoundError
from counsel_backend.models.notification import Notification


class NotificationInbox:
    """A user's own notifications, plus admin-wide counts."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def list_for(self, actor: Actor, unread_only: bool = False, limit: int = 50, offset: int = 0) -> list[Notification]:
        query = self.db.query(Notification).filter(Notification.recipient_id == actor.id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(offset).limit(limit).all()

    def mark_read(self, actor: Actor, notification_id: int) -> Notification:
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.recipient_id == actor.id,
        ).first()
        if notification is None:
            raise NotFoundError('Notification not found.')

        try:
            notification.is_read = True
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(notification)
        return notification

    def mark_all_read(self, actor: Actor) -> int:
        try:
            updated = self.db.query(Notification).filter(
                Notification.recipient_id == actor.id,
                Notification.is_read.is_(False),
            ).update({Notification.is_read: True}, synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return updated

    def stats(self) -> dict:
        unread = func.sum(case((Notification.is_read.is_(False), 1), else_=0))
        rows = self.db.query(
            Notification.type,
            func.count(Notification.id),
            unread,
        ).group_by(Notification.type).order_by(func.count(Notification.id).desc()).all()

        by_type = [
            {'type': notification_type.value, 'count': count, 'unread': int(unread_count or 0)}
            for notification_type, count, unread_count in rows
        ]
        return {
            'total_notifications': sum(entry['count'] for entry in by_type),
            'total_unread': sum(entry['unread'] for entry in by_type),
            'by_type': by_type,
        }
