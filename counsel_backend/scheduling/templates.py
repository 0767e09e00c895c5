import logging
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from counsel_backend.auth.actor import Actor
from counsel_backend.core.errors import NotFoundError, ValidationError
from counsel_backend.models.availability import AvailabilityWindow
from counsel_backend.models.user import User, UserRole
from counsel_backend.scheduling.locks import CounsellorLocks, counsellor_locks
from counsel_backend.scheduling.slots import WindowSpec, validate_window

logger = logging.getLogger(__name__)


def find_counsellor(db: Session, counsellor_id: int, for_update: bool = False, active_only: bool = True) -> User:
    query = db.query(User).filter(
        User.id == counsellor_id,
        User.role == UserRole.COUNSELLOR,
    )
    if active_only:
        query = query.filter(User.is_active.is_(True))
    if for_update:
        query = query.with_for_update()
    counsellor = query.first()
    if counsellor is None:
        raise NotFoundError('Counsellor not found.')
    return counsellor


class AvailabilityTemplateStore:
    """Per-counsellor sets of weekly windows, replaced wholesale on update."""

    def __init__(self, db: Session, locks: CounsellorLocks = counsellor_locks) -> None:
        self.db = db
        self.locks = locks

    def list_windows(self, counsellor_id: int) -> list[AvailabilityWindow]:
        find_counsellor(self.db, counsellor_id)
        return self.db.query(AvailabilityWindow).filter(
            AvailabilityWindow.counsellor_id == counsellor_id,
        ).order_by(AvailabilityWindow.position.asc(), AvailabilityWindow.id.asc()).all()

    def replace_windows(
        self,
        actor: Actor,
        counsellor_id: int,
        windows: Sequence[WindowSpec],
    ) -> list[AvailabilityWindow]:
        if not actor.is_admin and not (actor.is_counsellor and actor.id == counsellor_id):
            raise NotFoundError('Counsellor not found.')

        for index, window in enumerate(windows):
            try:
                validate_window(window)
            except ValidationError as exc:
                raise ValidationError(f'windows[{index}].{exc.field}', exc.message) from exc

        find_counsellor(self.db, counsellor_id)
        with self.locks.hold(counsellor_id):
            try:
                find_counsellor(self.db, counsellor_id, for_update=True)
                self.db.query(AvailabilityWindow).filter(
                    AvailabilityWindow.counsellor_id == counsellor_id,
                ).delete(synchronize_session=False)

                stored = [
                    AvailabilityWindow(
                        counsellor_id=counsellor_id,
                        position=position,
                        day_of_week=window.day_of_week,
                        start_minute=window.start_minute,
                        end_minute=window.end_minute,
                        session_duration=window.session_duration,
                        break_time=window.break_time,
                        max_sessions_per_slot=window.max_sessions_per_slot,
                        is_available=window.is_available,
                    )
                    for position, window in enumerate(windows)
                ]
                self.db.add_all(stored)
                self.db.commit()
            except (SQLAlchemyError, NotFoundError):
                self.db.rollback()
                raise

        logger.info('Replaced availability for counsellor %s with %s windows', counsellor_id, len(stored))
        return self.list_windows(counsellor_id)
