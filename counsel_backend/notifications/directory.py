from dataclasses import dataclass
from typing import Callable, Protocol

from sqlalchemy.orm import Session

from counsel_backend.database import SessionLocal
from counsel_backend.models.user import User, UserRole


@dataclass(frozen=True)
class Contact:
    id: int
    name: str
    email: str | None


class UserDirectory(Protocol):
    """Read-only view of the user directory used to address notifications."""

    def resolve(self, user_id: int) -> Contact | None:
        ...

    def list_active_admins(self) -> set[int]:
        ...


class SqlUserDirectory:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    def resolve(self, user_id: int) -> Contact | None:
        db = self.session_factory()
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if user is None:
                return None
            return Contact(id=user.id, name=user.name, email=user.email)
        finally:
            db.close()

    def list_active_admins(self) -> set[int]:
        db = self.session_factory()
        try:
            rows = db.query(User.id).filter(
                User.role == UserRole.ADMIN,
                User.is_active.is_(True),
            ).all()
            return {user_id for (user_id,) in rows}
        finally:
            db.close()
