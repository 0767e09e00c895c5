from dataclasses import dataclass

from counsel_backend.models.user import UserRole


@dataclass(frozen=True)
class Actor:
    """The authenticated caller attached to every engine call.

    Issued by the identity service; the engine trusts it as given.
    """

    id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    @property
    def is_counsellor(self) -> bool:
        return self.role == UserRole.COUNSELLOR
