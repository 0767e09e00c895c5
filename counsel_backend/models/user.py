"""User model definitions."""

import enum

from sqlalchemy import Boolean, Column, Enum, Integer, String
from counsel_backend.database import Base


class UserRole(str, enum.Enum):
    STUDENT = 'student'
    COUNSELLOR = 'counsellor'
    ADMIN = 'admin'


class User(Base):
    """Directory entry for a student, counsellor or administrator."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    role = Column(
        Enum(UserRole, name='user_role', native_enum=False, values_callable=lambda roles: [r.value for r in roles]),
        nullable=False,
        default=UserRole.STUDENT,
    )
    is_active = Column(Boolean, nullable=False, default=True)
