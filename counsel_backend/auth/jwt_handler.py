from datetime import datetime, timedelta, timezone

import jwt

from counsel_backend.auth.actor import Actor
from counsel_backend.core import config
from counsel_backend.models.user import UserRole

REQUIRED_CLAIMS = ["sub", "role", "exp"]


class InvalidActorToken(Exception):
    """The bearer token cannot be turned into an actor."""


def create_access_token(actor: Actor, expires_minutes: int | None = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES)
    payload = {"sub": str(actor.id), "role": actor.role.value, "exp": expire, "iat": now}
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_actor(token: str) -> Actor:
    try:
        claims = jwt.decode(
            token,
            config.JWT_SECRET_KEY,
            algorithms=[config.JWT_ALGORITHM],
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.PyJWTError as exc:
        raise InvalidActorToken("Invalid token") from exc

    try:
        actor_id = int(claims["sub"])
    except (TypeError, ValueError) as exc:
        raise InvalidActorToken("Invalid token subject") from exc

    try:
        role = UserRole(claims["role"])
    except ValueError as exc:
        raise InvalidActorToken("Invalid token role") from exc

    return Actor(id=actor_id, role=role)
