from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from counsel_backend.auth import jwt_handler
from counsel_backend.auth.actor import Actor

security = HTTPBearer()


def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Actor:
    try:
        return jwt_handler.decode_actor(credentials.credentials)
    except jwt_handler.InvalidActorToken as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return actor
