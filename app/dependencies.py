from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.config import settings
from app.connections.errors import ConflictExpired
from app.connections.expiry import utcnow
from app.database import SessionLocal
from app.models.user import User
from app.services.connection_service import ConnectionService


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except ConflictExpired:
        # the expiry transition is kept even though the action is rejected
        db.commit()
        raise
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


DbSession = Annotated[Session, Depends(get_db)]

security = HTTPBearer()


ACCESS = "access"
REFRESH = "refresh"


def _encode(user: User, token_type: str, lifetime: timedelta) -> str:
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "role": user.role,
        "type": token_type,
        "exp": datetime.now(timezone.utc) + lifetime,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(user: User) -> str:
    return _encode(
        user, ACCESS, timedelta(minutes=settings.access_token_expire_minutes)
    )


def create_refresh_token(user: User) -> str:
    return _encode(user, REFRESH, timedelta(days=settings.refresh_token_expire_days))


def load_token_user(token: str, token_type: str, db: Session) -> User:
    """Resolve a signed token of the given type to an active user.

    Raises:
        HTTPException: 401 for a bad signature, an expired token, the wrong
            token type, or an unknown or deactivated user.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)

    if payload.get("type") != token_type:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)

    user = db.get(User, int(payload["sub"]))
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return user


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: DbSession,
) -> User:
    return load_token_user(credentials.credentials, ACCESS, db)


def require_admin(
    user: Annotated[User, Depends(get_current_user)],
) -> User:
    if user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(require_admin)]


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_connection_service(
    db: DbSession,
    clock: Annotated[Callable[[], datetime], Depends(get_clock)],
) -> ConnectionService:
    return ConnectionService(db, clock=clock)


Connections = Annotated[ConnectionService, Depends(get_connection_service)]
