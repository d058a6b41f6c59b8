import logging

from fastapi import APIRouter, Cookie, HTTPException, Response, status
from sqlalchemy import select

from app.config import settings
from app.dependencies import (
    REFRESH,
    CurrentUser,
    DbSession,
    create_access_token,
    create_refresh_token,
    load_token_user,
)
from app.models.user import User
from app.schemas.auth import AccessTokenResponse, LoginRequest, MeRead

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

REFRESH_COOKIE_NAME = "army_refresh_token"
REFRESH_COOKIE_OPTIONS = {
    "httponly": True,
    "secure": True,
    "samesite": "none",
    "path": "/auth",
}


def issue_tokens(response: Response, user: User) -> AccessTokenResponse:
    """Rotate the refresh cookie and hand back a fresh access token."""
    response.set_cookie(
        key=REFRESH_COOKIE_NAME,
        value=create_refresh_token(user),
        max_age=settings.refresh_token_expire_days * 86400,
        **REFRESH_COOKIE_OPTIONS,
    )
    return AccessTokenResponse(access_token=create_access_token(user))


@router.post("/login", response_model=AccessTokenResponse)
def login(request: LoginRequest, response: Response, db: DbSession):
    user = db.execute(
        select(User).where(User.email == request.email)
    ).scalar_one_or_none()

    if user is None or not user.check_password(request.password):
        logger.warning("Failed login for %s", request.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not user.is_active:
        logger.warning("Login attempt by deactivated user %s", user.id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)

    return issue_tokens(response, user)


@router.post("/refresh", response_model=AccessTokenResponse)
def refresh(
    response: Response,
    db: DbSession,
    army_refresh_token: str | None = Cookie(default=None),
):
    if army_refresh_token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    user = load_token_user(army_refresh_token, REFRESH, db)
    return issue_tokens(response, user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(response: Response):
    response.delete_cookie(key=REFRESH_COOKIE_NAME, **REFRESH_COOKIE_OPTIONS)


@router.get("/me", response_model=MeRead)
def me(user: CurrentUser):
    """Profile of the signed-in ARMY member, socials included."""
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "country": user.country,
        "role": user.role,
        "socials": user.socials,
    }
