"""Account routes: signup, e-mail availability, sign-in and sign-out."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr

from core.config import Settings
from core.container import container
from core.database import Database
from core.exceptions import AuthenticationFailed, ConfigurationError, ValidationFailed
from core.logging import get_logger
from services.user_auth import UserAuthService, is_valid_email

logger = get_logger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


class SigninRequest(BaseModel):
    email: EmailStr
    password: str


def get_user_auth_service() -> UserAuthService:
    return container.user_auth_service()


def get_settings() -> Settings:
    return container.settings()


def require_database() -> Database:
    database = container.database()
    if not database.is_configured:
        raise ConfigurationError("Database configuration error")
    return database


@router.post("/signup", status_code=201, dependencies=[Depends(require_database)])
async def signup(
    request: Request,
    user_auth: UserAuthService = Depends(get_user_auth_service),
):
    """Create an account. All validation problems are reported together."""
    try:
        body = await request.json()
    except ValueError:
        raise ValidationFailed("Invalid JSON in request body", code="INVALID_JSON") from None

    user = await user_auth.register(body)
    return JSONResponse(
        status_code=201,
        content={"message": "Account created successfully", "user": user.to_public_dict()},
    )


@router.get("/signup", dependencies=[Depends(require_database)])
async def check_email_available(
    email: Optional[str] = Query(default=None),
    user_auth: UserAuthService = Depends(get_user_auth_service),
):
    """Check whether an e-mail address can still be registered."""
    email = (email or "").lower().strip()
    if not email:
        raise ValidationFailed("Email parameter is required")
    if not is_valid_email(email):
        raise ValidationFailed("Invalid email format")

    return {"available": await user_auth.is_email_available(email), "email": email}


@router.post("/signin", dependencies=[Depends(require_database)])
async def signin(
    request: SigninRequest,
    response: Response,
    user_auth: UserAuthService = Depends(get_user_auth_service),
    settings: Settings = Depends(get_settings),
):
    """
    Sign in with email and password.
    Sets HttpOnly cookie with JWT token.
    """
    user = await user_auth.authenticate(request.email, request.password)
    if not user:
        raise AuthenticationFailed("Invalid email or password", code="INVALID_CREDENTIALS")

    token = user_auth.create_access_token(user)
    response.set_cookie(
        key=settings.jwt_cookie_name,
        value=token,
        httponly=True,
        secure=settings.jwt_cookie_secure,
        samesite=settings.jwt_cookie_samesite,
        max_age=settings.jwt_expire_minutes * 60
    )

    return {"success": True, "user": user.to_public_dict(), "token": token}


@router.post("/signout")
async def signout(
    response: Response,
    settings: Settings = Depends(get_settings),
):
    """Sign out by clearing the session cookie."""
    response.delete_cookie(
        key=settings.jwt_cookie_name,
        httponly=True,
        secure=settings.jwt_cookie_secure,
        samesite=settings.jwt_cookie_samesite
    )
    return {"success": True}
