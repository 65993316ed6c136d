"""User accounts: signup validation, credential checks and JWT session tokens."""

import re
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional

from jose import jwt, JWTError
from sqlalchemy.exc import IntegrityError

from core.config import Settings
from core.database import Database
from core.exceptions import ConflictError, ValidationFailed
from core.logging import get_logger
from models.auth import User

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def validate_signup(body: Any) -> List[str]:
    """Collect every problem with a signup payload; empty list means valid."""
    if not isinstance(body, dict):
        return ["Invalid request body"]

    errors = []

    name = body.get("name")
    if not name or not isinstance(name, str):
        errors.append("Name is required")
    elif not name.strip():
        errors.append("Name cannot be empty")
    elif len(name.strip()) > 100:
        errors.append("Name must be less than 100 characters")

    email = body.get("email")
    if not email or not isinstance(email, str):
        errors.append("Email is required")
    elif not is_valid_email(email):
        errors.append("Invalid email address")

    password = body.get("password")
    if not password or not isinstance(password, str):
        errors.append("Password is required")
    else:
        if len(password) < 8:
            errors.append("Password must be at least 8 characters")
        if len(password) > 128:
            errors.append("Password must be less than 128 characters")
        if not re.search(r"[a-z]", password):
            errors.append("Password must contain at least one lowercase letter")
        if not re.search(r"[A-Z]", password):
            errors.append("Password must contain at least one uppercase letter")
        if not re.search(r"[0-9]", password):
            errors.append("Password must contain at least one number")

    return errors


class UserAuthService:
    """Handles user registration, sign-in and JWT token management."""

    def __init__(self, database: Database, settings: Settings):
        self.database = database
        self.settings = settings
        self._algorithm = "HS256"

    async def get_user_by_email(self, email: str) -> Optional[User]:
        return await self.database.get_user_by_email(email.lower().strip())

    async def is_email_available(self, email: str) -> bool:
        return await self.get_user_by_email(email) is None

    async def register(self, body: Any) -> User:
        """Validate and create an account.

        Raises ValidationFailed (nothing written) or ConflictError when the
        e-mail is taken.
        """
        errors = validate_signup(body)
        if errors:
            raise ValidationFailed(errors[0], details=errors)

        email = body["email"].lower().strip()
        if await self.get_user_by_email(email):
            raise ConflictError("An account with this email already exists", code="USER_EXISTS")

        user = User.create(
            name=body["name"],
            email=email,
            password=body["password"],
            rounds=self.settings.password_hash_rounds,
        )
        try:
            user = await self.database.add_user(user)
        except IntegrityError as e:
            raise ConflictError("An account with this email already exists", code="USER_EXISTS") from e

        logger.info("New user created", user_id=user.id, email=email)
        return user

    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the user when the credentials match, otherwise None."""
        if not email or not password:
            return None
        user = await self.get_user_by_email(email)
        if not user or not user.verify_password(password):
            return None
        logger.info("User signed in", user_id=user.id)
        return user

    def create_access_token(self, user: User) -> str:
        """Create JWT access token for user."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user.id),
            "email": user.email,
            "name": user.name,
            "exp": now + timedelta(minutes=self.settings.jwt_expire_minutes),
            "iat": now,
        }
        return jwt.encode(payload, self.settings.jwt_secret_key, algorithm=self._algorithm)

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Verify JWT token and return payload.
        Returns None if token is invalid or expired.
        """
        try:
            return jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self._algorithm]
            )
        except JWTError as e:
            logger.debug("Token verification failed", error=str(e))
            return None
