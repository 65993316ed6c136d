"""User account model."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from sqlmodel import SQLModel, Field, Column, DateTime
from sqlalchemy import func
import bcrypt


class User(SQLModel, table=True):
    """User account for credential sign-in."""

    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    email: str = Field(unique=True, index=True, max_length=255)
    password_hash: str = Field(max_length=255)
    image: Optional[str] = Field(default=None, max_length=512)
    email_verified: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    )

    def set_password(self, password: str, rounds: int = 12) -> None:
        """Hash and set password using bcrypt."""
        salt = bcrypt.gensalt(rounds=rounds)
        self.password_hash = bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')

    def verify_password(self, password: str) -> bool:
        """Verify password against stored hash."""
        return bcrypt.checkpw(
            password.encode('utf-8'),
            self.password_hash.encode('utf-8')
        )

    def to_public_dict(self) -> Dict[str, Any]:
        """Account fields safe to return to the client (no hash)."""
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "email_verified": self.email_verified.isoformat() if self.email_verified else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def create(cls, name: str, email: str, password: str, rounds: int = 12) -> "User":
        """Factory method to create a user with hashed password."""
        user = cls(
            name=name.strip(),
            email=email.lower().strip(),
            password_hash="",  # Will be set below
        )
        user.set_password(password, rounds=rounds)
        return user
