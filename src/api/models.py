"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from src.domain.models import EmailPassword, LoginIdentity, NewUserRequest, User


class EmailPasswordIdentity(BaseModel):
    """Email + password login identity as submitted by a client."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72, description="Account password")

    def to_domain(self) -> LoginIdentity:
        return EmailPassword(email=self.email, password=self.password)


class RegisterRequest(BaseModel):
    """Request model for user registration."""

    username: str = Field(..., min_length=1, max_length=64)
    identity: EmailPasswordIdentity

    def to_domain(self) -> NewUserRequest:
        return NewUserRequest(username=self.username, identity=self.identity.to_domain())


class UserResponse(BaseModel):
    """Response model for a user record."""

    id: UUID
    username: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class VerifyRequest(BaseModel):
    """Request model for login identity verification."""

    token: str = Field(
        ..., min_length=1, max_length=256, description="Verification token from email"
    )


class ErrorResponse(BaseModel):
    """Standard error response model."""

    code: int
    message: str
    description: str | None = None
