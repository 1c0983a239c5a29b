"""User account and session models."""

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, EmailStr, Field, field_validator


class UserAccount(BaseModel):
    """A registered user."""

    id: UUID = Field(
        default_factory=uuid4
    )
    email: EmailStr
    password_hash: str = Field(
        ...,
        min_length=1
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    @field_validator('email', mode='before')
    @classmethod
    def normalize_email(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class AuthSession(BaseModel):
    """The signed-in user of the current UI session."""

    user_id: UUID
    email: EmailStr
    started_at: datetime = Field(
        default_factory=datetime.utcnow
    )
