"""Authentication services package."""

from cashbook.services.auth.service import (
    AccountExistsError,
    AuthError,
    AuthService,
    InvalidCredentialsError,
)

__all__ = [
    "AccountExistsError",
    "AuthError",
    "AuthService",
    "InvalidCredentialsError",
]
