"""
Account and session service.

Accounts live in the Users worksheet with a werkzeug password hash. A
successful sign-in yields an AuthSession, which the UI keeps in its
session state; pages without one show the sign-in form.

Signing in also claims pending invitations: any membership created for
the account's email before the account existed is linked to it.
"""

from typing import Optional

import structlog
from pydantic import ValidationError
from werkzeug.security import check_password_hash, generate_password_hash

from cashbook.audit import AuditLogger
from cashbook.models.audit import AuditEventBuilder
from cashbook.models.user import AuthSession, UserAccount
from cashbook.services.storage import (
    DuplicateError,
    MemberStorageInterface,
    UserStorageInterface,
)


MIN_PASSWORD_LENGTH = 8

logger = structlog.get_logger(__name__)


class AuthError(Exception):
    """Base exception for authentication errors."""
    pass


class InvalidCredentialsError(AuthError):
    """Email/password combination not recognised."""
    pass


class AccountExistsError(AuthError):
    """An account is already registered for the email."""
    pass


class AuthService:
    """Sign-up, sign-in and sign-out."""

    def __init__(
        self,
        user_storage: UserStorageInterface,
        member_storage: MemberStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._users = user_storage
        self._members = member_storage
        self._audit = audit_logger or AuditLogger()

    async def sign_up(self, email: str, password: str) -> AuthSession:
        """
        Register an account and sign it in.

        Raises:
            AuthError: On an invalid email or a short password
            AccountExistsError: If the email is already registered
        """
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        try:
            user = UserAccount(
                email=email,
                password_hash=generate_password_hash(password),
            )
        except ValidationError:
            raise AuthError(f"'{email}' is not a valid email address")

        try:
            await self._users.create_user(user)
        except DuplicateError:
            raise AccountExistsError(f"An account already exists for {user.email}")

        await self._audit.log(AuditEventBuilder.user_signed_up(user.id, user.email))
        return await self._start_session(user)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        """
        Check credentials and start a session.

        Raises:
            InvalidCredentialsError: If the email is unknown or the password wrong
        """
        user = await self._users.get_user_by_email(email or "")
        if user is None or not check_password_hash(user.password_hash, password or ""):
            await self._audit.log(AuditEventBuilder.sign_in_failed((email or "").strip().lower()))
            raise InvalidCredentialsError("Invalid email or password")

        await self._audit.log(AuditEventBuilder.user_signed_in(user.id, user.email))
        return await self._start_session(user)

    async def sign_out(self, session: AuthSession) -> None:
        await self._audit.log(AuditEventBuilder.user_signed_out(session.user_id))

    async def _start_session(self, user: UserAccount) -> AuthSession:
        claimed = await self._members.claim_pending_memberships(user.email, user.id)
        if claimed:
            logger.info("memberships_claimed", user_id=str(user.id), count=claimed)
            await self._audit.log(
                AuditEventBuilder.memberships_claimed(user.id, user.email, claimed)
            )
        return AuthSession(user_id=user.id, email=user.email)
