"""Identity provider: owns credentials and issues sessions.

The rest of the application talks to the :class:`IdentityProvider` interface
only. :class:`LocalIdentityProvider` keeps accounts in the ``auth_accounts``
table and issues JWT access/refresh pairs.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Protocol

from sqlalchemy.orm import Session

import authkit.repositories.auth_account as account_repo
from authkit.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    new_account_id,
    verify_password,
)
from authkit.errors import (
    DuplicateResourceError,
    IdentityProviderError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    PASSWORD_UPDATED = "PASSWORD_UPDATED"
    EMAIL_CONFIRMED = "EMAIL_CONFIRMED"
    USER_DELETED = "USER_DELETED"


@dataclass(frozen=True)
class AuthClaims:
    """Verified contents of an access token."""

    user_id: str
    email: str
    expires_at: datetime
    email_confirmed: bool


@dataclass(frozen=True)
class AuthSession:
    user_id: str
    email: str
    access_token: str
    refresh_token: str
    expires_at: datetime
    email_confirmed: bool


AuthListener = Callable[[AuthEvent, str], None]


class AuthEventHub:
    """Listener registry shared by every provider instance of one application."""

    def __init__(self) -> None:
        self._listeners: list[AuthListener] = []

    def subscribe(self, callback: AuthListener) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def emit(self, event: AuthEvent, account_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, account_id)
            except Exception:
                logger.exception("Auth event listener failed for %s", event.value)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class IdentityProvider(Protocol):
    def create_account(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any] | None = None,
        *,
        email_confirmed: bool = True,
    ) -> str: ...

    def delete_account(self, account_id: str) -> None: ...

    def update_password(self, account_id: str, new_password: str) -> None: ...

    def update_email(self, account_id: str, email: str) -> None: ...

    def confirm_email(self, account_id: str) -> None: ...

    def is_email_confirmed(self, account_id: str) -> bool: ...

    def sign_in(self, email: str, password: str) -> AuthSession: ...

    def sign_out(self, access_token: str) -> None: ...

    def get_session(self, access_token: str) -> AuthClaims | None: ...

    def refresh_session(self, refresh_token: str) -> AuthSession: ...

    def subscribe_to_auth_changes(self, callback: AuthListener) -> Callable[[], None]: ...


class LocalIdentityProvider:
    """Identity provider backed by the application database."""

    def __init__(self, db: Session, events: AuthEventHub | None = None):
        self.db = db
        self.events = events or AuthEventHub()

    def create_account(
        self,
        email: str,
        password: str,
        metadata: dict[str, Any] | None = None,
        *,
        email_confirmed: bool = True,
    ) -> str:
        """
        Register credentials and return the new opaque account id.

        Raises:
            DuplicateResourceError: If an account with that email exists.
        """
        if account_repo.get_account_by_email(self.db, email):
            raise DuplicateResourceError("Email already registered")

        account = account_repo.create_account(
            self.db,
            account_id=new_account_id(),
            email=email,
            password_hash=get_password_hash(password),
            email_confirmed_at=datetime.now(timezone.utc) if email_confirmed else None,
            metadata=metadata,
        )
        logger.info("Created identity account %s", account.id)
        return account.id

    def delete_account(self, account_id: str) -> None:
        account = account_repo.get_account_by_id(self.db, account_id)
        if account is None:
            # Already gone; deleting twice is not an error.
            logger.info("Identity account %s not found, already deleted", account_id)
            return
        account_repo.delete_account(self.db, account)
        self.events.emit(AuthEvent.USER_DELETED, account_id)

    def update_password(self, account_id: str, new_password: str) -> None:
        account = account_repo.get_account_by_id(self.db, account_id)
        if account is None:
            raise IdentityProviderError(f"Identity account {account_id} not found")
        account_repo.set_password_hash(self.db, account, get_password_hash(new_password))
        self.events.emit(AuthEvent.PASSWORD_UPDATED, account_id)

    def update_email(self, account_id: str, email: str) -> None:
        account = account_repo.get_account_by_id(self.db, account_id)
        if account is None:
            raise IdentityProviderError(f"Identity account {account_id} not found")
        if email != account.email and account_repo.get_account_by_email(self.db, email):
            raise DuplicateResourceError("Email already registered")
        account_repo.set_email(self.db, account, email)

    def confirm_email(self, account_id: str) -> None:
        """Mark the account's email as confirmed. Confirming twice keeps the first timestamp."""
        account = account_repo.get_account_by_id(self.db, account_id)
        if account is None:
            raise IdentityProviderError(f"Identity account {account_id} not found")
        if account.email_confirmed_at is None:
            account_repo.set_email_confirmed(self.db, account, datetime.now(timezone.utc))
            self.events.emit(AuthEvent.EMAIL_CONFIRMED, account_id)

    def is_email_confirmed(self, account_id: str) -> bool:
        account = account_repo.get_account_by_id(self.db, account_id)
        if account is None:
            raise IdentityProviderError(f"Identity account {account_id} not found")
        return account.email_confirmed_at is not None

    def sign_in(self, email: str, password: str) -> AuthSession:
        """
        Authenticate by email and password.

        Raises:
            UnauthorizedError: If email not found or password incorrect.
        """
        account = account_repo.get_account_by_email(self.db, email)
        if not account or not verify_password(password, account.password_hash):
            raise UnauthorizedError("Incorrect email or password")

        session = self._issue(account)
        self.events.emit(AuthEvent.SIGNED_IN, account.id)
        return session

    def sign_out(self, access_token: str) -> None:
        """Invalidate every token issued to the token's account."""
        claims = self._verify(access_token, "access")
        if claims is None:
            return
        account, _ = claims
        account_repo.bump_session_version(self.db, account)
        self.events.emit(AuthEvent.SIGNED_OUT, account.id)

    def get_session(self, access_token: str) -> AuthClaims | None:
        claims = self._verify(access_token, "access")
        if claims is None:
            return None
        account, payload = claims
        return AuthClaims(
            user_id=account.id,
            email=account.email,
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            email_confirmed=account.email_confirmed_at is not None,
        )

    def refresh_session(self, refresh_token: str) -> AuthSession:
        claims = self._verify(refresh_token, "refresh")
        if claims is None:
            raise UnauthorizedError("Invalid or expired refresh token")
        account, _ = claims
        session = self._issue(account)
        self.events.emit(AuthEvent.TOKEN_REFRESHED, account.id)
        return session

    def subscribe_to_auth_changes(self, callback: AuthListener) -> Callable[[], None]:
        return self.events.subscribe(callback)

    def _issue(self, account) -> AuthSession:
        data = {"sub": account.id, "email": account.email, "ver": account.session_version}
        access_token, expires_at = create_access_token(data=data)
        return AuthSession(
            user_id=account.id,
            email=account.email,
            access_token=access_token,
            refresh_token=create_refresh_token(data=data),
            expires_at=expires_at,
            email_confirmed=account.email_confirmed_at is not None,
        )

    def _verify(self, token: str, token_type: str):
        payload = decode_token(token)
        if payload is None or payload.get("type") != token_type:
            return None
        account_id = payload.get("sub")
        if not account_id:
            return None
        account = account_repo.get_account_by_id(self.db, account_id)
        if account is None or payload.get("ver") != account.session_version:
            return None
        return account, payload
