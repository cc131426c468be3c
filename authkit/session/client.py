"""Client-side session owner.

:class:`AuthClient` is the single place where session state changes: sign-in,
token refresh, profile updates from the change feed, sign-out and forced
logout. While a session is live it runs a :class:`RevocationWatcher`.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable

from sqlalchemy.orm import Session, sessionmaker

from authkit.core.config import settings
from authkit.errors import SessionRevokedError, UnauthorizedError
from authkit.realtime.changes import UserChangeFeed
from authkit.schemas.user import SignupRequest, Token, User
from authkit.services import auth as auth_service
from authkit.services.identity import IdentityProvider, LocalIdentityProvider
from authkit.services.session import make_session_validator
from authkit.session.watcher import RevocationWatcher

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/login"

Notifier = Callable[[str], Any]
Navigator = Callable[[str], Any]


@dataclass(frozen=True)
class ClientSession:
    user_id: str
    email: str
    access_token: str
    refresh_token: str
    expires_at: datetime
    verified: bool
    profile: dict[str, Any] | None = None

    @classmethod
    def from_token(cls, token: Token) -> "ClientSession":
        return cls(
            user_id=token.user.id,
            email=token.user.email,
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            expires_at=token.expires_at,
            verified=token.verified,
            profile=token.user.model_dump(mode="json"),
        )


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class AuthClient:
    def __init__(
        self,
        session_factory: sessionmaker,
        change_feed: UserChangeFeed,
        *,
        notify: Notifier,
        navigate: Navigator,
        identity_factory: Callable[[Session], IdentityProvider] = LocalIdentityProvider,
        validation_interval: float | None = None,
        logout_delay: float | None = None,
        reconnect_base_delay: float | None = None,
        max_reconnect_attempts: int | None = None,
        login_path: str = LOGIN_PATH,
    ):
        self._session_factory = session_factory
        self._feed = change_feed
        self._notify = notify
        self._navigate = navigate
        self._identity_factory = identity_factory
        self._validate = make_session_validator(session_factory)
        self.validation_interval = (
            validation_interval
            if validation_interval is not None
            else settings.session_validation_interval_seconds
        )
        self.logout_delay = (
            logout_delay if logout_delay is not None else settings.forced_logout_delay_seconds
        )
        self.reconnect_base_delay = (
            reconnect_base_delay
            if reconnect_base_delay is not None
            else settings.realtime_reconnect_base_delay_seconds
        )
        self.max_reconnect_attempts = (
            max_reconnect_attempts
            if max_reconnect_attempts is not None
            else settings.realtime_max_reconnect_attempts
        )
        self.login_path = login_path

        self._session: ClientSession | None = None
        self._watcher: RevocationWatcher | None = None
        self._generation = 0
        self._logging_out: int | None = None

    @property
    def session(self) -> ClientSession | None:
        return self._session

    @property
    def watcher(self) -> RevocationWatcher | None:
        return self._watcher

    @property
    def active_handles(self) -> int:
        return self._watcher.active_handles if self._watcher is not None else 0

    async def _run_db(self, fn: Callable[..., Any], *args: Any) -> Any:
        def call():
            db = self._session_factory()
            try:
                return fn(db, self._identity_factory(db), *args)
            finally:
                db.close()

        return await asyncio.to_thread(call)

    async def sign_in(self, email: str, password: str) -> ClientSession:
        """
        Sign in, confirm the user record, and start watching for revocation.

        Raises:
            UnauthorizedError: Wrong credentials.
            SessionRevokedError: The user is deleted or deactivated.
        """
        if self._session is not None:
            await self.sign_out()

        token = await self._run_db(auth_service.login, email, password)
        self._start(ClientSession.from_token(token))
        return self._session

    async def sign_up(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> dict[str, Any]:
        """Register a new account. Does not sign in."""
        data = SignupRequest(
            email=email, password=password, first_name=first_name, last_name=last_name
        )
        user = await self._run_db(
            lambda db, identity: User.model_validate(auth_service.sign_up(db, identity, data))
        )
        return user.model_dump(mode="json")

    async def refresh(self) -> ClientSession:
        """
        Replace the token pair, keeping the watcher running.

        Raises:
            UnauthorizedError: No session, or the refresh token was rejected.
        """
        if self._session is None:
            raise UnauthorizedError("Not signed in")
        try:
            token = await self._run_db(auth_service.refresh, self._session.refresh_token)
        except SessionRevokedError as exc:
            await self.force_logout(exc.reason)
            raise
        self._session = ClientSession.from_token(token)
        return self._session

    async def sign_out(self) -> None:
        """Explicit sign-out: tear down the watcher, revoke tokens, clear state."""
        session = self._session
        await self._stop_watcher()
        self._session = None
        if session is not None:
            try:
                await self._run_db(
                    lambda db, identity: auth_service.logout(identity, session.access_token)
                )
            except Exception:
                logger.exception("Identity sign-out failed for user %s", session.user_id)
            logger.info("User %s signed out", session.user_id)

    async def force_logout(self, reason: str) -> None:
        """
        End the session because the server revoked it.

        Notifies, waits ``logout_delay`` so the notice can be seen, clears
        state and navigates to the login page. The session is cleared even
        when notifying or navigating fails. Repeated or concurrent calls for
        the same session do nothing, and a session signed in during the delay
        is kept.
        """
        generation = self._generation
        if self._session is None or self._logging_out == generation:
            return
        self._logging_out = generation
        user_id = self._session.user_id
        logger.info("Forced logout of user %s: %s", user_id, reason)
        try:
            try:
                await _maybe_await(self._notify(reason))
            except Exception:
                logger.exception("Logout notice failed for user %s", user_id)
            await asyncio.sleep(self.logout_delay)
        finally:
            # A sign-in during the delay owns the client now; leave it alone.
            if self._generation == generation and self._session is not None:
                await self._stop_watcher()
                self._session = None
                try:
                    await _maybe_await(self._navigate(self.login_path))
                except Exception:
                    logger.exception("Navigation to %s failed", self.login_path)
            else:
                logger.info("Session of user %s ended before forced logout completed", user_id)
            if self._logging_out == generation:
                self._logging_out = None

    def apply_profile_update(self, record: dict[str, Any]) -> None:
        if self._session is None:
            return
        self._session = replace(self._session, profile=record)
        logger.debug("Profile of user %s refreshed", self._session.user_id)

    def _start(self, session: ClientSession) -> None:
        self._generation += 1
        self._session = session
        self._watcher = RevocationWatcher(
            session.user_id,
            subscribe=self._feed.subscribe,
            validate=self._validate,
            on_update=self.apply_profile_update,
            on_revoked=self.force_logout,
            validation_interval=self.validation_interval,
            reconnect_base_delay=self.reconnect_base_delay,
            max_reconnect_attempts=self.max_reconnect_attempts,
        )
        self._watcher.start()

    async def _stop_watcher(self) -> None:
        watcher, self._watcher = self._watcher, None
        if watcher is not None:
            await watcher.stop()
