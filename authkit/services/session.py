"""Session validation against the user record store."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from sqlalchemy.orm import Session, sessionmaker

import authkit.repositories.user as user_repo
from authkit.db.models.user import User as UserModel

logger = logging.getLogger(__name__)

UNABLE_TO_VERIFY = "Unable to verify your session"
ACCOUNT_NOT_FOUND = "User account no longer exists"
ACCOUNT_DEACTIVATED = "Your account has been deactivated"


@dataclass(frozen=True)
class SessionValidation:
    is_valid: bool
    reason: str | None = None
    user: UserModel | None = None


SessionValidator = Callable[[str], Awaitable[SessionValidation]]


def validate_session(db: Session, user_id: str) -> SessionValidation:
    """
    Confirm that a user still exists and is active.

    Performs a single read and never mutates anything. Any read failure is
    treated as invalid (fail-closed).
    """
    try:
        user = user_repo.get_user_by_id(db, user_id)
    except Exception:
        logger.exception("Session validation read failed for user %s", user_id)
        return SessionValidation(is_valid=False, reason=UNABLE_TO_VERIFY)

    if user is None:
        return SessionValidation(is_valid=False, reason=ACCOUNT_NOT_FOUND)

    if not user.is_active:
        return SessionValidation(is_valid=False, reason=ACCOUNT_DEACTIVATED)

    return SessionValidation(is_valid=True, user=user)


def make_session_validator(session_factory: sessionmaker) -> SessionValidator:
    """Build an async validator that opens its own DB session in a worker thread."""

    def _validate(user_id: str) -> SessionValidation:
        db = session_factory()
        try:
            return validate_session(db, user_id)
        finally:
            db.close()

    async def validator(user_id: str) -> SessionValidation:
        return await asyncio.to_thread(_validate, user_id)

    return validator
