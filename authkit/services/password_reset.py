"""Password reset workflow: token issuance, email dispatch, and redemption."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from sqlalchemy.orm import Session

import authkit.repositories.password_reset as reset_repo
import authkit.repositories.user as user_repo
from authkit.core.config import settings
from authkit.core.security import generate_reset_token, validate_password
from authkit.domain.reset_token import ResetTokenPolicy
from authkit.errors import (
    DomainValidationError,
    InvalidTokenError,
    PasswordResetRequestError,
    PasswordUpdateFailedError,
    TokenExpiredError,
    TokenUsedError,
    UnsupportedAccountTypeError,
)
from authkit.services.email import send_email
from authkit.services.identity import IdentityProvider

logger = logging.getLogger(__name__)

SUPPORTED_ACCOUNT_TYPES = ("user",)

RESET_REQUESTED_MESSAGE = "If the email exists, a password reset link has been sent."
RESET_COMPLETED_MESSAGE = "Password has been reset successfully"
RESET_EMAIL_SUBJECT = "Reset your password"

Mailer = Callable[[str, str, str], Awaitable[None]]


def reset_token_policy() -> ResetTokenPolicy:
    return ResetTokenPolicy(
        lifetime=timedelta(minutes=settings.password_reset_token_expire_minutes)
    )


def build_reset_link(token: str) -> str:
    return f"{settings.reset_base_url}/auth/reset-password?token={token}"


def describe_lifetime(policy: ResetTokenPolicy) -> str:
    """Human wording for a token lifetime: "1 hour", "90 minutes", "7 days"."""
    minutes = int(policy.lifetime.total_seconds() // 60)
    if minutes % (60 * 24) == 0:
        days = minutes // (60 * 24)
        return "1 day" if days == 1 else f"{days} days"
    if minutes % 60 == 0:
        hours = minutes // 60
        return "1 hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} minutes"


def render_reset_email(reset_link: str, policy: ResetTokenPolicy) -> str:
    lifetime = describe_lifetime(policy)
    return (
        f'<p>Click <a href="{reset_link}">here</a> to reset your password. '
        f"This link expires in {lifetime}.</p>"
        "<p>If you did not request this, ignore this email.</p>"
    )


async def request_password_reset(
    db: Session,
    email: str,
    account_type: str = "user",
    *,
    mailer: Mailer = send_email,
    now: datetime | None = None,
) -> dict[str, str]:
    """
    Request password reset: create token, send email, then store it in the DB.

    Returns the same success message whether or not the email belongs to an
    account (no user enumeration). Every token issued this way is valid until
    it expires or is redeemed; earlier unused tokens are left untouched.

    Raises:
        PasswordResetRequestError: On any lookup, storage or email failure.
            The message is generic; details are only logged.
    """
    try:
        if account_type not in SUPPORTED_ACCOUNT_TYPES:
            raise UnsupportedAccountTypeError(f"Reset not implemented for {account_type!r}")

        user = user_repo.get_user_by_email(db, email)
        if user is None:
            logger.info("Password reset requested for an unknown email")
            return {"message": RESET_REQUESTED_MESSAGE}

        policy = reset_token_policy()
        issued_at = now or datetime.now(timezone.utc)
        token = generate_reset_token()
        # Stored only after the email is sent; a failed send leaves nothing redeemable.
        await mailer(
            user.email,
            RESET_EMAIL_SUBJECT,
            render_reset_email(build_reset_link(token), policy),
        )
        record = reset_repo.create_password_reset(
            db,
            user_id=user.id,
            email=user.email,
            token=token,
            expires_at=policy.expires_at(issued_at),
        )
        logger.info("Issued password reset %s for user %s", record.id, user.id)
    except Exception:
        logger.exception("Password reset request failed")
        db.rollback()
        raise PasswordResetRequestError() from None

    return {"message": RESET_REQUESTED_MESSAGE}


def redeem_password_reset(
    db: Session,
    token: str,
    new_password: str,
    account_type: str = "user",
    *,
    identity: IdentityProvider,
    now: datetime | None = None,
) -> dict[str, str]:
    """
    Reset a password using the token from the email.

    The password is changed first; the token is only consumed once that
    succeeds, so a failed update can be retried with the same token.

    Raises:
        InvalidTokenError: No token matches exactly.
        TokenUsedError: The token was already redeemed.
        TokenExpiredError: The token's expiry is in the past.
        UnsupportedAccountTypeError: account_type is not "user".
        DomainValidationError: The new password does not meet the policy.
        PasswordUpdateFailedError: The identity provider could not update the password.
    """
    record = reset_repo.get_password_reset_by_token(db, token)
    if record is None:
        raise InvalidTokenError()

    policy = reset_token_policy()
    current = now or datetime.now(timezone.utc)

    if policy.is_used(used_at=record.used_at):
        raise TokenUsedError()

    if policy.is_expired(expires_at=record.expires_at, now=current):
        raise TokenExpiredError()

    if account_type not in SUPPORTED_ACCOUNT_TYPES:
        raise UnsupportedAccountTypeError()

    is_valid, error_message = validate_password(new_password)
    if not is_valid:
        raise DomainValidationError(error_message)

    try:
        identity.update_password(record.user_id, new_password)
    except Exception as exc:
        logger.error("Password update failed for reset %s: %s", record.id, exc)
        db.rollback()
        raise PasswordUpdateFailedError() from exc

    if not reset_repo.mark_password_reset_used(db, record.id, current):
        # Another redemption claimed the token between our read and this write.
        logger.warning("Password reset %s was claimed concurrently", record.id)
        raise TokenUsedError()

    logger.info("Password reset %s redeemed for user %s", record.id, record.user_id)
    return {"message": RESET_COMPLETED_MESSAGE}
