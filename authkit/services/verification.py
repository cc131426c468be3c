"""Email confirmation and invitations.

Both flows mail a single-use link and redeem it once. The tokens follow the
password reset rules: exact match only, ``expires_at < now`` is expired, the
link is stored only after the email went out, and a token is claimed only
after the account change it authorizes has succeeded.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

import authkit.repositories.user as user_repo
import authkit.repositories.verification_token as token_repo
from authkit.core.config import settings
from authkit.core.security import generate_reset_token, validate_password
from authkit.db.models.user import User as UserModel
from authkit.db.models.verification_token import EMAIL_CONFIRMATION, INVITE
from authkit.db.models.verification_token import VerificationToken as VerificationTokenModel
from authkit.domain.reset_token import ResetTokenPolicy
from authkit.errors import (
    ConfirmationRequestError,
    DomainValidationError,
    DuplicateResourceError,
    IdentityProviderError,
    InvalidTokenError,
    NotFoundError,
    PasswordUpdateFailedError,
    TokenExpiredError,
    TokenUsedError,
)
from authkit.schemas.user import InviteRequest, InviteResult, User
from authkit.services.email import send_email
from authkit.services.identity import IdentityProvider
from authkit.services.password_reset import Mailer, describe_lifetime
from authkit.services.user import create_invited_user, resolve_role_id

logger = logging.getLogger(__name__)

CONFIRMATION_REQUESTED_MESSAGE = (
    "If the email belongs to an unconfirmed account, a confirmation link has been sent."
)
EMAIL_CONFIRMED_MESSAGE = "Email confirmed successfully"
INVITE_ACCEPTED_MESSAGE = "Invite accepted, you can now sign in"
CONFIRMATION_EMAIL_SUBJECT = "Confirm your email"
INVITE_EMAIL_SUBJECT = "You have been invited"


def confirmation_token_policy() -> ResetTokenPolicy:
    return ResetTokenPolicy(
        lifetime=timedelta(minutes=settings.email_confirmation_token_expire_minutes)
    )


def invite_token_policy() -> ResetTokenPolicy:
    return ResetTokenPolicy(lifetime=timedelta(minutes=settings.invite_token_expire_minutes))


def build_confirmation_link(token: str) -> str:
    return f"{settings.reset_base_url}/auth/verify?token={token}"


def build_invite_link(token: str) -> str:
    return f"{settings.reset_base_url}/auth/accept-invite?token={token}"


def render_confirmation_email(link: str, policy: ResetTokenPolicy) -> str:
    return (
        f'<p>Click <a href="{link}">here</a> to confirm your email address. '
        f"This link expires in {describe_lifetime(policy)}.</p>"
        "<p>If you did not create an account, ignore this email.</p>"
    )


def render_invite_email(link: str, policy: ResetTokenPolicy) -> str:
    return (
        f'<p>You have been invited to join {settings.reset_base_url}. '
        f'Click <a href="{link}">here</a> to choose a password and sign in. '
        f"This invite expires in {describe_lifetime(policy)}.</p>"
    )


async def _issue(
    db: Session,
    user: UserModel,
    purpose: str,
    *,
    mailer: Mailer,
    now: datetime | None,
) -> VerificationTokenModel:
    if purpose == INVITE:
        policy, subject = invite_token_policy(), INVITE_EMAIL_SUBJECT
        link_for, render = build_invite_link, render_invite_email
    else:
        policy, subject = confirmation_token_policy(), CONFIRMATION_EMAIL_SUBJECT
        link_for, render = build_confirmation_link, render_confirmation_email

    issued_at = now or datetime.now(timezone.utc)
    token = generate_reset_token()
    await mailer(user.email, subject, render(link_for(token), policy))
    record = token_repo.create_verification_token(
        db,
        user_id=user.id,
        email=user.email,
        token=token,
        purpose=purpose,
        expires_at=policy.expires_at(issued_at),
    )
    logger.info("Issued %s token %s for user %s", purpose, record.id, user.id)
    return record


async def _send_quietly(
    db: Session, user: UserModel, purpose: str, *, mailer: Mailer, now: datetime | None
) -> bool:
    try:
        await _issue(db, user, purpose, mailer=mailer, now=now)
    except Exception:
        logger.exception("Sending %s email to user %s failed", purpose, user.id)
        db.rollback()
        return False
    return True


async def send_email_confirmation(
    db: Session,
    user: UserModel,
    *,
    mailer: Mailer = send_email,
    now: datetime | None = None,
) -> bool:
    """
    Mail a confirmation link to a newly registered user.

    Failures are logged and reported as False; the account stays usable and
    the user can ask for another link.
    """
    return await _send_quietly(db, user, EMAIL_CONFIRMATION, mailer=mailer, now=now)


async def request_email_confirmation(
    db: Session,
    email: str,
    *,
    identity: IdentityProvider,
    mailer: Mailer = send_email,
    now: datetime | None = None,
) -> dict[str, str]:
    """
    Send a fresh confirmation link.

    Unknown and already confirmed emails get the same response and no email.

    Raises:
        ConfirmationRequestError: On any lookup, storage or email failure.
    """
    try:
        user = user_repo.get_user_by_email(db, email)
        if user is None or identity.is_email_confirmed(user.id):
            logger.info("Email confirmation requested for an unknown or confirmed email")
            return {"message": CONFIRMATION_REQUESTED_MESSAGE}
        await _issue(db, user, EMAIL_CONFIRMATION, mailer=mailer, now=now)
    except Exception:
        logger.exception("Email confirmation request failed")
        db.rollback()
        raise ConfirmationRequestError() from None

    return {"message": CONFIRMATION_REQUESTED_MESSAGE}


def _redeemable(
    db: Session, token: str, purpose: str, policy: ResetTokenPolicy, now: datetime
) -> VerificationTokenModel:
    record = token_repo.get_verification_token(db, token, purpose)
    if record is None:
        raise InvalidTokenError()
    if policy.is_used(used_at=record.used_at):
        raise TokenUsedError()
    if policy.is_expired(expires_at=record.expires_at, now=now):
        raise TokenExpiredError()

    user = user_repo.get_user_by_id(db, record.user_id)
    if user is None or user.email != record.email:
        # The address the link was mailed to is no longer the account's address.
        raise InvalidTokenError()
    return record


def _claim(db: Session, record: VerificationTokenModel, now: datetime) -> None:
    if not token_repo.mark_verification_token_used(db, record.id, now):
        logger.warning("Verification token %s was claimed concurrently", record.id)
        raise TokenUsedError()


def confirm_email(
    db: Session,
    token: str,
    *,
    identity: IdentityProvider,
    now: datetime | None = None,
) -> dict[str, str]:
    """
    Confirm the address a confirmation link was sent to.

    Raises:
        InvalidTokenError: No confirmation token matches, or the account's email changed since.
        TokenUsedError: The token was already redeemed.
        TokenExpiredError: The token's expiry is in the past.
        IdentityProviderError: The identity provider could not confirm the email.
    """
    current = now or datetime.now(timezone.utc)
    record = _redeemable(db, token, EMAIL_CONFIRMATION, confirmation_token_policy(), current)

    try:
        identity.confirm_email(record.user_id)
    except Exception as exc:
        logger.error("Email confirmation failed for token %s: %s", record.id, exc)
        db.rollback()
        raise IdentityProviderError("Unable to confirm email") from exc

    _claim(db, record, current)
    logger.info("Email of user %s confirmed", record.user_id)
    return {"message": EMAIL_CONFIRMED_MESSAGE}


async def send_invites(
    db: Session,
    identity: IdentityProvider,
    invites: list[InviteRequest],
    *,
    mailer: Mailer = send_email,
    now: datetime | None = None,
) -> list[InviteResult]:
    """
    Create an account per invite and mail each an invite link.

    The whole batch is checked before any account is created. A failed email
    does not undo the account; it is reported as ``email_sent=False`` and the
    invite can be sent again with :func:`resend_invite`.

    Raises:
        DomainValidationError: The same email appears twice in the batch.
        DuplicateResourceError: An email is already registered.
        NotFoundError: A role does not exist.
    """
    emails = [invite.email.lower() for invite in invites]
    if len(set(emails)) != len(emails):
        raise DomainValidationError("Each email can only be invited once per request")
    for invite in invites:
        if user_repo.get_user_by_email(db, invite.email):
            raise DuplicateResourceError(f"Email {invite.email} already registered")
        resolve_role_id(db, invite.role_id)

    results = []
    for invite in invites:
        user = create_invited_user(db, identity, invite)
        sent = await _send_quietly(db, user, INVITE, mailer=mailer, now=now)
        results.append(InviteResult(user=User.model_validate(user), email_sent=sent))
    logger.info("Invited %d users", len(results))
    return results


async def resend_invite(
    db: Session,
    identity: IdentityProvider,
    user_id: str,
    *,
    mailer: Mailer = send_email,
    now: datetime | None = None,
) -> InviteResult:
    """
    Mail a new invite link to a user who has not accepted one yet.

    Raises:
        NotFoundError: If the user doesn't exist
        DomainValidationError: If the user already confirmed their email
    """
    user = user_repo.get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    if identity.is_email_confirmed(user.id):
        raise DomainValidationError("User has already accepted an invite or confirmed their email")

    sent = await _send_quietly(db, user, INVITE, mailer=mailer, now=now)
    return InviteResult(user=User.model_validate(user), email_sent=sent)


def accept_invite(
    db: Session,
    token: str,
    password: str,
    *,
    identity: IdentityProvider,
    now: datetime | None = None,
) -> dict[str, str]:
    """
    Set the invited user's password and confirm their email.

    Raises:
        InvalidTokenError: No invite token matches, or the account's email changed since.
        TokenUsedError: The invite was already accepted.
        TokenExpiredError: The invite's expiry is in the past.
        DomainValidationError: The password does not meet the policy.
        PasswordUpdateFailedError: The identity provider could not update the account.
    """
    current = now or datetime.now(timezone.utc)
    record = _redeemable(db, token, INVITE, invite_token_policy(), current)

    is_valid, error_message = validate_password(password)
    if not is_valid:
        raise DomainValidationError(error_message)

    try:
        identity.update_password(record.user_id, password)
        identity.confirm_email(record.user_id)
    except Exception as exc:
        logger.error("Accepting invite %s failed: %s", record.id, exc)
        db.rollback()
        raise PasswordUpdateFailedError() from exc

    _claim(db, record, current)
    logger.info("Invite %s accepted by user %s", record.id, record.user_id)
    return {"message": INVITE_ACCEPTED_MESSAGE}
