"""Auth service: login, token refresh, logout, sign-up and bearer authentication."""

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

import authkit.repositories.user as user_repo
from authkit.db.models.user import User as UserModel
from authkit.errors import SessionRevokedError, UnauthorizedError
from authkit.schemas.user import SignupRequest, Token, User, UserCreate
from authkit.services.identity import AuthSession, IdentityProvider
from authkit.services.session import validate_session
from authkit.services.user import create_user

logger = logging.getLogger(__name__)


def _token_for(session: AuthSession, user: UserModel) -> Token:
    return Token(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        token_type="bearer",
        expires_at=session.expires_at,
        verified=session.email_confirmed,
        user=User.model_validate(user),
    )


def _confirm_session(db: Session, identity: IdentityProvider, session: AuthSession) -> UserModel:
    """Refuse freshly issued tokens for deleted or deactivated users."""
    validation = validate_session(db, session.user_id)
    if not validation.is_valid:
        identity.sign_out(session.access_token)
        raise SessionRevokedError(validation.reason)
    return validation.user


def login(db: Session, identity: IdentityProvider, email: str, password: str) -> Token:
    """
    Authenticate user by email and password, return an access/refresh pair.

    Raises:
        UnauthorizedError: If email not found or password incorrect.
        SessionRevokedError: If the user record is missing or deactivated.
    """
    session = identity.sign_in(email, password)
    user = _confirm_session(db, identity, session)
    user_repo.set_last_login(db, user.id, datetime.now(timezone.utc))
    logger.info("User %s signed in", user.id)
    return _token_for(session, user)


def refresh(db: Session, identity: IdentityProvider, refresh_token: str) -> Token:
    """
    Exchange a refresh token for a new pair.

    Raises:
        UnauthorizedError: If the refresh token is invalid, expired or revoked.
        SessionRevokedError: If the user record is missing or deactivated.
    """
    session = identity.refresh_session(refresh_token)
    user = _confirm_session(db, identity, session)
    return _token_for(session, user)


def logout(identity: IdentityProvider, access_token: str) -> None:
    identity.sign_out(access_token)


def sign_up(db: Session, identity: IdentityProvider, data: SignupRequest) -> UserModel:
    """Self-service registration. The email starts unconfirmed and the role is "user"."""
    return create_user(
        db,
        identity,
        UserCreate(
            email=data.email,
            password=data.password,
            first_name=data.first_name,
            last_name=data.last_name,
        ),
        email_confirmed=False,
    )


def authenticate(db: Session, identity: IdentityProvider, access_token: str) -> UserModel:
    """
    Resolve a bearer token to an active user.

    Raises:
        UnauthorizedError: If the token is invalid, expired or signed out.
        SessionRevokedError: If the user record is missing or deactivated.
    """
    claims = identity.get_session(access_token)
    if claims is None:
        raise UnauthorizedError("Could not validate credentials")

    validation = validate_session(db, claims.user_id)
    if not validation.is_valid:
        raise SessionRevokedError(validation.reason)
    return validation.user
