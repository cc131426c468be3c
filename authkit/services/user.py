import logging
import secrets

from sqlalchemy.orm import Session

import authkit.repositories.role as role_repo
import authkit.repositories.user as user_repo
from authkit.core.security import validate_password
from authkit.db.models.user import User as UserModel
from authkit.errors import (
    DomainValidationError,
    DuplicateResourceError,
    ForbiddenError,
    NotFoundError,
)
from authkit.realtime.changes import ChangeEvent, UserChange, UserChangeFeed
from authkit.schemas.user import InviteRequest, User, UserCreate, UserUpdate
from authkit.services.identity import IdentityProvider

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "user"
ADMIN_ROLE = "admin"


def user_to_record(user: UserModel) -> dict:
    """Serialize a user row the way change notifications carry it."""
    return User.model_validate(user).model_dump(mode="json")


def resolve_role_id(db: Session, role_id: int | None) -> int:
    if role_id is None:
        role = role_repo.get_role_by_name(db, DEFAULT_ROLE)
        if not role:
            raise NotFoundError(f"Default role {DEFAULT_ROLE!r} not found")
        return role.id

    role = role_repo.get_role_by_id(db, role_id)
    if not role:
        raise NotFoundError(f"Role with id {role_id} not found")
    return role.id


def create_user(
    db: Session,
    identity: IdentityProvider,
    user_data: UserCreate,
    *,
    email_confirmed: bool = True,
) -> UserModel:
    """
    Create an identity account and its user record.

    - Validates email uniqueness
    - Validates password requirements
    - Validates role_id exists (if provided), defaults to the "user" role
    - Removes the identity account again if the record cannot be created

    Raises:
        DuplicateResourceError: If the email is already registered
        DomainValidationError: If the password is too weak
        NotFoundError: If the role does not exist
    """
    if user_repo.get_user_by_email(db, user_data.email):
        raise DuplicateResourceError("Email already registered")

    is_valid, error_message = validate_password(user_data.password)
    if not is_valid:
        raise DomainValidationError(error_message)

    role_id = resolve_role_id(db, user_data.role_id)

    return _provision(
        db,
        identity,
        email=user_data.email,
        password=user_data.password,
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        role_id=role_id,
        is_active=user_data.is_active,
        email_confirmed=email_confirmed,
    )


def create_invited_user(db: Session, identity: IdentityProvider, invite: InviteRequest) -> UserModel:
    """
    Create an account that can only be entered through an invite link.

    The email starts unconfirmed and the password is random and never shown;
    accepting the invite sets the real one.

    Raises:
        DuplicateResourceError: If the email is already registered
        NotFoundError: If the role does not exist
    """
    if user_repo.get_user_by_email(db, invite.email):
        raise DuplicateResourceError(f"Email {invite.email} already registered")

    role_id = resolve_role_id(db, invite.role_id)

    return _provision(
        db,
        identity,
        email=invite.email,
        password=secrets.token_urlsafe(32),
        first_name=invite.first_name,
        last_name=invite.last_name,
        role_id=role_id,
        is_active=True,
        email_confirmed=False,
    )


def _provision(
    db: Session,
    identity: IdentityProvider,
    *,
    email: str,
    password: str,
    first_name: str | None,
    last_name: str | None,
    role_id: int,
    is_active: bool,
    email_confirmed: bool,
) -> UserModel:
    account_id = identity.create_account(
        email,
        password,
        {"first_name": first_name, "last_name": last_name},
        email_confirmed=email_confirmed,
    )
    try:
        user = user_repo.create_user(
            db,
            user_id=account_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            role_id=role_id,
            is_active=is_active,
        )
    except Exception:
        logger.exception("Creating user record failed, removing identity account %s", account_id)
        db.rollback()
        identity.delete_account(account_id)
        raise

    logger.info("Created user %s", user.id)
    return user


def get_user(db: Session, user_id: str, current_user: UserModel) -> UserModel:
    """
    Get a user by ID.

    - Admin can get any user
    - Everyone else can only get themselves

    Raises:
        NotFoundError: If user doesn't exist
        ForbiddenError: If a non-admin asks for another user
    """
    if current_user.role.name != ADMIN_ROLE and current_user.id != user_id:
        raise ForbiddenError("You can only access your own user information")

    user = user_repo.get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def update_user(
    db: Session,
    user_id: str,
    user_data: UserUpdate,
    current_user: UserModel,
    identity: IdentityProvider,
    feed: UserChangeFeed | None = None,
) -> UserModel:
    """
    Update a user and notify live sessions of the change.

    - Admin can update any user, but cannot change their own role or deactivate themselves
    - Everyone else can only update their own email and names

    Raises:
        NotFoundError: If user or role doesn't exist
        DuplicateResourceError: If email is already taken by another user
        ForbiddenError: If the caller is not allowed to make the change
    """
    is_admin = current_user.role.name == ADMIN_ROLE
    if not is_admin and current_user.id != user_id:
        raise ForbiddenError("You can only update your own user information")

    if not is_admin and (user_data.role_id is not None or user_data.is_active is not None):
        raise ForbiddenError("You cannot modify your role or account status")

    if current_user.id == user_id and user_data.role_id is not None:
        raise ForbiddenError("You cannot change your own role")

    if current_user.id == user_id and user_data.is_active is False:
        raise ForbiddenError("You cannot deactivate your own account")

    user = user_repo.get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")

    if user_data.email is not None and user_data.email != user.email:
        if user_repo.get_user_by_email(db, user_data.email):
            raise DuplicateResourceError("Email already registered")
        identity.update_email(user_id, user_data.email)

    if user_data.role_id is not None:
        resolve_role_id(db, user_data.role_id)

    user = user_repo.update_user(
        db,
        user_id=user_id,
        email=user_data.email,
        first_name=user_data.first_name,
        last_name=user_data.last_name,
        role_id=user_data.role_id,
        is_active=user_data.is_active,
    )
    if feed is not None:
        feed.publish(UserChange(ChangeEvent.UPDATE, user.id, user_to_record(user)))
    return user


def get_all_users(
    db: Session, page: int = 1, page_size: int = 10, search: str | None = None
) -> tuple[list[UserModel], int]:
    """
    Get all users with pagination.

    Admin-only; authorization is handled at the controller level.
    """
    return user_repo.get_all_users_paginated(
        db, page=page, page_size=page_size, search=search
    )


def delete_user(
    db: Session,
    user_id: str,
    current_user: UserModel,
    identity: IdentityProvider,
    feed: UserChangeFeed | None = None,
) -> None:
    """
    Delete a user's identity account and record, then notify live sessions.

    Raises:
        NotFoundError: If user doesn't exist
        DomainValidationError: If an admin tries to delete themselves
    """
    if current_user.id == user_id:
        raise DomainValidationError("Cannot delete user: you cannot delete your own account")

    user = user_repo.get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")

    identity.delete_account(user_id)
    user_repo.delete_user(db, user_id)
    logger.info("Deleted user %s", user_id)

    if feed is not None:
        feed.publish(UserChange(ChangeEvent.DELETE, user_id))
