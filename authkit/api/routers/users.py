from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from authkit.api.deps import (
    get_change_feed,
    get_current_user,
    get_db,
    get_identity_provider,
    get_mailer,
    require_roles,
)
from authkit.db.models.user import User as UserModel
from authkit.realtime.changes import UserChangeFeed
from authkit.schemas.pagination import PaginatedResponse
from authkit.schemas.user import InviteBatch, InviteResult, User, UserCreate, UserUpdate
from authkit.services import verification
from authkit.services.identity import IdentityProvider
from authkit.services.password_reset import Mailer
from authkit.services.user import create_user, delete_user, get_all_users, get_user, update_user

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=User, status_code=status.HTTP_201_CREATED)
def create_new_user(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
    current_user: UserModel = Depends(require_roles("admin")),
):
    """
    Create a new user. Only admin users can create users.

    If role_id is not provided, the user will be assigned the "user" role by default.
    """
    user = create_user(db, identity, user_data)
    return User.model_validate(user)


@router.post("/invite", response_model=list[InviteResult], status_code=status.HTTP_201_CREATED)
async def invite_users(
    body: InviteBatch,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
    mailer: Mailer = Depends(get_mailer),
    current_user: UserModel = Depends(require_roles("admin")),
):
    """
    Invite users by email. Only admin users can send invites.

    Each invited user gets an account with an unconfirmed email and a link to
    choose a password. `email_sent` is false when the link could not be mailed.
    """
    return await verification.send_invites(db, identity, body.invites, mailer=mailer)


@router.post("/{user_id}/invite", response_model=InviteResult)
async def resend_invite(
    user_id: str,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
    mailer: Mailer = Depends(get_mailer),
    current_user: UserModel = Depends(require_roles("admin")),
):
    """Send a new invite link to a user who has not accepted one yet."""
    return await verification.resend_invite(db, identity, user_id, mailer=mailer)


@router.get("", response_model=PaginatedResponse[User])
def get_all_users_paginated(
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(10, ge=1, le=1000, description="Number of items per page"),
    search: str | None = Query(
        None, description="Case-insensitive match on email, first name or last name"
    ),
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(require_roles("admin")),
):
    """Get all users with pagination. Only admin users can access this endpoint."""
    users, total = get_all_users(db, page=page, page_size=page_size, search=search)
    return PaginatedResponse[User].of(
        [User.model_validate(user) for user in users], total, page, page_size
    )


@router.get("/{user_id}", response_model=User)
def get_user_by_id(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    """
    Get a user by ID.

    - Admin can get any user
    - Everyone else can only get themselves
    """
    user = get_user(db, user_id, current_user)
    return User.model_validate(user)


@router.put("/{user_id}", response_model=User)
def update_user_by_id(
    user_id: str,
    user_data: UserUpdate,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
    feed: UserChangeFeed = Depends(get_change_feed),
    current_user: UserModel = Depends(get_current_user),
):
    """
    Update a user by ID. Live sessions of that user receive the change.

    - Admin can update any user, including activation, but not their own role or status
    - Everyone else can only update their own email and names
    """
    user = update_user(db, user_id, user_data, current_user, identity, feed)
    return User.model_validate(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user_by_id(
    user_id: str,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
    feed: UserChangeFeed = Depends(get_change_feed),
    current_user: UserModel = Depends(require_roles("admin")),
):
    """Delete a user by ID. Only admin users can delete users."""
    delete_user(db, user_id, current_user, identity, feed)
