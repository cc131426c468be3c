from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session

from authkit.db.models.user import User as UserModel
from authkit.errors import NotFoundError

# Columns matched by the free-text search of the user list.
SEARCH_FIELDS = ("email", "first_name", "last_name")


def get_user_by_email(db: Session, email: str) -> UserModel | None:
    """Get a user by email (exact match)."""
    return db.query(UserModel).filter(UserModel.email == email).first()


def get_user_by_id(db: Session, user_id: str) -> UserModel | None:
    """Get a user by ID."""
    return db.query(UserModel).filter(UserModel.id == user_id).first()


def create_user(
    db: Session,
    user_id: str,
    email: str,
    role_id: int,
    first_name: str | None = None,
    last_name: str | None = None,
    is_active: bool = True,
) -> UserModel:
    """Create a new user record. Pure data access - no business logic."""
    db_user = UserModel(
        id=user_id,
        email=email,
        first_name=first_name,
        last_name=last_name,
        role_id=role_id,
        is_active=is_active,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user


def update_user(
    db: Session,
    user_id: str,
    email: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    role_id: int | None = None,
    is_active: bool | None = None,
) -> UserModel:
    """Update user fields. Only provided fields will be updated."""
    user = get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")

    if email is not None:
        user.email = email
    if first_name is not None:
        user.first_name = first_name
    if last_name is not None:
        user.last_name = last_name
    if role_id is not None:
        user.role_id = role_id
    if is_active is not None:
        user.is_active = is_active

    db.commit()
    db.refresh(user)
    return user


def set_last_login(db: Session, user_id: str, when: datetime) -> None:
    user = get_user_by_id(db, user_id)
    if user:
        user.last_login = when
        db.commit()


def delete_user(db: Session, user_id: str) -> None:
    """Delete a user record."""
    user = get_user_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found")
    db.delete(user)
    db.commit()


def get_all_users_paginated(
    db: Session, page: int = 1, page_size: int = 10, search: str | None = None
) -> tuple[list[UserModel], int]:
    """
    Get all users with pagination, newest first.

    Args:
        page: Page number (1-indexed)
        page_size: Number of items per page
        search: Optional text matched case-insensitively against email,
            first name and last name (any of them)

    Returns:
        Tuple of (list of users, total count)
    """
    query = db.query(UserModel)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(*(getattr(UserModel, field).ilike(pattern) for field in SEARCH_FIELDS))
        )
    total = query.count()
    skip = (page - 1) * page_size
    users = (
        query.order_by(UserModel.created_at.desc(), UserModel.email)
        .offset(skip)
        .limit(page_size)
        .all()
    )
    return users, total
