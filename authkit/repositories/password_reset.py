from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from authkit.db.models.password_reset import PasswordReset as PasswordResetModel


def create_password_reset(
    db: Session,
    user_id: str,
    email: str,
    token: str,
    expires_at: datetime,
) -> PasswordResetModel:
    """Persist a new, unused reset token. Pure data access - no business logic."""
    record = PasswordResetModel(
        user_id=user_id,
        email=email,
        token=token,
        expires_at=expires_at,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def get_password_reset_by_token(db: Session, token: str) -> PasswordResetModel | None:
    """Exact-match lookup on the token string."""
    return (
        db.query(PasswordResetModel)
        .filter(PasswordResetModel.token == token)
        .first()
    )


def mark_password_reset_used(db: Session, reset_id: int, used_at: datetime) -> bool:
    """
    Claim a token by setting used_at, only if it is still unused.

    Returns:
        True if this call claimed the token, False if it was already used.
    """
    result = db.execute(
        update(PasswordResetModel)
        .where(
            PasswordResetModel.id == reset_id,
            PasswordResetModel.used_at.is_(None),
        )
        .values(used_at=used_at)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def get_password_resets_for_user(db: Session, user_id: str) -> list[PasswordResetModel]:
    """All reset tokens ever issued to a user, newest first."""
    return (
        db.query(PasswordResetModel)
        .filter(PasswordResetModel.user_id == user_id)
        .order_by(PasswordResetModel.id.desc())
        .all()
    )
