from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from authkit.db.models.verification_token import VerificationToken as VerificationTokenModel


def create_verification_token(
    db: Session,
    user_id: str,
    email: str,
    token: str,
    purpose: str,
    expires_at: datetime,
) -> VerificationTokenModel:
    record = VerificationTokenModel(
        user_id=user_id,
        email=email,
        token=token,
        purpose=purpose,
        expires_at=expires_at,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def get_verification_token(
    db: Session, token: str, purpose: str
) -> VerificationTokenModel | None:
    """Exact-match lookup; a token issued for another purpose is not found."""
    return (
        db.query(VerificationTokenModel)
        .filter(
            VerificationTokenModel.token == token,
            VerificationTokenModel.purpose == purpose,
        )
        .first()
    )


def mark_verification_token_used(db: Session, token_id: int, used_at: datetime) -> bool:
    """Claim a token only if it is still unused. Returns True if this call claimed it."""
    result = db.execute(
        update(VerificationTokenModel)
        .where(
            VerificationTokenModel.id == token_id,
            VerificationTokenModel.used_at.is_(None),
        )
        .values(used_at=used_at)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount == 1


def get_verification_tokens_for_user(
    db: Session, user_id: str, purpose: str | None = None
) -> list[VerificationTokenModel]:
    query = db.query(VerificationTokenModel).filter(VerificationTokenModel.user_id == user_id)
    if purpose is not None:
        query = query.filter(VerificationTokenModel.purpose == purpose)
    return query.order_by(VerificationTokenModel.id.desc()).all()
