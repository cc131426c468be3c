from datetime import datetime

from sqlalchemy.orm import Session

from authkit.db.models.auth_account import AuthAccount as AuthAccountModel


def get_account_by_email(db: Session, email: str) -> AuthAccountModel | None:
    return db.query(AuthAccountModel).filter(AuthAccountModel.email == email).first()


def get_account_by_id(db: Session, account_id: str) -> AuthAccountModel | None:
    return db.query(AuthAccountModel).filter(AuthAccountModel.id == account_id).first()


def create_account(
    db: Session,
    account_id: str,
    email: str,
    password_hash: str,
    email_confirmed_at: datetime | None = None,
    metadata: dict | None = None,
) -> AuthAccountModel:
    account = AuthAccountModel(
        id=account_id,
        email=email,
        password_hash=password_hash,
        email_confirmed_at=email_confirmed_at,
        session_version=0,
        user_metadata=metadata or {},
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def set_password_hash(db: Session, account: AuthAccountModel, password_hash: str) -> None:
    """Replace the password and invalidate every token issued before now."""
    account.password_hash = password_hash
    account.session_version = account.session_version + 1
    db.commit()


def bump_session_version(db: Session, account: AuthAccountModel) -> None:
    account.session_version = account.session_version + 1
    db.commit()


def delete_account(db: Session, account: AuthAccountModel) -> None:
    db.delete(account)
    db.commit()


def set_email(db: Session, account: AuthAccountModel, email: str) -> None:
    account.email = email
    db.commit()


def set_email_confirmed(db: Session, account: AuthAccountModel, confirmed_at: datetime) -> None:
    account.email_confirmed_at = confirmed_at
    db.commit()
