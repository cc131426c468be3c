from sqlalchemy import JSON, Column, DateTime, Integer, String, func

from authkit.db.base import Base


class AuthAccount(Base):
    """Credentials held by the local identity provider."""

    __tablename__ = "auth_accounts"

    id = Column(String(36), primary_key=True)
    email = Column(String(320), unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    email_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    # Bumped on sign-out and password change; tokens carrying an older value are rejected.
    session_version = Column(Integer, nullable=False, default=0)
    user_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
