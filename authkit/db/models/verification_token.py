from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, func

from authkit.db.base import Base

EMAIL_CONFIRMATION = "email_confirmation"
INVITE = "invite"


class VerificationToken(Base):
    """Single-use emailed token that confirms an address or accepts an invite."""

    __tablename__ = "verification_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    email = Column(String(320), nullable=False)
    purpose = Column(String(32), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
