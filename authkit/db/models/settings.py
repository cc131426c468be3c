from sqlalchemy import Column, DateTime, Integer, String, func

from authkit.db.base import Base

SETTINGS_ID = 1


class SiteSettings(Base):
    """Application-wide settings. There is exactly one row, with id 1."""

    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, default=SETTINGS_ID)
    site_name = Column(String(255), nullable=False)
    logo_url = Column(String, nullable=False)
    logo_horizontal_url = Column(String, nullable=False)
    favicon_url = Column(String, nullable=False)
    logo_setting = Column(String(16), nullable=False, default="square")
    primary_color = Column(String(16), nullable=False)
    secondary_color = Column(String(16), nullable=False)
    appearance_theme = Column(String(16), nullable=False, default="light")
    site_description = Column(String, nullable=True)
    contact_email = Column(String(320), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
