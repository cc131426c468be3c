"""Site settings. There is a single settings row; reading creates it if missing."""

import logging

from sqlalchemy.orm import Session

import authkit.repositories.settings as settings_repo
from authkit.db.models.settings import SiteSettings as SiteSettingsModel
from authkit.schemas.settings import SettingsUpdate

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    "site_name": "Starter Kit",
    "logo_url": "/favicon.ico",
    "logo_horizontal_url": "/favicon.ico",
    "favicon_url": "/favicon.ico",
    "logo_setting": "square",
    "primary_color": "#3b82f6",
    "secondary_color": "#1e40af",
    "appearance_theme": "light",
    "site_description": "Starter Kit Application",
    "contact_email": "support@example.com",
}


def get_settings(db: Session) -> SiteSettingsModel:
    record = settings_repo.get_settings(db)
    if record is None:
        logger.info("No settings row found, creating defaults")
        record = settings_repo.create_settings(db, **DEFAULT_SETTINGS)
    return record


def update_settings(db: Session, data: SettingsUpdate) -> SiteSettingsModel:
    record = get_settings(db)
    return settings_repo.update_settings(db, record, **data.model_dump(exclude_unset=True))
