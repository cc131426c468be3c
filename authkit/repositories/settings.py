from sqlalchemy.orm import Session

from authkit.db.models.settings import SETTINGS_ID, SiteSettings as SiteSettingsModel


def get_settings(db: Session) -> SiteSettingsModel | None:
    return db.query(SiteSettingsModel).filter(SiteSettingsModel.id == SETTINGS_ID).first()


def create_settings(db: Session, **fields) -> SiteSettingsModel:
    record = SiteSettingsModel(id=SETTINGS_ID, **fields)
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def update_settings(db: Session, record: SiteSettingsModel, **fields) -> SiteSettingsModel:
    """Apply the given fields. None values are skipped."""
    for name, value in fields.items():
        if value is not None:
            setattr(record, name, value)
    db.commit()
    db.refresh(record)
    return record
