from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from authkit.api.deps import get_db, require_roles
from authkit.db.models.user import User as UserModel
from authkit.schemas.settings import Settings, SettingsUpdate
from authkit.services import settings as settings_service

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=Settings)
def get_settings(db: Session = Depends(get_db)):
    """Public site settings (branding and theme)."""
    return Settings.model_validate(settings_service.get_settings(db))


@router.put("", response_model=Settings)
def update_settings(
    data: SettingsUpdate,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(require_roles("admin")),
):
    return Settings.model_validate(settings_service.update_settings(db, data))
