from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

LogoSetting = Literal["square", "horizontal"]
AppearanceTheme = Literal["light", "dark", "system"]


class Settings(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    site_name: str
    logo_url: str
    logo_horizontal_url: str
    favicon_url: str
    logo_setting: LogoSetting
    primary_color: str
    secondary_color: str
    appearance_theme: AppearanceTheme
    site_description: str | None = None
    contact_email: str | None = None
    updated_at: datetime | None = None


class SettingsUpdate(BaseModel):
    site_name: str | None = Field(None, min_length=1, max_length=255)
    logo_url: str | None = None
    logo_horizontal_url: str | None = None
    favicon_url: str | None = None
    logo_setting: LogoSetting | None = None
    primary_color: str | None = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")
    secondary_color: str | None = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")
    appearance_theme: AppearanceTheme | None = None
    site_description: str | None = None
    contact_email: EmailStr | None = None
