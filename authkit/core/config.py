from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_APP_BASE_URL = "http://localhost:3010"


class Settings(BaseSettings):
    database_url: str = Field(alias="DATABASE_URL")

    # JWT Configuration
    secret_key: str = Field(alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_minutes: int = Field(
        default=60 * 24 * 7, alias="REFRESH_TOKEN_EXPIRE_MINUTES"
    )

    # First Admin User
    first_admin_email: str = Field(alias="FIRST_ADMIN_EMAIL")
    first_admin_password: str = Field(alias="FIRST_ADMIN_PASSWORD")

    # Password Reset
    password_reset_token_expire_minutes: int = Field(
        default=60, alias="PASSWORD_RESET_TOKEN_EXPIRE_MINUTES"
    )

    # Email confirmation and invites
    email_confirmation_token_expire_minutes: int = Field(
        default=60 * 24, alias="EMAIL_CONFIRMATION_TOKEN_EXPIRE_MINUTES"
    )
    invite_token_expire_minutes: int = Field(
        default=60 * 24 * 7, alias="INVITE_TOKEN_EXPIRE_MINUTES"
    )

    # SMTP Configuration (optional)
    smtp_host: str | None = Field(default=None, alias="SMTP_HOST")
    smtp_port: int | None = Field(default=None, alias="SMTP_PORT")
    smtp_user: str | None = Field(default=None, alias="SMTP_USER")
    smtp_password: str | None = Field(default=None, alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(default=True, alias="SMTP_USE_TLS")
    smtp_from_email: str | None = Field(default=None, alias="SMTP_FROM_EMAIL")

    # Base URL of the web application, used to build emailed links
    app_base_url: str | None = Field(default=None, alias="APP_BASE_URL")

    # Session revocation
    session_validation_interval_seconds: float = Field(
        default=300.0, alias="SESSION_VALIDATION_INTERVAL_SECONDS"
    )
    forced_logout_delay_seconds: float = Field(
        default=1.0, alias="FORCED_LOGOUT_DELAY_SECONDS"
    )
    realtime_reconnect_base_delay_seconds: float = Field(
        default=1.0, alias="REALTIME_RECONNECT_BASE_DELAY_SECONDS"
    )
    realtime_max_reconnect_attempts: int = Field(
        default=5, alias="REALTIME_MAX_RECONNECT_ATTEMPTS"
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator(
        "smtp_host", "smtp_user", "smtp_password", "smtp_from_email", "app_base_url",
        mode="before",
    )
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for optional string fields."""
        if v == "":
            return None
        return v

    @field_validator("smtp_port", mode="before")
    @classmethod
    def empty_str_to_none_int(cls, v: str | int | None) -> int | None:
        """Convert empty strings to None for optional integer fields."""
        if v == "":
            return None
        if isinstance(v, str):
            try:
                return int(v)
            except ValueError:
                return None
        return v

    @property
    def reset_base_url(self) -> str:
        """Application URL used in emailed links, falling back to the local dev server."""
        return (self.app_base_url or DEFAULT_APP_BASE_URL).rstrip("/")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
