# app/core/config.py
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    # App
    ENVIRONMENT: str = Field(default="dev", validation_alias=AliasChoices("ENVIRONMENT", "ENV"))
    APP_NAME: str = Field(default="gst_practice")
    LOG_LEVEL: str = Field(default="INFO")

    # Database
    DATABASE_URL: str = Field(default="postgresql+asyncpg://postgres:postgres@db:5432/gst_practice")
    DATABASE_ECHO: bool = Field(default=False)

    # Bearer tokens are issued elsewhere; we only verify them
    JWT_SECRET: str = Field(default="change-me", validation_alias=AliasChoices("JWT_SECRET", "USER_JWT_SECRET"))
    JWT_ALGORITHM: str = Field(default="HS256")

    # GST portal integration
    GST_PORTAL_BASE_URL: str = Field(default="https://api.gst.gov.in/gstn")
    GST_PORTAL_TIMEOUT_SECONDS: float = Field(default=30.0)

    # Notifications
    NOTIFICATION_ENABLED: bool = Field(default=True)
    NOTIFICATION_CHECK_INTERVAL_SECONDS: int = Field(default=3600)
    RETURN_WARNING_DAYS: int = Field(default=7)
    RETURN_CRITICAL_DAYS: int = Field(default=3)
    NOTICE_WARNING_DAYS: int = Field(default=5)
    INVOICE_WARNING_DAYS: int = Field(default=3)


settings = Settings()
