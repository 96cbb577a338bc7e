from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False
    )

    # Core
    environment: str = Field(default="dev")
    app_name: str = Field(default="gigflow")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Calendar days (gig expiry, listing) are judged in this zone
    tz_default: str = Field(default="Asia/Taipei", alias="TZ_DEFAULT")

    # Notifications
    notifications_enabled: bool = Field(default=True, alias="NOTIFICATIONS_ENABLED")


settings = Settings()
