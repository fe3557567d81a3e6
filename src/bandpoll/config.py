from __future__ import annotations

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application runtime settings loaded from environment/.env."""

    database_url: str = Field(default="sqlite:///./bandpoll.db", alias="DATABASE_URL")
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8080, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    public_base_url: str = Field(default="http://localhost:8080", alias="PUBLIC_BASE_URL")

    # Comma-separated, matched case-insensitively against poll instruments
    priority_instruments: str = Field(default="piano,guitar", alias="PRIORITY_INSTRUMENTS")
    require_upfront_instrument: bool = Field(default=False, alias="REQUIRE_UPFRONT_INSTRUMENT")

    # Notifications (each channel is skipped when not configured)
    resend_api_key: str = Field(default="", alias="RESEND_API_KEY")
    notify_email: str = Field(default="", alias="NOTIFY_EMAIL")
    notify_from: str = Field(default="Band Poll <onboarding@resend.dev>", alias="NOTIFY_FROM")
    telegram_bot_token: str = Field(default="", alias="TELEGRAM_BOT_TOKEN")
    telegram_chat_id: str = Field(default="", alias="TELEGRAM_CHAT_ID")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        extra="ignore",
    )

    @property
    def priority_instrument_list(self) -> List[str]:
        return [p.strip() for p in self.priority_instruments.split(",") if p.strip()]
