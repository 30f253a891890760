from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    # Origin used to build webhook URLs; falls back to the request's base URL
    public_base_url: str | None = Field(default=None, alias="PUBLIC_BASE_URL")
    # Telegram Bot API
    telegram_api_base: str = Field(default="https://api.telegram.org", alias="TELEGRAM_API_BASE")
    telegram_timeout_seconds: float = Field(default=10.0, alias="TELEGRAM_TIMEOUT_SECONDS")
    telegram_retry_attempts: int = Field(default=3, alias="TELEGRAM_RETRY_ATTEMPTS")
    # Shared secret Telegram echoes back in X-Telegram-Bot-Api-Secret-Token
    webhook_secret_token: str | None = Field(default=None, alias="WEBHOOK_SECRET_TOKEN")
    # User-facing canned replies
    fallback_message: str = Field(
        default="I didn't understand that. Try typing /start to begin.",
        alias="FALLBACK_MESSAGE",
    )
    error_message: str = Field(
        default="Sorry, something went wrong. Please try again.",
        alias="ERROR_MESSAGE",
    )
    # Traversal bounds
    max_traversal_depth: int = Field(default=50, alias="MAX_TRAVERSAL_DEPTH")
    max_traversal_steps: int = Field(default=200, alias="MAX_TRAVERSAL_STEPS")
    max_traversal_seconds: float = Field(default=600.0, alias="MAX_TRAVERSAL_SECONDS")
    max_delay_seconds: float = Field(default=300.0, alias="MAX_DELAY_SECONDS")
    integration_timeout_seconds: float = Field(default=10.0, alias="INTEGRATION_TIMEOUT_SECONDS")
    # Built-in "webhook" integration; private and loopback targets stay blocked unless allowed
    integration_webhook_enabled: bool = Field(default=True, alias="INTEGRATION_WEBHOOK_ENABLED")
    integration_webhook_allow_private: bool = Field(
        default=False, alias="INTEGRATION_WEBHOOK_ALLOW_PRIVATE"
    )
    # Database (optional - in-memory stores are used when unset)
    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    restore_deployments: bool = Field(default=False, alias="RESTORE_DEPLOYMENTS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def persistence_enabled(self) -> bool:
        return bool(self.database_url and self.database_url.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
