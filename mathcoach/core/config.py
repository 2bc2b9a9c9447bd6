from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = Field(default="dev", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    game_url: str = Field(default="https://arithmetic.zetamac.com", alias="GAME_URL")
    browser_headless: bool = Field(default=False, alias="BROWSER_HEADLESS")
    target_duration_seconds: int = Field(default=120, alias="TARGET_DURATION_SECONDS")
    finalize_delay_seconds: float = Field(default=1.0, alias="FINALIZE_DELAY_SECONDS")
    answer_poll_interval_seconds: float = Field(default=0.01, alias="ANSWER_POLL_INTERVAL_SECONDS")
    diagnostics_interval_seconds: float = Field(default=2.0, alias="DIAGNOSTICS_INTERVAL_SECONDS")

    identity_api_key: str = Field(default="", alias="IDENTITY_API_KEY")
    identity_signup_url: str = Field(
        default="https://identitytoolkit.googleapis.com/v1/accounts:signUp",
        alias="IDENTITY_SIGNUP_URL",
    )
    identity_token_url: str = Field(
        default="https://securetoken.googleapis.com/v1/token",
        alias="IDENTITY_TOKEN_URL",
    )
    token_lifetime_seconds: int = Field(default=3600, alias="TOKEN_LIFETIME_SECONDS")
    token_refresh_buffer_seconds: int = Field(default=300, alias="TOKEN_REFRESH_BUFFER_SECONDS")
    credential_store_url: str = Field(
        default=".mathcoach/credentials.json",
        alias="CREDENTIAL_STORE_URL",
    )

    firestore_project_id: str = Field(default="smart-zetamac-coach", alias="FIRESTORE_PROJECT_ID")
    firestore_base_url: str = Field(
        default="https://firestore.googleapis.com/v1",
        alias="FIRESTORE_BASE_URL",
    )
    http_timeout_seconds: float = Field(default=10.0, alias="HTTP_TIMEOUT_SECONDS")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
