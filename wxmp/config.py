from functools import lru_cache
from typing import Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

from wxmp.context import AccountContext, TrustMode


class AccountConfig(BaseModel):
    """
    One official account, keyed in ACCOUNTS by the id used in the callback URL.
    """
    account_id: str
    app_id: str
    app_secret: str = ""
    token: str
    key: Optional[str] = None
    mode: TrustMode = TrustMode.PLAIN


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # Pydantic v2 settings config
    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Database Configuration - required from .env
    DATABASE_URL: str

    # Logging Configuration - required from .env
    LOG_LEVEL: str

    # Accounts as JSON: {"<path id>": {"account_id": ..., "app_id": ..., "token": ..., "key": ..., "mode": "strict"}}
    ACCOUNTS: dict[str, AccountConfig] = {}

    # The platform drops the connection after 5s and retries 3 times
    REPLY_TIMEOUT_SECONDS: float = 4.5

    # Staged replies older than this are discarded
    STAGED_REPLY_TTL_SECONDS: float = 300


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


@lru_cache()
def get_account_contexts() -> dict[str, AccountContext]:
    """
    Build every configured account's immutable context once.
    """
    return {
        path_id: AccountContext(**account.model_dump())
        for path_id, account in get_settings().ACCOUNTS.items()
    }


def get_account_context(path_id: str) -> Optional[AccountContext]:
    """Context for the id in the callback URL, None if not configured."""
    return get_account_contexts().get(path_id)


# Global settings instance
settings = get_settings()
