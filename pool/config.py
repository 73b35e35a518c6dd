from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pool settings, read from the environment or a local .env file."""

    POOL_NAME: str = "ETHPool"
    POOL_VERSION: str = "1.0.0"

    # Initializes the ledger at startup when set
    POOL_OWNER: Optional[str] = None

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
