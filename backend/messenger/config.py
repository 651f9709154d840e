"""Configuration management."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "messenger"

    # Redis fan-out bus (empty = deliver in-process only)
    redis_url: str = ""

    # Auth
    jwt_secret_key: str = "change-me-to-a-long-random-secret-value"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # Chat
    resolver_max_attempts: int = 3
    max_message_length: int = 2000

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
