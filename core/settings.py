from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, PostgresDsn, RedisDsn, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CustomSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


class AppSettings(CustomSettings):
    ENVIRONMENT: Literal["local", "dev", "prod"] = Field(default="local")
    LOG_LEVEL: str = Field(default="INFO")


class StoreSettings(CustomSettings):
    """Conversation store backend selection.

    Env vars:
    - STORE_BACKEND: memory | redis | sql
    - STORE_LOCK_TIMEOUT_SECONDS: lease for the Redis per-conversation lock
    """

    STORE_BACKEND: Literal["memory", "redis", "sql"] = Field(default="memory")
    STORE_LOCK_TIMEOUT_SECONDS: float = Field(default=10.0)


class PgDbSettings(CustomSettings):
    POSTGRES_ENGINE: str = Field(default="postgresql+asyncpg")
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: SecretStr = Field(default="postgres")
    POSTGRES_DB: str = Field(default="chat_relay")
    POSTGRES_HOST: str = Field(default="localhost")
    POSTGRES_PORT: int = Field(default=5432)
    DATABASE_URL: PostgresDsn | str = Field(default="")

    @model_validator(mode="before")
    def validate_postgres_dsn(cls, data: dict):
        if isinstance(data, dict) and not data.get("DATABASE_URL"):
            _built_uri = PostgresDsn.build(
                scheme=data.get("POSTGRES_ENGINE", "postgresql+asyncpg"),
                username=data.get("POSTGRES_USER", "postgres"),
                password=data.get("POSTGRES_PASSWORD", "postgres"),
                host=data.get("POSTGRES_HOST", "localhost"),
                port=int(data.get("POSTGRES_PORT", 5432)),
                path=data.get("POSTGRES_DB", "chat_relay"),
            ).unicode_string()
            data["DATABASE_URL"] = _built_uri
        return data


class RedisSettings(CustomSettings):
    REDIS_HOST: str = Field(default="localhost")
    REDIS_PORT: int = Field(default=6379)
    REDIS_DB: int = Field(default=0)
    REDIS_PASSWORD: SecretStr = Field(default="")
    REDIS_URL: RedisDsn | str = Field(default="")
    CELERY_BROKER_URL: str = Field(default="")
    CELERY_RESULT_BACKEND: str = Field(default="")

    @model_validator(mode="before")
    def validate_redis_url(cls, data: dict):
        if isinstance(data, dict) and not data.get("REDIS_URL"):
            password = data.get("REDIS_PASSWORD", "")
            _built_uri = RedisDsn.build(
                scheme="redis",
                host=data.get("REDIS_HOST", "localhost"),
                port=int(data.get("REDIS_PORT", 6379)),
                path=f"/{data.get('REDIS_DB', 0)}",
                password=password if password else None,
            ).unicode_string()
            data["REDIS_URL"] = _built_uri
        # Celery shares the Redis instance unless told otherwise
        redis_url = data.get("REDIS_URL", "redis://localhost:6379/0")
        if not data.get("CELERY_BROKER_URL"):
            data["CELERY_BROKER_URL"] = redis_url
        if not data.get("CELERY_RESULT_BACKEND"):
            data["CELERY_RESULT_BACKEND"] = redis_url
        return data


class OpenAISettings(CustomSettings):
    """OpenAI-compatible chat completion endpoint.

    Any host speaking the OpenAI chat completions API works; point
    OPENAI_BASE_URL at it.
    """

    OPENAI_API_KEY: SecretStr = Field(default="")
    OPENAI_BASE_URL: str = Field(default="https://api.openai.com/v1")
    OPENAI_MODEL: str = Field(default="gpt-4o-mini")
    OPENAI_TIMEOUT_SECONDS: float = Field(default=60.0)


class ChatSettings(CustomSettings):
    """Model call parameters and workflow pacing."""

    CHAT_HISTORY_WINDOW: int = Field(default=10)
    CHAT_MAX_TOKENS: int = Field(default=1000)
    CHAT_TEMPERATURE: float = Field(default=0.7)
    ANALYSIS_MAX_TOKENS: int = Field(default=500)
    ANALYSIS_TEMPERATURE: float = Field(default=0.3)
    TITLE_MAX_TOKENS: int = Field(default=20)
    TITLE_TEMPERATURE: float = Field(default=0.3)
    WORKFLOW_RESPONSE_DELAY_MS: int = Field(default=100)
    WORKFLOW_ANALYSIS_DELAY_MS: int = Field(default=200)


class Settings(BaseModel):
    APP: AppSettings = Field(default_factory=AppSettings)
    STORE: StoreSettings = Field(default_factory=StoreSettings)
    DATABASE: PgDbSettings = Field(default_factory=PgDbSettings)
    REDIS: RedisSettings = Field(default_factory=RedisSettings)
    OPENAI: OpenAISettings = Field(default_factory=OpenAISettings)
    CHAT: ChatSettings = Field(default_factory=ChatSettings)


@lru_cache
def get_settings() -> Settings:
    return Settings()


SETTINGS = get_settings()
