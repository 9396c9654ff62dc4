from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Relational store - required
    DATABASE_URL: str

    # Completion API - key required
    OPENAI_API_KEY: str
    OPENAI_MODEL: str = "gpt-4-turbo-preview"
    OPENAI_TEMPERATURE: float = 0.8
    OPENAI_MAX_TOKENS: int = 700

    # Evolution API gateway - URL and key required
    EVOLUTION_API_URL: str
    EVOLUTION_API_KEY: str
    INSTANCE_NAME: str = "vendas"

    # Phone addressing
    COUNTRY_CODE: str = "55"
    WHATSAPP_DOMAIN: str = "@s.whatsapp.net"

    # In-process conversation state
    SESSION_MAX_HISTORY: int = 20
    SESSION_WINDOW: int = 12
    SESSION_MAX_PHONES: int = 1000
    PENDING_TTL_SECONDS: int = 600

    # Server
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
