from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    PROJECT_NAME: str = "market-ingest"
    DATABASE_URL: str
    DB_ECHO: bool = False

    # Pool sizing and timeouts bound every blocking store call
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_TIMEOUT_SECONDS: float = 30.0
    DB_STATEMENT_TIMEOUT_MS: int = 30_000

    # Ingestion
    INGEST_CHUNK_SIZE: int = 1000
    INGEST_WORKERS: int = 4

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra="ignore"
    )

@lru_cache()
def get_settings():
    return Settings()
