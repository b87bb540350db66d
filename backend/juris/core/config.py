"""Settings for the Juris AI engine.

Values come from the process environment, then from ``.env``. Provider
keys (LLM_API_KEY) belong in the environment, never in the file.
"""

from functools import lru_cache
from typing import Any

from pydantic import PostgresDsn, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine configuration; every field maps to the same-named variable."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "Juris AI API"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"

    # CORS
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def split_origins(cls, v: Any) -> Any:
        """Accept ``ALLOWED_ORIGINS=http://a,http://b``."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # Database
    DATABASE_URL: PostgresDsn | None = None
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 30

    # Redis (retrieval cache; in-memory fallback when unset)
    REDIS_URL: RedisDsn | None = None
    RAG_CACHE_TTL_SECONDS: int = 300

    # Security
    SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # LLM provider (OpenAI-compatible, NVIDIA NIM by default)
    LLM_API_KEY: str | None = None
    LLM_BASE_URL: str = "https://integrate.api.nvidia.com/v1"
    LLM_DEFAULT_MODEL: str = "meta/llama-3.1-70b-instruct"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 4096
    LLM_REQUEST_TIMEOUT_SECONDS: float = 60.0

    # Embeddings
    EMBEDDING_MODEL: str = "nvidia/nv-embedqa-e5-v5"
    EMBEDDING_DIMENSION: int = 1536

    # Retrieval
    RAG_TOP_K: int = 5
    RAG_MAX_TOP_K: int = 10
    RAG_MIN_CONFIDENCE: float = 0.7
    RAG_CONTEXT_TOKEN_BUDGET: int = 2000
    RAG_CHUNK_SIZE: int = 1000
    RAG_CHUNK_OVERLAP: int = 200

    # Agent execution budgets
    AGENT_TOOL_CALL_BUDGET: int = 5
    AGENT_TIME_BUDGET_SECONDS: float = 120.0

    # Conversations
    CONVERSATION_REJECT_CONCURRENT: bool = False
    INTERRUPTED_EXECUTION_AFTER_SECONDS: int = 600

    # Defaults seeded on startup (agents, tools, workflows)
    SEED_DEFAULTS_ON_STARTUP: bool = True

    # Client records service used by get_client_details (tool disabled when unset)
    CLIENT_DIRECTORY_URL: str | None = None
    CLIENT_DIRECTORY_TIMEOUT_SECONDS: float = 10.0

    # Provider retry policy
    PROVIDER_MAX_RETRIES: int = 2
    PROVIDER_RETRY_INITIAL_DELAY: float = 1.0
    PROVIDER_RETRY_MAX_DELAY: float = 10.0
    PROVIDER_RETRY_BACKOFF: float = 2.0

    # Embedding backfill job
    SCHEDULER_TIMEZONE: str = "America/Sao_Paulo"
    EMBEDDING_BACKFILL_ENABLED: bool = False
    EMBEDDING_BACKFILL_INTERVAL_SECONDS: int = 300
    EMBEDDING_BACKFILL_BATCH_SIZE: int = 32

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_FILE: str | None = None  # logs/app.log when unset
    LOG_JSON_FORMAT: bool = True
    LOG_SENSITIVE_FILTER: bool = True

    @field_validator("RAG_MIN_CONFIDENCE")
    @classmethod
    def validate_min_confidence(cls, v: float) -> float:
        """Minimum confidence is a fraction in [0, 1]."""
        if not 0.0 <= v <= 1.0:
            raise ValueError("RAG_MIN_CONFIDENCE must be between 0 and 1")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
