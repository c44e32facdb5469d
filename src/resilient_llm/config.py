import os
from dataclasses import dataclass
from functools import lru_cache

import redis
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    # Model defaults
    default_model: str = os.getenv("LLM_DEFAULT_MODEL", "claude-3-5-sonnet-20241022")
    default_temperature: float = float(os.getenv("LLM_DEFAULT_TEMPERATURE", "0.7"))
    default_max_tokens: int = int(os.getenv("LLM_DEFAULT_MAX_TOKENS", "4000"))

    # Cache
    cache_enabled: bool = _env_bool("CACHE_ENABLED", "true")
    cache_backend: str = os.getenv("CACHE_BACKEND", "memory")  # or "redis"
    cache_ttl: int = int(os.getenv("CACHE_TTL", "3600"))  # 1 hour, 0 = never expires
    cache_max_entries: int = int(os.getenv("CACHE_MAX_ENTRIES", "500"))
    cache_sweep_interval: float = float(os.getenv("CACHE_SWEEP_INTERVAL", "60"))
    cache_temperature_precision: int = int(os.getenv("CACHE_TEMPERATURE_PRECISION", "2"))
    cache_key_includes_max_tokens: bool = _env_bool("CACHE_KEY_INCLUDES_MAX_TOKENS", "false")
    cache_key_prefix: str = os.getenv("CACHE_KEY_PREFIX", "llm_response")

    # Redis (only used when cache_backend == "redis")
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    redis_password: str | None = os.getenv("REDIS_PASSWORD")

    # Retry
    retry_max_retries: int = int(os.getenv("RETRY_MAX_RETRIES", "3"))
    retry_base_delay_ms: float = float(os.getenv("RETRY_BASE_DELAY_MS", "1000"))
    retry_jitter_ms: float = float(os.getenv("RETRY_JITTER_MS", "1000"))

    # Error handling
    error_history_size: int = int(os.getenv("ERROR_HISTORY_SIZE", "100"))
    error_locale: str = os.getenv("ERROR_LOCALE", "en")  # or "zh"

    # Synthetic streaming for cache hits
    stream_chunk_size: int = int(os.getenv("STREAM_CHUNK_SIZE", "10"))
    stream_chunk_delay_ms: float = float(os.getenv("STREAM_CHUNK_DELAY_MS", "20"))

    # Upstream (Anthropic Messages API)
    anthropic_api_key: str | None = os.getenv("ANTHROPIC_API_KEY")
    anthropic_base_url: str = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com")
    anthropic_version: str = os.getenv("ANTHROPIC_VERSION", "2023-06-01")
    upstream_timeout: float = float(os.getenv("UPSTREAM_TIMEOUT", "120"))

    # API
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_reload: bool = _env_bool("API_RELOAD", "true")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def uses_redis(self) -> bool:
        """Check if the durable Redis cache layer is selected.

        Returns:
            True if CACHE_BACKEND is "redis", False otherwise
        """
        return self.cache_backend.lower() == "redis"

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if self.cache_backend.lower() not in ("memory", "redis"):
            raise ValueError(f"CACHE_BACKEND must be 'memory' or 'redis', got {self.cache_backend!r}")

        if self.cache_ttl < 0:
            raise ValueError("CACHE_TTL must be >= 0 (0 disables expiry)")

        if self.cache_max_entries < 1:
            raise ValueError("CACHE_MAX_ENTRIES must be at least 1")

        if not 0 <= self.cache_temperature_precision <= 6:
            raise ValueError("CACHE_TEMPERATURE_PRECISION must be between 0 and 6")

        if self.retry_max_retries < 0:
            raise ValueError("RETRY_MAX_RETRIES must be >= 0")

        if self.stream_chunk_size < 1:
            raise ValueError("STREAM_CHUNK_SIZE must be at least 1")

        if self.error_locale not in ("en", "zh"):
            raise ValueError(f"ERROR_LOCALE must be one of ['en', 'zh'], got {self.error_locale!r}")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


def get_redis_client() -> redis.Redis:
    """Create a Redis client instance."""
    return redis.from_url(
        settings.redis_url,
        password=settings.redis_password,
        decode_responses=False,
    )
