from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BACKENDS = ("redis", "memory")
FAILURE_POLICIES = ("raise", "allow", "deny")
LOG_FORMATS = ("text", "structured", "json")


class Settings(BaseSettings):
    """Rate limiter settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Redis settings
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 1.0  # Bounds a single script call
    redis_socket_connect_timeout: float = 1.0

    # Rate limiting settings
    rate_limit_backend: str = "redis"  # redis | memory
    rate_limit_key_prefix: str = "ratelimiter"
    # What try_acquire does when the store call fails: raise | allow | deny
    rate_limit_failure_policy: str = "raise"

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @field_validator("redis_socket_timeout", "redis_socket_connect_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @field_validator("rate_limit_failure_policy")
    @classmethod
    def validate_failure_policy(cls, v: str) -> str:
        """Validate the failure policy is one of the known names."""
        v = v.strip().lower()
        if v not in FAILURE_POLICIES:
            raise ValueError(
                f"rate_limit_failure_policy must be one of {', '.join(FAILURE_POLICIES)}"
            )
        return v

    @field_validator("rate_limit_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in BACKENDS:
            raise ValueError(f"rate_limit_backend must be one of {', '.join(BACKENDS)}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
        return v

    @field_validator("rate_limit_key_prefix")
    @classmethod
    def strip_key_prefix(cls, v: str) -> str:
        # "ratelimiter:" and "ratelimiter" must produce the same store key
        return v.strip().rstrip(":")

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
