from functools import lru_cache

from loguru import logger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    log_level: str = Field(default="INFO", validation_alias="TRAINER_LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="TRAINER_LOG_FILE")
    log_json: bool = Field(
        default=False,
        validation_alias="TRAINER_LOG_JSON",
        description="Write structured JSON log records to stderr",
    )
    validation_cache_size: int = Field(
        default=100,
        validation_alias="TRAINER_VALIDATION_CACHE_SIZE",
        description="Maximum validated contexts kept (FIFO eviction)",
    )
    plan_cache_bucket_minutes: int = Field(
        default=5,
        validation_alias="TRAINER_PLAN_CACHE_BUCKET_MINUTES",
        description="Width of the time window folded into plan cache keys",
    )
    plan_cache_max_size: int = Field(default=1000, validation_alias="TRAINER_PLAN_CACHE_MAX_SIZE")
    plan_cache_ttl_seconds: int = Field(default=300, validation_alias="TRAINER_PLAN_CACHE_TTL_SECONDS")
    expert_timeout_seconds: float = Field(
        default=2.0,
        validation_alias="TRAINER_EXPERT_TIMEOUT_SECONDS",
        description="Per-expert time budget; a timeout counts as an expert failure",
    )
    concurrent_experts: bool = Field(
        default=True,
        validation_alias="TRAINER_CONCURRENT_EXPERTS",
        description="Invoke experts concurrently instead of one after another",
    )
    time_crunch_minutes: int = Field(default=25, validation_alias="TRAINER_TIME_CRUNCH_MINUTES")
    advisory_duration_ms: int = Field(default=15000, validation_alias="TRAINER_ADVISORY_DURATION_MS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TRAINER_",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate that log level is one of the standard logging levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_value = value.upper()
        if upper_value not in valid_levels:
            logger.warning(f"Invalid LOG_LEVEL '{value}'. Valid levels are: {', '.join(valid_levels)}. Defaulting to INFO.")
            return "INFO"
        return upper_value

    @field_validator("validation_cache_size", "plan_cache_max_size", "plan_cache_bucket_minutes")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("Cache sizes and bucket widths must be at least 1")
        return value

    @field_validator("expert_timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            logger.warning(f"TRAINER_EXPERT_TIMEOUT_SECONDS must be positive, got {value}. Defaulting to 2.0.")
            return 2.0
        return value


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
