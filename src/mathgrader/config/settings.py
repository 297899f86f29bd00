"""
Configuration management for the math grading pipeline.

All configuration comes from environment variables or .env file.
Every field has a default so the pipeline starts with whatever
credentials are present; missing credentials only disable providers.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List, Optional
from functools import lru_cache


VALID_CHAT_PROVIDERS = ("openai", "gemini", "groq")
VALID_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MATHGRADER_",
        case_sensitive=False,
        extra="ignore",
    )

    # Chat-completion providers
    openai_api_key: str = ""
    gemini_api_key: str = ""
    groq_api_key: str = ""

    openai_model: Optional[str] = None
    gemini_model: Optional[str] = None
    groq_model: Optional[str] = None

    # Provider routing
    primary_provider: Optional[str] = None
    fallback_order: str = "openai,gemini,groq"

    # OCR (Mathpix)
    mathpix_app_id: str = ""
    mathpix_app_key: str = ""
    mathpix_timeout: float = 30.0

    # Symbolic solver (Wolfram Alpha)
    wolfram_app_id: str = ""
    wolfram_timeout: float = 10.0

    # Pipeline toggles
    use_ocr: bool = True
    require_ocr: bool = False
    enable_verification: bool = True
    track_api_costs: bool = True

    # Timeouts and thresholds
    chat_timeout: float = 60.0
    verification_conflict_threshold: float = 0.5

    # Resilience
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    circuit_failure_threshold: int = 5
    circuit_reset_timeout: float = 30.0
    cache_ttl_seconds: float = 60.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    log_file: Optional[str] = None

    @field_validator("primary_provider")
    @classmethod
    def validate_primary_provider(cls, v: Optional[str]) -> Optional[str]:
        """Validate primary provider is a supported chat provider."""
        if v is None or not v.strip():
            return None
        v = v.strip().lower()
        if v not in VALID_CHAT_PROVIDERS:
            raise ValueError(f"primary_provider must be one of: {', '.join(VALID_CHAT_PROVIDERS)}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(VALID_LOG_LEVELS)}")
        return v

    @property
    def fallback_providers(self) -> List[str]:
        """
        Ordered chat provider names.

        Unknown names in fallback_order are dropped. An empty result falls
        back to the default order. A primary provider is moved to the front.
        """
        parsed = [p.strip().lower() for p in self.fallback_order.split(",") if p.strip()]
        order = [p for p in dict.fromkeys(parsed) if p in VALID_CHAT_PROVIDERS]
        if not order:
            order = list(VALID_CHAT_PROVIDERS)

        if self.primary_provider:
            order = [self.primary_provider] + [p for p in order if p != self.primary_provider]
        return order

    @property
    def mathpix_configured(self) -> bool:
        return bool(self.mathpix_app_id and self.mathpix_app_key)

    @property
    def wolfram_configured(self) -> bool:
        return bool(self.wolfram_app_id)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Reload settings from environment."""
    get_settings.cache_clear()
    return get_settings()
