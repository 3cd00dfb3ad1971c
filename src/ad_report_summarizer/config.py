"""Configuration management for the ad report summarizer.

This module provides centralized configuration using pydantic-settings.
All configuration options can be set via environment variables with the
ARS_ prefix, or via a .env file in the project root.

Environment Variables:
    ARS_MAX_FILE_SIZE_MB: Maximum workbook upload size in MB (default: 10)
    ARS_LLM_PROVIDER: Text-generation backend, gemini or openai (default: gemini)
    ARS_LLM_API_KEY: Server-held key handed out by the key-issuance endpoint
    ARS_GEMINI_MODEL: Gemini model name (default: gemini-2.5-flash)
    ARS_GEMINI_BASE_URL: Gemini REST base URL
    ARS_OPENAI_MODEL: OpenAI model name when the openai provider is used
    ARS_LLM_TEMPERATURE: Sampling temperature (default: 0.7)
    ARS_LLM_MAX_RETRIES: Retries after the first attempt (default: 5)
    ARS_LLM_RETRY_BASE_DELAY_SECONDS: First backoff delay, doubled per retry (default: 1.0)
    ARS_LLM_TIMEOUT_SECONDS: Per-request timeout (default: 60)
    ARS_AUTHORIZED_DOMAIN: Google Workspace hosted domain allowed to log in
    ARS_TOKEN_INFO_URL: Identity provider token-introspection endpoint
    ARS_SUMMARY_SHEET_MARKER: Name fragment of the summary sheet (default: サマリー)
    ARS_ESSENTIAL_MISSING_THRESHOLD: Missing essential KPIs that reject a workbook (default: 2)
    ARS_PREVIEW_MAX_ROWS: Rows returned by sheet previews (default: 50)
    ARS_SESSION_TTL_HOURS: Idle session retention time in hours (default: 12)
    ARS_LOG_LEVEL: Logging level (default: INFO)
    ARS_DEBUG: Enable debug mode (default: false)
    ARS_CORS_ORIGINS: Comma-separated CORS origins (default: *)
    ARS_SERVER_HOST: Server bind host (default: 0.0.0.0)
    ARS_SERVER_PORT: Server bind port (default: 8000)
"""

import logging
from typing import Any, Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Sensitive values like API keys use SecretStr to prevent accidental
    logging.

    Example .env file:
        ARS_LLM_API_KEY=AIza...
        ARS_LOG_LEVEL=DEBUG
        ARS_ESSENTIAL_MISSING_THRESHOLD=3
    """

    model_config = SettingsConfigDict(
        env_prefix="ARS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # =========================================================================
    # Upload Settings
    # =========================================================================

    max_file_size_mb: int = 10
    """Maximum workbook upload size in megabytes."""

    # =========================================================================
    # Text Generation Settings
    # =========================================================================

    llm_provider: Literal["gemini", "openai"] = "gemini"
    """Which text-generation backend to call."""

    llm_api_key: SecretStr = SecretStr("")
    """Secret key returned by the key-issuance endpoint."""

    gemini_model: str = "gemini-2.5-flash"
    """Gemini model used for summaries."""

    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    """Base URL of the Gemini REST API."""

    openai_model: str = "gpt-4o"
    """OpenAI model used when llm_provider is openai."""

    llm_temperature: float = 0.7
    """Sampling temperature for summary generation."""

    llm_max_retries: int = 5
    """Retries after the first failed attempt."""

    llm_retry_base_delay_seconds: float = 1.0
    """First backoff delay; each later retry doubles it."""

    llm_timeout_seconds: float = 60.0
    """Timeout for a single text-generation request."""

    # =========================================================================
    # Authorization Settings
    # =========================================================================

    authorized_domain: str = "mi-rai.co.jp"
    """Hosted-domain (hd) claim required on identity tokens."""

    token_info_url: str = "https://oauth2.googleapis.com/tokeninfo"
    """Token-introspection endpoint of the identity provider."""

    # =========================================================================
    # Extraction Settings
    # =========================================================================

    summary_sheet_marker: str = "サマリー"
    """Name fragment identifying the summary sheet."""

    essential_missing_threshold: int = 2
    """How many of the essential KPIs may be missing before rejection."""

    preview_max_rows: int = 50
    """Rows included in sheet previews."""

    # =========================================================================
    # Session Settings
    # =========================================================================

    session_ttl_hours: int = 12
    """Time-to-live for idle report sessions."""

    # =========================================================================
    # Logging Settings
    # =========================================================================

    log_level: str = "INFO"
    """Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL."""

    debug: bool = False
    """Enable debug mode with additional error details."""

    # =========================================================================
    # Server Settings
    # =========================================================================

    cors_origins: str = "*"
    """Comma-separated list of allowed CORS origins, or * for all."""

    server_host: str = "0.0.0.0"
    """Host address for the server to bind to."""

    server_port: int = 8000
    """Port for the server to listen on."""

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(valid_levels)}"
            )
        return upper_v

    @field_validator("max_file_size_mb")
    @classmethod
    def validate_file_size(cls, v: int) -> int:
        if not 1 <= v <= 500:
            raise ValueError(f"max_file_size_mb must be between 1 and 500, got {v}")
        return v

    @field_validator("llm_max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if not 0 <= v <= 10:
            raise ValueError(f"llm_max_retries must be between 0 and 10, got {v}")
        return v

    @field_validator("llm_retry_base_delay_seconds", "llm_timeout_seconds")
    @classmethod
    def validate_non_negative_seconds(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Durations must be non-negative, got {v}")
        return v

    @field_validator("llm_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"llm_temperature must be between 0.0 and 2.0, got {v}")
        return v

    @field_validator("essential_missing_threshold")
    @classmethod
    def validate_threshold(cls, v: int) -> int:
        """Validate the threshold can be reached by the three essential KPIs."""
        if not 1 <= v <= 3:
            raise ValueError(
                f"essential_missing_threshold must be between 1 and 3, got {v}"
            )
        return v

    @field_validator("summary_sheet_marker", "authorized_domain")
    @classmethod
    def validate_non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Value must be a non-empty string")
        return v.strip()

    @field_validator("preview_max_rows", "session_ttl_hours")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be at least 1, got {v}")
        return v

    @field_validator("server_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError(f"server_port must be between 1 and 65535, got {v}")
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_ttl_hours * 3600

    @property
    def retry_delays(self) -> list[float]:
        """Backoff schedule, e.g. [1, 2, 4, 8, 16] with the defaults."""
        return [
            self.llm_retry_base_delay_seconds * (2**attempt)
            for attempt in range(self.llm_max_retries)
        ]

    @property
    def cors_origins_list(self) -> list[str]:
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def log_level_int(self) -> int:
        level: int = getattr(logging, self.log_level)
        return level

    @property
    def active_model(self) -> str:
        """Model name of the configured provider."""
        return self.gemini_model if self.llm_provider == "gemini" else self.openai_model

    def get_llm_api_key(self) -> str:
        """Get the server-held API key value.

        Returns:
            The API key string. Returns empty string if not set.
        """
        return self.llm_api_key.get_secret_value()

    def to_safe_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary with sensitive values masked."""
        return {
            "max_file_size_mb": self.max_file_size_mb,
            "llm_provider": self.llm_provider,
            "llm_api_key": "***" if self.get_llm_api_key() else "(not set)",
            "gemini_model": self.gemini_model,
            "gemini_base_url": self.gemini_base_url,
            "openai_model": self.openai_model,
            "llm_temperature": self.llm_temperature,
            "llm_max_retries": self.llm_max_retries,
            "llm_retry_base_delay_seconds": self.llm_retry_base_delay_seconds,
            "llm_timeout_seconds": self.llm_timeout_seconds,
            "authorized_domain": self.authorized_domain,
            "token_info_url": self.token_info_url,
            "summary_sheet_marker": self.summary_sheet_marker,
            "essential_missing_threshold": self.essential_missing_threshold,
            "preview_max_rows": self.preview_max_rows,
            "session_ttl_hours": self.session_ttl_hours,
            "log_level": self.log_level,
            "debug": self.debug,
            "cors_origins": self.cors_origins,
            "server_host": self.server_host,
            "server_port": self.server_port,
        }


def validate_settings_on_startup(s: Settings) -> None:
    """Log warnings for configuration that will break features at runtime.

    Args:
        s: Settings instance to validate.
    """
    logger = logging.getLogger(__name__)

    if not s.get_llm_api_key():
        logger.warning(
            "LLM API key is not configured. The key-issuance endpoint will "
            "return 500. Set ARS_LLM_API_KEY environment variable."
        )

    if s.cors_origins == "*" and not s.debug:
        logger.warning(
            "CORS is configured to allow all origins (*). "
            "Consider restricting this in production."
        )

    logger.info(
        f"Configuration loaded: log_level={s.log_level}, debug={s.debug}, "
        f"llm_provider={s.llm_provider}, model={s.active_model}, "
        f"essential_missing_threshold={s.essential_missing_threshold}"
    )


# Create the global settings instance
settings = Settings()
