"""Configuration Management - Environment-Driven Settings.

Provides validated configuration for manifest loading. Values load from
environment variables prefixed with ``DICOM_MANIFEST_`` (nested sections use
``__``, e.g. ``DICOM_MANIFEST_RETRIEVAL__WADO_ROOT``) and an optional .env
file.
"""

from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dicom_manifest.core.retrieval.byte_cache import EvictionPolicy


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class RetrievalConfig(BaseSettings):
    """WADO-RS retrieval configuration."""

    wado_root: str | None = Field(
        default=None,
        description="Default WADO-RS root when the manifest carries no RetrieveURL",
    )
    wado_uri: str | None = Field(
        default=None, description="WADO-URI endpoint passed through to records"
    )
    concurrency_limit: int = Field(
        default=4, ge=1, le=32, description="Concurrent series sample fetches"
    )
    timeout_seconds: float = Field(
        default=30.0, gt=0, description="Per-request transport timeout"
    )
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")

    @field_validator("wado_root", "wado_uri")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        """Normalize endpoint URLs; empty strings mean unset."""
        if v is None:
            return None
        v = v.strip().rstrip("/")
        return v or None


class CacheConfig(BaseSettings):
    """Prefetched image byte cache configuration."""

    max_entries: int = Field(default=256, ge=1, description="Maximum cached images")
    max_size_mb: int = Field(
        default=512, ge=1, description="Maximum cached bytes in megabytes"
    )
    eviction_policy: EvictionPolicy = Field(
        default=EvictionPolicy.LRU, description="What to do when the cache is full"
    )


class SynthesisConfig(BaseSettings):
    """Metadata synthesis configuration."""

    synthesize_without_sample: bool = Field(
        default=False,
        description="Synthesize series whose sample fetch failed from defaults only",
    )
    specific_character_set: str = Field(
        default="ISO_IR 192", description="SpecificCharacterSet on synthesized records"
    )


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or console")

    @field_validator("log_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Only json and console renderers exist."""
        v = v.lower()
        if v not in {"json", "console"}:
            raise ValueError(f"log_format must be 'json' or 'console', got {v!r}")
        return v


class Settings(BaseSettings):
    """Main application settings.

    Usage:
        from dicom_manifest.core.config import get_settings
        settings = get_settings()
    """

    model_config = SettingsConfigDict(
        env_prefix="DICOM_MANIFEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="dicom-manifest", description="Application name")

    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    synthesis: SynthesisConfig = Field(default_factory=SynthesisConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def get_summary(self) -> str:
        """Get configuration summary."""
        return f"""
dicom-manifest Configuration
============================
Retrieval:
  - WADO Root: {self.retrieval.wado_root or "(from manifest)"}
  - WADO URI: {self.retrieval.wado_uri or "(unset)"}
  - Concurrency: {self.retrieval.concurrency_limit}
  - Timeout: {self.retrieval.timeout_seconds}s

Cache:
  - Max Entries: {self.cache.max_entries}
  - Max Size: {self.cache.max_size_mb} MB
  - Eviction: {self.cache.eviction_policy.value}

Synthesis:
  - Without Sample: {self.synthesis.synthesize_without_sample}

Logging:
  - Level: {self.logging.log_level.value}
  - Format: {self.logging.log_format}
"""


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings(force_reload: bool = False) -> Settings:
    """Get application settings (singleton).

    Args:
        force_reload: Force reload settings from environment

    Returns:
        Settings instance

    """
    global _settings
    if _settings is None or force_reload:
        _settings = Settings()
    return _settings
