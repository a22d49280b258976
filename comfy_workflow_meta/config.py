"""
Comfy Workflow Meta - Configuration Management
===============================================

Type-safe configuration using pydantic-settings.
All settings can be overridden via environment variables with COMFY_WORKFLOW_META_ prefix.

Example:
    COMFY_WORKFLOW_META_LOGGING__LEVEL=DEBUG
    COMFY_WORKFLOW_META_LOGGING__JSON_OUTPUT=true
    COMFY_WORKFLOW_META_ANALYSIS__BOTTLENECK_THRESHOLD_SECONDS=20

Features:
- Nested config via double underscore delimiter (__)
- .env file support
- Cached settings instance via @lru_cache
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "Settings",
    "settings",
    "get_settings",
    "reload_settings",
    # Sub-configs
    "LoggingConfig",
    "AnalysisConfig",
]


# =============================================================================
# CONFIGURATION CLASSES
# =============================================================================


class LoggingConfig(BaseSettings):
    """Logging configuration with OpenTelemetry support."""

    model_config = SettingsConfigDict(
        env_prefix="COMFY_WORKFLOW_META_LOGGING__",
        env_ignore_empty=True,
    )

    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file: str | None = None
    json_output: bool = False
    otel_enabled: bool = False
    otel_service_name: str = "comfy-workflow-meta"
    otel_endpoint: str | None = None  # OTLP endpoint


class AnalysisConfig(BaseSettings):
    """
    Heuristic constants used by the complexity and performance estimators.

    The defaults are the documented estimates; they are coarse on purpose and
    carry no accuracy target.
    """

    model_config = SettingsConfigDict(
        env_prefix="COMFY_WORKFLOW_META_ANALYSIS__",
        env_ignore_empty=True,
    )

    snapshot_version: str = "1.0"
    base_execution_seconds: float = 30.0
    per_node_execution_seconds: float = 2.0
    sampler_seconds_per_step: float = 0.5
    default_node_seconds: float = 5.0
    bottleneck_threshold_seconds: float = 15.0
    log_sanitizer_warnings: bool = True


class Settings(BaseSettings):
    """
    Main settings container.

    Usage:
        from comfy_workflow_meta.config import get_settings

        settings = get_settings()
        print(settings.logging.level)
        print(settings.analysis.bottleneck_threshold_seconds)
    """

    model_config = SettingsConfigDict(
        env_prefix="COMFY_WORKFLOW_META_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        env_nested_delimiter="__",
        extra="ignore",
    )

    logging: LoggingConfig = LoggingConfig()
    analysis: AnalysisConfig = AnalysisConfig()

    version: str = "1.2.0"
    name: str = "comfy_workflow_meta"

    def to_dict(self) -> dict:
        """Export settings as dictionary."""
        return {
            "version": self.version,
            "logging": {
                "level": self.logging.level,
                "json_output": self.logging.json_output,
                "otel_enabled": self.logging.otel_enabled,
            },
            "analysis": {
                "snapshot_version": self.analysis.snapshot_version,
                "base_execution_seconds": self.analysis.base_execution_seconds,
                "per_node_execution_seconds": self.analysis.per_node_execution_seconds,
                "sampler_seconds_per_step": self.analysis.sampler_seconds_per_step,
                "default_node_seconds": self.analysis.default_node_seconds,
                "bottleneck_threshold_seconds": self.analysis.bottleneck_threshold_seconds,
            },
        }


# =============================================================================
# CACHED SETTINGS INSTANCE
# =============================================================================


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Call get_settings.cache_clear() (or reload_settings()) to re-read the environment.
    """
    return Settings()


settings = get_settings()


def reload_settings() -> Settings:
    """Reload all settings from environment variables."""
    get_settings.cache_clear()
    global settings
    settings = get_settings()
    return settings
