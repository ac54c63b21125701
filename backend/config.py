"""
SideBy Insights Engine - Configuration

Typed configuration using Pydantic Settings.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """OpenAI-compatible LLM endpoint configuration."""

    model_config = SettingsConfigDict(env_prefix="INSIGHTS_LLM_")

    enabled: bool = Field(
        default=False,
        description="Process-wide switch for AI-generated insights"
    )
    base_url: str = Field(
        default="http://localhost:11434/v1",
        description="Base URL of the chat completions API"
    )
    model: str = Field(
        default="qwen2.5:7b-instruct",
        description="Model used for insights and narratives"
    )
    api_key: str = Field(
        default="",
        description="Bearer token; blank means no Authorization header"
    )
    temperature: float = Field(
        default=0.3,
        description="Sampling temperature for insight extraction"
    )
    insights_timeout: float = Field(
        default=5.0,
        description="Deadline in seconds for an insights call"
    )
    narrative_enabled: bool = Field(
        default=False,
        description="Attach an executive narrative to AI-enabled datasets"
    )
    narrative_timeout: float = Field(
        default=120.0,
        description="Deadline in seconds for a narrative call"
    )


class CacheSettings(BaseSettings):
    """Insight cache configuration."""

    model_config = SettingsConfigDict(env_prefix="INSIGHTS_CACHE_")

    ttl_seconds: int = Field(default=300, description="Cache TTL in seconds")
    max_size: int = Field(default=512, ge=1, description="Maximum cached entries")


class RuleEngineSettings(BaseSettings):
    """Thresholds for the statistical insight generator."""

    model_config = SettingsConfigDict(env_prefix="INSIGHTS_RULES_")

    trend_threshold: float = Field(
        default=30.0,
        description="Absolute KPI change (%) that produces a trend/warning"
    )
    high_severity_threshold: float = Field(
        default=50.0,
        description="Absolute KPI change (%) that raises severity to 4"
    )
    dimension_threshold: float = Field(
        default=40.0,
        description="Absolute change (%) for comparative dimension anomalies"
    )
    zscore_threshold: float = Field(
        default=2.0,
        description="Z-score above which a dimension value is an outlier"
    )
    max_dimension_insights: int = Field(
        default=10,
        description="Maximum comparative anomalies per generation"
    )
    top_items: int = Field(
        default=3,
        description="Number of names listed in ranking insights"
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Application
    app_name: str = "SideBy Insights Engine"
    app_version: str = "1.0.0"
    debug: bool = Field(default=False, description="Debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Datasets
    datasets_dir: str = Field(
        default="./datasets",
        description="Directory of dataset JSON files loaded at startup"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Minimum log level")
    log_dir: str = Field(default="logs", description="Directory for log files")

    # Nested settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    rules: RuleEngineSettings = Field(default_factory=RuleEngineSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
