"""Environment-bound configuration objects.

This module provides Pydantic BaseSettings-based configuration loading from .env files.
Every budget the context manager enforces (compression ratio, masking thresholds,
tool-search threshold) is an overridable setting with the observed production default.

Example:
    from contextAgent.config.settings import get_settings

    settings = get_settings()  # Cached singleton
    threshold = settings.context.compression_threshold
    protection = settings.masking.protection_threshold
"""

from __future__ import annotations

from functools import lru_cache
from typing import Dict, List, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


load_dotenv()


class ModelRoutingSettings(BaseSettings):
    """Model used to write state snapshots during compression.

    Loads from .env with alias names:
    - MODEL_BASE, MODEL_BASE_ID, MODEL_BASIC_ID
    - MODEL_BASE_API_KEY, MODEL_BASIC_API_KEY
    - MODEL_BASE_URL, MODEL_BASIC_BASE_URL
    """

    base: str = Field(
        default="base-quick",
        validation_alias=AliasChoices("MODEL_BASE", "MODEL_BASE_ID", "MODEL_BASIC_ID"),
    )
    base_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_BASE_API_KEY", "MODEL_BASIC_API_KEY"),
    )
    base_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_BASE_URL", "MODEL_BASIC_BASE_URL"),
    )
    summary_temperature: float = Field(default=0.3, ge=0.0, le=2.0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class ContextSettings(BaseSettings):
    """History compression settings.

    - compression_threshold: fraction of the model token limit that triggers compression
    - preserve_fraction: share of the history (by characters) kept verbatim after the snapshot
    - function_response_token_budget: per-response budget above which a tool response is truncated
    - truncate_head_lines / truncate_tail_lines: lines kept around the cut
    - truncate_line_width: max characters kept per line for wide content
    - raw_string_char_threshold: single-line content at least this long is described, not sampled
    """

    enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("CONTEXT_MANAGEMENT_ENABLED"),
    )
    compression_threshold: float = Field(
        default=0.5,
        gt=0.0,
        le=1.0,
        validation_alias=AliasChoices("COMPRESSION_THRESHOLD"),
    )
    preserve_fraction: float = Field(
        default=0.3,
        gt=0.0,
        lt=1.0,
        validation_alias=AliasChoices("COMPRESSION_PRESERVE_FRACTION"),
    )
    function_response_token_budget: int = Field(
        default=50_000,
        ge=1,
        validation_alias=AliasChoices("COMPRESSION_FUNCTION_RESPONSE_TOKEN_BUDGET"),
    )
    truncate_head_lines: int = Field(default=15, ge=1)
    truncate_tail_lines: int = Field(default=15, ge=0)
    truncate_line_width: int = Field(default=500, ge=20)
    raw_string_char_threshold: int = Field(default=20_000, ge=1)
    summary_max_tokens: int = Field(default=4096, ge=256)

    # Extra model → token limit entries, merged over the built-in table
    model_token_limits: Dict[str, int] = Field(default_factory=dict)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class MaskingSettings(BaseSettings):
    """Observation masking thresholds.

    - protection_threshold: newest tool-output tokens that are never masked
    - hysteresis_threshold: minimum prunable tokens before a pass does anything
    - protect_latest_turn: skip the newest turn entirely
    """

    enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("OBSERVATION_MASKING_ENABLED"),
    )
    protection_threshold: int = Field(
        default=50_000,
        ge=0,
        validation_alias=AliasChoices("MASKING_PROTECTION_THRESHOLD"),
    )
    hysteresis_threshold: int = Field(
        default=30_000,
        ge=0,
        validation_alias=AliasChoices("MASKING_HYSTERESIS_THRESHOLD"),
    )
    protect_latest_turn: bool = True
    preview_head_chars: int = Field(default=250, ge=0)
    preview_tail_chars: int = Field(default=250, ge=0)
    shell_preview_lines: int = Field(default=3, ge=1)
    shell_tool_names: List[str] = Field(default_factory=lambda: ["run_bash_command"])

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class ToolSearchSettings(BaseSettings):
    """Tool declaration gating.

    When the combined description length of discovered tools exceeds
    description_char_threshold, their declarations are hidden behind search_tools.
    """

    enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("TOOL_SEARCH_ENABLED"),
    )
    description_char_threshold: int = Field(
        default=30_000,
        ge=0,
        validation_alias=AliasChoices("TOOL_SEARCH_CHAR_THRESHOLD"),
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class StorageSettings(BaseSettings):
    """Where offloaded observations and truncated tool outputs are written.

    Layout:
        {root}/{session_id}/observations/   # masked observations
        {root}/{session_id}/tool-outputs/   # compression truncations
    """

    root: str = Field(
        default="data/sessions",
        validation_alias=AliasChoices("CONTEXT_STORAGE_ROOT"),
    )
    observation_dir: str = "observations"
    tool_output_dir: str = "tool-outputs"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class ObservabilitySettings(BaseSettings):
    """Tracing, logging, and telemetry configuration.

    - LangSmith tracing (LANGCHAIN_TRACING_V2, LANGCHAIN_PROJECT, etc.)
    - Logging settings (LOG_DIR, LOG_LEVEL)
    - Usage telemetry (USAGE_STATISTICS_ENABLED)
    """

    langsmith_project: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("LANGCHAIN_PROJECT")
    )
    langsmith_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("LANGCHAIN_API_KEY", "LANGSMITH_API_KEY"),
    )
    langsmith_endpoint: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("LANGCHAIN_ENDPOINT")
    )
    tracing_enabled: bool = Field(
        default=False, validation_alias=AliasChoices("LANGCHAIN_TRACING_V2")
    )

    log_dir: str = Field(default="logs", validation_alias=AliasChoices("LOG_DIR"))
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL"))

    usage_statistics_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("USAGE_STATISTICS_ENABLED"),
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class Settings(BaseSettings):
    """Root application settings loaded from .env file.

    Hierarchical structure:
    - models: Summarizer model routing and credentials
    - context: History compression
    - masking: Observation masking
    - tool_search: Tool declaration gating
    - storage: Offload directories
    - observability: Tracing, logging and telemetry

    Use get_settings() to obtain a cached singleton instance.
    """

    environment: str = Field(default="dev", validation_alias=AliasChoices("APP_ENV"))
    models: ModelRoutingSettings = Field(default_factory=ModelRoutingSettings)
    context: ContextSettings = Field(default_factory=ContextSettings)
    masking: MaskingSettings = Field(default_factory=MaskingSettings)
    tool_search: ToolSearchSettings = Field(default_factory=ToolSearchSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        validate_assignment=True,
        case_sensitive=False,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance.

    Returns:
        Settings: Cached application settings instance
    """
    return Settings()
