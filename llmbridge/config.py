"""
Centralized configuration for llmbridge.

All settings are loaded from environment variables with sensible defaults.
Pydantic Settings provides validation and type coercion.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env then .env.local (so .env.local overrides).
_repo_root = Path(__file__).resolve().parent.parent
load_dotenv(_repo_root / ".env")
_env_local = _repo_root / ".env.local"
if _env_local.exists():
    load_dotenv(_env_local, override=True)


DEFAULT_LLM_MODEL_ID = "gpt-3.5-turbo|openai"


class BlockRunnerConfig(BaseSettings):
    """Where and how workflow blocks are executed."""

    url: str = Field(
        default="http://localhost:1688/api/v1",
        alias="BLOCK_RUNNER_URL",
        description="Base URL of the workflow engine block endpoint.",
    )
    api_key: str = Field(default="", alias="BLOCK_RUNNER_API_KEY")
    timeout: float = Field(default=120.0, alias="BLOCK_RUNNER_TIMEOUT")  # seconds
    # retries after the first attempt
    max_retries: int = Field(default=3, alias="BLOCK_RUNNER_MAX_RETRIES")


class ModelConfig(BaseSettings):
    """Model catalog, context sizes and tier selection."""

    local_llms_directories_json: str = Field(
        default="user_files/local_llms_directories.json",
        alias="LOCAL_LLMS_DIRECTORIES_JSON",
        description="JSON file mapping local provider name -> models directory (relative to cwd).",
    )
    context_size_margin: int = Field(default=500, alias="LLM_CONTEXT_SIZE_MARGIN")
    default_unknown_context_size: int = Field(default=2048, alias="DEFAULT_UNKNOWN_CONTEXT_SIZE")
    max_size_ratio: float = Field(default=0.9, alias="MODEL_MAX_SIZE_RATIO")
    # False keeps gpt-4-32k downgrading to gpt-3.5-turbo
    strict_family_downgrade: bool = Field(default=False, alias="LLM_STRICT_FAMILY_DOWNGRADE")
    default_model_id: str = Field(default=DEFAULT_LLM_MODEL_ID, alias="DEFAULT_LLM_MODEL_ID")


class RepairConfig(BaseSettings):
    """Self-repair loop for malformed JSON output."""

    max_attempts: int = Field(default=10, alias="JSON_REPAIR_MAX_ATTEMPTS")
    cooldown_seconds: float = Field(default=0.5, alias="JSON_REPAIR_COOLDOWN_SECONDS")
    model: str = Field(default="gpt-3.5-turbo", alias="JSON_REPAIR_MODEL")


class ObservabilityConfig(BaseSettings):
    """Logging and Prometheus metrics."""

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    metrics_enabled: bool = Field(default=False, alias="PROMETHEUS_METRICS_ENABLED")
    metrics_port: int = Field(default=8000, alias="PROMETHEUS_METRICS_PORT")


class Settings(BaseSettings):
    """Root settings container; all config is reached through this object."""

    block_runner: BlockRunnerConfig = Field(default_factory=BlockRunnerConfig)
    models: ModelConfig = Field(default_factory=ModelConfig)
    repair: RepairConfig = Field(default_factory=RepairConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton settings instance. Cached after first call."""
    return Settings()
