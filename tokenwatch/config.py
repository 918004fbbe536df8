"""
TokenWatch - Configuration System

All configuration is Pydantic-validated and loaded from:
1. default.yaml (defaults)
2. .env / environment variables (overrides)
3. Explicit overrides passed by the caller

Every tunable parameter of the engines lives here.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─── Sub-configs ──────────────────────────────────────────────────


class EndpointsConfig(BaseModel):
    """Per-source endpoints. Empty means the source is not configured."""

    rpc_url: str = ""            # Primary RPC; v3 and legacy v1 APIs share it
    rpc_url_secondary: str = ""  # Independent second RPC (rpc_v3_2)
    indexer_url: str = ""        # Block-explorer GraphQL endpoint


class VerifyConfig(BaseModel):
    timeout_s: float = 10.0           # Per-source, per-attempt deadline
    overall_timeout_s: float = 60.0   # Whole verification run
    max_retries: int = 2              # Extra attempts after the first
    base_delay_s: float = 0.5         # Exponential backoff base
    max_concurrency: int = 4          # One task per source, bounded

    @model_validator(mode="after")
    def _check_bounds(self) -> VerifyConfig:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.overall_timeout_s < self.timeout_s:
            raise ValueError("overall_timeout_s must be >= timeout_s")
        return self


class DiffConfig(BaseModel):
    ignore_supply: bool = False
    large_supply_pct_threshold: float = 0.01       # |delta| / max(prev, 1)
    large_supply_delta_threshold: int = 1_000_000  # Base units


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


# ─── Root Configuration ──────────────────────────────────────────


class TokenWatchConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="TOKENWATCH_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    endpoints: EndpointsConfig = Field(default_factory=EndpointsConfig)
    verify: VerifyConfig = Field(default_factory=VerifyConfig)
    diff: DiffConfig = Field(default_factory=DiffConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> TokenWatchConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.
    """
    load_dotenv()
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    # Endpoints are commonly exported without the nested form
    if rpc_url := os.environ.get("TOKENWATCH_RPC_URL"):
        raw.setdefault("endpoints", {})["rpc_url"] = rpc_url
    if rpc_url_2 := os.environ.get("TOKENWATCH_RPC_URL_SECONDARY"):
        raw.setdefault("endpoints", {})["rpc_url_secondary"] = rpc_url_2
    if indexer_url := os.environ.get("TOKENWATCH_INDEXER_URL"):
        raw.setdefault("endpoints", {})["indexer_url"] = indexer_url
    if log_level := os.environ.get("TOKENWATCH_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level
    if log_format := os.environ.get("TOKENWATCH_LOG_FORMAT"):
        raw.setdefault("logging", {})["format"] = log_format

    if overrides:
        raw = _deep_merge(raw, overrides)

    return TokenWatchConfig(**raw)
