"""Runner settings and loading."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, DotEnvSettingsSource, SettingsConfigDict

from cometqa.errors import ConfigValidationError, ErrorContext

ENV_PREFIX = "COMETQA_"
VALID_REPORT_FORMATS = {"console", "json"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class RunnerSettings(BaseSettings):
    """Settings for the scenario runner."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    workers: int = Field(default=4, description="Scenario executions allowed to run concurrently")
    fail_fast: bool = False
    verify_constraints: bool = Field(
        default=True, description="Run each constraint's check after its solutions are applied"
    )
    fail_on_conflict: bool = Field(
        default=False,
        description="Treat two constraints writing the same configuration field as a setup failure",
    )
    log_level: str = "INFO"
    json_logs: bool = False
    network: str = "mainnet"
    deployment: str = "usdc"
    rpc_url: str | None = None
    rpc_timeout: float = 30.0
    report_dir: str = "reports"
    report_formats: list[str] = Field(default_factory=lambda: ["console"])

    @field_validator("workers", mode="before")
    @classmethod
    def validate_workers(cls, v: Any) -> Any:
        try:
            count = int(v)
        except (TypeError, ValueError):
            count = 0
        if count < 1:
            raise ConfigValidationError(
                message="workers must be a positive integer",
                field="workers",
                value=v,
                expected=">= 1",
            )
        return count

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = str(v).upper()
        if level not in VALID_LOG_LEVELS:
            raise ConfigValidationError(
                message=f"Invalid log level: {v}",
                field="log_level",
                value=v,
                context=ErrorContext(extra={"valid_levels": sorted(VALID_LOG_LEVELS)}),
            )
        return level

    @field_validator("rpc_url", mode="before")
    @classmethod
    def validate_rpc_url(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not str(v).startswith(("http://", "https://")):
            raise ConfigValidationError(
                message="rpc_url must be an http(s) URL",
                field="rpc_url",
                value=v,
                context=ErrorContext(extra={"expected_prefix": "http://"}),
            )
        return v

    @field_validator("report_formats", mode="before")
    @classmethod
    def validate_report_formats(cls, v: Any) -> list[str]:
        if isinstance(v, str):
            v = [item.strip() for item in v.split(",") if item.strip()]
        invalid = set(v) - VALID_REPORT_FORMATS
        if invalid:
            raise ConfigValidationError(
                message=f"Invalid report formats: {sorted(invalid)}. Valid: {sorted(VALID_REPORT_FORMATS)}",
                field="report_formats",
                value=v,
                context=ErrorContext(extra={"valid_formats": sorted(VALID_REPORT_FORMATS)}),
            )
        return list(v)


def load_settings(config_path: str | Path | None = None) -> RunnerSettings:
    """Load settings from a YAML file and the environment.

    Priority: env vars and .env > config file > defaults
    """
    config_data: dict[str, Any] = {}

    if config_path is not None:
        config_path = Path(config_path)
        if config_path.exists():
            with open(config_path) as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise ConfigValidationError(
                    message=f"{config_path} must contain a mapping",
                    value=type(loaded).__name__,
                    expected="mapping",
                )
            config_data = loaded

    # Init kwargs outrank the environment and .env in pydantic-settings, so
    # file values that are also set in either are dropped here.
    for key in _env_overridden_fields():
        config_data.pop(key, None)

    return RunnerSettings(**config_data)


def _env_overridden_fields() -> set[str]:
    names = set()
    for name in RunnerSettings.model_fields:
        if os.environ.get(f"{ENV_PREFIX}{name.upper()}") is not None:
            names.add(name)
    names.update(DotEnvSettingsSource(RunnerSettings)())
    return names
