# src/agromatch/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/agromatch/config/defaults.yaml`, then optionally overridden by:
- an external YAML file via `AGROMATCH_CONFIG_PATH`
- environment variables (e.g., `AGROMATCH_LOG_LEVEL`)

Design rule:
- Tuning knobs (cluster radius, thresholds) live in YAML, not hard-coded in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from agromatch.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `agromatch.config`."""
    text = resources.files("agromatch.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    log_level: str = "INFO"


class ClusteringSettings(BaseModel):
    radius_km: float = Field(10.0, gt=0)
    min_members: int = Field(3, ge=2)
    high_priority_members: int = Field(5, ge=2)
    exclude_fulfilled: bool = True


class RankingSettings(BaseModel):
    nearby_radius_km: float = Field(10.0, gt=0)
    default_limit: int | None = Field(default=None, ge=1)


class MessagingSettings(BaseModel):
    max_text_length: int = Field(2000, ge=1)


class DataSettings(BaseModel):
    requests_path: str = "data/requests.sample.json"


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    clustering: ClusteringSettings = Field(default_factory=ClusteringSettings)
    ranking: RankingSettings = Field(default_factory=RankingSettings)
    messaging: MessagingSettings = Field(default_factory=MessagingSettings)
    data: DataSettings = Field(default_factory=DataSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload."""
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("AGROMATCH_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    requests_path = os.getenv("AGROMATCH_REQUESTS_PATH")
    if requests_path:
        data.setdefault("data", {})["requests_path"] = requests_path

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("AGROMATCH_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
