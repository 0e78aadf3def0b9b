# src/bunda/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/bunda/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `MAPBOX_API_KEY`, `BUNDA_DATABASE_URL`)
- an external YAML file via `BUNDA_CONFIG_PATH`

Design rule:
- Search limits, cache TTLs and geocoding fallbacks live in YAML, not in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from bunda.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `bunda.config`."""
    text = resources.files("bunda.config").joinpath(filename).read_text(encoding="utf-8")
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
    name: str = "Bunda API"
    http_timeout_seconds: float = 10
    log_level: str = "INFO"


class DatabaseSettings(BaseModel):
    url: str = "sqlite:///bunda.sqlite"
    echo: bool = False


class CacheSettings(BaseModel):
    enabled: bool = True
    default_ttl_seconds: int = Field(60 * 60 * 24 * 7, gt=0)


class SearchSettings(BaseModel):
    max_radius_km: float = Field(50, gt=0)
    default_radius_km: float = Field(10, gt=0)
    default_page_size: int = Field(10, ge=1)
    max_page_size: int = Field(100, ge=1)
    default_status: str = "available"
    region_radius_km: float = Field(3, gt=0)
    address_min_confidence: float = Field(0.7, ge=0, le=1)
    region_min_confidence: float = Field(0.5, ge=0, le=1)


class FallbackLocation(BaseModel):
    lat: float = 50.8503
    lon: float = 4.3517
    label: str = "België"


class GeocodingSettings(BaseModel):
    base_url: str = "https://api.mapbox.com/geocoding/v5/mapbox.places"
    access_token: str | None = None
    country: str = "be"
    country_name: str = "België"
    fallback: FallbackLocation = Field(default_factory=FallbackLocation)
    reverse_fallback_label: str = "Onbekende locatie in België"
    suggestion_min_chars: int = Field(3, ge=0)
    suggestion_default_limit: int = Field(5, ge=1)
    batch_limit: int = Field(50, ge=1)
    max_requests_per_minute: float | None = Field(default=None, gt=0)
    normalize_cache_keys: bool = False
    reverse_key_decimals: int = Field(5, ge=0, le=10)


class BackfillSettings(BaseModel):
    batch_size: int = Field(100, ge=1)
    delay_seconds: float = Field(0.2, ge=0)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    geocoding: GeocodingSettings = Field(default_factory=GeocodingSettings)
    backfill: BackfillSettings = Field(default_factory=BackfillSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("BUNDA_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    database_url = os.getenv("BUNDA_DATABASE_URL")
    if database_url:
        data.setdefault("database", {})["url"] = database_url

    token = os.getenv("MAPBOX_API_KEY")
    if token:
        data.setdefault("geocoding", {})["access_token"] = token

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("BUNDA_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
