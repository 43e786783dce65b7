# src/spotmap/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/spotmap/config/defaults.yaml`, then optionally overridden by:
- an external YAML file via `SPOTMAP_CONFIG_PATH` (replaces the packaged defaults)
- environment variables (e.g., `SPOTMAP_LOG_LEVEL`, `SPOTMAP_FIREBASE_PROJECT_ID`)

Design rule:
- Tuning knobs (page sizes, batch limits, timeouts, confidence) live in YAML, not in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal
from spotmap.core.env import load_dotenv_if_present

import yaml
from pydantic import BaseModel, Field


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `spotmap.config`."""
    text = resources.files("spotmap.config").joinpath(filename).read_text(encoding="utf-8")
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
    name: str = "Spotmap"
    log_level: str = "INFO"


class GeoSettings(BaseModel):
    earth_radius_km: float = Field(6371.0, gt=0)
    geohash_precision: int = Field(12, ge=1, le=12)
    min_cos_latitude: float = Field(1e-6, gt=0, lt=1)


class CollectionNames(BaseModel):
    spots: str = "spots"
    ratings: str = "ratings"
    audit_log: str = "auditLog"
    users: str = "users"
    spot_reports: str = "spotReports"


class StoreSettings(BaseModel):
    backend: Literal["memory", "firestore"] = "memory"
    project_id: str | None = None
    credentials_path: str | None = None
    collections: CollectionNames = Field(default_factory=CollectionNames)


class JobSettings(BaseModel):
    page_size: int = Field(1000, ge=1)
    # Firestore rejects batches above 500 writes.
    batch_size: int = Field(400, ge=1, le=500)


class RankingSettings(BaseModel):
    confidence: float = Field(0.95, gt=0, lt=1)
    min_rating: float = 1.0
    max_rating: float = 5.0
    refresh_on_rate: bool = True
    top_ranked_limit: int = Field(100, ge=1)


class FunctionsSettings(BaseModel):
    region: str = "europe-west1"
    project_id: str | None = None
    base_url: str | None = None
    default_timeout_seconds: float = 70
    bulk_recompute_timeout_seconds: float = 9 * 60
    bulk_import_timeout_seconds: float = 60 * 60

    def endpoint_base(self) -> str | None:
        """Return the callable base URL (explicit `base_url` wins over region/project)."""
        if self.base_url:
            return self.base_url.rstrip("/")
        if self.project_id:
            return f"https://{self.region}-{self.project_id}.cloudfunctions.net"
        return None


class AuditSettings(BaseModel):
    default_limit: int = Field(100, ge=1)


class ApiSettings(BaseModel):
    nearby_max_radius_km: float = Field(200.0, gt=0)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    geo: GeoSettings = Field(default_factory=GeoSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    jobs: JobSettings = Field(default_factory=JobSettings)
    ranking: RankingSettings = Field(default_factory=RankingSettings)
    functions: FunctionsSettings = Field(default_factory=FunctionsSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("SPOTMAP_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    backend = os.getenv("SPOTMAP_STORE_BACKEND")
    if backend:
        data.setdefault("store", {})["backend"] = backend

    project_id = os.getenv("SPOTMAP_FIREBASE_PROJECT_ID")
    if project_id:
        data.setdefault("store", {})["project_id"] = project_id
        data.setdefault("functions", {})["project_id"] = project_id

    credentials = os.getenv("SPOTMAP_FIREBASE_CREDENTIALS")
    if credentials:
        data.setdefault("store", {})["credentials_path"] = credentials

    functions_url = os.getenv("SPOTMAP_FUNCTIONS_BASE_URL")
    if functions_url:
        data.setdefault("functions", {})["base_url"] = functions_url

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("SPOTMAP_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
