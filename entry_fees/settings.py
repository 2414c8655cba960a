"""
Engine settings.

Responsibility:
    Single place that reads configuration.  Defaults ship with the package
    in ``defaults.yaml``; an optional YAML file overlays them, and the
    database URL can finally be overridden from the environment.

Failure modes:
    - FileNotFoundError if an explicit settings path does not exist.
    - yaml.YAMLError on malformed YAML.
    - KeyError / ValueError on missing or mistyped keys.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

_DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

DATABASE_URL_ENV_VARS = ("ENTRY_FEES_DATABASE_URL", "DATABASE_URL")


@dataclass(frozen=True)
class EngineSettings:
    """Immutable, fully-resolved engine configuration."""

    database_url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    statement_number_prefix: str = "PL"
    amount_scale: int = 2
    conflict_report_limit: int = 20
    default_currency: str = "EUR"
    max_cancel_batch_size: int = 100
    list_default_limit: int = 50
    list_max_limit: int = 200

    def clamp_limit(self, limit: int | None) -> int:
        """Clamp a listing page size into [1, list_max_limit]."""
        if limit is None:
            return self.list_default_limit
        return min(max(limit, 1), self.list_max_limit)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def settings_from_dict(data: dict[str, Any]) -> EngineSettings:
    """Build EngineSettings from the nested YAML structure."""
    database = data["database"]
    statements = data.get("statements", {})
    payment_lists = data.get("payment_lists", {})
    batch = data.get("batch", {})
    listing = data.get("listing", {})

    return EngineSettings(
        database_url=str(database["url"]),
        echo=bool(database.get("echo", False)),
        pool_size=int(database.get("pool_size", 10)),
        max_overflow=int(database.get("max_overflow", 10)),
        pool_timeout=int(database.get("pool_timeout", 30)),
        pool_recycle=int(database.get("pool_recycle", 1800)),
        statement_number_prefix=str(statements.get("number_prefix", "PL")),
        amount_scale=int(statements.get("amount_scale", 2)),
        conflict_report_limit=int(payment_lists.get("conflict_report_limit", 20)),
        default_currency=str(payment_lists.get("default_currency", "EUR")),
        max_cancel_batch_size=int(batch.get("max_cancel_batch_size", 100)),
        list_default_limit=int(listing.get("default_limit", 50)),
        list_max_limit=int(listing.get("max_limit", 200)),
    )


def load_settings(
    path: Path | None = None,
    environ: dict[str, str] | None = None,
) -> EngineSettings:
    """
    Resolve settings: packaged defaults, then ``path``, then environment.

    Args:
        path: Optional YAML file whose keys overlay the defaults.
        environ: Environment mapping (defaults to ``os.environ``).
    """
    env = os.environ if environ is None else environ
    data = load_yaml_file(_DEFAULTS_PATH)
    if path is not None:
        data = _merge(data, load_yaml_file(path))

    for var in DATABASE_URL_ENV_VARS:
        if env.get(var):
            data = _merge(data, {"database": {"url": env[var]}})
            break

    return settings_from_dict(data)


_default_settings: EngineSettings | None = None


def get_settings() -> EngineSettings:
    """Process-wide settings, loaded once from defaults and environment."""
    global _default_settings
    if _default_settings is None:
        _default_settings = load_settings()
    return _default_settings
