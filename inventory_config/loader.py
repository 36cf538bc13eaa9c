"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Reads the packaged defaults, an optional override file and a small set of
environment variables, and parses the merged result into a frozen
``InventorySettings``.

Invariants enforced
-------------------
* Precedence: defaults.yaml < override file < environment.
* Unknown keys are rejected, so a typo never silently falls back to a
  default.
* ``compute_checksum`` is deterministic over the merged data.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section/key, bad timezone, bad row policy  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any, Mapping
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from inventory_config.schema import (
    DatabaseSettings,
    InventorySettings,
    LedgerSettings,
    LoggingSettings,
    ReportSettings,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "DATABASE_URL": ("database", "url"),
    "INVENTORY_DAY_TIMEZONE": ("ledger", "day_timezone"),
    "INVENTORY_LOG_LEVEL": ("logging", "level"),
}

_SECTIONS = {
    "database": DatabaseSettings,
    "ledger": LedgerSettings,
    "reports": ReportSettings,
    "logging": LoggingSettings,
}

_ROW_POLICIES = ("active_or_nonzero", "all")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Section-wise merge; override keys win."""
    merged: dict[str, Any] = {k: dict(v or {}) for k, v in base.items()}
    for section, values in override.items():
        merged.setdefault(section, {}).update(values or {})
    return merged


def apply_env_overrides(data: Mapping[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    result = merge(data, {})
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            result.setdefault(section, {})[key] = value
    return result


def compute_checksum(data: Mapping[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _parse_section(name: str, values: Mapping[str, Any]):
    cls = _SECTIONS[name]
    allowed = {f.name for f in fields(cls)}
    unknown = set(values) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {sorted(unknown)}")
    return cls(**values)


def _validate(settings: InventorySettings) -> None:
    try:
        if settings.ledger.day_timezone.upper() != "UTC":
            ZoneInfo(settings.ledger.day_timezone)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Unknown day_timezone: {settings.ledger.day_timezone}") from exc
    UUID(settings.ledger.import_actor_id)
    if settings.reports.max_range_days < 1:
        raise ValueError("reports.max_range_days must be at least 1")
    if settings.reports.row_policy not in _ROW_POLICIES:
        raise ValueError(
            f"reports.row_policy must be one of {_ROW_POLICIES}, "
            f"got {settings.reports.row_policy!r}"
        )


def parse_settings(data: Mapping[str, Any]) -> InventorySettings:
    """
    Parse merged configuration data.

    Raises:
        ValueError: unknown section or key, or an invalid value.
    """
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")
    sections = {name: _parse_section(name, data.get(name) or {}) for name in _SECTIONS}
    settings = InventorySettings(**sections, checksum=compute_checksum(data))
    _validate(settings)
    return settings


def load_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> InventorySettings:
    """Defaults, then ``config_path`` (if any), then ``environ`` overrides."""
    data = load_yaml_file(DEFAULTS_PATH)
    if config_path is not None:
        data = merge(data, load_yaml_file(Path(config_path)))
    if environ is not None:
        data = apply_env_overrides(data, environ)
    return parse_settings(data)
