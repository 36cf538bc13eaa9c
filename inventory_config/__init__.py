"""
inventory_config -- single public entrypoint for runtime settings.

``get_active_settings()`` is the only way services and scripts obtain
configuration.  It loads the packaged ``defaults.yaml``, then the YAML file
named by ``INVENTORY_CONFIG`` (if set), then the environment overrides
``DATABASE_URL``, ``INVENTORY_DAY_TIMEZONE`` and ``INVENTORY_LOG_LEVEL``.

The kernel never imports this package; the service facade and the scripts
pass plain values (timezone, limits) down into it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from inventory_config.loader import compute_checksum, load_settings
from inventory_config.schema import (
    DatabaseSettings,
    InventorySettings,
    LedgerSettings,
    LoggingSettings,
    ReportSettings,
)

_logger = logging.getLogger("inventory_kernel.config")

CONFIG_ENV_VAR = "INVENTORY_CONFIG"


def get_active_settings(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> InventorySettings:
    """
    Resolve the active settings.

    Args:
        config_path: Override file; defaults to $INVENTORY_CONFIG.
        environ: Environment mapping; defaults to os.environ.
    """
    env = os.environ if environ is None else environ
    if config_path is None and env.get(CONFIG_ENV_VAR):
        config_path = Path(env[CONFIG_ENV_VAR])

    settings = load_settings(config_path, env)
    _logger.info(
        "settings_loaded",
        extra={
            "config_path": str(config_path) if config_path else None,
            "checksum": settings.checksum,
            "day_timezone": settings.ledger.day_timezone,
            "serialize_withdrawals": settings.ledger.serialize_withdrawals,
        },
    )
    return settings


__all__ = [
    "DatabaseSettings",
    "InventorySettings",
    "LedgerSettings",
    "LoggingSettings",
    "ReportSettings",
    "compute_checksum",
    "get_active_settings",
]
