"""
InventorySettings schema.

The typed, frozen form of the YAML configuration.  The loader parses
``defaults.yaml`` plus any override file into these dataclasses; nothing
else in the system reads configuration files or environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    """Backing store connection."""

    url: str = "sqlite:///inventory.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class LedgerSettings:
    """Write-side behavior of the ledger."""

    # IANA name; every event_date and "today" is computed in this zone
    day_timezone: str = "UTC"
    # Hold per-item locks around prepare + commit of withdrawals
    serialize_withdrawals: bool = False
    # Actor recorded on imported batches whose source names none
    import_actor_id: str = "00000000-0000-0000-0000-000000000000"


@dataclass(frozen=True)
class ReportSettings:
    """Read-side limits and defaults."""

    max_range_days: int = 366
    row_policy: str = "active_or_nonzero"
    recent_batch_limit: int = 10


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class InventorySettings:
    """Root configuration object."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    reports: ReportSettings = field(default_factory=ReportSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""
