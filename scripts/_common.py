"""
Shared setup for the operator scripts: settings, logging, engine, service.
"""

from __future__ import annotations

import argparse
from pathlib import Path

from sqlalchemy.orm import Session

from inventory_config import InventorySettings, get_active_settings
from inventory_kernel.db.engine import create_tables, get_session, init_engine_from_url
from inventory_kernel.logging_config import configure_logging
from inventory_services import InventoryLedgerService


def add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings YAML (default: $INVENTORY_CONFIG, then packaged defaults).",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (default: database.url from settings or $DATABASE_URL).",
    )


def open_ledger(args: argparse.Namespace) -> tuple[Session, InventoryLedgerService]:
    """Load settings, configure logging, open a session and build the facade."""
    settings: InventorySettings = get_active_settings(args.config)
    configure_logging(level=settings.logging.level)
    db = settings.database
    init_engine_from_url(
        args.db_url or db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        pool_recycle=db.pool_recycle,
    )
    create_tables()
    session = get_session()
    return session, InventoryLedgerService(session, settings=settings)
