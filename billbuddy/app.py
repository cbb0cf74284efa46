"""Process bootstrap: logging, storage checks and the shared services."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from typing import Optional

from .core.bus import EventBus, bus
from .core.config_store import get_config_decimal, get_config_value
from .core.db import init_db, maybe_run_integrity_check
from .core.paths import LOG_FILE, ensure_storage_dirs
from .services.backup import ensure_daily_backup
from .services.billing import BillingEngine
from .services.ledger import OrderLedger

log = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(slots=True)
class Services:
    bus: EventBus
    ledger: OrderLedger
    billing: BillingEngine
    integrity_ok: bool = True
    integrity_report: str = ""


_services: Optional[Services] = None


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger("billbuddy")
    if root.handlers:
        return
    ensure_storage_dirs()
    resolved = (level or str(get_config_value("log_level", "INFO"))).upper()
    root.setLevel(getattr(logging, resolved, logging.INFO))
    formatter = logging.Formatter(_LOG_FORMAT)

    file_handler = RotatingFileHandler(LOG_FILE, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.setLevel(logging.WARNING)
    root.addHandler(console)


def bootstrap(*, backup: bool = True) -> Services:
    """Initialise storage once per process and return the shared services."""
    global _services
    if _services is not None:
        return _services

    configure_logging()
    init_db()
    if backup:
        ensure_daily_backup()
    ok, report = maybe_run_integrity_check()
    if not ok:
        log.error("database integrity check reported: %s", report)

    ledger = OrderLedger(
        bus,
        default_tax_pct=get_config_decimal("default_tax_pct"),
        default_discount_pct=get_config_decimal("default_discount_pct"),
    )
    _services = Services(
        bus=bus,
        ledger=ledger,
        billing=BillingEngine(ledger),
        integrity_ok=ok,
        integrity_report=report,
    )
    log.info("billing core ready")
    return _services


def get_services() -> Services:
    return bootstrap()


def reset_services() -> None:
    """Forget the shared services (used when the database is swapped)."""
    global _services
    _services = None
