"""Settings kept in ``settings.json`` beside the database.

Writes go through a temp file and ``os.replace`` so a crash never leaves a
half-written file behind. Unknown or unreadable content falls back to the
shipped defaults.
"""
from __future__ import annotations

import json
import os
from decimal import Decimal, InvalidOperation
from threading import RLock
from typing import Any, Dict

from .paths import SETTINGS_FILE, ensure_storage_dirs

_LOCK = RLock()
DEFAULTS: Dict[str, Any] = {
    "sqlite_synchronous": "FULL",
    "default_tax_pct": "5",
    "default_discount_pct": "0",
    "history_limit": 50,
    "log_level": "INFO",
    "last_backup_date": "",
    "last_integrity_check": "",
}


def _write(payload: Dict[str, Any]) -> None:
    SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    staging = SETTINGS_FILE.with_suffix(".tmp")
    staging.write_text(
        json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True),
        encoding="utf-8",
    )
    os.replace(staging, SETTINGS_FILE)


def _read() -> Dict[str, Any]:
    try:
        data = json.loads(SETTINGS_FILE.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config() -> Dict[str, Any]:
    """Current settings, with any missing keys filled in and persisted."""
    with _LOCK:
        ensure_storage_dirs()
        stored = _read()
        merged = {**DEFAULTS, **stored}
        if merged != stored:
            _write(merged)
        return merged


def save_config(data: Dict[str, Any]) -> None:
    with _LOCK:
        _write({**DEFAULTS, **data})


def get_config_value(key: str, default: Any = None) -> Any:
    return load_config().get(key, default)


def set_config_value(key: str, value: Any) -> None:
    with _LOCK:
        config = load_config()
        if config.get(key) != value:
            config[key] = value
            save_config(config)


def get_config_decimal(key: str) -> Decimal:
    """Read a percentage-like value, falling back to the shipped default."""
    fallback = str(DEFAULTS.get(key, "0"))
    try:
        return Decimal(str(get_config_value(key, fallback)))
    except (InvalidOperation, ValueError):
        return Decimal(fallback)
