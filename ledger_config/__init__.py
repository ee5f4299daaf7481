"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``load_settings()`` parses a YAML settings file (the bundled
    ``defaults/ledger.yaml`` unless a path is given) into a frozen
    ``LedgerSettings``.  ``get_settings()`` caches the bundled defaults.

Architecture position:
    Configuration.  Sits above ``ledger_kernel`` and below
    ``ledger_services`` / ``ledger_modules``.  The kernel never imports
    from here.

Audit relevance:
    Every load emits a ``LEDGER_CONFIG_TRACE`` record with the file path,
    version and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ledger_config.loader import load_yaml_file, parse_settings
from ledger_config.schema import (
    AgingSettings,
    CashierSettings,
    LedgerSettings,
    RevenueSettings,
    ToleranceSettings,
)

_logger = logging.getLogger("ledger_kernel.config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults" / "ledger.yaml"

_cached: LedgerSettings | None = None


def load_settings(path: Path | str | None = None) -> LedgerSettings:
    """
    Load settings from ``path`` or the bundled defaults.

    Raises:
        FileNotFoundError, yaml.YAMLError, ValueError.
    """
    source = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    settings = parse_settings(load_yaml_file(source))
    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "path": str(source),
            "version": settings.version,
            "checksum": settings.checksum,
            "chart_accounts": len(settings.default_chart),
        },
    )
    return settings


def get_settings() -> LedgerSettings:
    """The bundled default settings, loaded once per process."""
    global _cached
    if _cached is None:
        _cached = load_settings()
    return _cached


def clear_settings_cache() -> None:
    global _cached
    _cached = None


__all__ = [
    "AgingSettings",
    "CashierSettings",
    "DEFAULT_SETTINGS_PATH",
    "LedgerSettings",
    "RevenueSettings",
    "ToleranceSettings",
    "clear_settings_cache",
    "get_settings",
    "load_settings",
]
