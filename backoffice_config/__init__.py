"""
backoffice_config -- single public entrypoint for back-office configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    directly.

Architecture position:
    Configuration -- sits above ``backoffice_kernel`` and below
    ``backoffice_modules`` / ``scripts``.  The kernel MUST NEVER import from
    ``backoffice_config``; modules pass plain values (limits, codes) into
    kernel services.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ValueError`` -- unknown keys or values failing validation.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``backoffice_config_loaded`` log entry with the document checksum, so
    every run can be tied to the exact configuration that governed it.
"""

from __future__ import annotations

from pathlib import Path

from backoffice_config.loader import DEFAULTS_PATH, load_yaml_file, merge, parse
from backoffice_config.schema import (
    BackofficeSettings,
    BillSettings,
    CostCenterSettings,
    LedgerSettings,
    MoneySettings,
    PayrollSettings,
)
from backoffice_kernel.logging_config import get_logger

_logger = get_logger("config")

__all__ = [
    "BackofficeSettings",
    "BillSettings",
    "CostCenterSettings",
    "LedgerSettings",
    "MoneySettings",
    "PayrollSettings",
    "get_active_config",
]


def get_active_config(config_path: Path | str | None = None) -> BackofficeSettings:
    """
    The ONLY public configuration entrypoint.

    Loads the packaged ``defaults.yaml`` and, when ``config_path`` is
    given, overlays it section by section.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        ValueError: If the merged document fails validation.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    source = str(DEFAULTS_PATH)
    if config_path is not None:
        path = Path(config_path)
        data = merge(data, load_yaml_file(path))
        source = str(path)
    else:
        data = merge({}, data)

    settings = parse(data, source=source)
    _logger.info(
        "backoffice_config_loaded",
        extra={
            "source": settings.source,
            "checksum": settings.checksum,
            "max_rebuild_entries": settings.ledger.max_rebuild_entries,
            "payroll_parent_code": settings.cost_centers.payroll_parent_code,
        },
    )
    return settings
