"""
Configuration Loader (``backoffice_config.loader``).

Responsibility
--------------
Loads a YAML document and parses it into ``BackofficeSettings``.  Sections
and keys missing from an override document fall back to the packaged
defaults; unknown keys are rejected.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or a value failing validation  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from backoffice_config.schema import (
    BackofficeSettings,
    BillSettings,
    CostCenterSettings,
    LedgerSettings,
    MoneySettings,
    PayrollSettings,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_SECTIONS: dict[str, type] = {
    "ledger": LedgerSettings,
    "cost_centers": CostCenterSettings,
    "payroll": PayrollSettings,
    "bills": BillSettings,
    "money": MoneySettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file and return its contents as a dict."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def merge(defaults: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Section-wise merge; override keys win."""
    merged = {name: dict(defaults.get(name) or {}) for name in _SECTIONS}
    for name, values in override.items():
        if name not in _SECTIONS:
            raise ValueError(f"Unknown configuration section: {name!r}")
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Section {name!r} must be a mapping")
        merged[name].update(values)
    return merged


def _parse_section(name: str, values: dict[str, Any]):
    schema = _SECTIONS[name]
    allowed = {f.name for f in fields(schema)}
    unknown = sorted(set(values) - allowed)
    if unknown:
        raise ValueError(f"Unknown key(s) in section {name!r}: {', '.join(unknown)}")
    try:
        return schema(**values)
    except TypeError as exc:
        raise ValueError(f"Invalid section {name!r}: {exc}") from exc


def parse(data: dict[str, Any], source: str = "") -> BackofficeSettings:
    """Build settings from an already merged document."""
    sections = {name: _parse_section(name, data.get(name) or {}) for name in _SECTIONS}
    return BackofficeSettings(
        **sections,
        checksum=compute_checksum(data),
        source=source,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
