"""
Settings loader (``stock_config.loader``).

Responsibility
--------------
Reads a YAML settings file and parses it into the frozen dataclasses of
``stock_config.schema``.

Resolution order
----------------
1. The ``path`` argument, when given.
2. The ``STOCK_LEDGER_CONFIG`` environment variable.
3. The packaged ``defaults.yaml`` beside this module.

``DATABASE_URL``, when set, overrides ``database.url`` from the file.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import AttributionSettings, DatabaseSettings, LedgerSettings

CONFIG_ENV_VAR = "STOCK_LEDGER_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"
DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    An empty file yields an empty dict.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")
    return data


def _section(data: dict[str, Any], name: str, allowed: type) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' must be a mapping")
    unknown = set(section) - set(allowed.__dataclass_fields__)
    if unknown:
        raise ValueError(f"unknown keys in '{name}': {sorted(unknown)}")
    return section


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """Build LedgerSettings from an already-loaded mapping."""
    unknown = set(data) - {"database", "attribution", "log_level"}
    if unknown:
        raise ValueError(f"unknown top-level keys: {sorted(unknown)}")

    database = dict(_section(data, "database", DatabaseSettings))
    env_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if env_url:
        database["url"] = env_url

    return LedgerSettings(
        database=DatabaseSettings(**database),
        attribution=AttributionSettings(**_section(data, "attribution", AttributionSettings)),
        log_level=str(data.get("log_level", "INFO")),
    )


def load_settings(path: str | Path | None = None) -> LedgerSettings:
    """Resolve, read and parse the settings file."""
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or DEFAULTS_PATH
    return parse_settings(load_yaml_file(Path(path)))


def compute_checksum(settings: LedgerSettings) -> str:
    """
    SHA-256 of the canonical JSON form of ``settings``.

    Identical settings always produce identical checksums.
    """
    canonical = json.dumps(asdict(settings), sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
