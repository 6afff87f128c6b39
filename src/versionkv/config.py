"""Configuration for the VersionKV store."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any

import yaml

ENV_PREFIX = "VERSIONKV_"


@dataclass
class StoreConfig:
    """Configuration for a versioned store and its SQLite gateway."""

    db_path: str = "vkv.db"
    timeout_s: float = 5.0
    busy_timeout_ms: int = 5000
    wal_mode: bool = True
    strict_registration: bool = False
    log_level: str = "WARNING"


def _coerce(name: str, raw: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        value = str(raw).strip().lower()
        if value in ("1", "true", "yes", "on"):
            return True
        if value in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"Invalid boolean for '{name}': {raw!r}")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return str(raw)


def load_config(path: str | None = None, *, environ: dict[str, str] | None = None) -> StoreConfig:
    """Build a StoreConfig from an optional YAML file and VERSIONKV_* variables.

    Environment variables win over file values; unknown file keys are rejected.
    """
    env = os.environ if environ is None else environ
    defaults = StoreConfig()
    values: dict[str, Any] = {}

    if path:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file '{path}' must contain a mapping")
        known = {f.name for f in fields(StoreConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys in '{path}': {unknown}")
        values.update(data)

    for f in fields(StoreConfig):
        raw = env.get(f"{ENV_PREFIX}{f.name.upper()}")
        if raw is not None:
            values[f.name] = raw

    return StoreConfig(
        **{name: _coerce(name, raw, getattr(defaults, name)) for name, raw in values.items()}
    )
