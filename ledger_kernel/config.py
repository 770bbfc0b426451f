"""
Module: ledger_kernel.config
Responsibility: Runtime settings for the ledger kernel -- database
    connection, fleet parallelism, retry policy and logging level.
Architecture position: Kernel infrastructure.  Imported by the orchestrator
    and by operator scripts; no service or selector reads settings directly.

Sources, later wins:
    1. Field defaults on LedgerSettings.
    2. An optional YAML file, values nested under a top-level ``ledger:`` key.
    3. ``LEDGER_*`` environment variables (e.g. ``LEDGER_DATABASE_URL``,
       ``LEDGER_FLEET_MAX_WORKERS``).

Failure modes:
    - ConfigurationError on a missing file, malformed YAML, unknown key,
      or a value that cannot be coerced / fails validation.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from ledger_kernel.exceptions import ConfigurationError

ENV_PREFIX = "LEDGER_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class LedgerSettings:
    """
    Immutable settings snapshot.

    Guarantees:
        - fleet_max_workers >= 1 (1 means sequential).
        - consistency_retries >= 0.
        - log_level is an upper-case stdlib level name.
    """

    database_url: str = "sqlite:///ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    fleet_max_workers: int = 4
    consistency_retries: int = 1
    eager_repair: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ConfigurationError("database_url", "must not be empty")
        if self.fleet_max_workers < 1:
            raise ConfigurationError("fleet_max_workers", "must be at least 1")
        if self.consistency_retries < 0:
            raise ConfigurationError("consistency_retries", "must not be negative")
        for name in ("pool_size", "max_overflow", "pool_timeout"):
            if getattr(self, name) < 0:
                raise ConfigurationError(name, "must not be negative")
        level = self.log_level.upper()
        if level not in _LOG_LEVELS:
            raise ConfigurationError("log_level", f"unknown level {self.log_level!r}")
        object.__setattr__(self, "log_level", level)


_FIELD_TYPES: dict[str, type] = {
    "database_url": str,
    "echo": bool,
    "pool_size": int,
    "max_overflow": int,
    "pool_timeout": int,
    "fleet_max_workers": int,
    "consistency_retries": int,
    "eager_repair": bool,
    "log_level": str,
}


def _coerce(key: str, value: Any) -> Any:
    expected = _FIELD_TYPES[key]
    if expected is bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigurationError(key, f"{value!r} is not a boolean")
    if expected is int:
        if isinstance(value, bool):
            raise ConfigurationError(key, f"{value!r} is not an integer")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(key, f"{value!r} is not an integer")
    if not isinstance(value, str):
        raise ConfigurationError(key, f"{value!r} is not a string")
    return value


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigurationError(str(path), "settings file not found")
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"malformed YAML: {exc}")

    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    section = data.get("ledger", {}) or {}
    if not isinstance(section, dict):
        raise ConfigurationError("ledger", "must be a mapping")
    return section


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Build LedgerSettings from defaults, an optional YAML file and env vars.

    Args:
        path: YAML settings file.  Skipped when None.
        environ: Environment mapping; defaults to ``os.environ``.

    Raises:
        ConfigurationError: On any invalid source or value.
    """
    environ = os.environ if environ is None else environ
    values: dict[str, Any] = {}

    if path is not None:
        for key, raw in _read_yaml(Path(path)).items():
            if key not in _FIELD_TYPES:
                raise ConfigurationError(key, "unknown setting")
            values[key] = _coerce(key, raw)

    for field in fields(LedgerSettings):
        env_key = ENV_PREFIX + field.name.upper()
        if env_key in environ:
            values[field.name] = _coerce(field.name, environ[env_key])

    return LedgerSettings(**values)
