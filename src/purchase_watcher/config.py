"""Configuration for the purchase register watcher.

The watcher is driven by a single :class:`WatcherConfig` value built by one of
the loaders below: from environment variables (optionally read from a
``.env`` file) or from command-line arguments layered over them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from dotenv import load_dotenv

from purchase_watcher.errors import ConfigError
from purchase_watcher.excel_reader import (
    DEFAULT_ACTIVE_STATUSES,
    DEFAULT_LOOKBACK_DAYS,
    DEFAULT_MAX_ROWS,
    ExtractionSettings,
)
from purchase_watcher.serial_time import UTC_OFFSET, DateTimePolicy, validate_offset

# Defaults
DEFAULT_SNAPSHOT_PATH = "temp.json"
DEFAULT_POLL_INTERVAL = 30.0  # seconds between modification checks
DEFAULT_SEND_TIMEOUT = 10.0

# Environment variables
ENV_WORKBOOK_PATH = "REG_WORKBOOK_PATH"
ENV_APP_URL = "TGBOT_APP_URL"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class WatcherConfig:
    """Everything the extractor and the watch loop need to run."""

    workbook_path: Path
    app_url: str
    snapshot_path: Path = Path(DEFAULT_SNAPSHOT_PATH)
    poll_interval: float = DEFAULT_POLL_INTERVAL
    lookback_days: Optional[int] = DEFAULT_LOOKBACK_DAYS  # None disables the filter
    max_rows: int = DEFAULT_MAX_ROWS
    timestamp_offset: str = UTC_OFFSET
    datetime_policy: DateTimePolicy = DateTimePolicy.SUM
    active_statuses: frozenset[str] = DEFAULT_ACTIVE_STATUSES
    strict_columns: bool = False
    send_timeout: float = DEFAULT_SEND_TIMEOUT
    remove_snapshot_on_exit: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "workbook_path", Path(self.workbook_path))
        object.__setattr__(self, "snapshot_path", Path(self.snapshot_path))
        object.__setattr__(self, "active_statuses", frozenset(self.active_statuses))
        try:
            object.__setattr__(self, "datetime_policy", DateTimePolicy(self.datetime_policy))
            validate_offset(self.timestamp_offset)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        if self.poll_interval <= 0:
            raise ConfigError("poll interval must be positive")
        if self.max_rows <= 0:
            raise ConfigError("max rows must be positive")
        if self.lookback_days is not None and self.lookback_days < 0:
            raise ConfigError("lookback days must not be negative")
        if not self.active_statuses:
            raise ConfigError("at least one active status is required")

    @property
    def extraction(self) -> ExtractionSettings:
        return ExtractionSettings(
            active_statuses=self.active_statuses,
            lookback_days=self.lookback_days,
            max_rows=self.max_rows,
            timestamp_offset=self.timestamp_offset,
            datetime_policy=self.datetime_policy,
            strict_columns=self.strict_columns,
        )

    def with_overrides(self, **changes: object) -> "WatcherConfig":
        """Return a copy with every non-``None`` override applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _parse_number(name: str, raw: str, kind: Callable[[str], Any]) -> Any:
    try:
        return kind(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def config_from_env(
    environ: Mapping[str, str] | None = None,
    *,
    dotenv_path: str | Path | None = None,
    require_url: bool = True,
) -> WatcherConfig:
    """Build the configuration from environment variables.

    When ``environ`` is not given, a ``.env`` file is loaded first (without
    overriding variables already set) and ``os.environ`` is used. With
    ``require_url=False`` the receiver URL may be absent (extraction only).
    """

    if environ is None:
        load_dotenv(dotenv_path)
        environ = os.environ

    workbook_path = environ.get(ENV_WORKBOOK_PATH)
    app_url = environ.get(ENV_APP_URL, "")
    required = [(ENV_WORKBOOK_PATH, workbook_path)]
    if require_url:
        required.append((ENV_APP_URL, app_url))
    missing = [name for name, value in required if not value]
    if missing:
        raise ConfigError(f"${' and $'.join(missing)} must be set")

    raw_lookback = environ.get("LOOKBACK_DAYS", str(DEFAULT_LOOKBACK_DAYS)).strip()
    lookback: Optional[int] = None
    if raw_lookback.lower() not in ("", "none", "off"):
        lookback = _parse_number("LOOKBACK_DAYS", raw_lookback, int)

    statuses: frozenset[str] = DEFAULT_ACTIVE_STATUSES
    raw_statuses = environ.get("ACTIVE_STATUSES")
    if raw_statuses:
        statuses = frozenset(s.strip() for s in raw_statuses.split(",") if s.strip())

    return WatcherConfig(
        workbook_path=Path(workbook_path),
        app_url=app_url,
        snapshot_path=Path(environ.get("SNAPSHOT_PATH", DEFAULT_SNAPSHOT_PATH)),
        poll_interval=_parse_number(
            "POLL_INTERVAL", environ.get("POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL)), float
        ),
        lookback_days=lookback,
        max_rows=_parse_number("MAX_ROWS", environ.get("MAX_ROWS", str(DEFAULT_MAX_ROWS)), int),
        timestamp_offset=environ.get("TIMESTAMP_OFFSET", UTC_OFFSET),
        datetime_policy=environ.get("DATETIME_POLICY", DateTimePolicy.SUM.value),
        active_statuses=statuses,
        strict_columns=_parse_bool("STRICT_COLUMNS", environ.get("STRICT_COLUMNS", "false")),
        send_timeout=_parse_number(
            "SEND_TIMEOUT", environ.get("SEND_TIMEOUT", str(DEFAULT_SEND_TIMEOUT)), float
        ),
        remove_snapshot_on_exit=_parse_bool(
            "REMOVE_SNAPSHOT_ON_EXIT", environ.get("REMOVE_SNAPSHOT_ON_EXIT", "true")
        ),
    )


__all__ = [
    "DEFAULT_ACTIVE_STATUSES",
    "WatcherConfig",
    "config_from_env",
]
