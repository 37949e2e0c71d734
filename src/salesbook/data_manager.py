"""Configuration handling for salesbook.

This module finds and parses ``config.ini`` into a typed
:class:`ConfigSettings`. Workbook lifecycle lives in
:mod:`salesbook.workbook`; row encoding lives in :mod:`salesbook.codec`.

Example ``config.ini``::

    [System]
    DataFile = data/salesbook.xlsx
    BusinessName = Corner Shop
    SchemaVersion = 1.0.0

    [Persistence]
    BackupRetention = 5

    [Runtime]
    CacheTtlSeconds = 5
    DebounceSeconds = 0.3

    [Defaults]
    ReorderLevel = 10
    InvoiceStatus = Pending
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from .constants import (
    DEFAULT_BACKUP_RETENTION,
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_REORDER_LEVEL,
    InvoiceStatus,
)


CONFIG_FILE_NAME = "config.ini"


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    business_name: str
    schema_version: str
    backup_retention: int = DEFAULT_BACKUP_RETENTION
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    default_reorder_level: Decimal = DEFAULT_REORDER_LEVEL
    default_invoice_status: str = InvoiceStatus.PENDING.value


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how salesbook behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no ``CONFIG_FILE_NAME`` exists in the working
            directory or any of its parents.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` is required. ``[Persistence]``, ``[Runtime]`` and
    ``[Defaults]`` are optional and fall back to the package defaults. Relative
    ``DataFile`` entries are expanded against ``base_path`` when provided, or
    against the current working directory.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory anchoring relative ``DataFile``
            entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required section or option is missing.
        ValueError: If a numeric option is malformed or out of range, or the
            default invoice status is unknown.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        business_name = parser.get("System", "BusinessName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw).expanduser()
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    try:
        backup_retention = parser.getint("Persistence", "BackupRetention", fallback=DEFAULT_BACKUP_RETENTION)
        cache_ttl = parser.getfloat("Runtime", "CacheTtlSeconds", fallback=DEFAULT_CACHE_TTL_SECONDS)
        debounce = parser.getfloat("Runtime", "DebounceSeconds", fallback=DEFAULT_DEBOUNCE_SECONDS)
    except ValueError as exc:
        raise ValueError(f"Malformed numeric configuration entry: {exc}") from exc

    reorder_raw = parser.get("Defaults", "ReorderLevel", fallback=str(DEFAULT_REORDER_LEVEL))
    try:
        reorder_level = Decimal(reorder_raw.strip())
    except InvalidOperation as exc:
        raise ValueError(f"Malformed ReorderLevel: {reorder_raw!r}") from exc

    status_raw = parser.get("Defaults", "InvoiceStatus", fallback=InvoiceStatus.PENDING.value)
    try:
        invoice_status = InvoiceStatus(status_raw.strip()).value
    except ValueError as exc:
        raise ValueError(f"Unknown default InvoiceStatus: {status_raw!r}") from exc

    if backup_retention < 1:
        raise ValueError("BackupRetention must be at least 1")
    if cache_ttl < 0 or debounce < 0:
        raise ValueError("CacheTtlSeconds and DebounceSeconds cannot be negative")
    if reorder_level < 0:
        raise ValueError("ReorderLevel cannot be negative")

    return ConfigSettings(
        data_file=data_file_path,
        business_name=business_name,
        schema_version=schema_version,
        backup_retention=backup_retention,
        cache_ttl_seconds=cache_ttl,
        debounce_seconds=debounce,
        default_reorder_level=reorder_level,
        default_invoice_status=invoice_status,
    )


def load_settings(config_path: Optional[Path] = None) -> ConfigSettings:
    """Find, read and parse the configuration in one call."""

    resolved = Path(find_config_file(config_path)).expanduser().resolve()
    return parse_settings(read_config(resolved), base_path=resolved.parent)


__all__ = [
    "CONFIG_FILE_NAME",
    "ConfigSettings",
    "find_config_file",
    "read_config",
    "parse_settings",
    "load_settings",
]
