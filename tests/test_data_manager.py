"""Tests for configuration discovery and parsing."""

from __future__ import annotations

import configparser
from decimal import Decimal

import pytest

from salesbook import data_manager
from salesbook.constants import DEFAULT_BACKUP_RETENTION, EXPECTED_SCHEMA_VERSION


def _parser(text: str) -> configparser.ConfigParser:
    parser = configparser.ConfigParser()
    parser.read_string(text)
    return parser


_MINIMAL = "[System]\nDataFile = data/book.xlsx\nBusinessName = Corner Shop\nSchemaVersion = 1.0.0\n"


def test_find_config_file_returns_explicit_path(tmp_path):
    explicit = tmp_path / "custom.ini"

    assert data_manager.find_config_file(explicit) == explicit


def test_find_config_file_walks_up_from_cwd(tmp_path, monkeypatch):
    config = tmp_path / "config.ini"
    config.write_text(_MINIMAL)
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file().resolve() == config.resolve()


def test_find_config_file_raises_when_absent(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(data_manager, "CONFIG_FILE_NAME", "salesbook-test-absent.ini")

    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "missing.ini")


def test_parse_settings_applies_defaults_and_resolves_relative_path(tmp_path):
    settings = data_manager.parse_settings(_parser(_MINIMAL), base_path=tmp_path)

    assert settings.data_file == (tmp_path / "data" / "book.xlsx").resolve()
    assert settings.business_name == "Corner Shop"
    assert settings.schema_version == EXPECTED_SCHEMA_VERSION
    assert settings.backup_retention == DEFAULT_BACKUP_RETENTION
    assert settings.default_reorder_level == Decimal("10")
    assert settings.default_invoice_status == "Pending"


def test_parse_settings_reads_optional_sections(tmp_path):
    text = _MINIMAL + (
        "[Persistence]\nBackupRetention = 3\n"
        "[Runtime]\nCacheTtlSeconds = 1.5\nDebounceSeconds = 0\n"
        "[Defaults]\nReorderLevel = 4\nInvoiceStatus = Paid\n"
    )

    settings = data_manager.parse_settings(_parser(text), base_path=tmp_path)

    assert settings.backup_retention == 3
    assert settings.cache_ttl_seconds == 1.5
    assert settings.debounce_seconds == 0
    assert settings.default_reorder_level == Decimal("4")
    assert settings.default_invoice_status == "Paid"


def test_parse_settings_requires_system_entries():
    with pytest.raises(KeyError):
        data_manager.parse_settings(_parser("[System]\nDataFile = book.xlsx\n"))


@pytest.mark.parametrize(
    "extra",
    [
        "[Persistence]\nBackupRetention = many\n",
        "[Persistence]\nBackupRetention = 0\n",
        "[Runtime]\nCacheTtlSeconds = -1\n",
        "[Defaults]\nReorderLevel = lots\n",
        "[Defaults]\nInvoiceStatus = Overdue\n",
    ],
)
def test_parse_settings_rejects_bad_optional_values(tmp_path, extra):
    with pytest.raises(ValueError):
        data_manager.parse_settings(_parser(_MINIMAL + extra), base_path=tmp_path)


def test_load_settings_anchors_data_file_to_config_directory(config_factory):
    bundle = config_factory(make_relative=True)

    settings = data_manager.load_settings(bundle.config_path)

    assert settings.data_file == bundle.workbook_path.resolve()
