"""Tests for the workbook document: schema guarantees, sessions and export."""

from __future__ import annotations

from decimal import Decimal

import openpyxl
import pytest

from salesbook.codec import ProductRow
from salesbook.constants import SheetName
from salesbook.errors import SerializationFailure, SheetNotFoundError
from salesbook.setup_excel import DEFAULT_ACCOUNTS, SHEET_COLUMNS, build_workbook
from salesbook.workbook import DocumentState, WorkbookDocument


def _widget() -> ProductRow:
    return ProductRow("Widget", Decimal("10"), Decimal("5"), Decimal("9"))


def test_ensure_creates_missing_file_with_all_sheets(tmp_path):
    """A missing file should be created with every sheet and bold headers."""

    document = WorkbookDocument(tmp_path / "nested" / "salesbook.xlsx")

    assert document.ensure() is True

    workbook = openpyxl.load_workbook(document.path)
    assert workbook.sheetnames == list(SHEET_COLUMNS)
    for name, columns in SHEET_COLUMNS.items():
        header = [cell.value for cell in workbook[name][1]]
        assert header == list(columns)
        assert workbook[name]["A1"].font.bold
    assert workbook[SheetName.ACCOUNTS.value].max_row == len(DEFAULT_ACCOUNTS) + 1


def test_ensure_is_a_no_op_for_complete_file(workbook_path):
    document = WorkbookDocument(workbook_path)
    before = workbook_path.read_bytes()

    assert document.ensure() is False
    assert workbook_path.read_bytes() == before
    assert document.guard.list_backups() == []


def test_ensure_adds_only_supplementary_sheets(tmp_path):
    """Older files gain Payments/Accounts/Journal; core sheets are never synthesized."""

    path = tmp_path / "legacy.xlsx"
    build_workbook(sheets=(SheetName.PRODUCTS, SheetName.CUSTOMERS)).save(path)
    document = WorkbookDocument(path)

    document.ensure()

    names = openpyxl.load_workbook(path).sheetnames
    assert SheetName.PAYMENTS.value in names
    assert SheetName.JOURNAL.value in names
    assert SheetName.SALES.value not in names
    assert SheetName.INVOICES.value not in names


def test_ensure_seeds_empty_accounts_sheet(tmp_path):
    path = tmp_path / "empty_accounts.xlsx"
    workbook = build_workbook()
    accounts = workbook[SheetName.ACCOUNTS.value]
    accounts.delete_rows(2, accounts.max_row)
    workbook.save(path)

    WorkbookDocument(path).ensure()

    codes = [row[0] for row in openpyxl.load_workbook(path)[SheetName.ACCOUNTS.value].iter_rows(min_row=2, values_only=True)]
    assert codes == [account.code for account in DEFAULT_ACCOUNTS]


def test_malformed_file_raises_serialization_failure(tmp_path):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"not a zip archive")

    with pytest.raises(SerializationFailure):
        WorkbookDocument(path).load()


def test_session_persists_once_and_returns_to_loaded(workbook_path):
    document = WorkbookDocument(workbook_path)
    writes = []
    original_write = document.guard.write
    document.guard.write = lambda workbook: (writes.append(workbook), original_write(workbook))

    with document.session() as workbook:
        assert document.state is DocumentState.MUTATED
        repository = document.repository(workbook, SheetName.PRODUCTS)
        repository.add(_widget())
        repository.update("Widget", _widget())

    assert len(writes) == 1
    assert document.state is DocumentState.LOADED
    assert document.repository(document.load(), "Products").find("Widget") == _widget()


def test_failed_session_writes_nothing(workbook_path):
    """An exception inside the session should abort without touching the file."""

    document = WorkbookDocument(workbook_path)
    before = workbook_path.read_bytes()

    with pytest.raises(RuntimeError):
        with document.session() as workbook:
            document.repository(workbook, SheetName.PRODUCTS).add(_widget())
            raise RuntimeError("boom")

    assert workbook_path.read_bytes() == before
    assert document.state is DocumentState.UNLOADED


def test_export_sheet_copies_values(workbook_path, tmp_path):
    document = WorkbookDocument(workbook_path)
    with document.session() as workbook:
        document.repository(workbook, SheetName.PRODUCTS).add(_widget())

    output = document.export_sheet("Products", tmp_path / "exports" / "products.xlsx")

    exported = openpyxl.load_workbook(output)
    assert exported.sheetnames == ["Products"]
    assert exported["Products"]["A2"].value == "Widget"
    assert exported["Products"]["B2"].value == 10


def test_export_unknown_sheet_raises(workbook_path, tmp_path):
    with pytest.raises(SheetNotFoundError, match='Sheet "Ledger" not found'):
        WorkbookDocument(workbook_path).export_sheet("Ledger", tmp_path / "out.xlsx")
