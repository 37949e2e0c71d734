"""Utility for initializing the salesbook workbook.

The module doubles as a script (``salesbook-setup``) and as a library used by
:class:`salesbook.workbook.WorkbookDocument` and the tests. Shared helpers
keep the sheet layout consistent regardless of the execution path.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterable, Mapping, Sequence

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from .codec import CODECS, ACCOUNTS_CODEC, AccountRow, SheetCodec
from .constants import AccountType, SheetName
from .data_manager import find_config_file, parse_settings, read_config
from .errors import SalesbookError
from .persistence import PersistenceGuard

# Sheet layout in workbook order, derived from the record codecs.
SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    codec.sheet_name: codec.columns for codec in CODECS.values()
}

# Minimal chart of accounts seeded into an empty Accounts sheet.
DEFAULT_ACCOUNTS: tuple[AccountRow, ...] = (
    AccountRow("1000", "Cash", AccountType.ASSET.value),
    AccountRow("1100", "Accounts Receivable", AccountType.ASSET.value),
    AccountRow("2000", "Accounts Payable", AccountType.LIABILITY.value),
    AccountRow("3000", "Owner Equity", AccountType.EQUITY.value),
    AccountRow("4000", "Sales Revenue", AccountType.REVENUE.value),
    AccountRow("5000", "Cost of Goods Sold", AccountType.EXPENSE.value),
)


def add_sheet(workbook: Workbook, codec: SheetCodec) -> Worksheet:
    """Create ``codec``'s sheet with a bold header row and column widths."""

    worksheet = workbook.create_sheet(title=codec.sheet_name)
    bold_font = Font(bold=True)
    for column_index, (column_name, width) in enumerate(zip(codec.columns, codec.widths), start=1):
        cell = worksheet.cell(row=1, column=column_index)
        cell.value = column_name
        cell.font = bold_font
        worksheet.column_dimensions[get_column_letter(column_index)].width = width
    return worksheet


def seed_accounts(worksheet: Worksheet, accounts: Iterable[AccountRow] = DEFAULT_ACCOUNTS) -> int:
    """Append ``accounts`` to an Accounts sheet and return how many were written."""

    written = 0
    for account in accounts:
        worksheet.append(ACCOUNTS_CODEC.encode(account))
        written += 1
    return written


def build_workbook(sheets: Iterable[SheetName] = tuple(CODECS)) -> Workbook:
    """Return an in-memory workbook holding the requested empty sheets.

    The Accounts sheet, when requested, is seeded with :data:`DEFAULT_ACCOUNTS`.
    """

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    for sheet in sheets:
        worksheet = add_sheet(workbook, CODECS[SheetName(sheet)])
        if sheet == SheetName.ACCOUNTS:
            seed_accounts(worksheet)
    return workbook


def create_master_workbook(destination: Path, *, overwrite: bool = False, retention: int = 5) -> Path:
    """Create the salesbook workbook at ``destination``.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists. An overwritten file is
    backed up first, like any other write.
    """

    destination = Path(destination).expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing workbook: {destination}")

    PersistenceGuard(destination, retention=retention).write(build_workbook())
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook named by the ``DataFile`` entry of ``config_path``."""

    config_path = Path(config_path).expanduser().resolve()
    settings = parse_settings(read_config(config_path), base_path=config_path.parent)
    return create_master_workbook(
        settings.data_file,
        overwrite=overwrite,
        retention=settings.backup_retention,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(prog="salesbook-setup", description="Initialize the salesbook data file")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to configuration file (default: nearest config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the ``salesbook-setup`` script."""

    args = parse_args(argv)

    try:
        config_path = find_config_file(Path(args.config) if args.config else None)
        print(f"Using configuration: {config_path}")
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1
    except FileExistsError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        print("Run with --force to overwrite the existing file if appropriate.", file=sys.stderr)
        return 1
    except (SalesbookError, OSError) as exc:
        print(f"[ERROR] Unable to write workbook: {exc}", file=sys.stderr)
        return 1

    print(f"[SUCCESS] Created workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
