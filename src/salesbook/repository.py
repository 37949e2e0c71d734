"""Per-sheet CRUD over a loaded ``openpyxl`` workbook.

A :class:`SheetRepository` treats one worksheet as an ordered table of
records: the header occupies row 1, data starts at row 2, and records are
addressed by their natural key using a top-to-bottom linear scan. Keys are
compared by exact, case-sensitive string equality.

Repositories never touch the disk. They mutate the in-memory workbook handed
to them by :class:`salesbook.workbook.WorkbookDocument`, which persists the
result once per session.
"""

from __future__ import annotations

from typing import Generic, Iterator, List, Optional, Protocol, Sequence, TypeVar

from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from . import log
from .codec import Key, SheetCodec
from .errors import DuplicateKeyError, NotFoundError, SheetNotFoundError


RecordT = TypeVar("RecordT")

FIRST_DATA_ROW = 2


class Repository(Protocol[RecordT]):
    """Operations every entity store offers, whatever its backing structure."""

    def find_all(self) -> List[RecordT]:
        ...

    def find(self, key: Key) -> RecordT:
        ...

    def exists(self, key: Key) -> bool:
        ...

    def add(self, record: RecordT) -> None:
        ...

    def update(self, key: Key, record: RecordT) -> None:
        ...

    def delete(self, key: Key) -> None:
        ...


class SheetRepository(Generic[RecordT]):
    """Linear-scan repository for a single named worksheet."""

    def __init__(self, workbook: Workbook, codec: SheetCodec[RecordT]) -> None:
        self.workbook = workbook
        self.codec = codec

    @property
    def sheet(self) -> Worksheet:
        """Return the backing worksheet.

        Raises:
            SheetNotFoundError: If the workbook lacks the sheet this repository
                is bound to.
        """

        name = self.codec.sheet_name
        if name not in self.workbook.sheetnames:
            log.error("Sheet '%s' missing from workbook", name)
            raise SheetNotFoundError(f"{name} sheet not found")
        return self.workbook[name]

    def _iter_rows(self) -> Iterator[tuple[int, Sequence[object]]]:
        sheet = self.sheet
        rows = sheet.iter_rows(min_row=FIRST_DATA_ROW, max_col=self.codec.width, values_only=True)
        for row_index, raw in enumerate(rows, start=FIRST_DATA_ROW):
            if self.codec.is_blank(raw):
                continue
            yield row_index, raw

    def find_all(self) -> List[RecordT]:
        """Decode every populated row in sheet order.

        Rows whose key cell is empty are skipped. Each call rescans the sheet,
        so the result always reflects the in-memory workbook.

        Returns:
            list: One record per populated data row.
        """

        return [self.codec.decode(raw) for _, raw in self._iter_rows()]

    def locate_row(self, key: Key) -> Optional[int]:
        """Return the 1-based row index of the first row matching ``key``.

        Args:
            key (str | tuple[str, ...]): Natural key, a tuple for composite
                keys.

        Returns:
            int | None: Row index when a match is found, otherwise ``None``.
        """

        for row_index, raw in self._iter_rows():
            if self.codec.key_of_row(raw) == key:
                return row_index
        return None

    def exists(self, key: Key) -> bool:
        return self.locate_row(key) is not None

    def find(self, key: Key) -> RecordT:
        row_index = self.locate_row(key)
        if row_index is None:
            log.warning("%s lookup failed for key %r", self.codec.sheet_name, key)
            raise NotFoundError(f"{self._label()} {_format_key(key)} not found")
        raw = next(self.sheet.iter_rows(min_row=row_index, max_row=row_index, max_col=self.codec.width, values_only=True))
        return self.codec.decode(raw)

    def add(self, record: RecordT) -> None:
        """Append ``record`` as the last row of the sheet.

        Raises:
            SheetNotFoundError: If the sheet is absent.
            DuplicateKeyError: If the codec enforces unique keys and a row with
                the same key already exists.
        """

        sheet = self.sheet
        key = self.codec.key(record)
        if self.codec.unique_keys and self.exists(key):
            log.warning("Rejected duplicate %s key %r", self.codec.sheet_name, key)
            raise DuplicateKeyError(f"{self._label()} {_format_key(key)} already exists")
        # max_row rather than append(): append tracks its own cursor, which a
        # delete earlier in the same session leaves pointing past the data.
        self._write_row(sheet, sheet.max_row + 1, self.codec.encode(record))
        log.debug("Appended %s row for key %r", self.codec.sheet_name, key)

    def update(self, key: Key, record: RecordT) -> None:
        """Overwrite every cell of the first row matching ``key``.

        The key cells are rewritten too, so passing a record with a different
        key renames the row in place.

        Raises:
            NotFoundError: If no row matches after a full scan.
        """

        row_index = self.locate_row(key)
        if row_index is None:
            log.warning("%s update failed for missing key %r", self.codec.sheet_name, key)
            raise NotFoundError(f"{self._label()} {_format_key(key)} not found")
        self._write_row(self.sheet, row_index, self.codec.encode(record))
        log.debug("Updated %s row %d for key %r", self.codec.sheet_name, row_index, key)

    def delete(self, key: Key) -> None:
        """Remove the first row matching ``key`` and shift later rows up.

        Raises:
            NotFoundError: If no row matches; the sheet is left untouched.
        """

        row_index = self.locate_row(key)
        if row_index is None:
            log.warning("%s delete failed for missing key %r", self.codec.sheet_name, key)
            raise NotFoundError(f"{self._label()} {_format_key(key)} not found")
        self.sheet.delete_rows(row_index, 1)
        log.debug("Deleted %s row %d for key %r", self.codec.sheet_name, row_index, key)

    def _write_row(self, sheet: Worksheet, row_index: int, values: Sequence[object]) -> None:
        for column, value in enumerate(values, start=1):
            sheet.cell(row=row_index, column=column, value=value)

    def _label(self) -> str:
        return _SINGULAR.get(self.codec.sheet_name, self.codec.sheet_name)


def read_sheet(workbook: Workbook, codec: SheetCodec[RecordT]) -> List[RecordT]:
    """Decode a sheet leniently: a missing sheet yields an empty list."""

    if codec.sheet_name not in workbook.sheetnames:
        log.warning("Sheet '%s' missing; treating it as empty", codec.sheet_name)
        return []
    return SheetRepository(workbook, codec).find_all()


def _format_key(key: Key) -> str:
    if isinstance(key, tuple):
        return "/".join(f'"{part}"' for part in key)
    return f'"{key}"'


_SINGULAR = {
    "Products": "Product",
    "Customers": "Customer",
    "Sales": "Sale line",
    "Invoices": "Invoice",
    "Inventory": "Inventory movement",
    "Payments": "Payment",
    "Accounts": "Account",
    "Journal": "Journal line",
}
