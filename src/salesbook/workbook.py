"""File-backed workbook document.

:class:`WorkbookDocument` owns the canonical ``.xlsx`` file. It guarantees a
valid schema exists before anything is read, hands out in-memory workbooks
for mutation, and funnels every write through the
:class:`~salesbook.persistence.PersistenceGuard`.

A save cycle walks the states ``UNLOADED -> ENSURING -> LOADED -> MUTATED ->
PERSISTING -> LOADED``. A session whose body raises drops back to
``UNLOADED`` without writing anything.
"""

from __future__ import annotations

import threading
import zipfile
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Union

import openpyxl
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook import Workbook

from . import log
from .codec import ACCOUNTS_CODEC, CODECS
from .constants import DEFAULT_BACKUP_RETENTION, SUPPLEMENTARY_SHEETS, SheetName
from .errors import IOFailure, SerializationFailure, SheetNotFoundError
from .persistence import PersistenceGuard
from .repository import SheetRepository
from .setup_excel import add_sheet, build_workbook, seed_accounts


class DocumentState(str, Enum):
    """Lifecycle states of a :class:`WorkbookDocument` save cycle."""

    UNLOADED = "unloaded"
    ENSURING = "ensuring"
    LOADED = "loaded"
    MUTATED = "mutated"
    PERSISTING = "persisting"


class WorkbookDocument:
    """The canonical workbook file and the only path that writes to it."""

    def __init__(
        self,
        path: Path,
        *,
        guard: Optional[PersistenceGuard] = None,
        retention: int = DEFAULT_BACKUP_RETENTION,
    ) -> None:
        self.path = Path(path).expanduser().resolve()
        self.guard = guard or PersistenceGuard(self.path, retention=retention)
        self.state = DocumentState.UNLOADED
        self._lock = threading.RLock()

    def ensure(self) -> bool:
        """Guarantee the backing file exists with every expected sheet.

        A missing file is created with all sheets, bold headers and the default
        chart of accounts. An existing file only gains the supplementary sheets
        it lacks and is rewritten only when something was added. Core sheets
        are never synthesized for an existing file.

        Returns:
            bool: ``True`` when a new file was created.

        Raises:
            IOFailure: If the file cannot be read or written.
            SerializationFailure: If the existing file is not a readable
                workbook.
        """

        with self._lock:
            self.state = DocumentState.ENSURING
            try:
                if not self.path.exists():
                    self.guard.write(build_workbook())
                    log.info("Created new workbook '%s'", self.path)
                    return True
                workbook = self._read()
                if self._upgrade(workbook):
                    self.guard.write(workbook)
                    log.info("Upgraded workbook '%s' with missing sheets", self.path)
                return False
            except BaseException:
                self.state = DocumentState.UNLOADED
                raise

    def load(self) -> Workbook:
        """Ensure the schema, then read the file into memory.

        Returns:
            Workbook: A fresh in-memory copy of the file.
        """

        with self._lock:
            self.ensure()
            try:
                workbook = self._read()
            except BaseException:
                self.state = DocumentState.UNLOADED
                raise
            self.state = DocumentState.LOADED
            return workbook

    @contextmanager
    def session(self) -> Iterator[Workbook]:
        """Load the workbook for mutation and persist it exactly once.

        Every mutation made inside the ``with`` block is flushed by a single
        guarded write on normal exit. If the block raises, nothing is written
        and the error propagates.

        Yields:
            Workbook: The in-memory workbook to mutate.
        """

        with self._lock:
            workbook = self.load()
            self.state = DocumentState.MUTATED
            try:
                yield workbook
            except BaseException:
                self.state = DocumentState.UNLOADED
                log.warning("Session on '%s' aborted; nothing was written", self.path.name)
                raise
            self.persist(workbook)

    def persist(self, workbook: Workbook) -> None:
        """Write ``workbook`` over the canonical file through the guard."""

        with self._lock:
            self.state = DocumentState.PERSISTING
            try:
                self.guard.write(workbook)
            except BaseException:
                self.state = DocumentState.UNLOADED
                raise
            self.state = DocumentState.LOADED

    def repository(self, workbook: Workbook, sheet: Union[SheetName, str]) -> SheetRepository:
        """Return a repository bound to ``sheet`` of ``workbook``."""

        return SheetRepository(workbook, CODECS[SheetName(sheet)])

    def export_sheet(self, sheet_name: str, output_path: Path) -> Path:
        """Copy one sheet's cell values verbatim into a new single-sheet file.

        Args:
            sheet_name (str): Name of the sheet to export.
            output_path (Path): Destination ``.xlsx`` file.

        Returns:
            Path: The resolved destination.

        Raises:
            SheetNotFoundError: If the workbook has no sheet named
                ``sheet_name``.
            IOFailure: If the destination cannot be written.
        """

        source = self.load()
        if sheet_name not in source.sheetnames:
            raise SheetNotFoundError(f'Sheet "{sheet_name}" not found')

        exported = openpyxl.Workbook()
        target = exported.active
        target.title = sheet_name
        for row in source[sheet_name].iter_rows():
            for cell in row:
                if cell.value is not None:
                    target.cell(row=cell.row, column=cell.column, value=cell.value)

        output_path = Path(output_path).expanduser().resolve()
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            exported.save(output_path)
        except OSError as exc:
            raise IOFailure(f"Unable to export {sheet_name} to {output_path}: {exc}") from exc
        log.info("Exported sheet '%s' to '%s'", sheet_name, output_path)
        return output_path

    def _read(self) -> Workbook:
        try:
            return openpyxl.load_workbook(self.path)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError) as exc:
            log.error("Workbook '%s' is malformed: %s", self.path, exc)
            raise SerializationFailure(f"Unable to parse workbook {self.path}: {exc}") from exc
        except OSError as exc:
            log.error("Reading workbook '%s' failed: %s", self.path, exc)
            raise IOFailure(f"Unable to read {self.path}: {exc}") from exc

    def _upgrade(self, workbook: Workbook) -> bool:
        changed = False
        for sheet in SUPPLEMENTARY_SHEETS:
            if sheet.value not in workbook.sheetnames:
                add_sheet(workbook, CODECS[sheet])
                log.info("Added missing '%s' sheet to '%s'", sheet.value, self.path.name)
                changed = True

        accounts = workbook[ACCOUNTS_CODEC.sheet_name]
        if accounts.max_row <= 1:
            seed_accounts(accounts)
            changed = True
        return changed


__all__ = ["DocumentState", "WorkbookDocument"]
