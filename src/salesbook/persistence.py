"""Crash-safe persistence for the salesbook workbook.

Every write goes through :class:`PersistenceGuard`, which

1. copies the current file to a timestamped backup beside it (nothing is
   copied on the very first write) and prunes rotating backups beyond the
   retention count, oldest first by modification time;
2. serializes the workbook to a sibling ``<stem>.tmp<suffix>`` file;
3. atomically renames the temp file over the canonical path.

A failure while serializing leaves the canonical file untouched. A failure
while renaming leaves both the valid temp file and the untouched canonical
file on disk; it is reported once and never retried.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, List, Optional

from openpyxl.workbook import Workbook

from . import log
from .constants import DEFAULT_BACKUP_RETENTION
from .errors import BusinessRuleViolation, IOFailure, NotFoundError, SerializationFailure


@dataclass(frozen=True)
class BackupInfo:
    """Metadata describing one backup file."""

    name: str
    path: Path
    modified: datetime
    size: int
    manual: bool


def backup_timestamp(moment: datetime) -> str:
    """Render ``moment`` as an ISO-8601 UTC stamp safe for filenames.

    ``2026-10-17T09:30:00.123456Z`` becomes ``2026-10-17T09-30-00-123456Z``.
    """

    stamp = moment.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f") + "Z"
    return stamp.replace(":", "-").replace(".", "-")


def backup_name(canonical: Path, moment: datetime, *, manual: bool = False) -> str:
    """Build the backup filename for ``canonical`` taken at ``moment``."""

    marker = "manual." if manual else ""
    return f"{canonical.stem}.{marker}{backup_timestamp(moment)}.bak{canonical.suffix}"


class PersistenceGuard:
    """Back up, serialize and atomically replace one workbook file."""

    def __init__(
        self,
        path: Path,
        *,
        retention: int = DEFAULT_BACKUP_RETENTION,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if retention < 1:
            raise ValueError("Backup retention must be at least 1")
        self.path = Path(path).expanduser().resolve()
        self.retention = retention
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def temp_path(self) -> Path:
        return self.path.with_name(f"{self.path.stem}.tmp{self.path.suffix}")

    def write(self, workbook: Workbook) -> None:
        """Persist ``workbook`` over the canonical path.

        Args:
            workbook (Workbook): Fully mutated workbook to serialize.

        Raises:
            IOFailure: If the backup copy, the temp write or the final rename
                fails at the filesystem level.
            SerializationFailure: If ``openpyxl`` cannot encode the workbook.
        """

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IOFailure(f"Unable to create directory {self.path.parent}: {exc}") from exc

        self.create_backup()

        temp_path = self.temp_path
        try:
            workbook.save(temp_path)
        except OSError as exc:
            self._discard(temp_path)
            log.error("Writing temp workbook '%s' failed: %s", temp_path, exc)
            raise IOFailure(f"Unable to write {temp_path}: {exc}") from exc
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            self._discard(temp_path)
            log.error("Serializing workbook '%s' failed: %s", self.path, exc)
            raise SerializationFailure(f"Unable to serialize workbook: {exc}") from exc

        try:
            os.replace(temp_path, self.path)
        except OSError as exc:
            log.error(
                "Renaming '%s' over '%s' failed; temp file kept for recovery: %s",
                temp_path,
                self.path,
                exc,
            )
            raise IOFailure(
                f"Unable to replace {self.path}; the new data is preserved in {temp_path}: {exc}"
            ) from exc

        log.info("Persisted workbook '%s'", self.path)

    def create_backup(self) -> Optional[Path]:
        """Copy the canonical file to a rotating backup, then prune old ones.

        Returns:
            Path | None: The backup written, or ``None`` when the canonical file
                does not exist yet.
        """

        if not self.path.exists():
            return None
        target = self._next_backup_path(manual=False)
        try:
            shutil.copyfile(self.path, target)
        except OSError as exc:
            log.error("Backup of '%s' failed: %s", self.path, exc)
            raise IOFailure(f"Unable to back up {self.path}: {exc}") from exc
        log.debug("Backed up '%s' to '%s'", self.path, target.name)
        self.prune_backups()
        return target

    def create_manual_backup(self) -> Path:
        """Copy the canonical file to a manual backup excluded from rotation."""

        if not self.path.exists():
            raise NotFoundError(f"Workbook file not found: {self.path}")
        target = self._next_backup_path(manual=True)
        try:
            shutil.copyfile(self.path, target)
        except OSError as exc:
            raise IOFailure(f"Unable to back up {self.path}: {exc}") from exc
        log.info("Created manual backup '%s'", target)
        return target

    def list_backups(self, *, include_manual: bool = True) -> List[BackupInfo]:
        """Return backups of the canonical file, newest first."""

        directory = self.path.parent
        if not directory.exists():
            return []
        backups: List[tuple[int, BackupInfo]] = []
        for candidate in directory.iterdir():
            if not self.is_backup_name(candidate.name):
                continue
            manual = candidate.name.startswith(f"{self.path.stem}.manual.")
            if manual and not include_manual:
                continue
            stat = candidate.stat()
            info = BackupInfo(
                name=candidate.name,
                path=candidate,
                modified=datetime.fromtimestamp(stat.st_mtime, UTC),
                size=stat.st_size,
                manual=manual,
            )
            backups.append((stat.st_mtime_ns, info))
        backups.sort(key=lambda pair: (pair[0], pair[1].name), reverse=True)
        return [info for _, info in backups]

    def prune_backups(self) -> List[Path]:
        """Delete rotating backups beyond the retention count, oldest first."""

        stale = self.list_backups(include_manual=False)[self.retention:]
        removed: List[Path] = []
        for backup in stale:
            try:
                backup.path.unlink()
            except OSError as exc:
                raise IOFailure(f"Unable to remove old backup {backup.path}: {exc}") from exc
            removed.append(backup.path)
        if removed:
            log.debug("Pruned %d old backup(s) of '%s'", len(removed), self.path.name)
        return removed

    def restore_backup(self, backup_path: Path) -> None:
        """Replace the canonical file with ``backup_path``.

        The current file is backed up first so a restore can itself be undone.

        Raises:
            NotFoundError: If ``backup_path`` does not exist.
            IOFailure: If copying or renaming fails.
        """

        backup_path = Path(backup_path)
        if not backup_path.exists():
            raise NotFoundError(f"Backup file not found: {backup_path}")
        self.create_backup()
        temp_path = self.temp_path
        try:
            shutil.copyfile(backup_path, temp_path)
            os.replace(temp_path, self.path)
        except OSError as exc:
            raise IOFailure(f"Unable to restore {backup_path}: {exc}") from exc
        log.info("Restored '%s' from '%s'", self.path, backup_path.name)

    def delete_backup(self, backup_path: Path) -> None:
        """Delete one backup belonging to the canonical file."""

        backup_path = Path(backup_path)
        if not backup_path.exists():
            raise NotFoundError(f"Backup file not found: {backup_path}")
        if backup_path.resolve().parent != self.path.parent or not self.is_backup_name(backup_path.name):
            raise BusinessRuleViolation(f"{backup_path.name} is not a backup of {self.path.name}")
        try:
            backup_path.unlink()
        except OSError as exc:
            raise IOFailure(f"Unable to delete {backup_path}: {exc}") from exc
        log.info("Deleted backup '%s'", backup_path.name)

    def is_backup_name(self, name: str) -> bool:
        return name.startswith(f"{self.path.stem}.") and name.endswith(f".bak{self.path.suffix}")

    def _next_backup_path(self, *, manual: bool) -> Path:
        name = backup_name(self.path, self._clock(), manual=manual)
        target = self.path.with_name(name)
        counter = 1
        while target.exists():
            stem = name[: -len(f".bak{self.path.suffix}")]
            target = self.path.with_name(f"{stem}-{counter}.bak{self.path.suffix}")
            counter += 1
        return target

    def _discard(self, temp_path: Path) -> None:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError as exc:
            log.warning("Could not remove partial temp file '%s': %s", temp_path, exc)
