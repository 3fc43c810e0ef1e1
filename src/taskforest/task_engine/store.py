"""File-backed persistence for the task collection.

The collection lives in a single JSON document (YAML when the file name ends
in ``.yaml``/``.yml``).  Every save first copies the current file into a
timestamped backup, prunes the oldest backups beyond the configured limit,
then writes the new document to a temporary file and renames it into place.
"""

from __future__ import annotations

import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml
from loguru import logger

from ..constants import BACKUP_DIR, BACKUP_PREFIX, DEFAULT_BACKUP_LIMIT, TASKS_FILE
from ..errors import PersistenceError
from ..io_utils import _load_data_with_error, _save_data


def _backup_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


class TaskStore:
    """Read and write the raw collection document.

    Parameters
    ----------
    data_dir:
        Directory holding the task file and its ``backups/`` sibling.
    tasks_file:
        File name (or absolute path) of the primary document.
    backup_limit:
        Number of backups to keep; ``0`` disables backups.
    """

    def __init__(
        self,
        data_dir: Path,
        tasks_file: str | Path = TASKS_FILE,
        backup_limit: int = DEFAULT_BACKUP_LIMIT,
    ) -> None:
        self.data_dir = Path(data_dir)
        tasks_path = Path(tasks_file)
        self.path = tasks_path if tasks_path.is_absolute() else self.data_dir / tasks_path
        self.backup_dir = self.path.parent / BACKUP_DIR
        self.backup_limit = max(0, int(backup_limit))

    # -- reads ----------------------------------------------------------------

    def exists(self) -> bool:
        return self.path.exists()

    def load_raw(self) -> Optional[dict[str, Any]]:
        """Return the parsed document, or ``None`` when the file is missing.

        Raises:
            PersistenceError: the file exists but cannot be read or parsed.
        """
        if not self.path.exists():
            return None
        data, err = _load_data_with_error(self.path, {})
        if err:
            raise PersistenceError(f"Failed to load tasks: {err}")
        return data

    # -- writes ---------------------------------------------------------------

    def save_raw(self, data: dict[str, Any]) -> None:
        """Back up the current file, then atomically replace it with *data*.

        Raises:
            PersistenceError: the backup or the write failed.
        """
        self.create_backup()
        try:
            _save_data(self.path, data)
        except (OSError, TypeError, ValueError, yaml.YAMLError) as exc:
            raise PersistenceError(f"Failed to save tasks to {self.path}: {exc}") from exc
        logger.debug("Saved task collection to {}", self.path)

    def create_backup(self) -> Optional[Path]:
        """Copy the current file into the backup directory and prune old copies."""
        if self.backup_limit == 0 or not self.path.exists():
            return None
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            stamp = _backup_stamp()
            counter = 0
            target = self.backup_dir / f"{BACKUP_PREFIX}{stamp}-{counter:02d}{self.path.suffix}"
            while target.exists():
                counter += 1
                target = self.backup_dir / f"{BACKUP_PREFIX}{stamp}-{counter:02d}{self.path.suffix}"
            shutil.copy2(self.path, target)
        except OSError as exc:
            raise PersistenceError(f"Failed to create backup of {self.path}: {exc}") from exc
        logger.debug("Created task backup {}", target.name)
        self.prune_backups()
        return target

    def list_backups(self) -> list[Path]:
        """Return existing backups, newest first."""
        if not self.backup_dir.exists():
            return []
        backups = [
            p for p in self.backup_dir.iterdir()
            if p.is_file() and p.name.startswith(BACKUP_PREFIX) and p.suffix == self.path.suffix
        ]
        return sorted(backups, key=lambda p: p.name, reverse=True)

    def prune_backups(self) -> list[Path]:
        removed: list[Path] = []
        for stale in self.list_backups()[self.backup_limit:]:
            try:
                stale.unlink()
            except OSError as exc:
                raise PersistenceError(f"Failed to prune backup {stale}: {exc}") from exc
            removed.append(stale)
        if removed:
            logger.debug("Pruned {} old task backups", len(removed))
        return removed
