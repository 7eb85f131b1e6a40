"""Local filesystem storage backend and retention."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from posadmin.services.backup.errors import FileWriteFailed, InvalidArtifact
from posadmin.services.backup.storage import (
    ArtifactKind,
    BackupEntry,
    RetentionSummary,
    artifact_filename,
    parse_artifact_name,
)

if TYPE_CHECKING:
    from posadmin.services.backup.activity_log import ActivityLogger

logger = logging.getLogger(__name__)


class LocalBackend:
    """Store backups as flat ``.sql`` files in one directory."""

    def __init__(self, backup_dir: Path, product_name: str) -> None:
        self.base_dir = Path(backup_dir)
        self.product_name = product_name
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def new_artifact_path(self, kind: ArtifactKind, now: datetime | None = None) -> Path:
        """Reserve a fresh artifact path; the file is created empty so concurrent dumps never share it."""
        now = now or datetime.now()
        for seq in range(100):
            path = self.base_dir / artifact_filename(self.product_name, kind, now, seq)
            try:
                path.touch(exist_ok=False)
            except FileExistsError:
                continue
            except OSError as e:
                raise FileWriteFailed(f"Cannot create backup file in {self.base_dir}: {e}") from e
            return path
        raise FileWriteFailed(f"Too many backups created at {now}")

    def list_backups(self, kind: ArtifactKind | None = None) -> list[BackupEntry]:
        entries: list[BackupEntry] = []
        if not self.base_dir.exists():
            return entries

        for f in self.base_dir.glob(f"{self.product_name}_*.sql"):
            parsed = parse_artifact_name(self.product_name, f.name)
            if not parsed or not f.is_file():
                continue
            entry_kind, created = parsed
            if kind and entry_kind != kind:
                continue
            stat = f.stat()
            entries.append(
                BackupEntry(
                    path=f,
                    filename=f.name,
                    kind=entry_kind,
                    size=stat.st_size,
                    modified=datetime.fromtimestamp(stat.st_mtime),
                    created=created,
                )
            )

        entries.sort(key=lambda e: e.modified, reverse=True)
        return entries

    def resolve(self, filename: str) -> Path:
        """Map a user-supplied file name to an existing artifact path."""
        if not filename or Path(filename).name != filename or not parse_artifact_name(self.product_name, filename):
            raise InvalidArtifact("Invalid backup file")
        path = self.base_dir / filename
        if not path.is_file():
            raise InvalidArtifact("Backup file not found")
        return path

    def delete(self, filename: str) -> None:
        path = self.resolve(filename)
        path.unlink()
        logger.info(f"Deleted {path}")

    def discard(self, path: Path) -> None:
        """Remove a failed or empty output file so it is never mistaken for a backup."""
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Could not remove incomplete backup {path}: {e}")

    def apply_retention(
        self,
        keep_count: int,
        activity: ActivityLogger | None = None,
        protect: tuple[str, ...] = (),
    ) -> RetentionSummary:
        """Delete the oldest artifacts (by mtime) until at most ``keep_count`` remain.

        Files named in ``protect`` are never deleted; the next oldest go instead.
        The bound can still be exceeded: ``keep_count`` below 1 is treated as 1,
        protected files count toward the total even when nothing else is left
        to delete, and a file whose deletion fails is skipped without aborting
        the rest (it is reported in ``failed``).
        """
        keep_count = max(int(keep_count), 1)
        files = sorted(self.list_backups(), key=lambda e: e.modified)
        summary = RetentionSummary()

        excess = len(files) - keep_count
        candidates = [e for e in files if e.filename not in protect]
        for entry in candidates[: max(excess, 0)]:
            try:
                entry.path.unlink()
            except OSError as e:
                summary.failed.append(entry.filename)
                if activity:
                    activity.error(f"Failed to delete old backup: {entry.filename} ({e})")
                continue
            summary.removed.append(entry.filename)
            if activity:
                activity.info(f"Deleted old backup: {entry.filename}")

        summary.kept = [e.filename for e in files if e.filename not in summary.removed]
        return summary
