"""BackupService: one object wiring config, engine, storage and logs per process."""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from posadmin.db import SettingsStore, create_db_engine
from posadmin.services.backup.activity_log import ActivityLogger, SecurityLog
from posadmin.services.backup.config import BackupConfig, ScheduleSettings
from posadmin.services.backup.dump import DumpProducer, DumpResult
from posadmin.services.backup.errors import BackupError, FileWriteFailed, InvalidArtifact
from posadmin.services.backup.locator import ToolLocator
from posadmin.services.backup.locking import OperationLock
from posadmin.services.backup.restore import RestoreExecutor, RestoreResult
from posadmin.services.backup.storage import ArtifactKind, BackupEntry
from posadmin.services.backup.storage.local import LocalBackend

logger = logging.getLogger(__name__)


class BackupService:
    """Entry point used by the CLI, the scheduler trigger and the web API."""

    def __init__(
        self,
        config: BackupConfig,
        engine: Engine | None = None,
        dump_locator: ToolLocator | None = None,
        restore_locator: ToolLocator | None = None,
    ) -> None:
        self.config = config
        self.engine = engine or create_db_engine(config.database_url)
        self.backend = LocalBackend(config.backup_dir, config.product_name)
        self.activity = ActivityLogger(config.activity_log_file)
        self.security = SecurityLog(config.security_log_file)
        self.lock = OperationLock(config.lock_file)
        self.settings = SettingsStore(self.engine)
        self._dump_locator = dump_locator
        self._restore_locator = restore_locator
        self._schedule: ScheduleSettings | None = None

    def load_schedule(self, refresh: bool = False) -> ScheduleSettings:
        """Settings are read once and reused for the life of the service."""
        if self._schedule is None or refresh:
            try:
                self._schedule = self.settings.load_schedule()
            except SQLAlchemyError as e:
                self.activity.error(f"Failed to load settings: {e}")
                raise BackupError(f"Failed to load settings: {e}") from e
        return self._schedule

    def _producer(self, actor: str) -> DumpProducer:
        return DumpProducer(
            self.config,
            self.engine,
            self.backend,
            self.activity.with_actor(actor),
            self.load_schedule(),
            locator=self._dump_locator,
        )

    def create_backup(self, kind: ArtifactKind = ArtifactKind.manual, actor: str = "System") -> DumpResult:
        with self.lock.shared():
            return self._producer(actor).produce(kind)

    def list_backups(self, kind: ArtifactKind | None = None) -> list[BackupEntry]:
        return self.backend.list_backups(kind)

    def backup_path(self, filename: str) -> Path:
        """Validated path of an artifact, for downloads."""
        return self.backend.resolve(filename)

    def delete_backup(self, filename: str, actor: str = "System") -> None:
        activity = self.activity.with_actor(actor)
        try:
            self.backend.delete(filename)
        except InvalidArtifact as e:
            activity.error(f"Delete rejected for {filename!r}: {e}")
            raise
        except OSError as e:
            activity.error(f"Failed to delete backup {filename}: {e}")
            raise FileWriteFailed("Failed to delete backup") from e
        activity.info(f"Deleted backup: {filename}")

    def restore_backup(self, filename: str, actor: str = "System") -> RestoreResult:
        """Restore from an artifact, taking a pre-restore safety dump first."""
        activity = self.activity.with_actor(actor)
        try:
            path = self.backend.resolve(filename)
        except InvalidArtifact as e:
            activity.error(f"RESTORE: Rejected {filename!r}: {e}")
            raise

        with self.lock.exclusive():
            if self.config.safety_backup:
                activity.info("RESTORE: Creating safety backup before restore")
                safety = self._producer(actor).produce(ArtifactKind.pre_restore, protect=(filename,))
                activity.info(f"RESTORE: Safety backup saved as {safety.filename}")

            last_backup = self._stored_last_backup_time()
            executor = RestoreExecutor(self.config, self.engine, activity, locator=self._restore_locator)
            result = executor.restore(path)

            # The restored settings table may carry an older last_backup_time
            if last_backup is not None:
                try:
                    self.settings.advance_last_backup_time(last_backup)
                except SQLAlchemyError as e:
                    activity.error(f"RESTORE: Could not carry last backup time forward: {e}")
            self._schedule = None
            return result

    def _stored_last_backup_time(self):
        try:
            return self.settings.load_schedule().last_backup_time
        except SQLAlchemyError as e:
            logger.warning(f"Could not read last backup time before restore: {e}")
            return None

    def recent_logs(self, limit: int = 50) -> list[str]:
        return self.activity.tail(limit)

    def status(self) -> dict:
        entries = self.list_backups()
        schedule = self.load_schedule(refresh=True)
        return {
            "backup_dir": str(self.config.backup_dir.resolve()),
            "frequency": schedule.backup_frequency,
            "retention_count": schedule.backup_retention_count,
            "last_backup_time": schedule.last_backup_time,
            "total_backups": len(entries),
            "total_size": sum(e.size for e in entries),
            "newest": entries[0] if entries else None,
        }
