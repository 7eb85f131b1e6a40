"""Backup service configuration (os.getenv based)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

FREQUENCIES = ("never", "daily", "weekly", "monthly")
DEFAULT_FREQUENCY = "daily"
DEFAULT_RETENTION_COUNT = 10


def _bool(val: str) -> bool:
    return val.strip().lower() in ("true", "1", "yes")


def _split_paths(val: str) -> list[str]:
    return [p.strip() for p in val.split(",") if p.strip()]


@dataclass
class BackupConfig:
    """Configuration for the backup service, loaded from environment variables."""

    # Database
    database_url: str = "mysql+pymysql://root@localhost/pos_system"
    product_name: str = "pos_system"

    # Storage
    backup_dir: Path = field(default_factory=lambda: Path("./backups/database"))
    log_dir: Path = field(default_factory=lambda: Path("./backups/logs"))

    # Native tools (empty override means auto-detect)
    mysqldump_path: str = ""
    mysql_path: str = ""
    custom_paths: list[str] = field(default_factory=list)
    prefer_native: bool = True

    # Behavior
    dump_timeout: int = 300
    restore_timeout: int = 600
    safety_backup: bool = True

    # Verification session
    verification_minutes: int = 30
    secret_key: str = "change-me-in-production"

    # Serve mode
    cron_schedule: str = "0 * * * *"

    @classmethod
    def from_env(cls) -> BackupConfig:
        """Load configuration from environment variables."""
        return cls(
            database_url=os.getenv("POS_DATABASE_URL", "mysql+pymysql://root@localhost/pos_system"),
            product_name=os.getenv("BACKUP_PRODUCT_NAME", "pos_system"),
            backup_dir=Path(os.getenv("BACKUP_DIR", "./backups/database")),
            log_dir=Path(os.getenv("BACKUP_LOG_DIR", "./backups/logs")),
            mysqldump_path=os.getenv("BACKUP_MYSQLDUMP_PATH", ""),
            mysql_path=os.getenv("BACKUP_MYSQL_PATH", ""),
            custom_paths=_split_paths(os.getenv("BACKUP_CUSTOM_PATHS", "")),
            prefer_native=_bool(os.getenv("BACKUP_PREFER_NATIVE", "true")),
            dump_timeout=int(os.getenv("BACKUP_DUMP_TIMEOUT", "300")),
            restore_timeout=int(os.getenv("BACKUP_RESTORE_TIMEOUT", "600")),
            safety_backup=_bool(os.getenv("BACKUP_SAFETY_BACKUP", "true")),
            verification_minutes=int(os.getenv("BACKUP_VERIFICATION_MINUTES", "30")),
            secret_key=os.getenv("WEB_SECRET_KEY", "change-me-in-production"),
            cron_schedule=os.getenv("BACKUP_CRON_SCHEDULE", "0 * * * *"),
        )

    @property
    def activity_log_file(self) -> Path:
        return self.log_dir / "backup_log.txt"

    @property
    def security_log_file(self) -> Path:
        return self.log_dir / "security.log"

    @property
    def lock_file(self) -> Path:
        return self.backup_dir / ".backup.lock"


@dataclass
class ScheduleSettings:
    """Backup schedule values read from the settings table."""

    backup_frequency: str = DEFAULT_FREQUENCY
    last_backup_time: datetime | None = None
    backup_retention_count: int = DEFAULT_RETENTION_COUNT

    @classmethod
    def from_mapping(cls, settings: dict[str, str]) -> ScheduleSettings:
        """Build from raw key/value settings, falling back to defaults."""
        frequency = (settings.get("backup_frequency") or DEFAULT_FREQUENCY).strip().lower()
        if frequency not in FREQUENCIES:
            logger.warning(
                f"Unknown backup_frequency {frequency!r}; scheduled backups only run until the first one is recorded"
            )

        try:
            retention = int(settings.get("backup_retention_count") or DEFAULT_RETENTION_COUNT)
        except ValueError:
            logger.warning(f"Invalid backup_retention_count {settings.get('backup_retention_count')!r}")
            retention = DEFAULT_RETENTION_COUNT

        return cls(
            backup_frequency=frequency,
            last_backup_time=parse_timestamp(settings.get("last_backup_time")),
            backup_retention_count=retention,
        )


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a stored ``YYYY-MM-DD HH:MM:SS`` value; empty or garbage gives None."""
    if isinstance(value, datetime):
        return value
    if not value or not str(value).strip():
        return None
    text = str(value).strip()
    try:
        return datetime.strptime(text, TIMESTAMP_FORMAT)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.warning(f"Unparseable timestamp {text!r}")
        return None


def format_timestamp(ts: datetime) -> str:
    return ts.strftime(TIMESTAMP_FORMAT)


def load_config() -> BackupConfig:
    """Load config, calling dotenv first for local runs."""
    from dotenv import load_dotenv

    load_dotenv()
    return BackupConfig.from_env()
