"""Scheduled backup trigger, run by cron / Task Scheduler or `serve` mode."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from posadmin.services.backup.config import parse_timestamp
from posadmin.services.backup.errors import BackupError
from posadmin.services.backup.storage import ArtifactKind

if TYPE_CHECKING:
    from posadmin.services.backup.service import BackupService

logger = logging.getLogger(__name__)

# Fixed windows; "monthly" is 30 days, not a calendar month
FREQUENCY_WINDOWS: dict[str, timedelta] = {
    "daily": timedelta(hours=24),
    "weekly": timedelta(days=7),
    "monthly": timedelta(days=30),
}


def is_backup_needed(
    frequency: str,
    last_backup_time: datetime | str | None,
    now: datetime | None = None,
) -> bool:
    """Decide whether a scheduled backup is due."""
    if frequency == "never":
        return False
    last = parse_timestamp(last_backup_time)
    if last is None:
        return True
    window = FREQUENCY_WINDOWS.get(frequency)
    if window is None:
        return False
    now = now or datetime.now()
    return (now - last) >= window


def run_trigger(service: BackupService, out: Callable[[str], None] = print) -> int:
    """Create a scheduled backup if one is due. Returns the process exit code."""
    activity = service.activity.with_actor("SCHEDULER")
    try:
        activity.info("Scheduler started")
        schedule = service.load_schedule(refresh=True)
        last = schedule.last_backup_time
        activity.info(
            f"Backup frequency: {schedule.backup_frequency}, "
            f"Last backup: {last.strftime('%Y-%m-%d %H:%M:%S') if last else 'Never'}"
        )

        if not is_backup_needed(schedule.backup_frequency, last):
            activity.info("Backup not needed at this time")
            out("INFO: Backup not needed")
            return 0

        activity.info("Backup is needed, starting backup process")
        result = service.create_backup(ArtifactKind.scheduled, actor="SCHEDULER")
    except BackupError as e:
        activity.error(f"Scheduled backup failed: {e}")
        out(f"ERROR: Backup failed: {e}")
        return 1

    activity.success(f"Scheduled backup completed successfully: {result.filename}")
    out("SUCCESS: Backup completed")
    return 0
