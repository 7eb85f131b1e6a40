"""Minimal cron loop for `serve` mode: wakes up on schedule and runs the trigger."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Callable

logger = logging.getLogger(__name__)


def _parse_field(value: str, low: int, high: int, name: str) -> set[int] | None:
    """``*`` -> None (any), ``*/N`` -> every N, or a single integer."""
    if value == "*":
        return None
    if value.startswith("*/"):
        step = int(value[2:])
        if step <= 0:
            raise ValueError(f"{name} step must be positive, got {step}")
        return set(range(low, high + 1, step))
    number = int(value)
    if not (low <= number <= high):
        raise ValueError(f"{name} must be {low}-{high}, got {number}")
    return {number}


def parse_cron_schedule(schedule: str) -> tuple[set[int] | None, set[int] | None]:
    """Parse the minute and hour fields of a 5-field cron expression.

    Day, month and weekday fields must be present but are ignored; the
    trigger itself decides whether a backup is due.
    """
    parts = schedule.strip().split()
    if len(parts) != 5:
        raise ValueError(f"Expected 5 cron fields, got {len(parts)}: {schedule!r}")
    return _parse_field(parts[0], 0, 59, "Minute"), _parse_field(parts[1], 0, 23, "Hour")


def next_run_time(
    minutes: set[int] | None,
    hours: set[int] | None,
    after: datetime | None = None,
) -> datetime:
    """First whole minute strictly after ``after`` matching the fields."""
    after = after or datetime.now()
    candidate = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
    # At most one day of minutes to scan
    for _ in range(24 * 60):
        if (minutes is None or candidate.minute in minutes) and (hours is None or candidate.hour in hours):
            return candidate
        candidate += timedelta(minutes=1)
    raise ValueError("Cron schedule never matches")


def run_scheduler(schedule: str, callback: Callable[[], int]) -> None:
    """Blocking loop: sleep until the next slot, run ``callback``, repeat."""
    minutes, hours = parse_cron_schedule(schedule)

    while True:
        target = next_run_time(minutes, hours)
        wait_seconds = (target - datetime.now()).total_seconds()
        if wait_seconds > 0:
            logger.info(f"Next backup check at {target.strftime('%Y-%m-%d %H:%M')}")
            time.sleep(wait_seconds)

        logger.info("Cron trigger: checking whether a backup is due")
        try:
            code = callback()
        except Exception:
            logger.exception("Scheduled backup check crashed")
            continue
        if code:
            logger.error(f"Scheduled backup check exited with code {code}")
