"""Append-only text logs for backup activity and verification events."""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path

if os.name == "nt":
    import msvcrt
else:
    import fcntl

LOGGER = logging.getLogger("posadmin.backup")

LEVELS = ("INFO", "SUCCESS", "ERROR")


def append_line(path: Path, line: str) -> None:
    """Append one line under an exclusive OS lock so writers never interleave."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = (line.rstrip("\n") + "\n").encode("utf-8")
    with open(path, "ab") as handle:
        if os.name == "nt":
            # Lock the first byte; appends always land at EOF
            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)
            try:
                handle.seek(0, os.SEEK_END)
                handle.write(data)
                handle.flush()
            finally:
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
        else:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                handle.write(data)
                handle.flush()
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def _now() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


class ActivityLogger:
    """Write ``[timestamp] [LEVEL] [actor] message`` lines to the shared backup log."""

    def __init__(self, log_file: Path, actor: str = "System") -> None:
        self.log_file = Path(log_file)
        self.actor = actor

    def with_actor(self, actor: str) -> ActivityLogger:
        return ActivityLogger(self.log_file, actor)

    def log(self, message: str, level: str = "INFO") -> None:
        level = level.upper()
        if level not in LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        append_line(self.log_file, f"[{_now()}] [{level}] [{self.actor}] {message}")
        LOGGER.log(logging.ERROR if level == "ERROR" else logging.INFO, f"[{self.actor}] {message}")

    def info(self, message: str) -> None:
        self.log(message, "INFO")

    def success(self, message: str) -> None:
        self.log(message, "SUCCESS")

    def error(self, message: str) -> None:
        self.log(message, "ERROR")

    def tail(self, limit: int = 50) -> list[str]:
        """Return the newest ``limit`` non-empty lines, newest first."""
        if not self.log_file.exists():
            return []
        lines = [ln for ln in self.log_file.read_text(encoding="utf-8", errors="replace").splitlines() if ln.strip()]
        lines.reverse()
        return lines[:limit]


class SecurityLog:
    """Verification events in ``logs/security.log``."""

    def __init__(self, log_file: Path) -> None:
        self.log_file = Path(log_file)

    def event(self, event: str, user_id: str | int | None = None, ip: str | None = None, user_agent: str | None = None) -> None:
        user = user_id if user_id not in (None, "") else "Unknown"
        line = (
            f"[{_now()}] [SECURITY] [User: {user}] [IP: {ip or 'Unknown'}] "
            f"[Event: {event}] [UA: {user_agent or 'Unknown'}]"
        )
        append_line(self.log_file, line)
        LOGGER.info(f"Security event for user {user}: {event}")


__all__ = ["ActivityLogger", "SecurityLog", "append_line"]
