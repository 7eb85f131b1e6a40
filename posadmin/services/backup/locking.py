"""Advisory file lock around dump and restore.

Dumps take a shared lock so they may overlap each other; a restore takes the
exclusive lock so it never races a dump or another restore. Windows has no
shared lock, so every operation is exclusive there.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

if os.name == "nt":
    import msvcrt
else:
    import fcntl

from posadmin.services.backup.errors import BackupInProgress


class OperationLock:
    def __init__(self, lock_file: Path) -> None:
        self.lock_file = Path(lock_file)

    @contextmanager
    def _hold(self, exclusive: bool) -> Iterator[None]:
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_file, "a+b") as handle:
            try:
                if os.name == "nt":
                    handle.seek(0)
                    msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
                else:
                    mode = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
                    fcntl.flock(handle.fileno(), mode | fcntl.LOCK_NB)
            except OSError as e:
                what = "restore" if exclusive else "backup"
                raise BackupInProgress(f"Cannot start {what}: another backup or restore is running") from e

            try:
                yield
            finally:
                if os.name == "nt":
                    handle.seek(0)
                    msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
                else:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def shared(self):
        return self._hold(exclusive=False)

    def exclusive(self):
        return self._hold(exclusive=True)
