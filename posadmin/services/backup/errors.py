"""Error hierarchy for backup and restore operations."""

from __future__ import annotations


class BackupError(RuntimeError):
    """Base exception for backup related failures."""


class ToolNotFound(BackupError):
    """No working native database tool was found among the candidates."""


class ProcessExecutionFailed(BackupError):
    """A native tool ran but exited non-zero or produced nothing."""

    def __init__(self, message: str, returncode: int | None = None, output: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class FileWriteFailed(BackupError):
    """The artifact could not be written."""


class FileReadFailed(BackupError):
    """The artifact could not be read."""


class StatementExecutionFailed(BackupError):
    """A single statement failed during a statement-by-statement restore."""

    def __init__(self, message: str, statement: str = "") -> None:
        super().__init__(message)
        self.statement = statement


class CriticalRestoreFailure(BackupError):
    """The restore was aborted part-way."""


class InvalidArtifact(BackupError):
    """The requested backup file name is not a known artifact."""


class BackupInProgress(BackupError):
    """Another process holds the backup lock."""


class VerificationRequired(BackupError):
    """The caller has not recently re-entered their password."""


__all__ = [
    "BackupError",
    "BackupInProgress",
    "CriticalRestoreFailure",
    "FileReadFailed",
    "FileWriteFailed",
    "InvalidArtifact",
    "ProcessExecutionFailed",
    "StatementExecutionFailed",
    "ToolNotFound",
    "VerificationRequired",
]
