"""Backup artifacts on disk: naming, metadata and the local backend."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

FILENAME_TIMESTAMP = "%Y-%m-%d_%H-%M-%S"


class ArtifactKind(str, Enum):
    manual = "manual"
    scheduled = "scheduled"
    pre_restore = "pre_restore"

    @property
    def tag(self) -> str:
        return {
            ArtifactKind.manual: "backup",
            ArtifactKind.scheduled: "scheduled_backup",
            ArtifactKind.pre_restore: "pre_restore_backup",
        }[self]


def artifact_filename(product: str, kind: ArtifactKind, ts: datetime, seq: int = 0) -> str:
    """``<product>_<tag>_<YYYY-MM-DD_HH-MM-SS>[_N].sql``"""
    suffix = f"_{seq}" if seq else ""
    return f"{product}_{kind.tag}_{ts.strftime(FILENAME_TIMESTAMP)}{suffix}.sql"


def artifact_pattern(product: str) -> re.Pattern[str]:
    tags = "|".join(re.escape(k.tag) for k in ArtifactKind)
    return re.compile(
        rf"^{re.escape(product)}_(?P<tag>{tags})_"
        rf"(?P<ts>\d{{4}}-\d{{2}}-\d{{2}}_\d{{2}}-\d{{2}}-\d{{2}})(?:_\d+)?\.sql$"
    )


def parse_artifact_name(product: str, filename: str) -> tuple[ArtifactKind, datetime] | None:
    """Return (kind, creation time) encoded in an artifact name, or None."""
    match = artifact_pattern(product).match(filename)
    if not match:
        return None
    kind = next(k for k in ArtifactKind if k.tag == match.group("tag"))
    return kind, datetime.strptime(match.group("ts"), FILENAME_TIMESTAMP)


@dataclass
class BackupEntry:
    """Metadata for a single backup file."""

    path: Path
    filename: str
    kind: ArtifactKind
    size: int  # Bytes
    modified: datetime
    created: datetime


@dataclass
class RetentionSummary:
    removed: list[str] = field(default_factory=list)
    kept: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def format_size(size_bytes: float, precision: int = 2) -> str:
    """Human-readable file size (B, KB, MB, GB)."""
    units = ["B", "KB", "MB", "GB"]
    i = 0
    while size_bytes > 1024 and i < len(units) - 1:
        size_bytes /= 1024
        i += 1
    return f"{round(size_bytes, precision):g} {units[i]}"


__all__ = [
    "ArtifactKind",
    "BackupEntry",
    "RetentionSummary",
    "artifact_filename",
    "artifact_pattern",
    "format_size",
    "parse_artifact_name",
]
