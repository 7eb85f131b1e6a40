"""Dump producer: mysqldump when available, otherwise an in-process SQL dump."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from sqlalchemy import MetaData, Table, inspect, literal, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateTable

from posadmin.db import SettingsStore, fk_toggle_statements, is_mysql, parse_db_url
from posadmin.services.backup.errors import (
    BackupError,
    FileWriteFailed,
    ProcessExecutionFailed,
    ToolNotFound,
)
from posadmin.services.backup.locator import ToolLocator, tool_locator
from posadmin.services.backup.storage import ArtifactKind, format_size

if TYPE_CHECKING:
    from posadmin.services.backup.activity_log import ActivityLogger
    from posadmin.services.backup.config import BackupConfig, ScheduleSettings
    from posadmin.services.backup.storage.local import LocalBackend

logger = logging.getLogger(__name__)

NATIVE = "mysqldump"
FALLBACK = "fallback"


@dataclass
class DumpResult:
    filename: str
    path: Path
    size: int
    strategy: str
    kind: ArtifactKind

    @property
    def size_formatted(self) -> str:
        return format_size(self.size)


def _time_literal(value: timedelta) -> str:
    """MySQL TIME values arrive as timedelta; render them as ``[-]HH:MM:SS[.ffffff]``."""
    sign = "-" if value < timedelta(0) else ""
    total = abs(value)
    seconds = int(total.total_seconds())
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    out = f"{sign}{hours:02d}:{minutes:02d}:{secs:02d}"
    if total.microseconds:
        out += f".{total.microseconds:06d}"
    return out


def render_literal(value, dialect) -> str:
    """Render one column value as a SQL literal for ``dialect``."""
    if value is None:
        return "NULL"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"X'{bytes(value).hex()}'"
    if isinstance(value, timedelta):
        value = _time_literal(value)
    return str(literal(value).compile(dialect=dialect, compile_kwargs={"literal_binds": True}))


class DumpProducer:
    """Write a full-database SQL artifact to the backup directory."""

    def __init__(
        self,
        config: BackupConfig,
        engine: Engine,
        backend: LocalBackend,
        activity: ActivityLogger,
        schedule: ScheduleSettings,
        locator: ToolLocator | None = None,
    ) -> None:
        self.config = config
        self.engine = engine
        self.backend = backend
        self.activity = activity
        self.schedule = schedule
        self.locator = locator or tool_locator(
            NATIVE, override=config.mysqldump_path, custom_paths=config.custom_paths
        )
        self.settings = SettingsStore(engine)

    def produce(self, kind: ArtifactKind = ArtifactKind.manual, protect: tuple[str, ...] = ()) -> DumpResult:
        """Dump the database, then advance ``last_backup_time`` and apply retention.

        ``protect`` names artifacts retention must not delete (e.g. a restore target).
        """
        started = datetime.now()
        path = self.backend.new_artifact_path(kind, started)
        self.activity.info(f"Starting backup: {path.name}")

        try:
            strategy = self._write_artifact(path)
            size = path.stat().st_size
            if size == 0:
                raise FileWriteFailed(f"Backup file is empty: {path.name}")
        except Exception as e:
            self.backend.discard(path)
            self.activity.error(f"Backup error: {e}")
            if isinstance(e, BackupError):
                raise
            raise BackupError(f"Backup failed: {e}") from e

        result = DumpResult(filename=path.name, path=path, size=size, strategy=strategy, kind=kind)
        protect = (path.name, *protect)

        try:
            self.settings.advance_last_backup_time(started)
        except SQLAlchemyError as e:
            # Artifact is kept and counts toward retention
            self.activity.error(f"Backup written but last backup time not updated: {path.name} ({e})")
            self.backend.apply_retention(self.schedule.backup_retention_count, self.activity, protect=protect)
            raise BackupError(f"Backup {path.name} was written but last_backup_time was not updated: {e}") from e

        method = "" if strategy == NATIVE else " (fallback method)"
        self.activity.success(f"Backup created successfully{method}: {path.name} ({result.size_formatted})")
        self.backend.apply_retention(self.schedule.backup_retention_count, self.activity, protect=protect)
        return result

    def _write_artifact(self, path: Path) -> str:
        if self.config.prefer_native and is_mysql(self.engine):
            try:
                self.dump_native(path)
                return NATIVE
            except (ToolNotFound, ProcessExecutionFailed) as e:
                self.activity.info(f"mysqldump failed, trying fallback method: {e}")
        self.dump_fallback(path)
        return FALLBACK

    # ── strategy A ────────────────────────────────────────────────────────

    def dump_native(self, path: Path) -> None:
        tool = self.locator.locate()
        db = parse_db_url(self.config.database_url)

        cmd = [
            tool,
            "--opt",
            "--single-transaction",
            "--routines",
            "--triggers",
            f"--host={db['host']}",
            f"--port={db['port']}",
            f"--user={db['user']}",
            db["database"],
        ]
        env = os.environ.copy()
        if db["password"]:
            env["MYSQL_PWD"] = db["password"]
        self.activity.info(f"Command: {' '.join(cmd)}")

        try:
            out = open(path, "wb")
        except OSError as e:
            raise FileWriteFailed(f"Cannot open {path.name} for writing: {e}") from e

        try:
            with out:
                result = subprocess.run(
                    cmd,
                    stdout=out,
                    stderr=subprocess.PIPE,
                    env=env,
                    timeout=self.config.dump_timeout,
                )
        except subprocess.TimeoutExpired as e:
            raise ProcessExecutionFailed(f"mysqldump timed out after {self.config.dump_timeout}s") from e
        except OSError as e:
            raise ProcessExecutionFailed(f"Could not run mysqldump: {e}") from e

        stderr = result.stderr.decode(errors="replace").strip()[:500]
        if result.returncode != 0:
            raise ProcessExecutionFailed(
                f"mysqldump exited with code {result.returncode}: {stderr}",
                returncode=result.returncode,
                output=stderr,
            )
        if path.stat().st_size == 0:
            raise ProcessExecutionFailed("mysqldump produced an empty file", returncode=0, output=stderr)

    # ── strategy B ────────────────────────────────────────────────────────

    def dump_fallback(self, path: Path) -> None:
        """Serialize every table's schema and rows as SQL text."""
        disable_fk, enable_fk = fk_toggle_statements(self.engine)
        database = self.engine.url.database or ""
        self.activity.info(f"Starting fallback backup: {path.name}")

        try:
            with open(path, "w", encoding="utf-8", newline="\n") as out, self.engine.connect() as conn:
                out.write(f"-- {self.config.product_name} Database Backup\n")
                out.write(f"-- Generated on: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
                out.write(f"-- Database: {database}\n\n")
                out.write(f"{disable_fk};\n\n")
                for table_name in inspect(conn).get_table_names():
                    self._write_table(conn, out, table_name)
                out.write(f"{enable_fk};\n")
        except OSError as e:
            raise FileWriteFailed(f"Failed to write backup file: {e}") from e
        except SQLAlchemyError as e:
            raise BackupError(f"Fallback dump failed: {e}") from e

    def _create_statement(self, conn: Connection, table_name: str, quoted: str) -> str:
        dialect = conn.dialect.name
        if dialect in ("mysql", "mariadb"):
            return conn.execute(text(f"SHOW CREATE TABLE {quoted}")).one()[1]
        if dialect == "sqlite":
            return conn.execute(
                text("SELECT sql FROM sqlite_master WHERE type = 'table' AND name = :name"),
                {"name": table_name},
            ).scalar_one()
        table = Table(table_name, MetaData(), autoload_with=conn)
        return str(CreateTable(table).compile(dialect=conn.dialect)).strip()

    def _write_table(self, conn: Connection, out: TextIO, table_name: str) -> None:
        preparer = conn.dialect.identifier_preparer
        quoted = preparer.quote_identifier(table_name)

        out.write(f"-- Table structure for {quoted}\n")
        out.write(f"DROP TABLE IF EXISTS {quoted};\n")
        out.write(self._create_statement(conn, table_name, quoted).rstrip().rstrip(";") + ";\n\n")

        out.write(f"-- Data for table {quoted}\n")
        result = conn.execution_options(stream_results=True).execute(text(f"SELECT * FROM {quoted}"))
        columns = ", ".join(preparer.quote_identifier(name) for name in result.keys())
        rows = 0
        for row in result:
            values = ", ".join(render_literal(value, conn.dialect) for value in row)
            out.write(f"INSERT INTO {quoted} ({columns}) VALUES ({values});\n")
            rows += 1
        out.write("\n")
        logger.debug(f"Dumped {rows} rows from {table_name}")
