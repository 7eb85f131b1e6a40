"""Restore executor: the mysql client when available, otherwise statement replay."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from posadmin.db import fk_toggle_statements, is_mysql, parse_db_url
from posadmin.services.backup.errors import (
    BackupError,
    CriticalRestoreFailure,
    FileReadFailed,
    ProcessExecutionFailed,
    StatementExecutionFailed,
    ToolNotFound,
)
from posadmin.services.backup.locator import ToolLocator, tool_locator

if TYPE_CHECKING:
    from posadmin.services.backup.activity_log import ActivityLogger
    from posadmin.services.backup.config import BackupConfig

logger = logging.getLogger(__name__)

NATIVE = "mysql"
FALLBACK = "fallback"

_QUOTES = ("'", '"', "`")
MYSQL_PARSE_ERROR = 1064


@dataclass
class RestoreResult:
    strategy: str
    executed: int = 0
    errors: int = 0
    message: str = ""
    failures: list[StatementExecutionFailed] = field(default_factory=list)


def _scan_line(line: str, quote: str | None, backslash_escapes: bool) -> tuple[str | None, bool]:
    """Track quoting through one line.

    Returns the quote still open at the end of the line (if any) and whether
    the line ends with a ``;`` outside any quoted text.
    """
    ends = False
    i = 0
    while i < len(line):
        ch = line[i]
        if quote:
            ends = False
            if backslash_escapes and ch == "\\" and quote != "`":
                i += 2
                continue
            if ch == quote:
                if line[i + 1 : i + 2] == quote:
                    i += 2
                    continue
                quote = None
        elif ch in _QUOTES:
            quote = ch
            ends = False
        elif ch == ";":
            ends = True
        elif not ch.isspace():
            ends = False
        i += 1
    return quote, ends


def split_statements(sql: str, backslash_escapes: bool = False) -> tuple[list[str], str]:
    """Split a script on ``;`` at end of line, ignoring anything inside quotes.

    ``--`` comment lines are dropped unless they sit inside a quoted value.
    ``backslash_escapes`` selects MySQL string rules (``\\'`` does not close
    a literal). Returns the complete statements and whatever trailing text
    had no terminator.
    """
    statements: list[str] = []
    current: list[str] = []
    quote: str | None = None

    for line in sql.splitlines(keepends=True):
        if quote is None and line.lstrip().startswith("--"):
            continue
        if quote is None and not any(q in line for q in _QUOTES):
            ends = line.rstrip().endswith(";")
        else:
            quote, ends = _scan_line(line, quote, backslash_escapes)
        current.append(line)
        if ends:
            statement = "".join(current).strip()[:-1].rstrip()
            if statement:
                statements.append(statement)
            current = []

    return statements, "".join(current).strip()


def _db_message(exc: DBAPIError) -> str:
    return str(exc.orig) if exc.orig is not None else str(exc)


def is_syntax_error(exc: DBAPIError) -> bool:
    orig = exc.orig
    if orig is not None and getattr(orig, "args", None) and orig.args[0] == MYSQL_PARSE_ERROR:
        return True
    message = _db_message(exc).lower()
    return "syntax error" in message or "error in your sql syntax" in message


class RestoreExecutor:
    """Replace the database contents with a previously produced artifact."""

    def __init__(
        self,
        config: BackupConfig,
        engine: Engine,
        activity: ActivityLogger,
        locator: ToolLocator | None = None,
    ) -> None:
        self.config = config
        self.engine = engine
        self.activity = activity
        self.locator = locator or tool_locator(NATIVE, override=config.mysql_path, custom_paths=config.custom_paths)

    def _log(self, message: str, level: str = "INFO") -> None:
        self.activity.log(f"RESTORE: {message}", level)

    def restore(self, path: Path) -> RestoreResult:
        if not path.is_file():
            raise FileReadFailed(f"Backup file not found: {path.name}")

        self._log(f"Starting restore from: {path.name}")
        try:
            if self.config.prefer_native and is_mysql(self.engine):
                try:
                    self.restore_native(path)
                    self._log("Database restored successfully using mysql command", "SUCCESS")
                    return RestoreResult(strategy=NATIVE, message="Database restored successfully")
                except ToolNotFound:
                    self._log("mysql command not found, using fallback method")
                except ProcessExecutionFailed as e:
                    self._log(f"mysql command failed: {e}", "ERROR")

            return self.restore_fallback(path)
        except BackupError as e:
            self._log(f"Restore error: {e}", "ERROR")
            raise

    # ── strategy A ────────────────────────────────────────────────────────

    def restore_native(self, path: Path) -> None:
        tool = self.locator.locate()
        db = parse_db_url(self.config.database_url)
        disable_fk, enable_fk = fk_toggle_statements(self.engine)

        try:
            sql = path.read_bytes()
        except OSError as e:
            raise FileReadFailed(f"Failed to read backup file: {e}") from e

        # Integrity checks wrap the script; the client session ends with the process
        payload = f"{disable_fk};\n".encode() + sql + f"\n{enable_fk};\n".encode()

        cmd = [
            tool,
            f"--host={db['host']}",
            f"--port={db['port']}",
            f"--user={db['user']}",
            db["database"],
        ]
        env = os.environ.copy()
        if db["password"]:
            env["MYSQL_PWD"] = db["password"]
        self._log(f"Command: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                input=payload,
                capture_output=True,
                env=env,
                timeout=self.config.restore_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ProcessExecutionFailed(f"mysql timed out after {self.config.restore_timeout}s") from e
        except OSError as e:
            raise ProcessExecutionFailed(f"Could not run mysql: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode(errors="replace").strip()[:500]
            raise ProcessExecutionFailed(
                f"mysql exited with code {result.returncode}: {stderr}",
                returncode=result.returncode,
                output=stderr,
            )

    # ── strategy B ────────────────────────────────────────────────────────

    def restore_fallback(self, path: Path) -> RestoreResult:
        self._log(f"Starting fallback restore from: {path.name}")
        try:
            sql = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FileReadFailed(f"Failed to read backup file: {e}") from e

        statements, trailing = split_statements(sql, backslash_escapes=is_mysql(self.engine))
        disable_fk, enable_fk = fk_toggle_statements(self.engine)
        result = RestoreResult(strategy=FALLBACK)

        try:
            with self.engine.connect() as raw_conn:
                conn = raw_conn.execution_options(isolation_level="AUTOCOMMIT", no_parameters=True)
                conn.exec_driver_sql(disable_fk)
                try:
                    for statement in statements:
                        self._execute(conn, statement, result)
                finally:
                    conn.exec_driver_sql(enable_fk)
        except SQLAlchemyError as e:
            raise CriticalRestoreFailure(f"Database error during restore: {e}") from e

        if trailing:
            result.errors += 1
            result.failures.append(StatementExecutionFailed("Unterminated trailing statement", trailing))
            self._log(f"Skipped unterminated trailing statement: {trailing[:100]}", "ERROR")

        if result.executed == 0:
            raise CriticalRestoreFailure("No valid SQL statements found in backup file")

        result.message = (
            "Database restored successfully (fallback method). "
            f"Executed: {result.executed} statements, Errors: {result.errors}"
        )
        self._log(
            f"Fallback restore completed: {result.executed} statements executed, {result.errors} errors",
            "SUCCESS",
        )
        return result

    def _execute(self, conn, statement: str, result: RestoreResult) -> None:
        try:
            conn.exec_driver_sql(statement)
        except DBAPIError as e:
            message = _db_message(e)
            result.errors += 1
            result.failures.append(StatementExecutionFailed(message, statement))
            self._log(f"Statement error: {message}", "ERROR")
            if is_syntax_error(e):
                raise CriticalRestoreFailure(f"Critical SQL syntax error: {message}") from e
            return
        result.executed += 1
