"""Database access: engine creation, URL helpers and the settings table."""

from __future__ import annotations

import logging
from datetime import datetime
from urllib.parse import urlparse

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, select
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import QueuePool

from posadmin.services.backup.config import ScheduleSettings, format_timestamp, parse_timestamp

logger = logging.getLogger("db")

metadata = MetaData()

settings_table = Table(
    "settings",
    metadata,
    Column("setting_key", String(100), primary_key=True),
    Column("setting_value", Text),
)

# (disable, enable) statements for referential-integrity checks
_FK_TOGGLES: dict[str, tuple[str, str]] = {
    "mysql": ("SET FOREIGN_KEY_CHECKS=0", "SET FOREIGN_KEY_CHECKS=1"),
    "mariadb": ("SET FOREIGN_KEY_CHECKS=0", "SET FOREIGN_KEY_CHECKS=1"),
    "sqlite": ("PRAGMA foreign_keys=OFF", "PRAGMA foreign_keys=ON"),
}


def create_db_engine(url: str) -> Engine:
    """Create an engine; server databases get a pre-pinged connection pool."""
    if url.startswith("sqlite"):
        engine = create_engine(url, echo=False)
        logger.info(f"Using SQLite: {url}")
        return engine

    engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
    )
    logger.info(f"Using database: {mask_url(url)}")
    return engine


def parse_db_url(url: str) -> dict:
    """Parse database URL into components (password is URL-decoded)."""
    parsed = make_url(url)
    return {
        "host": parsed.host or "localhost",
        "port": parsed.port or 3306,
        "user": parsed.username or "root",
        "password": parsed.password or "",
        "database": parsed.database or "",
    }


def mask_url(url: str) -> str:
    """Return a URL with the password masked for display."""
    parsed = urlparse(url)
    if parsed.password:
        port = f":{parsed.port}" if parsed.port else ""
        masked = parsed._replace(netloc=f"{parsed.username}:****@{parsed.hostname}{port}")
        return masked.geturl()
    return url


def is_mysql(engine: Engine) -> bool:
    return engine.dialect.name in ("mysql", "mariadb")


def fk_toggle_statements(engine: Engine) -> tuple[str, str]:
    """Return the (disable, enable) referential-integrity statements for this dialect."""
    try:
        return _FK_TOGGLES[engine.dialect.name]
    except KeyError:
        raise ValueError(f"Unsupported database dialect: {engine.dialect.name}") from None


class SettingsStore:
    """Key/value access to the ``settings`` table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def ensure_table(self) -> None:
        metadata.create_all(self.engine, tables=[settings_table])

    def get_all(self) -> dict[str, str]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(settings_table.c.setting_key, settings_table.c.setting_value))
            return {key: value for key, value in rows}

    def get(self, key: str, default: str | None = None) -> str | None:
        with self.engine.connect() as conn:
            value = conn.execute(
                select(settings_table.c.setting_value).where(settings_table.c.setting_key == key)
            ).scalar_one_or_none()
        return default if value is None else value

    def set(self, key: str, value: str) -> None:
        """Insert or update a single setting."""
        with self.engine.begin() as conn:
            updated = conn.execute(
                settings_table.update().where(settings_table.c.setting_key == key).values(setting_value=value)
            )
            if updated.rowcount == 0:
                conn.execute(settings_table.insert().values(setting_key=key, setting_value=value))

    def load_schedule(self) -> ScheduleSettings:
        return ScheduleSettings.from_mapping(self.get_all())

    def advance_last_backup_time(self, ts: datetime) -> bool:
        """Store ``ts`` as the last backup time unless a later value is already stored."""
        current = parse_timestamp(self.get("last_backup_time"))
        if current is not None and current >= ts:
            logger.debug(f"last_backup_time already {current}, not moving back to {ts}")
            return False
        self.set("last_backup_time", format_timestamp(ts))
        return True
