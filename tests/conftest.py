"""Pytest configuration and fixtures for the backup service tests."""

from __future__ import annotations

import bcrypt
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from posadmin.db import SettingsStore
from posadmin.services.backup.config import BackupConfig

TEST_PASSWORD = "secret123"
TEST_SECRET = "test-secret-key"


@pytest.fixture
def config(tmp_path):
    """Config pointing at a throwaway SQLite database and backup directory."""
    return BackupConfig(
        database_url=f"sqlite:///{tmp_path / 'pos.db'}",
        product_name="pos_system",
        backup_dir=tmp_path / "backups",
        log_dir=tmp_path / "logs",
        secret_key=TEST_SECRET,
    )


@pytest.fixture
def engine(config):
    """SQLite engine with a small POS schema and seed data.

    A single shared connection keeps per-connection pragmas observable.
    """
    engine = create_engine(
        config.database_url,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    password_hash = bcrypt.hashpw(TEST_PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()

    with engine.begin() as conn:
        conn.exec_driver_sql("CREATE TABLE categories (id INTEGER PRIMARY KEY, name TEXT NOT NULL)")
        conn.exec_driver_sql(
            "CREATE TABLE products ("
            "id INTEGER PRIMARY KEY, "
            "category_id INTEGER REFERENCES categories(id), "
            "name TEXT NOT NULL, "
            "price REAL, "
            "notes TEXT)"
        )
        conn.exec_driver_sql("CREATE TABLE users (id INTEGER PRIMARY KEY, username TEXT, password TEXT)")
        conn.exec_driver_sql("INSERT INTO categories (id, name) VALUES (1, 'Drinks'), (2, 'Snacks')")
        conn.exec_driver_sql(
            "INSERT INTO products (id, category_id, name, price, notes) VALUES "
            "(1, 1, 'Cola', 1.5, NULL), "
            "(2, 2, 'Chips', 2.25, 'Bob''s favourite'), "
            "(3, 2, 'Nuts', 3.0, 'salted')"
        )
        conn.exec_driver_sql(
            "INSERT INTO users (id, username, password) VALUES (1, 'admin', ?)",
            (password_hash,),
        )

    settings = SettingsStore(engine)
    settings.ensure_table()
    settings.set("backup_frequency", "daily")
    settings.set("backup_retention_count", "10")

    yield engine
    engine.dispose()


@pytest.fixture
def service(config, engine):
    """BackupService bound to the SQLite fixture database."""
    from posadmin.services.backup.service import BackupService

    return BackupService(config, engine=engine)


@pytest.fixture
def activity(config):
    from posadmin.services.backup.activity_log import ActivityLogger

    return ActivityLogger(config.activity_log_file, actor="Tester")


@pytest.fixture
def product_names(engine):
    """Callable returning product names in id order."""

    def _names() -> list[str]:
        with engine.connect() as conn:
            return [row[0] for row in conn.exec_driver_sql("SELECT name FROM products ORDER BY id")]

    return _names
