"""Tests for the backup CLI."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from posadmin.services.backup.cli import app
from posadmin.services.backup.storage import ArtifactKind

runner = CliRunner()


@pytest.fixture(autouse=True)
def _service(service):
    """Point every CLI command at the SQLite fixture service."""
    with patch("posadmin.services.backup.cli._service", return_value=service):
        yield service


class TestRun:
    def test_run_creates_backup(self, service):
        result = runner.invoke(app, ["run"])
        assert result.exit_code == 0, result.output
        assert "Backup Complete" in result.output
        assert len(service.list_backups()) == 1

    def test_run_reports_failure(self, service):
        from posadmin.services.backup.errors import BackupError

        with patch.object(service, "create_backup", side_effect=BackupError("disk full")):
            result = runner.invoke(app, ["run"])
        assert result.exit_code == 1
        assert "disk full" in result.output


class TestScheduled:
    def test_due(self, service):
        result = runner.invoke(app, ["scheduled"])
        assert result.exit_code == 0
        assert "SUCCESS: Backup completed" in result.output
        assert service.list_backups()[0].kind == ArtifactKind.scheduled

    def test_not_due(self):
        runner.invoke(app, ["scheduled"])
        result = runner.invoke(app, ["scheduled"])
        assert result.exit_code == 0
        assert "INFO: Backup not needed" in result.output


class TestListDeleteRestore:
    def test_list_empty(self):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "No backups found" in result.output

    def test_list(self, service):
        service.create_backup()
        result = runner.invoke(app, ["list", "--kind", "manual"])
        assert result.exit_code == 0
        assert "Available Backups" in result.output

    def test_delete(self, service):
        filename = service.create_backup().filename
        result = runner.invoke(app, ["delete", filename, "--yes"])
        assert result.exit_code == 0
        assert service.list_backups() == []

    def test_delete_invalid(self):
        result = runner.invoke(app, ["delete", "../pos.db", "--yes"])
        assert result.exit_code == 1
        assert "Invalid backup file" in result.output

    def test_restore_by_name(self, service, engine, product_names):
        filename = service.create_backup().filename
        with engine.begin() as conn:
            conn.exec_driver_sql("DELETE FROM products")

        result = runner.invoke(app, ["restore", filename, "--yes"])

        assert result.exit_code == 0, result.output
        assert "Database restored successfully" in result.output
        assert product_names() == ["Cola", "Chips", "Nuts"]

    def test_restore_aborted(self, service):
        filename = service.create_backup().filename
        result = runner.invoke(app, ["restore", filename], input="n\n")
        assert result.exit_code == 0
        assert "Aborted" in result.output
        assert [e.kind for e in service.list_backups()] == [ArtifactKind.manual]

    def test_restore_interactive_pick(self, service):
        service.create_backup()
        result = runner.invoke(app, ["restore", "--yes"], input="1\n")
        assert result.exit_code == 0, result.output
        assert "Database restored successfully" in result.output


class TestStatusAndLogs:
    def test_status(self, service):
        service.create_backup()
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "Backup Service Status" in result.output
        assert "daily" in result.output

    def test_logs(self, service):
        service.create_backup(actor="CLI")
        result = runner.invoke(app, ["logs", "-n", "1"])
        assert result.exit_code == 0
        assert "Backup created successfully" in result.output
