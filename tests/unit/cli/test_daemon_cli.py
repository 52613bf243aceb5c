"""Unit tests — CLI daemon commands."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from tripwire.cli.commands.daemon import app
from tripwire.config import DaemonSettings
from tripwire.exit_codes import ExitCode

runner = CliRunner()


@pytest.mark.unit
class TestDaemonRun:
    def test_run_passes_exit_code_through(self, tmp_path: Path, test_settings: DaemonSettings) -> None:
        with patch("tripwire.daemon.start_daemon", return_value=ExitCode.LOCK_FAILED) as mock_start:
            result = runner.invoke(app, ["run", "--config", str(tmp_path / "x.yml")])

        assert result.exit_code == 211
        assert mock_start.call_args[0][0] == tmp_path / "x.yml"
        assert mock_start.call_args[1] == {"debug": False}

    def test_run_defaults_to_settings_config(self, test_settings: DaemonSettings) -> None:
        with patch("tripwire.daemon.start_daemon", return_value=ExitCode.OK) as mock_start:
            result = runner.invoke(app, ["run", "--debug"])

        assert result.exit_code == 0
        assert mock_start.call_args[0][0] == test_settings.config
        assert mock_start.call_args[1] == {"debug": True}

    def test_run_json_log_format(self, test_settings: DaemonSettings) -> None:
        with patch("tripwire.daemon.start_daemon", return_value=ExitCode.OK) as mock_start:
            result = runner.invoke(app, ["run", "--log-format", "json"])

        assert result.exit_code == 0
        assert mock_start.call_args[0][1].log_format == "json"

    def test_run_rejects_unknown_log_format(self, test_settings: DaemonSettings) -> None:
        with patch("tripwire.daemon.start_daemon") as mock_start:
            result = runner.invoke(app, ["run", "--log-format", "xml"])

        assert result.exit_code == 2
        mock_start.assert_not_called()

    def test_missing_config_exit_code(self, tmp_path: Path, test_settings: DaemonSettings) -> None:
        result = runner.invoke(app, ["run", "--config", str(tmp_path / "absent.yml")])
        assert result.exit_code == 3


@pytest.mark.unit
class TestDaemonSetup:
    def test_setup_creates_file(self, tmp_path: Path) -> None:
        path = tmp_path / "tripwire.yml"
        result = runner.invoke(app, ["setup", "--config", str(path)])

        assert result.exit_code == 0
        assert "created" in result.output
        doc = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert doc["settings"]["locked"] == 0

    def test_setup_existing_file_fails(self, tmp_path: Path) -> None:
        path = tmp_path / "tripwire.yml"
        path.write_text("projects: {}\n", encoding="utf-8")
        result = runner.invoke(app, ["setup", "-c", str(path)])
        assert result.exit_code == 30


@pytest.mark.unit
class TestDaemonUnlock:
    def test_unlock_resets_record(self, tmp_path: Path) -> None:
        path = tmp_path / "tripwire.yml"
        path.write_text("settings:\n  locked: 1234\nprojects: {}\n", encoding="utf-8")

        result = runner.invoke(app, ["unlock", "--config", str(path)])

        assert result.exit_code == 0
        assert yaml.safe_load(path.read_text(encoding="utf-8"))["settings"]["locked"] == 0

    def test_unlock_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["unlock", "--config", str(tmp_path / "absent.yml")])
        assert result.exit_code == 3
