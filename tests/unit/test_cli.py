"""Unit tests for the print-guardian command line."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from guardian import __version__
from guardian.cli import app
from guardian.detection import BoundingBox, Candidate, DetectionPipeline
from guardian.errors import ModelLoadError, PrinterConnectionError
from guardian.printer import PrinterObservation

runner = CliRunner()


class FakeEngine:
    def infer(self, image):
        return [
            Candidate(
                objectness=0.95,
                class_probs=[0.82],
                bbox=BoundingBox(center_x=0.5, center_y=0.4, width=0.2, height=0.1),
            )
        ]


@pytest.fixture
def image_file(tmp_path, jpeg_bytes):
    path = tmp_path / "frame.jpg"
    path.write_bytes(jpeg_bytes)
    return path


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_run_with_missing_config_exits(guardian_env, monkeypatch):
    monkeypatch.delenv("DISCORD_WEBHOOK")

    result = runner.invoke(app, ["run"])

    assert result.exit_code == 1
    assert "DISCORD_WEBHOOK" in result.output


def test_run_startup_failure_exits(guardian_env):
    with patch("guardian.cli.build_guardian", side_effect=ModelLoadError("no weights")):
        result = runner.invoke(app, ["run"])

    assert result.exit_code == 1
    assert not Path(".ready").exists()


def test_run_manages_ready_file(guardian_env):
    """Test that the ready file exists while monitoring and is removed after."""
    seen = []
    guardian = MagicMock()
    guardian.run.side_effect = lambda: seen.append(Path(".ready").exists())

    with patch("guardian.cli.build_guardian", return_value=guardian):
        result = runner.invoke(app, ["run", "--log-level", "debug"])

    assert result.exit_code == 0
    assert seen == [True]
    assert not Path(".ready").exists()


def test_run_stops_on_keyboard_interrupt(guardian_env):
    guardian = MagicMock()
    guardian.run.side_effect = KeyboardInterrupt

    with patch("guardian.cli.build_guardian", return_value=guardian):
        result = runner.invoke(app, ["run"])

    assert result.exit_code == 0
    assert not Path(".ready").exists()


def test_detect_prints_table(guardian_env, image_file):
    pipeline = DetectionPipeline(FakeEngine(), ["spaghetti"])

    with patch("guardian.cli.build_pipeline", return_value=pipeline):
        result = runner.invoke(app, ["detect", str(image_file)])

    assert result.exit_code == 0
    assert "spaghetti" in result.output
    assert "82.00%" in result.output


def test_detect_without_detections(guardian_env, image_file):
    pipeline = DetectionPipeline(MagicMock(infer=MagicMock(return_value=[])), ["spaghetti"])

    with patch("guardian.cli.build_pipeline", return_value=pipeline):
        result = runner.invoke(app, ["detect", str(image_file)])

    assert result.exit_code == 0
    assert "No print failures detected" in result.output


def test_status(guardian_env):
    observation = PrinterObservation(
        state="printing",
        state_message="Printer is ready",
        filename="benchy.gcode",
        filament_used=2500.0,
        print_duration=61,
    )

    with patch("guardian.cli.PrinterMonitor") as monitor:
        monitor.return_value.observe.return_value = observation
        result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "benchy.gcode" in result.output
    assert "2.50m" in result.output
    assert "0h 1m 1s" in result.output


def test_status_unreachable(guardian_env):
    with patch("guardian.cli.PrinterMonitor") as monitor:
        monitor.return_value.observe.side_effect = PrinterConnectionError(
            "http://printer.local:7125", "refused"
        )
        result = runner.invoke(app, ["status"])

    assert result.exit_code == 1
