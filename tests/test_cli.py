"""
Tests for the command line front end.
"""

from typer.testing import CliRunner

from clinicqueue import __version__
from clinicqueue.cli.app import app

runner = CliRunner()

CONFIG = """
timezone: Europe/Berlin
schedule:
  start_hour: 9
  end_hour: 11
  slot_minutes: 30
exclude_days: []
doctors:
  - id: d-1
    name: Dr. Anna Weber
    specialization: General practice
    city: Berlin
"""


def _config(tmp_path, text: str = CONFIG):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_doctors(tmp_path):
    result = runner.invoke(app, ["doctors", "--config", _config(tmp_path)])

    assert result.exit_code == 0
    assert "d-1" in result.stdout


def test_slots_grouped_by_day(tmp_path):
    result = runner.invoke(
        app, ["slots", "d-1", "--config", _config(tmp_path), "--from", "2024-11-25", "--days", "1"]
    )

    assert result.exit_code == 0
    assert "d-1-202411250900" in result.stdout
    assert "d-1-202411251030" in result.stdout
    assert "d-1-202411260900" not in result.stdout


def test_slots_days_counts_calendar_days(tmp_path):
    result = runner.invoke(
        app, ["slots", "d-1", "--config", _config(tmp_path), "--from", "2024-11-25", "--days", "2"]
    )

    assert result.exit_code == 0
    assert "d-1-202411261030" in result.stdout
    assert "d-1-202411270900" not in result.stdout


def test_slots_unknown_doctor(tmp_path):
    result = runner.invoke(app, ["slots", "nobody", "--config", _config(tmp_path)])

    assert result.exit_code == 1


def test_slots_invalid_date(tmp_path):
    result = runner.invoke(app, ["slots", "d-1", "--config", _config(tmp_path), "--from", "25.11.2024"])

    assert result.exit_code == 1


def test_missing_config(tmp_path):
    result = runner.invoke(app, ["doctors", "--config", str(tmp_path / "nope.yaml")])

    assert result.exit_code == 1


def test_demo_runs_whole_lifecycle(tmp_path):
    result = runner.invoke(app, ["demo", "--config", _config(tmp_path)])

    assert result.exit_code == 0, result.stdout
    assert "1 refused" in result.stdout
    assert "SlotUnavailable" in result.stdout
    assert "status=CONFIRMED" in result.stdout
    assert "payment=PAID" in result.stdout
    assert "status=CANCELLED" in result.stdout


def test_demo_without_payment_test_mode_fails(tmp_path):
    result = runner.invoke(app, ["demo", "--config", _config(tmp_path, CONFIG + "payment_test_mode: false\n")])

    assert result.exit_code == 1
    assert "Unavailable" in result.stdout
