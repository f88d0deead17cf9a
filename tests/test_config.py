"""
Tests for configuration loading and validation.
"""

from datetime import time

import pytest

from clinicqueue.config import AppConfig, ScheduleConfig


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_from_yaml(tmp_path):
    path = _write(
        tmp_path,
        """
timezone: Europe/Vienna
schedule:
  start_hour: 8
  end_hour: 12
  slot_minutes: 20
exclude_days: [6, 6, 5]
average_visit_minutes: 10
payment_test_mode: false
doctors:
  - id: d-1
    name: Dr. Anna Weber
    specialization: General practice
""",
    )

    config = AppConfig.load_from_yaml(path)

    assert config.timezone == "Europe/Vienna"
    assert config.schedule.slot_minutes == 20
    assert config.exclude_days == [6, 5]
    assert config.average_visit_minutes == 10
    assert not config.payment_test_mode
    assert config.doctors[0].to_domain().name == "Dr. Anna Weber"

    hours = config.working_hours()
    assert hours.start_time == time(8, 0)
    assert hours.end_time == time(12, 0)
    assert hours.timezone == "Europe/Vienna"


def test_defaults():
    config = AppConfig()

    assert config.average_visit_minutes == 15
    assert config.payment_test_mode
    assert config.exclude_days == [5, 6]


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        AppConfig.load_from_yaml(tmp_path / "missing.yaml")


def test_invalid_yaml(tmp_path):
    with pytest.raises(ValueError, match="Invalid YAML"):
        AppConfig.load_from_yaml(_write(tmp_path, "doctors: [\n"))


def test_root_must_be_mapping(tmp_path):
    with pytest.raises(ValueError, match="mapping"):
        AppConfig.load_from_yaml(_write(tmp_path, "- a\n- b\n"))


@pytest.mark.parametrize(
    "data",
    [
        {"timezone": "Mars/Olympus"},
        {"exclude_days": [7]},
        {"average_visit_minutes": -5},
        {"doctors": [{"id": "d", "name": "A"}, {"id": "d", "name": "B"}]},
    ],
)
def test_invalid_values(data):
    with pytest.raises(ValueError):
        AppConfig(**data)


@pytest.mark.parametrize(
    "data",
    [
        {"start_hour": 17, "end_hour": 9},
        {"start_hour": 24},
        {"slot_minutes": 0},
    ],
)
def test_invalid_schedule(data):
    with pytest.raises(ValueError):
        ScheduleConfig(**data)


def test_find_doctor_by_id_or_name():
    config = AppConfig(doctors=[{"id": "d-1", "name": "Dr. Anna Weber"}])

    assert config.find_doctor("d-1").name == "Dr. Anna Weber"
    assert config.find_doctor("dr. anna weber").id == "d-1"
    assert config.find_doctor("someone") is None
