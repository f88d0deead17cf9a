"""
Configuration management using Pydantic models loaded from YAML.
"""

from datetime import time
from pathlib import Path
from typing import List

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import Doctor, WorkingHours
from .domain.queue_estimator import DEFAULT_AVERAGE_VISIT_MINUTES


class ScheduleConfig(BaseModel):
    """Opening hours and slot length used to build doctors' schedules."""
    start_hour: int = 9
    end_hour: int = 17
    slot_minutes: int = 30

    @field_validator("slot_minutes")
    @classmethod
    def validate_slot_minutes(cls, value: int) -> int:
        """Ensure slot length is positive."""
        if value <= 0:
            raise ValueError("slot_minutes must be greater than zero")
        return value

    @field_validator("start_hour", "end_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @model_validator(mode="after")
    def validate_hours_order(self) -> "ScheduleConfig":
        """Ensure the practice opens before it closes."""
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be later than start_hour")
        return self

    def get_start_time(self) -> time:
        return time(hour=self.start_hour, minute=0)

    def get_end_time(self) -> time:
        return time(hour=self.end_hour, minute=0)


class DoctorConfig(BaseModel):
    """Doctor entry of the clinic directory."""
    id: str
    name: str
    specialization: str = ""
    city: str = ""

    def to_domain(self) -> Doctor:
        return Doctor(id=self.id, name=self.name, specialization=self.specialization, city=self.city)


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Europe/Berlin"
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    exclude_days: List[int] = Field(default_factory=lambda: [5, 6])  # Saturday, Sunday
    average_visit_minutes: int = DEFAULT_AVERAGE_VISIT_MINUTES
    payment_test_mode: bool = True
    doctors: List[DoctorConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject unknown IANA timezone names early."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("average_visit_minutes")
    @classmethod
    def validate_average_visit(cls, value: int) -> int:
        if value < 0:
            raise ValueError("average_visit_minutes must not be negative")
        return value

    @field_validator("exclude_days")
    @classmethod
    def validate_exclude_days(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"exclude_days must be between 0 and 6, got {invalid_days}")
        # Preserve order while removing duplicates
        seen: set[int] = set()
        deduped: List[int] = []
        for day in value:
            if day not in seen:
                deduped.append(day)
                seen.add(day)
        return deduped

    @field_validator("doctors")
    @classmethod
    def validate_doctors(cls, value: List[DoctorConfig]) -> List[DoctorConfig]:
        """Ensure doctor ids are unique."""
        seen_ids: set[str] = set()
        for doctor in value:
            if doctor.id in seen_ids:
                raise ValueError(f"Duplicate doctor id detected: {doctor.id}")
            seen_ids.add(doctor.id)
        return value

    def working_hours(self) -> WorkingHours:
        return WorkingHours(
            start_time=self.schedule.get_start_time(),
            end_time=self.schedule.get_end_time(),
            exclude_weekdays=self.exclude_days,
            timezone=self.timezone,
        )

    def find_doctor(self, identifier: str) -> DoctorConfig | None:
        """Find a doctor by id or, case-insensitively, by name."""
        for doctor in self.doctors:
            if doctor.id == identifier or doctor.name.lower() == identifier.lower():
                return doctor
        return None

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    config_path = Path.cwd() / "config.yaml"

    if not config_path.exists():
        # Fall back to the project root (parent of the package)
        config_path = Path(__file__).parent.parent / "config.yaml"

    return config_path
