"""Runtime configuration for FamilyTasks.

Values come from the environment (optionally a `.env` file) with defaults
from `familytasks.models.constants`.
"""

import os
from typing import Optional
from pydantic import BaseModel, Field
from dotenv import load_dotenv

from familytasks.models.constants import (
    DEFAULT_BUFFER_MINUTES,
    DEFAULT_CALENDAR_ID,
    DEADLINE_EXTENSION_DAYS,
    BUFFER_REDUCTION_FACTOR,
    MIN_BUFFER_MINUTES,
    DURATION_REDUCTION_FACTOR,
    RESCHEDULING_HISTORY_CAP,
    LEARNING_HISTORY_CAP,
)
from familytasks.models.working_hours import WorkingHours

load_dotenv()


class RelaxationPolicy(BaseModel):
    """Constraint-loosening steps tried, in order, when strict allocation fails."""

    deadline_extension_days: int = Field(DEADLINE_EXTENSION_DAYS, ge=0)
    buffer_reduction_factor: float = Field(BUFFER_REDUCTION_FACTOR, gt=0.0, le=1.0)
    min_buffer_minutes: int = Field(MIN_BUFFER_MINUTES, ge=0)
    duration_reduction_factor: float = Field(DURATION_REDUCTION_FACTOR, gt=0.0, le=1.0)


class Settings(BaseModel):
    """Application settings."""

    calendar_id: str = DEFAULT_CALENDAR_ID
    credentials_path: str = "credentials.json"
    token_path: str = "token.json"
    timezone: str = "UTC"
    buffer_minutes: int = Field(DEFAULT_BUFFER_MINUTES, ge=0)
    working_hours: WorkingHours = Field(default_factory=WorkingHours.default)
    relaxation: RelaxationPolicy = Field(default_factory=RelaxationPolicy)
    rescheduling_history_cap: int = Field(RESCHEDULING_HISTORY_CAP, gt=0)
    learning_history_cap: int = Field(LEARNING_HISTORY_CAP, gt=0)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def load_settings(working_hours: Optional[WorkingHours] = None) -> Settings:
    """Build settings from environment variables."""
    return Settings(
        calendar_id=os.getenv("GOOGLE_CALENDAR_ID", DEFAULT_CALENDAR_ID),
        credentials_path=os.getenv("GOOGLE_CALENDAR_CREDENTIALS_PATH", "credentials.json"),
        token_path=os.getenv("GOOGLE_CALENDAR_TOKEN_PATH", "token.json"),
        timezone=os.getenv("FAMILYTASKS_TIMEZONE", "UTC"),
        buffer_minutes=_env_int("FAMILYTASKS_BUFFER_MINUTES", DEFAULT_BUFFER_MINUTES),
        working_hours=working_hours or WorkingHours.default(),
        relaxation=RelaxationPolicy(
            deadline_extension_days=_env_int("FAMILYTASKS_DEADLINE_EXTENSION_DAYS", DEADLINE_EXTENSION_DAYS),
            buffer_reduction_factor=_env_float("FAMILYTASKS_BUFFER_REDUCTION_FACTOR", BUFFER_REDUCTION_FACTOR),
            min_buffer_minutes=_env_int("FAMILYTASKS_MIN_BUFFER_MINUTES", MIN_BUFFER_MINUTES),
            duration_reduction_factor=_env_float("FAMILYTASKS_DURATION_REDUCTION_FACTOR", DURATION_REDUCTION_FACTOR),
        ),
        rescheduling_history_cap=_env_int("FAMILYTASKS_RESCHEDULING_HISTORY_CAP", RESCHEDULING_HISTORY_CAP),
        learning_history_cap=_env_int("FAMILYTASKS_LEARNING_HISTORY_CAP", LEARNING_HISTORY_CAP),
    )
