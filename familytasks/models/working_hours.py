"""Working hours model for FamilyTasks."""

from datetime import date, time
from typing import Dict
from pydantic import BaseModel, Field, model_validator


WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class DayHours(BaseModel):
    """Working window for one weekday."""

    start: time = Field(..., description="Start time-of-day")
    end: time = Field(..., description="End time-of-day")
    enabled: bool = Field(True, description="Whether work may be scheduled on this day")

    @model_validator(mode="after")
    def _check_window(self):
        if self.enabled and self.start >= self.end:
            raise ValueError("Enabled working day must start before it ends")
        return self


class WorkingHours(BaseModel):
    """Per-weekday working windows (Monday..Sunday)."""

    days: Dict[str, DayHours] = Field(..., description="Weekday name -> working window")

    @model_validator(mode="after")
    def _check_days(self):
        missing = [d for d in WEEKDAYS if d not in self.days]
        if missing:
            raise ValueError(f"Working hours missing weekdays: {', '.join(missing)}")
        return self

    def for_date(self, day: date) -> DayHours:
        return self.days[WEEKDAYS[day.weekday()]]

    @classmethod
    def default(cls) -> "WorkingHours":
        """Weekdays 09:00-18:00; weekends 10:00-16:00 but disabled."""
        weekday = DayHours(start=time(9, 0), end=time(18, 0), enabled=True)
        weekend = DayHours(start=time(10, 0), end=time(16, 0), enabled=False)
        return cls(days={
            name: (weekend if name in ("saturday", "sunday") else weekday).model_copy()
            for name in WEEKDAYS
        })
