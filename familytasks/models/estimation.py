"""Estimation and actual-time models for FamilyTasks."""

from pydantic import BaseModel, Field

from familytasks.models.scheduled_block import Phase, PHASE_ORDER


class PhaseMinutes(BaseModel):
    """Minutes per work phase."""

    incubation: int = Field(0, ge=0, description="Incubation (preparation) minutes")
    design: int = Field(0, ge=0, description="Design minutes")
    implementation: int = Field(0, ge=0, description="Implementation minutes")
    improvement: int = Field(0, ge=0, description="Improvement minutes")

    def minutes_for(self, phase) -> int:
        return getattr(self, Phase(phase).value)

    def phase_sum(self) -> int:
        return sum(self.minutes_for(p) for p in PHASE_ORDER)


class Estimation(PhaseMinutes):
    """Estimated phase breakdown. `total` must equal the sum of the phases."""

    total: int = Field(..., ge=0, description="Total estimated minutes")
    confidence: float = Field(0.7, ge=0.0, le=1.0, description="Confidence in the estimate")

    def is_consistent(self) -> bool:
        return self.phase_sum() == self.total


class ActualTime(PhaseMinutes):
    """Observed minutes per phase for a completed task (learning input only)."""

    @property
    def total(self) -> int:
        return self.phase_sum()
