"""Learning data models for FamilyTasks."""

from datetime import datetime
from enum import Enum
from typing import Dict, List
from pydantic import BaseModel, Field

from familytasks.models.estimation import Estimation, ActualTime
from familytasks.models.constants import DEFAULT_ACCURACY, DEFAULT_PATTERN_RATE, DEFAULT_PHASE_DISTRIBUTION


class AdjustmentReason(str, Enum):
    """Where an actual-time observation came from."""
    USER_MANUAL = "user_manual"
    TIME_TRACKING = "time_tracking"


class PhaseDistribution(BaseModel):
    """Fraction of total time spent per phase (sums to 1)."""

    incubation: float = Field(DEFAULT_PHASE_DISTRIBUTION["incubation"], ge=0.0, le=1.0)
    design: float = Field(DEFAULT_PHASE_DISTRIBUTION["design"], ge=0.0, le=1.0)
    implementation: float = Field(DEFAULT_PHASE_DISTRIBUTION["implementation"], ge=0.0, le=1.0)
    improvement: float = Field(DEFAULT_PHASE_DISTRIBUTION["improvement"], ge=0.0, le=1.0)

    def as_dict(self) -> Dict[str, float]:
        return {
            "incubation": self.incubation,
            "design": self.design,
            "implementation": self.implementation,
            "improvement": self.improvement,
        }


class LearningRecord(BaseModel):
    """Exponentially averaged estimation statistics for one task category."""

    category: str = Field(..., description="Category key (project, keyword or title-derived)")
    accuracy: float = Field(DEFAULT_ACCURACY, ge=0.0, le=1.0, description="EMA of estimation accuracy")
    underestimation_rate: float = Field(DEFAULT_PATTERN_RATE, ge=0.0, le=1.0)
    overestimation_rate: float = Field(DEFAULT_PATTERN_RATE, ge=0.0, le=1.0)
    phase_distribution: PhaseDistribution = Field(default_factory=PhaseDistribution)
    last_updated: datetime = Field(default_factory=datetime.now)


class LearningHistoryEntry(BaseModel):
    """Raw actual-vs-estimated observation."""

    task_id: str
    category: str
    original_estimation: Estimation
    actual_time: ActualTime
    adjustment_reason: AdjustmentReason = AdjustmentReason.USER_MANUAL
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        use_enum_values = True


class LearningInsights(BaseModel):
    """Summary of what the learning store knows."""

    categories: List[str]
    per_category_accuracy: Dict[str, float]
    overall_accuracy: float
    total_records_learned: int
