"""Phase duration estimation for FamilyTasks.

Decomposes a task into the four work phases. When a learning lookup is
supplied, learned statistics for the task's category adjust the total, the
phase split and the confidence.
"""

import logging
from typing import Dict, Mapping, Optional, Protocol

from familytasks.models.task import Task
from familytasks.models.estimation import Estimation
from familytasks.models.learning import LearningRecord
from familytasks.models.constants import (
    BASE_ESTIMATE_MINUTES,
    PRIORITY_MULTIPLIERS,
    DEFAULT_CONFIDENCE,
    DEFAULT_PHASE_DISTRIBUTION,
    UNDERESTIMATION_THRESHOLD,
    OVERESTIMATION_THRESHOLD,
    UNDERESTIMATION_SCALE,
    OVERESTIMATION_SCALE,
    FALLBACK_CATEGORY,
    TITLE_CATEGORY_KEYWORDS,
)

logger = logging.getLogger(__name__)


class LearningLookup(Protocol):
    """Read access to learned statistics, keyed by category."""

    def lookup(self, category: str) -> Optional[LearningRecord]:
        ...


def classify_task(task: Task) -> str:
    """Derive the learning category of a task.

    Project name wins, then the first keyword, then a title vocabulary match.
    """
    if task.project:
        return task.project
    if task.keywords:
        return task.keywords[0]

    title = task.title.lower()
    for category, words in TITLE_CATEGORY_KEYWORDS:
        if any(word in title for word in words):
            return category
    return FALLBACK_CATEGORY


def base_total_minutes(task: Task) -> int:
    priority = getattr(task.priority, "value", task.priority)
    multiplier = PRIORITY_MULTIPLIERS.get(priority, 1.0)
    return int(BASE_ESTIMATE_MINUTES * multiplier)


def split_total(total: int, fractions: Mapping[str, float], confidence: float) -> Estimation:
    """Split `total` minutes across phases by `fractions`.

    Each phase is floored; the rounding remainder goes to implementation so the
    phases always add up to `total`.
    """
    weight = sum(fractions.values()) or 1.0
    minutes: Dict[str, int] = {
        # epsilon absorbs float noise such as 0.3 * 60 == 17.999...
        phase: int(total * fractions[phase] / weight + 1e-9) for phase in DEFAULT_PHASE_DISTRIBUTION
    }
    remainder = total - sum(minutes.values())
    minutes["implementation"] = max(0, minutes["implementation"] + remainder)
    return Estimation(total=total, confidence=confidence, **minutes)


class Estimator:
    """Produces phase-duration breakdowns for tasks."""

    def __init__(self, learning: Optional[LearningLookup] = None):
        self.learning = learning

    def estimate(self, task: Task) -> Estimation:
        total = base_total_minutes(task)
        record = self.learning.lookup(classify_task(task)) if self.learning else None

        if record is None:
            return split_total(total, DEFAULT_PHASE_DISTRIBUTION, DEFAULT_CONFIDENCE)

        if record.underestimation_rate > UNDERESTIMATION_THRESHOLD:
            total = int(total * UNDERESTIMATION_SCALE)
        elif record.overestimation_rate > OVERESTIMATION_THRESHOLD:
            total = int(total * OVERESTIMATION_SCALE)

        estimation = split_total(total, record.phase_distribution.as_dict(), record.accuracy)
        logger.debug(f"Learned estimation for task {task.id} ({record.category}): {estimation.total} min")
        return estimation


def reduce_estimation(estimation: Estimation, factor: float) -> Estimation:
    """Scale every phase by `factor` (floored); total is the new phase sum."""
    minutes = {
        phase: int(estimation.minutes_for(phase) * factor) for phase in DEFAULT_PHASE_DISTRIBUTION
    }
    return Estimation(total=sum(minutes.values()), confidence=estimation.confidence, **minutes)
