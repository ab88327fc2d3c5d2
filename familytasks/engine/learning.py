"""Learning store for FamilyTasks estimation accuracy.

Keeps, per task category, exponentially averaged estimation accuracy,
under/over-estimation tendencies and the observed phase-time distribution.
Statistics and the capped raw observation log are persisted through the
key-value store and reloaded on construction.
"""

import json
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from familytasks.database.kv_store import KeyValueStore
from familytasks.engine.estimator import Estimator, classify_task
from familytasks.models.task import Task
from familytasks.models.estimation import Estimation, ActualTime
from familytasks.models.learning import (
    AdjustmentReason,
    LearningHistoryEntry,
    LearningInsights,
    LearningRecord,
    PhaseDistribution,
)
from familytasks.models.constants import LEARNING_RATE, LEARNING_HISTORY_CAP

logger = logging.getLogger(__name__)

LEARNING_DATA_KEY = "familytasks_learning_data"
LEARNING_HISTORY_KEY = "familytasks_task_history"


def estimation_accuracy(estimated_total: int, actual_total: int) -> float:
    """1 minus the relative error, clamped to [0, 1]."""
    if estimated_total == 0 and actual_total == 0:
        return 1.0
    if estimated_total == 0 or actual_total == 0:
        return 0.0
    relative_error = abs(estimated_total - actual_total) / max(estimated_total, actual_total)
    return max(0.0, 1.0 - relative_error)


def _blend(observed: float, current: float, alpha: float) -> float:
    return alpha * observed + (1 - alpha) * current


class LearningStore:
    """Per-category estimation statistics learned from actual time."""

    def __init__(
        self,
        store: KeyValueStore,
        alpha: float = LEARNING_RATE,
        history_cap: int = LEARNING_HISTORY_CAP,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.alpha = alpha
        self.history_cap = history_cap
        self.clock = clock
        self._records: Dict[str, LearningRecord] = {}
        self.estimator = Estimator(self)
        self._load()

    def _load(self) -> None:
        blob = self.store.load(LEARNING_DATA_KEY)
        if not blob:
            return
        for item in json.loads(blob):
            record = LearningRecord.model_validate(item)
            self._records[record.category] = record
        logger.debug(f"Loaded learning data for {len(self._records)} categories")

    def _save(self) -> None:
        payload = [r.model_dump(mode="json") for r in self._records.values()]
        self.store.save(LEARNING_DATA_KEY, json.dumps(payload))

    def _load_history(self) -> List[dict]:
        blob = self.store.load(LEARNING_HISTORY_KEY)
        return json.loads(blob) if blob else []

    def _append_history(self, entry: LearningHistoryEntry) -> None:
        history = self._load_history()
        history.append(entry.model_dump(mode="json"))
        if len(history) > self.history_cap:
            history = history[-self.history_cap:]
        self.store.save(LEARNING_HISTORY_KEY, json.dumps(history))

    def lookup(self, category: str) -> Optional[LearningRecord]:
        """Return a copy of the category's statistics, or None if never recorded."""
        record = self._records.get(category)
        return record.model_copy(deep=True) if record else None

    def record_actual(
        self,
        task: Task,
        actual_time: ActualTime,
        adjustment_reason: AdjustmentReason = AdjustmentReason.USER_MANUAL,
    ) -> LearningRecord:
        """Blend one actual-vs-estimated observation into the task's category."""
        category = classify_task(task)
        original = task.estimation or self.estimator.estimate(task)
        logger.info(f"Recording actual time for task {task.id} in category {category}")

        self._append_history(LearningHistoryEntry(
            task_id=task.id,
            category=category,
            original_estimation=original,
            actual_time=actual_time,
            adjustment_reason=adjustment_reason,
            timestamp=self.clock(),
        ))

        record = self._records.get(category) or LearningRecord(category=category, last_updated=self.clock())
        self._records[category] = self._updated_record(record, original, actual_time)
        self._save()
        task.actual_time = actual_time
        return self.lookup(category)

    def _updated_record(self, record: LearningRecord, estimation: Estimation, actual: ActualTime) -> LearningRecord:
        alpha = self.alpha
        estimated_total = estimation.total
        actual_total = actual.total

        accuracy = _blend(estimation_accuracy(estimated_total, actual_total), record.accuracy, alpha)

        under, over = record.underestimation_rate, record.overestimation_rate
        if actual_total > estimated_total:
            under, over = _blend(1.0, under, alpha), _blend(0.0, over, alpha)
        elif actual_total < estimated_total:
            under, over = _blend(0.0, under, alpha), _blend(1.0, over, alpha)

        divisor = actual_total or 1
        blended = {
            phase: _blend(actual.minutes_for(phase) / divisor, fraction, alpha)
            for phase, fraction in record.phase_distribution.as_dict().items()
        }
        # A zero actual total contributes no fractions; renormalise so they still sum to 1.
        weight = sum(blended.values()) or 1.0
        distribution = PhaseDistribution(**{phase: value / weight for phase, value in blended.items()})

        return LearningRecord(
            category=record.category,
            accuracy=accuracy,
            underestimation_rate=under,
            overestimation_rate=over,
            phase_distribution=distribution,
            last_updated=self.clock(),
        )

    def improved_estimate(self, task: Task) -> Estimation:
        return self.estimator.estimate(task)

    def insights(self) -> LearningInsights:
        per_category = {category: r.accuracy for category, r in self._records.items()}
        overall = sum(per_category.values()) / len(per_category) if per_category else 0.0
        return LearningInsights(
            categories=list(per_category),
            per_category_accuracy=per_category,
            overall_accuracy=overall,
            total_records_learned=len(self._load_history()),
        )
