"""Compaction of a dataset into a bounded remote payload.

Applied on the way to the remote store only; the local store keeps full
fidelity. The transform is pure and idempotent:

- logs dated more than ``retention_days`` before today are dropped;
- meal images older than ``image_retention_days`` are stripped, keeping the
  numeric and text facts of the meal;
- calorie and macro numbers are rounded to integers, the analysis
  confidence is cleared and notes are trimmed.
"""

import math
from dataclasses import replace
from datetime import date, timedelta
from typing import Optional

from ..clock import local_date
from ..config import CompactionSettings
from ..models import DailyLog, Dataset, FoodFacts, MealEntry

__all__ = ["compact"]

DAY_MS = 24 * 60 * 60 * 1000


def _round(value: float) -> int:
    # half-up, so 2.5 -> 3 like the apps reading these numbers
    return int(math.floor(value + 0.5))


def _round_facts(facts: FoodFacts) -> FoodFacts:
    return replace(
        facts,
        calories=_round(facts.calories),
        protein=_round(facts.protein),
        carbs=_round(facts.carbs),
        fat=_round(facts.fat),
        confidence=0,
    )


def _compact_meal(meal: MealEntry, log_day: date, image_cutoff_ms: int, image_cutoff_day: date) -> MealEntry:
    if meal.timestamp:
        keep_image = meal.timestamp >= image_cutoff_ms
    else:
        keep_image = log_day >= image_cutoff_day

    notes = meal.manual_notes.strip() if meal.manual_notes else None
    return replace(
        meal,
        image_url=meal.image_url if keep_image else None,
        analysis=_round_facts(meal.analysis) if meal.analysis else None,
        manual_notes=notes or None,
    )


def compact(dataset: Dataset, now_ms: int, settings: Optional[CompactionSettings] = None) -> Dataset:
    """Reduce ``dataset`` to the payload stored remotely.

    Args:
        dataset: Full-fidelity dataset (not modified)
        now_ms: Current time in ms; retention is evaluated against its date
        settings: Retention policy, defaults to :class:`CompactionSettings`

    Returns:
        A new, compacted dataset
    """
    settings = settings or CompactionSettings()
    today = local_date(now_ms)
    retention_cutoff = today - timedelta(days=settings.retention_days)
    image_cutoff_ms = now_ms - settings.image_retention_days * DAY_MS
    image_cutoff_day = today - timedelta(days=settings.image_retention_days)

    logs: list[DailyLog] = []
    for log in dataset.logs:
        log_day = date.fromisoformat(log.date)
        if log_day < retention_cutoff:
            continue
        meals = tuple(
            _compact_meal(meal, log_day, image_cutoff_ms, image_cutoff_day) for meal in log.meals
        )
        logs.append(replace(log, meals=meals, total_calories=_round(log.total_calories)))

    return replace(dataset, logs=tuple(logs))
