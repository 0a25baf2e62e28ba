"""Shared builders for the test suite."""

import threading
from datetime import datetime, timedelta
from typing import Optional

from nutrisync.models import (
    DailyLog,
    Dataset,
    FoodFacts,
    MacroRatios,
    MealEntry,
    MealType,
    Profile,
    Snapshot,
    WeightSample,
)

# Noon local time, so day arithmetic never crosses midnight
NOW = datetime(2026, 3, 15, 12, 0)
NOW_MS = int(NOW.timestamp() * 1000)
DAY_MS = 24 * 60 * 60 * 1000


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, now: int = NOW_MS):
        self.value = now

    def now(self) -> int:
        return self.value

    def advance(self, ms: int) -> int:
        self.value += ms
        return self.value


class ControlledRemote:
    """In-memory remote store whose calls can be held open or failed."""

    def __init__(self, clock: ManualClock, snapshot: Optional[Snapshot] = None):
        self.clock = clock
        self.snapshot = snapshot
        self.online = True
        self.get_gate = threading.Event()
        self.get_gate.set()
        self.set_gate = threading.Event()
        self.set_gate.set()
        self.pushed: list[Dataset] = []
        self.lock = threading.Lock()

    def get(self, user_id: str) -> Optional[Snapshot]:
        self.get_gate.wait(10)
        if not self.online:
            raise ConnectionError("offline")
        return self.snapshot

    def set(self, user_id: str, dataset: Dataset) -> bool:
        self.set_gate.wait(10)
        if not self.online:
            return False
        with self.lock:
            self.pushed.append(dataset)
            self.snapshot = Snapshot(dataset=dataset, last_synced=self.clock.now())
        return True

    def remove(self, user_id: str) -> bool:
        self.snapshot = None
        return True


def day(offset: int) -> str:
    """ISO date ``offset`` days from :data:`NOW` (negative: in the past)."""
    return (NOW + timedelta(days=offset)).date().isoformat()


def make_profile(weight: float = 70.0, **overrides) -> Profile:
    values = dict(
        name="Lan",
        height=165.0,
        weight=weight,
        target_calories=2000,
        macro_ratios=MacroRatios(protein=30, carbs=40, fat=30),
    )
    values.update(overrides)
    return Profile(**values)


def make_meal(
    meal_id: str = "m1",
    timestamp: int = NOW_MS,
    calories: float = 500,
    image: Optional[str] = "data:image/jpeg;base64,AAAA",
    meal_type: MealType = MealType.LUNCH,
) -> MealEntry:
    return MealEntry(
        id=meal_id,
        meal_type=meal_type,
        timestamp=timestamp,
        completed=True,
        image_url=image,
        analysis=FoodFacts("Phở bò", calories, 25.4, 60.5, 12.5, 0.9),
    )


def make_dataset(name: str = "Lan", logs: tuple = ()) -> Dataset:
    return Dataset(
        profile=make_profile(name=name),
        logs=logs,
        weight_history=(WeightSample(weight=70.0, date=day(0), timestamp=NOW_MS, id="w1"),),
    )


def make_log(offset: int, *meals: MealEntry) -> DailyLog:
    log = DailyLog(date=day(offset))
    for meal in meals:
        log = log.with_meal(meal)
    return log
