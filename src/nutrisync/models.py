"""Tracked data types and their JSON wire format.

Everything a user tracks lives in one :class:`Dataset`; a :class:`Snapshot`
is a dataset tagged with the time it was written to a store. Both stores
persist the camelCase JSON produced by ``to_dict`` and read it back with
``from_dict``, which validates shape and raises :class:`DataShapeError`
instead of trusting malformed input.

The types are frozen; edits produce new objects via ``dataclasses.replace``
or the ``with_*`` helpers on :class:`Dataset`.
"""

import math
import re
from datetime import date as _date
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from .errors import DataShapeError

__all__ = [
    "MacroRatios",
    "Profile",
    "FoodFacts",
    "MealType",
    "MealEntry",
    "DailyLog",
    "WeightSample",
    "MealSlot",
    "PresetFood",
    "Dataset",
    "Snapshot",
    "SyncStatus",
    "default_schedule",
    "DATE_RE",
    "is_valid_date",
]

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^\d{2}:\d{2}$")


def is_valid_date(value: Any) -> bool:
    """True for a real calendar date written as YYYY-MM-DD."""
    if not isinstance(value, str) or not DATE_RE.match(value):
        return False
    try:
        _date.fromisoformat(value)
    except ValueError:
        return False
    return True


class SyncStatus(str, Enum):
    """Relationship between the in-memory dataset and the remote store."""

    SYNCED = "synced"
    SYNCING = "syncing"
    LOCAL_ONLY = "local_only"


# -- field readers ------------------------------------------------------------


def _mapping(value: Any, what: str) -> dict:
    if not isinstance(value, dict):
        raise DataShapeError(f"{what}: expected object, got {type(value).__name__}")
    return value


def _list(value: Any, what: str) -> list:
    if not isinstance(value, list):
        raise DataShapeError(f"{what}: expected array, got {type(value).__name__}")
    return value


def _number(data: dict, key: str, what: str, default: Optional[float] = None) -> float:
    value = data.get(key)
    if value is None:
        if default is not None:
            return default
        raise DataShapeError(f"{what}.{key}: missing number")
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DataShapeError(f"{what}.{key}: expected number, got {value!r}")
    # json.loads accepts NaN and Infinity
    if not math.isfinite(value):
        raise DataShapeError(f"{what}.{key}: not a finite number: {value!r}")
    return value


def _optional_number(data: dict, key: str, what: str) -> Optional[float]:
    if data.get(key) is None:
        return None
    return _number(data, key, what)


def _string(data: dict, key: str, what: str, default: Optional[str] = None) -> str:
    value = data.get(key)
    if value is None:
        if default is not None:
            return default
        raise DataShapeError(f"{what}.{key}: missing string")
    if not isinstance(value, str):
        raise DataShapeError(f"{what}.{key}: expected string, got {value!r}")
    return value


def _optional_string(data: dict, key: str, what: str) -> Optional[str]:
    if data.get(key) is None:
        return None
    return _string(data, key, what)


def _identifier(data: dict, key: str, what: str) -> str:
    value = data.get(key)
    # ids were generated from millisecond timestamps and may arrive as numbers
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise DataShapeError(f"{what}.{key}: expected id, got {value!r}")
    return str(value)


def _drop_none(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}


# -- profile ------------------------------------------------------------------


@dataclass(frozen=True)
class MacroRatios:
    """Macro split as percentages (0-100)."""

    protein: float
    carbs: float
    fat: float

    @classmethod
    def from_dict(cls, data: Any) -> "MacroRatios":
        data = _mapping(data, "macroRatios")
        return cls(
            protein=_number(data, "protein", "macroRatios"),
            carbs=_number(data, "carbs", "macroRatios"),
            fat=_number(data, "fat", "macroRatios"),
        )

    def to_dict(self) -> dict:
        return {"protein": self.protein, "carbs": self.carbs, "fat": self.fat}


@dataclass(frozen=True)
class Profile:
    """Bio-metrics and nutrition targets."""

    name: str
    height: float  # cm
    weight: float  # kg
    target_calories: float
    macro_ratios: MacroRatios
    setup_complete: bool = True

    @classmethod
    def from_dict(cls, data: Any) -> "Profile":
        data = _mapping(data, "profile")
        return cls(
            name=_string(data, "name", "profile"),
            height=_number(data, "height", "profile"),
            weight=_number(data, "weight", "profile"),
            target_calories=_number(data, "targetCalories", "profile"),
            macro_ratios=MacroRatios.from_dict(data.get("macroRatios")),
            setup_complete=bool(data.get("setupComplete", True)),
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "height": self.height,
            "weight": self.weight,
            "targetCalories": self.target_calories,
            "macroRatios": self.macro_ratios.to_dict(),
            "setupComplete": self.setup_complete,
        }


# -- meals --------------------------------------------------------------------


@dataclass(frozen=True)
class FoodFacts:
    """Nutritional estimate for one meal, as produced by image analysis."""

    food_name: str
    calories: float
    protein: float  # g
    carbs: float  # g
    fat: float  # g
    confidence: float = 0.0  # 0-1, display only

    @classmethod
    def placeholder(cls, food_name: str = "Analysis failed") -> "FoodFacts":
        """Zero-valued facts used when analysis fails."""
        return cls(food_name=food_name, calories=0, protein=0, carbs=0, fat=0, confidence=0)

    @classmethod
    def from_dict(cls, data: Any) -> "FoodFacts":
        data = _mapping(data, "analysis")
        return cls(
            food_name=_string(data, "foodName", "analysis"),
            calories=_number(data, "calories", "analysis"),
            protein=_number(data, "protein", "analysis"),
            carbs=_number(data, "carbs", "analysis"),
            fat=_number(data, "fat", "analysis"),
            confidence=_number(data, "confidence", "analysis", default=0),
        )

    def to_dict(self) -> dict:
        return {
            "foodName": self.food_name,
            "calories": self.calories,
            "protein": self.protein,
            "carbs": self.carbs,
            "fat": self.fat,
            "confidence": self.confidence,
        }


class MealType(str, Enum):
    """Meal slots in a day, in schedule order."""

    BREAKFAST = "breakfast"
    SNACK_1 = "snack_1"
    LUNCH = "lunch"
    SNACK_2 = "snack_2"
    SNACK_3 = "snack_3"
    DINNER = "dinner"
    SNACK_4 = "snack_4"

    @classmethod
    def parse(cls, value: Any) -> "MealType":
        """Parse a meal type, accepting the labels used by older backups."""
        if isinstance(value, MealType):
            return value
        if isinstance(value, str):
            if value in _LEGACY_MEAL_LABELS:
                return _LEGACY_MEAL_LABELS[value]
            try:
                return cls(value)
            except ValueError:
                pass
        raise DataShapeError(f"unknown meal type {value!r}")


_LEGACY_MEAL_LABELS = {
    "Bữa sáng": MealType.BREAKFAST,
    "Bữa trưa": MealType.LUNCH,
    "Bữa tối": MealType.DINNER,
    "Ăn nhẹ 1": MealType.SNACK_1,
    "Ăn nhẹ 2": MealType.SNACK_2,
    "Ăn nhẹ 3": MealType.SNACK_3,
    "Ăn nhẹ 4": MealType.SNACK_4,
}


@dataclass(frozen=True)
class MealEntry:
    """A single meal logged within a day."""

    id: str
    meal_type: MealType
    timestamp: int  # ms since epoch
    completed: bool = False
    image_url: Optional[str] = None
    analysis: Optional[FoodFacts] = None
    manual_notes: Optional[str] = None

    @property
    def calories(self) -> float:
        return self.analysis.calories if self.analysis else 0

    @classmethod
    def from_dict(cls, data: Any) -> "MealEntry":
        data = _mapping(data, "meal")
        analysis = data.get("analysis")
        return cls(
            id=_identifier(data, "id", "meal"),
            meal_type=MealType.parse(data.get("type")),
            timestamp=int(_number(data, "timestamp", "meal")),
            completed=bool(data.get("completed", False)),
            image_url=_optional_string(data, "imageUrl", "meal"),
            analysis=FoodFacts.from_dict(analysis) if analysis is not None else None,
            manual_notes=_optional_string(data, "manualNotes", "meal"),
        )

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "type": self.meal_type.value,
            "timestamp": self.timestamp,
            "completed": self.completed,
            "imageUrl": self.image_url,
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "manualNotes": self.manual_notes,
        })


@dataclass(frozen=True)
class DailyLog:
    """Everything logged for one calendar date."""

    date: str  # YYYY-MM-DD
    meals: tuple[MealEntry, ...] = ()
    total_calories: float = 0
    weight: Optional[float] = None

    def with_meal(self, meal: MealEntry) -> "DailyLog":
        """Add or replace a meal (by id) and recompute the calorie total."""
        meals = tuple(m for m in self.meals if m.id != meal.id) + (meal,)
        return replace(self, meals=meals, total_calories=sum(m.calories for m in meals))

    @classmethod
    def from_dict(cls, data: Any) -> "DailyLog":
        data = _mapping(data, "log")
        date = _string(data, "date", "log")
        if not is_valid_date(date):
            raise DataShapeError(f"log.date: expected YYYY-MM-DD, got {date!r}")
        return cls(
            date=date,
            meals=tuple(MealEntry.from_dict(m) for m in _list(data.get("meals", []), "log.meals")),
            total_calories=_number(data, "totalCalories", "log", default=0),
            weight=_optional_number(data, "weight", "log"),
        )

    def to_dict(self) -> dict:
        return _drop_none({
            "date": self.date,
            "meals": [m.to_dict() for m in self.meals],
            "totalCalories": self.total_calories,
            "weight": self.weight,
        })


# -- weight, schedule, presets ------------------------------------------------


@dataclass(frozen=True)
class WeightSample:
    """One weigh-in."""

    weight: float
    date: str
    timestamp: Optional[int] = None
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "WeightSample":
        data = _mapping(data, "weightHistory[]")
        timestamp = _optional_number(data, "timestamp", "weightHistory[]")
        return cls(
            weight=_number(data, "weight", "weightHistory[]"),
            date=_string(data, "date", "weightHistory[]"),
            timestamp=int(timestamp) if timestamp is not None else None,
            id=_optional_string(data, "id", "weightHistory[]"),
        )

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "date": self.date,
            "timestamp": self.timestamp,
            "weight": self.weight,
        })


@dataclass(frozen=True)
class MealSlot:
    """Scheduled time for a meal type."""

    time: str  # HH:MM
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: Any) -> "MealSlot":
        data = _mapping(data, "schedule[]")
        time = _string(data, "time", "schedule[]")
        if not TIME_RE.match(time):
            raise DataShapeError(f"schedule[].time: expected HH:MM, got {time!r}")
        return cls(time=time, enabled=bool(data.get("enabled", True)))

    def to_dict(self) -> dict:
        return {"time": self.time, "enabled": self.enabled}


def default_schedule() -> dict[MealType, MealSlot]:
    """Meal schedule for a freshly created dataset."""
    return {
        MealType.BREAKFAST: MealSlot("07:00", True),
        MealType.SNACK_1: MealSlot("10:00", True),
        MealType.LUNCH: MealSlot("12:30", True),
        MealType.SNACK_2: MealSlot("16:00", True),
        MealType.SNACK_3: MealSlot("15:00", False),
        MealType.DINNER: MealSlot("19:00", True),
        MealType.SNACK_4: MealSlot("21:00", False),
    }


def _schedule_from_dict(data: Any) -> dict[MealType, MealSlot]:
    data = _mapping(data, "schedule")
    schedule = default_schedule()
    for key, slot in data.items():
        schedule[MealType.parse(key)] = MealSlot.from_dict(slot)
    return schedule


@dataclass(frozen=True)
class PresetFood:
    """A reusable food with known nutrition facts."""

    id: str
    name: str
    calories: float
    protein: float
    carbs: float
    fat: float

    @classmethod
    def from_dict(cls, data: Any) -> "PresetFood":
        data = _mapping(data, "presetFoods[]")
        return cls(
            id=_string(data, "id", "presetFoods[]"),
            name=_string(data, "name", "presetFoods[]"),
            calories=_number(data, "calories", "presetFoods[]"),
            protein=_number(data, "protein", "presetFoods[]"),
            carbs=_number(data, "carbs", "presetFoods[]"),
            fat=_number(data, "fat", "presetFoods[]"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "calories": self.calories,
            "protein": self.protein,
            "carbs": self.carbs,
            "fat": self.fat,
        }


# -- dataset & snapshot -------------------------------------------------------


@dataclass(frozen=True)
class Dataset:
    """The full per-user tracked state; the unit of synchronization."""

    profile: Optional[Profile] = None
    logs: tuple[DailyLog, ...] = ()
    weight_history: tuple[WeightSample, ...] = ()
    schedule: dict[MealType, MealSlot] = field(default_factory=default_schedule)
    preset_foods: tuple[PresetFood, ...] = ()

    def get_log(self, date: str) -> Optional[DailyLog]:
        for log in self.logs:
            if log.date == date:
                return log
        return None

    def with_log(self, log: DailyLog) -> "Dataset":
        """Insert or replace the log for ``log.date``, keeping date order."""
        others = [existing for existing in self.logs if existing.date != log.date]
        logs = sorted(others + [log], key=lambda entry: entry.date)
        return replace(self, logs=tuple(logs))

    @classmethod
    def from_dict(cls, data: Any) -> "Dataset":
        data = _mapping(data, "dataset")
        for key in ("logs", "weightHistory", "schedule", "presetFoods"):
            if key not in data:
                raise DataShapeError(f"dataset.{key}: missing")

        profile = data.get("profile")

        # At most one log per date: the last occurrence wins.
        by_date: dict[str, DailyLog] = {}
        for raw in _list(data["logs"], "dataset.logs"):
            log = DailyLog.from_dict(raw)
            by_date[log.date] = log

        return cls(
            profile=Profile.from_dict(profile) if profile is not None else None,
            logs=tuple(by_date[d] for d in sorted(by_date)),
            weight_history=tuple(
                WeightSample.from_dict(w) for w in _list(data["weightHistory"], "dataset.weightHistory")
            ),
            schedule=_schedule_from_dict(data["schedule"]),
            preset_foods=tuple(
                PresetFood.from_dict(p) for p in _list(data["presetFoods"], "dataset.presetFoods")
            ),
        )

    def to_dict(self) -> dict:
        return {
            "profile": self.profile.to_dict() if self.profile else None,
            "logs": [log.to_dict() for log in self.logs],
            "weightHistory": [w.to_dict() for w in self.weight_history],
            "schedule": {meal.value: slot.to_dict() for meal, slot in self.schedule.items()},
            "presetFoods": [p.to_dict() for p in self.preset_foods],
        }


@dataclass(frozen=True)
class Snapshot:
    """A dataset plus the time (ms, producer clock) it was written to a store."""

    dataset: Dataset
    last_synced: int

    @classmethod
    def from_dict(cls, data: Any) -> "Snapshot":
        data = _mapping(data, "snapshot")
        return cls(
            dataset=Dataset.from_dict(data),
            last_synced=int(_number(data, "lastSynced", "snapshot", default=0)),
        )

    def to_dict(self) -> dict:
        data = self.dataset.to_dict()
        data["lastSynced"] = self.last_synced
        return data
