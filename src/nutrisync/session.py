"""Session context handed to the display layer.

A :class:`TrackerSession` is the only way the display layer changes data:
each method validates user input, then commits a pure mutation through the
session's :class:`SyncEngine`, which stores it locally and pushes it to the
remote store.
"""

import logging
import math
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Optional

from .analysis import analyze_food_image
from .clock import local_date
from .errors import DataShapeError, InvalidInputError
from .models import (
    DailyLog,
    Dataset,
    MealEntry,
    MealSlot,
    MealType,
    PresetFood,
    Profile,
    TIME_RE,
    SyncStatus,
    WeightSample,
    is_valid_date,
)
from .sync.coordinator import SyncCoordinator
from .sync.protocols import FoodAnalyzerProtocol
from .sync.sync_engine import SyncEngine
from .transfer import export_document, parse_import, write_export

__all__ = ["TrackerSession", "MIN_WEIGHT_KG", "MAX_WEIGHT_KG"]

logger = logging.getLogger(__name__)

MIN_WEIGHT_KG = 1
MAX_WEIGHT_KG = 500
NUTRITION_FIELDS = ("calories", "protein", "carbs")


def _new_id() -> str:
    return uuid.uuid4().hex


def _positive_number(value: Any, what: str, upper: Optional[float] = None) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidInputError(f"{what} must be a number")
    if value <= 0 or (upper is not None and value > upper):
        raise InvalidInputError(f"{what} out of range: {value}")
    return value


def _non_negative(value: Any, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidInputError(f"{what} must be a number")
    if value < 0:
        raise InvalidInputError(f"{what} cannot be negative")
    return value


def _meal_type(value: Any) -> MealType:
    try:
        return MealType.parse(value)
    except DataShapeError as e:
        raise InvalidInputError(str(e)) from e


def _require_profile(dataset: Optional[Dataset]) -> Dataset:
    if dataset is None or dataset.profile is None:
        raise InvalidInputError("Complete the profile first")
    return dataset


def _latest_weight(history: tuple[WeightSample, ...]) -> Optional[float]:
    if not history:
        return None
    # Newest by timestamp, falling back to the date for samples without one
    newest = max(history, key=lambda s: (s.timestamp or 0, s.date))
    return newest.weight


class TrackerSession:
    """Mutation intents for one signed-in user."""

    def __init__(
        self,
        engine: SyncEngine,
        analyzer: Optional[FoodAnalyzerProtocol] = None,
        coordinator: Optional[SyncCoordinator] = None,
    ):
        self.engine = engine
        self.analyzer = analyzer
        self.coordinator = coordinator

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> Optional[Dataset]:
        """Start the engine, then the background retry job if there is one."""
        dataset = self.engine.start()
        if self.coordinator is not None:
            self.coordinator.start()
        return dataset

    def close(self) -> None:
        if self.coordinator is not None:
            self.coordinator.stop()
        self.engine.close()

    def resync(self) -> bool:
        return self.engine.resync()

    @property
    def user_id(self) -> str:
        return self.engine.user_id

    @property
    def dataset(self) -> Optional[Dataset]:
        return self.engine.dataset

    @property
    def status(self) -> SyncStatus:
        return self.engine.status

    def today(self) -> str:
        return local_date(self.engine.clock.now()).isoformat()

    # -- profile -----------------------------------------------------------

    def complete_profile(self, profile: Profile) -> Dataset:
        """Create the dataset on first profile completion (or replace the profile)."""
        _positive_number(profile.height, "Height", upper=300)
        _positive_number(profile.weight, "Weight", upper=MAX_WEIGHT_KG)
        _non_negative(profile.target_calories, "Target calories")
        for name in ("protein", "carbs", "fat"):
            _non_negative(getattr(profile.macro_ratios, name), f"{name.title()} ratio")

        now = self.engine.clock.now()
        sample = WeightSample(weight=profile.weight, date=self.today(), timestamp=now, id=_new_id())

        def mutate(current: Optional[Dataset]) -> Dataset:
            base = current or Dataset()
            return replace(base, profile=replace(profile, setup_complete=True), weight_history=(sample,))

        logger.info(f"Profile completed for {self.user_id}")
        return self.engine.commit(mutate)

    def update_nutrition_target(self, field: str, value: float) -> Dataset:
        """Change the calorie target or a macro ratio.

        Setting protein or carbs makes fat the remainder to 100%, rounded to
        one decimal and never below zero.
        """
        if field not in NUTRITION_FIELDS:
            raise InvalidInputError(f"Unknown nutrition field: {field!r}")
        value = _non_negative(value, field.title())
        if field != "calories" and value > 100:
            raise InvalidInputError(f"{field.title()} ratio cannot exceed 100%")

        def mutate(current: Optional[Dataset]) -> Dataset:
            dataset = _require_profile(current)
            profile = dataset.profile
            if field == "calories":
                return replace(dataset, profile=replace(profile, target_calories=round(value)))

            ratios = profile.macro_ratios
            protein = value if field == "protein" else ratios.protein
            carbs = value if field == "carbs" else ratios.carbs
            fat = max(0, round((100 - protein - carbs) * 10) / 10)
            ratios = replace(ratios, protein=protein, carbs=carbs, fat=fat)
            return replace(dataset, profile=replace(profile, macro_ratios=ratios))

        return self.engine.commit(mutate)

    # -- daily logs --------------------------------------------------------

    def update_log(self, log: DailyLog) -> Dataset:
        """Insert or replace the log for ``log.date``."""
        if not is_valid_date(log.date):
            raise InvalidInputError(f"Invalid log date: {log.date!r}")
        try:
            DailyLog.from_dict(log.to_dict())
        except DataShapeError as e:
            raise InvalidInputError(str(e)) from e
        return self.engine.commit(lambda current: _require_profile(current).with_log(log))

    def log_meal_photo(
        self,
        image: str,
        meal_type: MealType,
        date: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> MealEntry:
        """Analyze a meal photo and add it to the day's log.

        Analysis runs before the change is committed; a failed analysis
        stores placeholder facts instead of aborting.
        """
        date = date or self.today()
        if not is_valid_date(date):
            raise InvalidInputError(f"Invalid log date: {date!r}")
        if not image:
            raise InvalidInputError("No image given")
        meal_type = _meal_type(meal_type)

        facts = analyze_food_image(self.analyzer, image)
        meal = MealEntry(
            id=_new_id(),
            meal_type=meal_type,
            timestamp=self.engine.clock.now(),
            completed=True,
            image_url=image,
            analysis=facts,
            manual_notes=notes,
        )

        def mutate(current: Optional[Dataset]) -> Dataset:
            dataset = _require_profile(current)
            log = dataset.get_log(date) or DailyLog(date=date)
            return dataset.with_log(log.with_meal(meal))

        self.engine.commit(mutate)
        return meal

    # -- weight ------------------------------------------------------------

    def record_weight(self, weight: float) -> Dataset:
        """Add a weigh-in for today and make it the profile weight."""
        weight = _positive_number(weight, "Weight", upper=MAX_WEIGHT_KG)
        if weight < MIN_WEIGHT_KG:
            raise InvalidInputError(f"Weight out of range: {weight}")
        now = self.engine.clock.now()
        sample = WeightSample(weight=weight, date=self.today(), timestamp=now, id=_new_id())

        def mutate(current: Optional[Dataset]) -> Dataset:
            dataset = _require_profile(current)
            return replace(
                dataset,
                profile=replace(dataset.profile, weight=weight),
                weight_history=dataset.weight_history + (sample,),
            )

        return self.engine.commit(mutate)

    def delete_weight(self, sample_id: str) -> Dataset:
        """Remove a weigh-in; the profile weight follows the newest remaining one."""

        def mutate(current: Optional[Dataset]) -> Dataset:
            dataset = _require_profile(current)
            history = tuple(s for s in dataset.weight_history if s.id != sample_id)
            profile = dataset.profile
            latest = _latest_weight(history)
            if latest is not None:
                profile = replace(profile, weight=latest)
            return replace(dataset, profile=profile, weight_history=history)

        return self.engine.commit(mutate)

    # -- schedule & presets ------------------------------------------------

    def update_schedule(self, schedule: dict[MealType, MealSlot]) -> Dataset:
        schedule = {_meal_type(meal): slot for meal, slot in schedule.items()}
        for meal, slot in schedule.items():
            valid = TIME_RE.match(slot.time) and int(slot.time[:2]) < 24 and int(slot.time[3:]) < 60
            if not valid:
                raise InvalidInputError(f"Invalid time for {meal.value}: {slot.time!r}")

        def mutate(current: Optional[Dataset]) -> Dataset:
            dataset = _require_profile(current)
            return replace(dataset, schedule={**dataset.schedule, **schedule})

        return self.engine.commit(mutate)

    def toggle_meal(self, meal_type: MealType) -> Dataset:
        meal_type = _meal_type(meal_type)

        def mutate(current: Optional[Dataset]) -> Dataset:
            dataset = _require_profile(current)
            slot = dataset.schedule.get(meal_type) or MealSlot("12:00", False)
            schedule = {**dataset.schedule, meal_type: replace(slot, enabled=not slot.enabled)}
            return replace(dataset, schedule=schedule)

        return self.engine.commit(mutate)

    def add_preset(self, food: PresetFood) -> Dataset:
        if not food.name.strip():
            raise InvalidInputError("Preset food needs a name")
        for name in ("calories", "protein", "carbs", "fat"):
            _non_negative(getattr(food, name), name.title())

        def mutate(current: Optional[Dataset]) -> Dataset:
            dataset = _require_profile(current)
            return replace(dataset, preset_foods=dataset.preset_foods + (food,))

        return self.engine.commit(mutate)

    def remove_preset(self, food_id: str) -> Dataset:
        def mutate(current: Optional[Dataset]) -> Dataset:
            dataset = _require_profile(current)
            return replace(dataset, preset_foods=tuple(f for f in dataset.preset_foods if f.id != food_id))

        return self.engine.commit(mutate)

    # -- export / import ---------------------------------------------------

    def export_document(self) -> dict:
        dataset = self.dataset
        if dataset is None:
            raise InvalidInputError("Nothing to export yet")
        return export_document(dataset, self.user_id, self.engine.clock.now())

    def write_export(self, directory: Path) -> Path:
        dataset = self.dataset
        if dataset is None:
            raise InvalidInputError("Nothing to export yet")
        return write_export(dataset, self.user_id, self.engine.clock.now(), directory)

    def import_document(self, document: Any, confirm: Callable[[], bool] = lambda: True) -> bool:
        """Replace the dataset with an imported one after confirmation.

        Raises:
            InvalidImportError: If the document is incomplete or malformed.

        Returns:
            False if the user declined the overwrite.
        """
        dataset = parse_import(document)
        if not confirm():
            logger.info("Import cancelled by user")
            return False
        self.engine.replace(dataset)
        logger.info(f"Imported dataset for {self.user_id}")
        return True
