"""
Meal logging and intake rollups.

A logged meal keeps its items plus the summed macronutrients. When a nutrient
lookup is configured, items measured in grams are filled in from it before the
totals are computed; a failed lookup keeps whatever values the caller supplied.
"""

import asyncio
import math
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, date, datetime, time, tzinfo
from typing import Any

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from telemetry.config import NutritionConfig
from telemetry.domain.models import (
    DoctorRecommendation,
    MealItem,
    MealType,
    NutrientTotals,
    NutritionAnalysis,
    NutritionEntry,
    ReportPeriod,
    TopCalorieMeal,
)
from telemetry.errors import ExternalDependencyError, NotFoundError, ValidationError
from telemetry.services.ports import NutrientLookup, NutritionStore
from telemetry.services.reminders import Pagination
from telemetry.services.reporting import report_window
from telemetry.services.result import Result

logger = structlog.get_logger(__name__)

NUTRIENTS = ("calories", "protein", "carbohydrates", "fat", "fiber")
GRAM_UNITS = frozenset({"g", "gram", "grams"})
DAYS_IN_PERIOD = {ReportPeriod.WEEKLY: 7, ReportPeriod.MONTHLY: 30}
TOP_MEALS = 5


def compute_totals(items: Iterable[MealItem]) -> NutrientTotals:
    """Per-nutrient sum over a meal's items."""
    items = list(items)
    return NutrientTotals(**{n: sum(getattr(item, n) for item in items) for n in NUTRIENTS})


def sum_totals(totals: Iterable[NutrientTotals]) -> NutrientTotals:
    totals = list(totals)
    return NutrientTotals(**{n: sum(getattr(t, n) for t in totals) for n in NUTRIENTS})


def needs_lookup(item: MealItem) -> bool:
    return item.quantity > 0 and item.unit.strip().lower() in GRAM_UNITS


def merge_lookup(item: MealItem, found: NutrientTotals) -> MealItem:
    """Looked-up values win; a zero from the lookup keeps the item's own value."""
    return item.model_copy(update={n: getattr(found, n) or getattr(item, n) for n in NUTRIENTS})


def _parse_meal_type(value: MealType | str) -> MealType:
    try:
        return MealType(value)
    except ValueError:
        allowed = ", ".join(m.value for m in MealType)
        raise ValidationError(f"meal_type must be one of: {allowed}") from None


def _parse_items(items: Sequence[MealItem | Mapping[str, Any]]) -> list[MealItem]:
    try:
        return [
            item if isinstance(item, MealItem) else MealItem.model_validate(dict(item))
            for item in items
        ]
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e


class NutritionPage(BaseModel):
    records: list[NutritionEntry] = Field(default_factory=list)
    summary: NutrientTotals
    pagination: Pagination


class NutritionService:
    """Meal log operations exposed to the CRUD layer."""

    MAX_PAGE_SIZE = 100

    def __init__(
        self,
        store: NutritionStore,
        lookup: NutrientLookup | None = None,
        config: NutritionConfig | None = None,
        tz: tzinfo = UTC,
    ) -> None:
        self.store = store
        self.lookup = lookup
        self.config = config or NutritionConfig()
        self.tz = tz
        self.logger = logger.bind(component="nutrition_service")

    async def _enrich(self, items: list[MealItem]) -> list[MealItem]:
        if self.lookup is None:
            return items
        targets = [i for i, item in enumerate(items) if needs_lookup(item)]
        if not targets:
            return items

        lookup = self.lookup
        semaphore = asyncio.Semaphore(self.config.max_concurrent_lookups)

        async def fetch(item: MealItem) -> Result[NutrientTotals, ExternalDependencyError]:
            async with semaphore:
                return await lookup.lookup(item.name, item.quantity, item.unit)

        results = await asyncio.gather(*(fetch(items[i]) for i in targets))

        enriched = list(items)
        for index, result in zip(targets, results, strict=True):
            if result.is_ok():
                enriched[index] = merge_lookup(items[index], result.unwrap())
            else:
                self.logger.warning(
                    "nutrient_lookup_failed",
                    item=items[index].name,
                    error=str(result.unwrap_err()),
                )
        return enriched

    async def add_meal(
        self,
        user_id: str,
        meal_type: MealType | str,
        items: Sequence[MealItem | Mapping[str, Any]] = (),
        *,
        meal_name: str | None = None,
        notes: str | None = None,
        recorded_at: datetime | None = None,
        use_lookup: bool = True,
    ) -> NutritionEntry:
        if not user_id:
            raise ValidationError("user_id is required")
        parsed_type = _parse_meal_type(meal_type)
        parsed_items = _parse_items(items)
        if use_lookup:
            parsed_items = await self._enrich(parsed_items)

        entry = NutritionEntry(
            user_id=user_id,
            meal_type=parsed_type,
            meal_name=meal_name,
            items=parsed_items,
            totals=compute_totals(parsed_items),
            notes=notes,
            recorded_at=recorded_at or datetime.now(UTC),
        )
        stored = await self.store.add(entry)
        self.logger.info(
            "meal_logged",
            user_id=user_id,
            entry_id=stored.id,
            meal_type=parsed_type.value,
            items=len(parsed_items),
            calories=stored.totals.calories,
        )
        return stored

    async def list_meals(
        self,
        user_id: str,
        *,
        day: date | None = None,
        meal_type: MealType | str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> NutritionPage:
        """
        One page of a user's meals, newest first.

        ``summary`` totals only the meals on the returned page, so with ``day``
        set and a page large enough it is that day's intake.
        """
        if not user_id:
            raise ValidationError("user_id is required")
        limit = min(max(1, limit or self.config.default_page_size), self.MAX_PAGE_SIZE)
        page = max(1, page)

        start = end = None
        if day is not None:
            start = datetime.combine(day, time.min, tzinfo=self.tz)
            end = datetime.combine(day, time.max, tzinfo=self.tz)

        records, total = await self.store.query(
            user_id,
            meal_type=_parse_meal_type(meal_type) if meal_type is not None else None,
            start=start,
            end=end,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return NutritionPage(
            records=records,
            summary=sum_totals(r.totals for r in records),
            pagination=Pagination(
                total=total, page=page, limit=limit, total_pages=math.ceil(total / limit)
            ),
        )

    async def update_meal(
        self,
        entry_id: str,
        user_id: str,
        *,
        meal_type: MealType | str | None = None,
        meal_name: str | None = None,
        items: Sequence[MealItem | Mapping[str, Any]] | None = None,
        notes: str | None = None,
        recorded_at: datetime | None = None,
        use_lookup: bool = True,
    ) -> NutritionEntry:
        """Change the given fields; replacing ``items`` recomputes the totals."""
        entry = await self._owned(entry_id, user_id)

        update: dict[str, object] = {}
        if meal_type is not None:
            update["meal_type"] = _parse_meal_type(meal_type)
        if meal_name is not None:
            update["meal_name"] = meal_name
        if notes is not None:
            update["notes"] = notes
        if recorded_at is not None:
            update["recorded_at"] = recorded_at
        if items is not None:
            parsed_items = _parse_items(items)
            if use_lookup:
                parsed_items = await self._enrich(parsed_items)
            update.update(items=parsed_items, totals=compute_totals(parsed_items))

        updated = await self.store.update(entry.model_copy(update=update))
        self.logger.info(
            "meal_updated", user_id=user_id, entry_id=entry_id, fields=sorted(update)
        )
        return updated

    async def delete_meal(self, entry_id: str, user_id: str) -> None:
        await self._owned(entry_id, user_id)
        await self.store.delete(entry_id)
        self.logger.info("meal_deleted", user_id=user_id, entry_id=entry_id)

    async def add_doctor_recommendation(
        self,
        entry_id: str,
        doctor_id: str,
        *,
        message: str | None = None,
        target_calories: float | None = None,
        target_protein: float | None = None,
        target_carbohydrates: float | None = None,
        target_fat: float | None = None,
    ) -> NutritionEntry:
        """Attach (or replace) a clinician's recommendation on any user's meal."""
        if not doctor_id:
            raise ValidationError("doctor_id is required")
        entry = await self.store.get(entry_id)
        if entry is None:
            raise NotFoundError("Nutrition entry", entry_id)

        try:
            recommendation = DoctorRecommendation(
                doctor_id=doctor_id,
                message=message,
                target_calories=target_calories,
                target_protein=target_protein,
                target_carbohydrates=target_carbohydrates,
                target_fat=target_fat,
            )
        except PydanticValidationError as e:
            raise ValidationError(str(e)) from e

        updated = await self.store.update(
            entry.model_copy(update={"doctor_recommendation": recommendation})
        )
        self.logger.info("doctor_recommendation_added", entry_id=entry_id, doctor_id=doctor_id)
        return updated

    async def analyze(
        self,
        user_id: str,
        period: ReportPeriod | str = ReportPeriod.WEEKLY,
        now: datetime | None = None,
    ) -> NutritionAnalysis:
        """Totals, daily averages and the highest-calorie meals over the window."""
        if not user_id:
            raise ValidationError("user_id is required")
        try:
            period = ReportPeriod(period)
        except ValueError:
            raise ValidationError(f"Unknown report period {period!r}") from None
        if period not in DAYS_IN_PERIOD:
            raise ValidationError("Nutrition analysis is weekly or monthly")

        start, end = report_window(period, now or datetime.now(UTC), self.tz)
        records = await self.store.list_between(user_id, start, end)

        totals = sum_totals(r.totals for r in records)
        days = DAYS_IN_PERIOD[period]
        averages = NutrientTotals(**{n: round(getattr(totals, n) / days, 2) for n in NUTRIENTS})
        top = sorted(records, key=lambda r: r.totals.calories, reverse=True)[:TOP_MEALS]

        analysis = NutritionAnalysis(
            report_type=period,
            user_id=user_id,
            period_start=start,
            period_end=end,
            total_meals=len(records),
            meal_type_breakdown=dict(Counter(r.meal_type for r in records)),
            totals=totals,
            daily_averages=averages,
            top_calorie_meals=[
                TopCalorieMeal(
                    meal_name=r.meal_name or r.meal_type.value,
                    calories=r.totals.calories,
                    recorded_at=r.recorded_at,
                )
                for r in top
            ],
        )
        self.logger.info(
            "nutrition_analysis_generated",
            user_id=user_id,
            period=period.value,
            meals=analysis.total_meals,
        )
        return analysis

    async def _owned(self, entry_id: str, user_id: str) -> NutritionEntry:
        entry = await self.store.get(entry_id)
        if entry is None or entry.user_id != user_id:
            raise NotFoundError("Nutrition entry", entry_id)
        return entry
