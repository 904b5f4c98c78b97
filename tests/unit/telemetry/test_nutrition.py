"""
Tests for meal logging and nutrition rollups.

Covers:
- Per-item totals and the gram-only lookup rule
- Lookup enrichment with per-item failure fallback
- Paging, day and meal-type filters
- Owner-scoped update/delete and doctor recommendations
- Weekly/monthly analysis windows and daily averages
"""

from datetime import UTC, date, datetime, timedelta

import pytest

from adapters.memory.stores import InMemoryNutritionStore
from telemetry.domain.models import MealItem, MealType, NutrientTotals
from telemetry.errors import ExternalDependencyError, NotFoundError, ValidationError
from telemetry.services.nutrition import (
    NutritionService,
    compute_totals,
    merge_lookup,
    needs_lookup,
)
from telemetry.services.result import Result

NOW = datetime(2025, 3, 31, 15, 0, tzinfo=UTC)


def _item(name: str, calories: float, **fields: object) -> MealItem:
    fields.setdefault("quantity", 100)
    return MealItem(name=name, calories=calories, **fields)


class FakeLookup:
    """Answers from a fixed table; unknown foods fail the way a real lookup does."""

    def __init__(self, known: dict[str, NutrientTotals]) -> None:
        self.known = known
        self.calls: list[tuple[str, float, str]] = []

    async def lookup(
        self, name: str, quantity: float, unit: str = "g"
    ) -> Result[NutrientTotals, ExternalDependencyError]:
        self.calls.append((name, quantity, unit))
        if name in self.known:
            return Result.ok(self.known[name])
        return Result.err(ExternalDependencyError("open_food_facts", f"no match for {name!r}"))


@pytest.fixture
def service(nutrition_store: InMemoryNutritionStore) -> NutritionService:
    return NutritionService(nutrition_store)


class TestTotals:
    def test_items_are_summed_per_nutrient(self) -> None:
        totals = compute_totals(
            [
                _item("Rice", 195, protein=4, carbohydrates=42, fat=0.4, fiber=0.6),
                _item("Dhal", 116, protein=9, carbohydrates=20, fat=0.4, fiber=8),
            ]
        )

        assert totals.calories == pytest.approx(311)
        assert totals.protein == pytest.approx(13)
        assert totals.carbohydrates == pytest.approx(62)
        assert totals.fat == pytest.approx(0.8)
        assert totals.fiber == pytest.approx(8.6)

    def test_no_items_means_zero_totals(self) -> None:
        assert compute_totals([]) == NutrientTotals()

    @pytest.mark.parametrize(
        "unit,quantity,expected",
        [
            ("g", 100, True),
            ("grams", 50, True),
            ("Gram", 1, True),
            ("cup", 1, False),
            ("g", 0, False),
        ],
    )
    def test_only_gram_quantities_are_looked_up(
        self, unit: str, quantity: float, expected: bool
    ) -> None:
        assert needs_lookup(MealItem(name="Rice", quantity=quantity, unit=unit)) is expected

    def test_zero_from_lookup_keeps_item_value(self) -> None:
        item = _item("Curd", 60, fat=3.5)

        merged = merge_lookup(item, NutrientTotals(calories=95, protein=5))

        assert (merged.calories, merged.protein, merged.fat) == (95, 5, 3.5)


class TestAddMeal:
    async def test_meal_is_stored_with_totals(
        self, service: NutritionService, nutrition_store: InMemoryNutritionStore
    ) -> None:
        entry = await service.add_meal(
            "user-1",
            "lunch",
            [_item("Rice", 195), {"name": "Dhal", "quantity": 100, "calories": 116}],
            meal_name="Rice and curry",
            recorded_at=NOW,
        )

        assert entry.meal_type == MealType.LUNCH
        assert entry.totals.calories == 311
        assert await nutrition_store.get(entry.id) == entry

    async def test_unknown_meal_type_is_rejected(self, service: NutritionService) -> None:
        with pytest.raises(ValidationError, match="meal_type must be one of"):
            await service.add_meal("user-1", "brunch")

    async def test_user_id_is_required(self, service: NutritionService) -> None:
        with pytest.raises(ValidationError, match="user_id"):
            await service.add_meal("", MealType.SNACK)

    async def test_invalid_item_is_rejected(
        self, service: NutritionService, nutrition_store: InMemoryNutritionStore
    ) -> None:
        with pytest.raises(ValidationError):
            await service.add_meal("user-1", "snack", [{"name": "Banana", "quantity": -1}])

        assert len(nutrition_store) == 0


class TestLookupEnrichment:
    @pytest.fixture
    def lookup(self) -> FakeLookup:
        return FakeLookup(
            {"Rice": NutrientTotals(calories=195, protein=4.1, carbohydrates=42.3, fiber=0.6)}
        )

    async def test_gram_items_are_filled_in_and_failures_keep_given_values(
        self, nutrition_store: InMemoryNutritionStore, lookup: FakeLookup
    ) -> None:
        service = NutritionService(nutrition_store, lookup)

        entry = await service.add_meal(
            "user-1",
            "lunch",
            [
                MealItem(name="Rice", quantity=150),
                _item("Coconut sambol", 90, quantity=30),
                _item("Tea", 40, quantity=1, unit="cup"),
            ],
        )

        assert [name for name, _, _ in lookup.calls] == ["Rice", "Coconut sambol"]
        assert entry.items[0].calories == 195
        assert entry.items[0].protein == 4.1
        assert entry.items[1].calories == 90
        assert entry.totals.calories == 325
        assert entry.totals.protein == 4.1

    async def test_lookup_can_be_skipped(
        self, nutrition_store: InMemoryNutritionStore, lookup: FakeLookup
    ) -> None:
        service = NutritionService(nutrition_store, lookup)

        entry = await service.add_meal(
            "user-1", "lunch", [_item("Rice", 180)], use_lookup=False
        )

        assert lookup.calls == []
        assert entry.totals.calories == 180


class TestListMeals:
    @pytest.fixture
    async def logged(self, service: NutritionService) -> None:
        await service.add_meal(
            "user-1", "breakfast", [_item("Hoppers", 300)], recorded_at=NOW - timedelta(hours=1)
        )
        await service.add_meal(
            "user-1", "lunch", [_item("Rice", 500)], recorded_at=NOW - timedelta(hours=5)
        )
        await service.add_meal(
            "user-1", "dinner", [_item("Roti", 600)], recorded_at=NOW - timedelta(days=1)
        )
        await service.add_meal("user-2", "dinner", [_item("Kottu", 900)], recorded_at=NOW)

    async def test_day_filter_and_summary(self, service: NutritionService, logged: None) -> None:
        page = await service.list_meals("user-1", day=date(2025, 3, 31))

        assert [r.meal_type for r in page.records] == [MealType.BREAKFAST, MealType.LUNCH]
        assert page.summary.calories == 800
        assert page.pagination.total == 2

    async def test_paging_is_newest_first(self, service: NutritionService, logged: None) -> None:
        page = await service.list_meals("user-1", page=2, limit=1)

        assert [r.meal_type for r in page.records] == [MealType.LUNCH]
        assert (page.pagination.total, page.pagination.total_pages) == (3, 3)

    async def test_limit_is_clamped(self, service: NutritionService, logged: None) -> None:
        page = await service.list_meals("user-1", limit=500, page=0)

        assert page.pagination.limit == 100
        assert page.pagination.page == 1

    async def test_meal_type_filter(self, service: NutritionService, logged: None) -> None:
        page = await service.list_meals("user-1", meal_type="dinner")

        assert [r.totals.calories for r in page.records] == [600]

    async def test_unknown_meal_type_filter_is_rejected(self, service: NutritionService) -> None:
        with pytest.raises(ValidationError):
            await service.list_meals("user-1", meal_type="brunch")


class TestEditing:
    async def test_replacing_items_recomputes_totals(
        self, service: NutritionService, nutrition_store: InMemoryNutritionStore
    ) -> None:
        entry = await service.add_meal("user-1", "lunch", [_item("Rice", 200)])

        updated = await service.update_meal(
            entry.id,
            "user-1",
            items=[_item("Rice", 200), _item("Dhal", 120)],
            notes="extra dhal",
        )

        assert updated.totals.calories == 320
        assert updated.notes == "extra dhal"
        assert updated.meal_type == MealType.LUNCH
        assert await nutrition_store.get(entry.id) == updated

    async def test_rename_keeps_totals(self, service: NutritionService) -> None:
        entry = await service.add_meal("user-1", "lunch", [_item("Rice", 200)])

        updated = await service.update_meal(entry.id, "user-1", meal_name="Yellow rice")

        assert updated.meal_name == "Yellow rice"
        assert updated.totals == entry.totals

    async def test_other_users_meal_is_not_found(self, service: NutritionService) -> None:
        entry = await service.add_meal("user-1", "lunch", [_item("Rice", 200)])

        with pytest.raises(NotFoundError):
            await service.update_meal(entry.id, "user-2", notes="mine now")
        with pytest.raises(NotFoundError):
            await service.delete_meal(entry.id, "user-2")

    async def test_delete_removes_entry(
        self, service: NutritionService, nutrition_store: InMemoryNutritionStore
    ) -> None:
        entry = await service.add_meal("user-1", "snack", [_item("Mango", 99)])

        await service.delete_meal(entry.id, "user-1")

        assert await nutrition_store.get(entry.id) is None
        with pytest.raises(NotFoundError):
            await service.delete_meal(entry.id, "user-1")


class TestDoctorRecommendation:
    async def test_recommendation_is_attached(self, service: NutritionService) -> None:
        entry = await service.add_meal("user-1", "dinner", [_item("Kottu", 900)])

        updated = await service.add_doctor_recommendation(
            entry.id, "doctor-7", message="Halve the portion", target_calories=1800
        )

        assert updated.doctor_recommendation is not None
        assert updated.doctor_recommendation.doctor_id == "doctor-7"
        assert updated.doctor_recommendation.target_calories == 1800

    async def test_unknown_entry(self, service: NutritionService) -> None:
        with pytest.raises(NotFoundError):
            await service.add_doctor_recommendation("missing", "doctor-7")

    @pytest.mark.parametrize(
        "doctor_id,target", [("", None), ("doctor-7", -1)], ids=["no-doctor", "negative-target"]
    )
    async def test_invalid_recommendation_is_rejected(
        self, service: NutritionService, doctor_id: str, target: float | None
    ) -> None:
        entry = await service.add_meal("user-1", "dinner", [_item("Kottu", 900)])

        with pytest.raises(ValidationError):
            await service.add_doctor_recommendation(entry.id, doctor_id, target_calories=target)


class TestAnalysis:
    @pytest.fixture
    async def logged(self, service: NutritionService) -> None:
        await service.add_meal(
            "user-1",
            "breakfast",
            [_item("Oats", 350)],
            meal_name="Oats",
            recorded_at=NOW - timedelta(hours=1),
        )
        await service.add_meal(
            "user-1",
            "lunch",
            [_item("Rice", 700)],
            meal_name="Rice and curry",
            recorded_at=NOW - timedelta(days=2),
        )
        await service.add_meal(
            "user-1", "dinner", [_item("Soup", 210)], recorded_at=NOW - timedelta(days=3)
        )
        await service.add_meal(
            "user-1", "snack", [_item("Cake", 999)], recorded_at=NOW - timedelta(days=10)
        )

    async def test_weekly_analysis(self, service: NutritionService, logged: None) -> None:
        analysis = await service.analyze("user-1", "weekly", now=NOW)

        assert analysis.total_meals == 3
        assert analysis.totals.calories == 1260
        assert analysis.daily_averages.calories == 180
        assert analysis.meal_type_breakdown == {
            MealType.BREAKFAST: 1,
            MealType.LUNCH: 1,
            MealType.DINNER: 1,
        }
        assert [(m.meal_name, m.calories) for m in analysis.top_calorie_meals] == [
            ("Rice and curry", 700),
            ("Oats", 350),
            ("dinner", 210),
        ]
        assert analysis.period_start == datetime(2025, 3, 24, tzinfo=UTC)

    async def test_monthly_analysis_averages_over_thirty_days(
        self, service: NutritionService, logged: None
    ) -> None:
        analysis = await service.analyze("user-1", "monthly", now=NOW)

        assert analysis.total_meals == 4
        assert analysis.daily_averages.calories == pytest.approx(75.3)

    async def test_empty_window(self, service: NutritionService) -> None:
        analysis = await service.analyze("user-1", now=NOW)

        assert analysis.total_meals == 0
        assert analysis.totals == NutrientTotals()
        assert analysis.top_calorie_meals == []

    @pytest.mark.parametrize("period", ["daily", "yearly"])
    async def test_unsupported_period_is_rejected(
        self, service: NutritionService, period: str
    ) -> None:
        with pytest.raises(ValidationError):
            await service.analyze("user-1", period, now=NOW)
