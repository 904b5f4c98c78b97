"""Tests for the composition root: wiring, background loops and end-to-end flows."""

import asyncio
import io
from datetime import UTC, date, datetime

import pytest
from rich.console import Console

from adapters.memory.stores import InMemoryUserDirectory
from adapters.notifications.email import ConsoleReminderSender, SmtpReminderSender
from adapters.nutrition.openfoodfacts import OpenFoodFactsLookup
from telemetry.config import (
    AppConfig,
    NotificationConfig,
    NutritionConfig,
    ReminderConfig,
    SimulatorConfig,
)
from telemetry.domain.models import MealItem, MealPlan, MealType, ReminderStatus, UserProfile
from telemetry.runtime import TelemetryRuntime, build_nutrient_lookup, build_sender


def _runtime(simulator_enabled: bool = True) -> TelemetryRuntime:
    config = AppConfig(
        simulator=SimulatorConfig(enabled=simulator_enabled, interval_seconds=0.01),
        reminders=ReminderConfig(dispatch_interval_seconds=0.01),
    )
    users = InMemoryUserDirectory(
        [UserProfile(id="u1", email="u1@example.com", first_name="Sam")]
    )
    sender = ConsoleReminderSender(Console(file=io.StringIO()))
    return TelemetryRuntime(config, users=users, sender=sender)


def test_disabled_simulator_is_not_scheduled() -> None:
    runtime = _runtime(simulator_enabled=False)

    assert [task.name for task in runtime.tasks] == ["reminder_dispatch"]


def test_sender_follows_notification_backend() -> None:
    smtp = AppConfig(
        notifications=NotificationConfig(
            backend="smtp", smtp_host="smtp.example.com", sender="care@example.com"
        )
    )

    assert isinstance(build_sender(AppConfig()), ConsoleReminderSender)
    assert isinstance(build_sender(smtp), SmtpReminderSender)


async def test_nutrient_lookup_follows_config() -> None:
    lookup = build_nutrient_lookup(AppConfig(nutrition=NutritionConfig(lookup_enabled=True)))

    assert build_nutrient_lookup(AppConfig()) is None
    assert isinstance(lookup, OpenFoodFactsLookup)
    await lookup.aclose()


@pytest.mark.performance
async def test_background_loops_run_until_stopped() -> None:
    runtime = _runtime()

    runtime.start()
    await asyncio.sleep(0.05)
    await asyncio.wait_for(runtime.stop(), timeout=1.0)

    assert all(not task.is_running for task in runtime.tasks)
    assert len(await runtime.ingestion.list_readings("u1", limit=100)) >= 1


async def test_end_to_end_ingest_alert_report() -> None:
    runtime = _runtime(simulator_enabled=False)

    result = await runtime.ingestion.record_manual("u1", {"heart_rate": 160})
    await runtime.alerts.resolve_alert(result.alerts[0].id)
    report = await runtime.reports.generate_report("u1", "daily")

    assert report.total_records == 1
    assert report.alerts.resolved == 1


async def test_end_to_end_meal_plan_reminder() -> None:
    runtime = _runtime(simulator_enabled=False)
    await runtime.plans.add(
        MealPlan(
            user_id="u1",
            plan_name="Diabetic plan",
            meal_type=MealType.LUNCH,
            scheduled_days={3},
            scheduled_time="12:30",
            start_date=date(2025, 1, 1),
        )
    )

    await runtime.dispatcher.run_tick(datetime(2025, 1, 6, 9, 0, tzinfo=UTC))
    summary = await runtime.dispatcher.run_tick(datetime(2025, 1, 8, 12, 20, tzinfo=UTC))

    assert summary.sent == 1
    page = await runtime.reminders.list_reminders("u1", status=ReminderStatus.SENT)
    assert page.pagination.total == 1


async def test_end_to_end_meal_log_analysis() -> None:
    runtime = _runtime(simulator_enabled=False)

    await runtime.nutrition.add_meal(
        "u1", "dinner", [MealItem(name="Kottu", quantity=350, calories=700)]
    )
    analysis = await runtime.nutrition.analyze("u1", "weekly")

    assert runtime.nutrition.lookup is None
    assert analysis.total_meals == 1
    assert analysis.daily_averages.calories == 100
