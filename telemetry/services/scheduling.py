"""
Meal-plan schedule expansion.

A meal plan is a recurrence rule (weekdays + time of day + lead time). ``expand``
turns it into concrete reminder drafts over a window; ``ReminderScheduler``
materializes drafts for a user's active plans over a rolling horizon, skipping
any ``(meal_plan_id, scheduled_date)`` that already has a reminder. Running it
repeatedly therefore never creates duplicates.
"""

import time as perf_time
from datetime import UTC, date, datetime, time, timedelta, tzinfo

import structlog

from telemetry.config import ReminderConfig
from telemetry.domain.models import MealPlan, MealReminder, ReminderDraft
from telemetry.services.ports import MealPlanStore, ReminderStore

logger = structlog.get_logger(__name__)


def plan_weekday(day: date) -> int:
    """Weekday number in meal-plan convention: 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def meal_time_for(plan: MealPlan, day: date, tz: tzinfo) -> datetime:
    """``day@scheduled_time`` in ``tz``."""
    if plan.scheduled_time is None:
        raise ValueError(f"Meal plan {plan.id} has no scheduled_time")
    return datetime.combine(day, plan.scheduled_time, tzinfo=tz)


def reminder_time_for(plan: MealPlan, day: date, tz: tzinfo) -> datetime:
    """The meal time minus the plan's lead time, in ``tz`` wall-clock terms."""
    return meal_time_for(plan, day, tz) - timedelta(minutes=plan.reminder_minutes_before)


def expand(
    plan: MealPlan,
    window_start: datetime,
    window_end: datetime,
    *,
    now: datetime | None = None,
    tz: tzinfo = UTC,
) -> list[ReminderDraft]:
    """
    Concrete reminder drafts for every scheduled weekday in the window.

    Calendar days are iterated from ``window_start`` to ``window_end`` inclusive
    (in ``tz``). Occurrences whose reminder time is already before ``now`` are
    discarded.
    """
    if not plan.reminder_enabled or not plan.scheduled_days or plan.scheduled_time is None:
        return []

    now = now or datetime.now(UTC)
    first_day = window_start.astimezone(tz).date()
    last_day = window_end.astimezone(tz).date()

    drafts = []
    day = first_day
    while day <= last_day:
        if plan_weekday(day) in plan.scheduled_days:
            reminder_time = reminder_time_for(plan, day, tz)
            if reminder_time >= now:
                drafts.append(
                    ReminderDraft(
                        user_id=plan.user_id,
                        meal_plan_id=plan.id,
                        scheduled_date=day,
                        reminder_time=reminder_time,
                        meal_type=plan.meal_type,
                        meal_name=plan.meal_name,
                    )
                )
        day += timedelta(days=1)

    return drafts


def rolling_window(
    plan: MealPlan, now: datetime, horizon_days: int, tz: tzinfo = UTC
) -> tuple[datetime, datetime] | None:
    """``[now, now + horizon]`` narrowed to the plan's own active window, or None if empty."""
    start = now
    end = now + timedelta(days=horizon_days)

    plan_start = datetime.combine(plan.start_date, time.min, tzinfo=tz)
    if plan_start > start:
        start = plan_start
    if plan.end_date is not None:
        plan_end = datetime.combine(plan.end_date, time.max, tzinfo=tz)
        if plan_end < end:
            end = plan_end

    if start > end:
        return None
    return start, end


class ReminderScheduler:
    """Materializes reminder rows for a user's active meal plans."""

    def __init__(
        self,
        plans: MealPlanStore,
        reminders: ReminderStore,
        config: ReminderConfig | None = None,
    ) -> None:
        self.plans = plans
        self.reminders = reminders
        self.config = config or ReminderConfig()
        self.logger = logger.bind(component="reminder_scheduler")

    async def materialize_for_user(
        self, user_id: str, now: datetime | None = None
    ) -> list[MealReminder]:
        """Expand every active plan over the rolling horizon and insert what is new."""
        start_time = perf_time.perf_counter()
        now = now or datetime.now(UTC)
        tz = self.config.tzinfo

        drafts: list[ReminderDraft] = []
        for plan in await self.plans.list_for_user(user_id):
            if not (plan.is_active and plan.reminder_enabled):
                continue
            window = rolling_window(plan, now, self.config.horizon_days, tz)
            if window is None:
                continue
            drafts.extend(expand(plan, window[0], window[1], now=now, tz=tz))

        if not drafts:
            return []

        existing = await self.reminders.list_scheduled_between(
            user_id,
            min(d.scheduled_date for d in drafts),
            max(d.scheduled_date for d in drafts),
        )
        seen = {r.dedup_key for r in existing}

        new_reminders = []
        for draft in drafts:
            if draft.dedup_key in seen:
                continue
            seen.add(draft.dedup_key)
            new_reminders.append(MealReminder(**draft.model_dump()))

        if not new_reminders:
            return []

        saved = await self.reminders.add_many(new_reminders)
        self.logger.info(
            "reminders_materialized",
            user_id=user_id,
            created=len(saved),
            skipped_existing=len(drafts) - len(saved),
            duration_seconds=round(perf_time.perf_counter() - start_time, 3),
        )
        return saved
