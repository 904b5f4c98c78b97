"""
Meal reminder lifecycle and the dispatch loop tick.

State machine::

    pending --(dispatch)--> sent --(user)--> completed
    pending --(user)------> skipped
    sent    --(user)------> skipped
    pending|sent --(admin)--> cancelled

``completed``, ``skipped`` and ``cancelled`` are terminal. The dispatch loop only
ever performs ``pending -> sent``. A failed delivery leaves the reminder pending,
so it is picked up again on the next tick.
"""

import asyncio
import math
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, Field

from telemetry.config import ReminderConfig
from telemetry.domain.models import MealReminder, MealReminderMessage, ReminderStatus, UserProfile
from telemetry.errors import InvalidTransitionError, NotFoundError, ValidationError
from telemetry.services.ports import MealPlanStore, ReminderSender, ReminderStore, UserDirectory
from telemetry.services.scheduling import ReminderScheduler, meal_time_for

logger = structlog.get_logger(__name__)

ALLOWED_TRANSITIONS: dict[ReminderStatus, frozenset[ReminderStatus]] = {
    ReminderStatus.PENDING: frozenset(
        {ReminderStatus.SENT, ReminderStatus.SKIPPED, ReminderStatus.CANCELLED}
    ),
    ReminderStatus.SENT: frozenset(
        {ReminderStatus.COMPLETED, ReminderStatus.SKIPPED, ReminderStatus.CANCELLED}
    ),
    ReminderStatus.COMPLETED: frozenset(),
    ReminderStatus.SKIPPED: frozenset(),
    ReminderStatus.CANCELLED: frozenset(),
}

USER_SETTABLE_STATUSES = frozenset({ReminderStatus.COMPLETED, ReminderStatus.SKIPPED})


def is_terminal(status: ReminderStatus) -> bool:
    return not ALLOWED_TRANSITIONS[status]


def transition(
    reminder: MealReminder, new_status: ReminderStatus, now: datetime | None = None
) -> MealReminder:
    """Return an updated copy of ``reminder`` in ``new_status``, or raise if not allowed."""
    if new_status not in ALLOWED_TRANSITIONS[reminder.status]:
        raise InvalidTransitionError(reminder.status.value, new_status.value)

    now = now or datetime.now(UTC)
    update: dict[str, object] = {"status": new_status}
    if new_status == ReminderStatus.SENT:
        update.update(notification_sent=True, sent_at=now)
    elif new_status == ReminderStatus.COMPLETED:
        update["completed_at"] = now
    return reminder.model_copy(update=update)


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class ReminderPage(BaseModel):
    reminders: list[MealReminder] = Field(default_factory=list)
    pagination: Pagination


class ReminderService:
    """Reminder operations exposed to the CRUD layer."""

    MAX_PAGE_SIZE = 100

    def __init__(self, reminders: ReminderStore, scheduler: ReminderScheduler) -> None:
        self.reminders = reminders
        self.scheduler = scheduler
        self.logger = logger.bind(component="reminder_service")

    async def generate_for_user(self, user_id: str) -> list[MealReminder]:
        """Materialize upcoming reminders now instead of waiting for the next tick."""
        if not user_id:
            raise ValidationError("user_id is required")
        return await self.scheduler.materialize_for_user(user_id)

    async def list_reminders(
        self,
        user_id: str,
        *,
        status: ReminderStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> ReminderPage:
        if not user_id:
            raise ValidationError("user_id is required")
        limit = min(max(1, limit), self.MAX_PAGE_SIZE)
        page = max(1, page)

        items, total = await self.reminders.query(
            user_id, status=status, start=start, end=end, offset=(page - 1) * limit, limit=limit
        )
        return ReminderPage(
            reminders=items,
            pagination=Pagination(
                total=total, page=page, limit=limit, total_pages=math.ceil(total / limit)
            ),
        )

    async def set_reminder_status(
        self, reminder_id: str, user_id: str, new_status: ReminderStatus | str
    ) -> MealReminder:
        """User-driven transition; only ``completed`` and ``skipped`` may be requested."""
        try:
            status = ReminderStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown reminder status {new_status!r}") from None
        if status not in USER_SETTABLE_STATUSES:
            raise ValidationError(
                f"Reminders can only be marked completed or skipped, not {status.value!r}"
            )

        reminder = await self._owned(reminder_id, user_id)
        updated = await self.reminders.update(transition(reminder, status))
        self.logger.info(
            "reminder_status_changed",
            reminder_id=reminder_id,
            user_id=user_id,
            status=status.value,
        )
        return updated

    async def cancel_reminder(self, reminder_id: str, user_id: str) -> MealReminder:
        """Administrative cancellation of a non-terminal reminder."""
        reminder = await self._owned(reminder_id, user_id)
        updated = await self.reminders.update(transition(reminder, ReminderStatus.CANCELLED))
        self.logger.info("reminder_cancelled", reminder_id=reminder_id, user_id=user_id)
        return updated

    async def _owned(self, reminder_id: str, user_id: str) -> MealReminder:
        reminder = await self.reminders.get(reminder_id)
        if reminder is None or reminder.user_id != user_id:
            raise NotFoundError("Reminder", reminder_id)
        return reminder


@dataclass
class DispatchSummary:
    users: int = 0
    materialized: int = 0
    sent: int = 0
    failed: int = 0
    user_errors: int = 0
    failed_reminder_ids: list[str] = field(default_factory=list)


@dataclass
class _UserOutcome:
    materialized: int = 0
    sent: int = 0
    failed_ids: list[str] = field(default_factory=list)
    errored: bool = False


class ReminderDispatcher:
    """
    One dispatch tick over the whole user population.

    Per user: materialize upcoming reminders, fetch due pending ones
    (earliest first, bounded batch), and deliver each. Delivery failures and
    unexpected errors are logged per reminder and per user; nothing escapes the tick.
    """

    def __init__(
        self,
        users: UserDirectory,
        plans: MealPlanStore,
        reminders: ReminderStore,
        scheduler: ReminderScheduler,
        sender: ReminderSender,
        config: ReminderConfig | None = None,
    ) -> None:
        self.users = users
        self.plans = plans
        self.reminders = reminders
        self.scheduler = scheduler
        self.sender = sender
        self.config = config or ReminderConfig()
        self.logger = logger.bind(component="reminder_dispatcher")

    async def run_tick(self, now: datetime | None = None) -> DispatchSummary:
        start_time = time.perf_counter()
        now = now or datetime.now(UTC)
        summary = DispatchSummary()

        user_ids = await self.users.list_user_ids()
        semaphore = asyncio.Semaphore(self.config.max_concurrent_users)

        async def guarded(user_id: str) -> _UserOutcome:
            async with semaphore:
                return await self._process_user_safely(user_id, now)

        async with asyncio.TaskGroup() as task_group:
            tasks = [task_group.create_task(guarded(user_id)) for user_id in user_ids]

        for task in tasks:
            outcome = task.result()
            summary.users += 1
            summary.materialized += outcome.materialized
            summary.sent += outcome.sent
            summary.failed += len(outcome.failed_ids)
            summary.failed_reminder_ids.extend(outcome.failed_ids)
            summary.user_errors += int(outcome.errored)

        self.logger.info(
            "dispatch_tick_completed",
            users=summary.users,
            materialized=summary.materialized,
            sent=summary.sent,
            failed=summary.failed,
            user_errors=summary.user_errors,
            duration_seconds=round(time.perf_counter() - start_time, 3),
        )
        return summary

    async def _process_user_safely(self, user_id: str, now: datetime) -> _UserOutcome:
        outcome = _UserOutcome()
        try:
            await self._process_user(user_id, now, outcome)
        except Exception as e:
            outcome.errored = True
            self.logger.exception("dispatch_user_failed", user_id=user_id, error=str(e))
        return outcome

    async def _process_user(self, user_id: str, now: datetime, outcome: _UserOutcome) -> None:
        created = await self.scheduler.materialize_for_user(user_id, now)
        outcome.materialized = len(created)

        due = await self.reminders.list_due(user_id, now, self.config.dispatch_batch_size)
        if not due:
            return

        profile = await self.users.get_user(user_id)
        if profile is None:
            self.logger.warning("dispatch_user_missing", user_id=user_id, due=len(due))
            outcome.failed_ids.extend(r.id for r in due)
            return

        for reminder in due:
            try:
                delivered = await self._deliver(reminder, profile, now)
            except Exception as e:
                delivered = False
                self.logger.exception(
                    "reminder_dispatch_error",
                    reminder_id=reminder.id,
                    user_id=user_id,
                    error=str(e),
                )
            if delivered is None:
                continue
            if delivered:
                outcome.sent += 1
            else:
                outcome.failed_ids.append(reminder.id)

    async def _deliver(
        self, reminder: MealReminder, profile: UserProfile, now: datetime
    ) -> bool | None:
        """Send one reminder. None means it left ``pending`` since it was queried."""
        current = await self.reminders.get(reminder.id)
        if current is None or current.status != ReminderStatus.PENDING:
            return None

        message = await self._build_message(current)
        result = await self.sender.send_meal_reminder(profile.email, profile.first_name, message)
        if result.is_err():
            self.logger.warning(
                "reminder_delivery_failed",
                reminder_id=current.id,
                user_id=current.user_id,
                error=str(result.unwrap_err()),
            )
            return False

        await self.reminders.update(transition(current, ReminderStatus.SENT, now))
        self.logger.info("reminder_sent", reminder_id=current.id, user_id=current.user_id)
        return True

    async def _build_message(self, reminder: MealReminder) -> MealReminderMessage:
        plan = await self.plans.get(reminder.meal_plan_id)
        if plan is None or plan.scheduled_time is None:
            return MealReminderMessage(
                meal_name=reminder.meal_name or reminder.meal_type.value.capitalize(),
                meal_type=reminder.meal_type,
                scheduled_time=reminder.reminder_time,
            )

        return MealReminderMessage(
            meal_name=plan.display_name,
            meal_type=plan.meal_type,
            scheduled_time=meal_time_for(plan, reminder.scheduled_date, self.config.tzinfo),
            items=plan.items,
        )
