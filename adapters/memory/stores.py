"""
In-memory persistence for the telemetry core.

Suitable for development, demos and tests. Each store keeps rows in a dict keyed
by id; every method completes without awaiting, so a single call is atomic with
respect to the event loop.
"""

from collections.abc import Iterable, Sequence
from datetime import date, datetime

from telemetry.domain.models import (
    Alert,
    MealPlan,
    MealReminder,
    MealType,
    NutritionEntry,
    ReminderStatus,
    Severity,
    UserProfile,
    VitalsReading,
    VitalsSource,
)


class InMemoryVitalsStore:
    def __init__(self) -> None:
        self._rows: dict[str, VitalsReading] = {}

    async def add(self, reading: VitalsReading) -> VitalsReading:
        if reading.id in self._rows:
            raise ValueError(f"Reading {reading.id} already exists")
        self._rows[reading.id] = reading
        return reading

    async def get(self, reading_id: str) -> VitalsReading | None:
        return self._rows.get(reading_id)

    async def list_for_user(
        self, user_id: str, *, limit: int, source: VitalsSource | None = None
    ) -> list[VitalsReading]:
        rows = [
            r
            for r in self._rows.values()
            if r.user_id == user_id and (source is None or r.source == source)
        ]
        rows.reverse()
        rows.sort(key=lambda r: r.recorded_at, reverse=True)
        return rows[:limit]

    async def list_between(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[VitalsReading]:
        rows = [
            r for r in self._rows.values() if r.user_id == user_id and start <= r.recorded_at <= end
        ]
        return sorted(rows, key=lambda r: r.recorded_at)

    def __len__(self) -> int:
        return len(self._rows)


class InMemoryAlertStore:
    def __init__(self) -> None:
        self._rows: dict[str, Alert] = {}

    async def add_many(self, alerts: Sequence[Alert]) -> list[Alert]:
        for alert in alerts:
            self._rows[alert.id] = alert
        return list(alerts)

    async def get(self, alert_id: str) -> Alert | None:
        return self._rows.get(alert_id)

    async def update(self, alert: Alert) -> Alert:
        if alert.id not in self._rows:
            raise KeyError(alert.id)
        self._rows[alert.id] = alert
        return alert

    async def list_for_user(
        self,
        user_id: str,
        *,
        severity: Severity | None = None,
        resolved: bool | None = None,
        limit: int = 50,
    ) -> list[Alert]:
        rows = [
            a
            for a in self._rows.values()
            if a.user_id == user_id
            and (severity is None or a.severity == severity)
            and (resolved is None or a.resolved == resolved)
        ]
        rows.reverse()
        rows.sort(key=lambda a: a.created_at, reverse=True)
        return rows[:limit]

    async def list_between(self, user_id: str, start: datetime, end: datetime) -> list[Alert]:
        rows = [
            a for a in self._rows.values() if a.user_id == user_id and start <= a.created_at <= end
        ]
        rows.reverse()
        rows.sort(key=lambda a: a.created_at, reverse=True)
        return rows

    def __len__(self) -> int:
        return len(self._rows)


class InMemoryMealPlanStore:
    def __init__(self, plans: Iterable[MealPlan] = ()) -> None:
        self._rows: dict[str, MealPlan] = {p.id: p for p in plans}

    async def add(self, plan: MealPlan) -> MealPlan:
        self._rows[plan.id] = plan
        return plan

    async def get(self, plan_id: str) -> MealPlan | None:
        return self._rows.get(plan_id)

    async def list_for_user(self, user_id: str) -> list[MealPlan]:
        return [p for p in self._rows.values() if p.user_id == user_id]


class InMemoryReminderStore:
    """Enforces uniqueness of ``(meal_plan_id, scheduled_date)`` on insert."""

    def __init__(self) -> None:
        self._rows: dict[str, MealReminder] = {}

    async def add_many(self, reminders: Sequence[MealReminder]) -> list[MealReminder]:
        taken = {r.dedup_key for r in self._rows.values()}
        for reminder in reminders:
            if reminder.dedup_key in taken:
                raise ValueError(f"Duplicate reminder for {reminder.dedup_key}")
            taken.add(reminder.dedup_key)
        for reminder in reminders:
            self._rows[reminder.id] = reminder
        return list(reminders)

    async def get(self, reminder_id: str) -> MealReminder | None:
        return self._rows.get(reminder_id)

    async def update(self, reminder: MealReminder) -> MealReminder:
        if reminder.id not in self._rows:
            raise KeyError(reminder.id)
        self._rows[reminder.id] = reminder
        return reminder

    async def list_scheduled_between(
        self, user_id: str, first_day: date, last_day: date
    ) -> list[MealReminder]:
        return [
            r
            for r in self._rows.values()
            if r.user_id == user_id and first_day <= r.scheduled_date <= last_day
        ]

    async def list_due(self, user_id: str, now: datetime, limit: int) -> list[MealReminder]:
        rows = [
            r
            for r in self._rows.values()
            if r.user_id == user_id
            and r.status == ReminderStatus.PENDING
            and r.reminder_time <= now
        ]
        rows.sort(key=lambda r: r.reminder_time)
        return rows[:limit]

    async def query(
        self,
        user_id: str,
        *,
        status: ReminderStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[MealReminder], int]:
        rows = [
            r
            for r in self._rows.values()
            if r.user_id == user_id
            and (status is None or r.status == status)
            and (start is None or r.reminder_time >= start)
            and (end is None or r.reminder_time <= end)
        ]
        rows.sort(key=lambda r: r.reminder_time, reverse=True)
        return rows[offset : offset + limit], len(rows)

    def __len__(self) -> int:
        return len(self._rows)


class InMemoryNutritionStore:
    def __init__(self) -> None:
        self._rows: dict[str, NutritionEntry] = {}

    async def add(self, entry: NutritionEntry) -> NutritionEntry:
        if entry.id in self._rows:
            raise ValueError(f"Nutrition entry {entry.id} already exists")
        self._rows[entry.id] = entry
        return entry

    async def get(self, entry_id: str) -> NutritionEntry | None:
        return self._rows.get(entry_id)

    async def update(self, entry: NutritionEntry) -> NutritionEntry:
        if entry.id not in self._rows:
            raise KeyError(entry.id)
        self._rows[entry.id] = entry
        return entry

    async def delete(self, entry_id: str) -> bool:
        return self._rows.pop(entry_id, None) is not None

    async def query(
        self,
        user_id: str,
        *,
        meal_type: MealType | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[NutritionEntry], int]:
        rows = [
            e
            for e in self._rows.values()
            if e.user_id == user_id
            and (meal_type is None or e.meal_type == meal_type)
            and (start is None or e.recorded_at >= start)
            and (end is None or e.recorded_at <= end)
        ]
        rows.reverse()
        rows.sort(key=lambda e: e.recorded_at, reverse=True)
        return rows[offset : offset + limit], len(rows)

    async def list_between(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[NutritionEntry]:
        rows = [
            e for e in self._rows.values() if e.user_id == user_id and start <= e.recorded_at <= end
        ]
        return sorted(rows, key=lambda e: e.recorded_at)

    def __len__(self) -> int:
        return len(self._rows)


class InMemoryUserDirectory:
    def __init__(self, users: Iterable[UserProfile] = ()) -> None:
        self._users: dict[str, UserProfile] = {u.id: u for u in users}

    def add(self, user: UserProfile) -> None:
        self._users[user.id] = user

    async def list_user_ids(self) -> list[str]:
        return list(self._users)

    async def get_user(self, user_id: str) -> UserProfile | None:
        return self._users.get(user_id)
