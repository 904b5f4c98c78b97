"""
Protocols for everything the telemetry core consumes but does not own.

Persistence, the user directory, outbound notifications, document text
extraction and nutrient lookup all live outside the core. Services depend on
these protocols only; ``adapters/`` provides concrete implementations.

Stores are async and expose scoped create/update calls. The store's own
concurrency control is the only mutual exclusion the core relies on.
"""

from collections.abc import Sequence
from datetime import date, datetime
from typing import Protocol

from telemetry.domain.models import (
    Alert,
    MealPlan,
    MealReminder,
    MealReminderMessage,
    MealType,
    NutrientTotals,
    NutritionEntry,
    ReminderStatus,
    Severity,
    UserProfile,
    VitalsReading,
    VitalsSource,
)
from telemetry.errors import ExternalDependencyError
from telemetry.services.result import Result


class VitalsStore(Protocol):
    async def add(self, reading: VitalsReading) -> VitalsReading: ...

    async def get(self, reading_id: str) -> VitalsReading | None: ...

    async def list_for_user(
        self, user_id: str, *, limit: int, source: VitalsSource | None = None
    ) -> list[VitalsReading]:
        """Newest first."""
        ...

    async def list_between(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[VitalsReading]:
        """Readings recorded in ``[start, end]``, oldest first."""
        ...


class AlertStore(Protocol):
    async def add_many(self, alerts: Sequence[Alert]) -> list[Alert]:
        """Persist a batch in one write."""
        ...

    async def get(self, alert_id: str) -> Alert | None: ...

    async def update(self, alert: Alert) -> Alert: ...

    async def list_for_user(
        self,
        user_id: str,
        *,
        severity: Severity | None = None,
        resolved: bool | None = None,
        limit: int = 50,
    ) -> list[Alert]:
        """Newest first."""
        ...

    async def list_between(self, user_id: str, start: datetime, end: datetime) -> list[Alert]:
        """Alerts created in ``[start, end]``, newest first."""
        ...


class MealPlanStore(Protocol):
    async def get(self, plan_id: str) -> MealPlan | None: ...

    async def list_for_user(self, user_id: str) -> list[MealPlan]: ...


class ReminderStore(Protocol):
    async def add_many(self, reminders: Sequence[MealReminder]) -> list[MealReminder]: ...

    async def get(self, reminder_id: str) -> MealReminder | None: ...

    async def update(self, reminder: MealReminder) -> MealReminder: ...

    async def list_scheduled_between(
        self, user_id: str, first_day: date, last_day: date
    ) -> list[MealReminder]:
        """Reminders of any status whose ``scheduled_date`` is in ``[first_day, last_day]``."""
        ...

    async def list_due(self, user_id: str, now: datetime, limit: int) -> list[MealReminder]:
        """Pending reminders with ``reminder_time <= now``, earliest first."""
        ...

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
        """One page (newest reminder time first) plus the total matching count."""
        ...


class NutritionStore(Protocol):
    async def add(self, entry: NutritionEntry) -> NutritionEntry: ...

    async def get(self, entry_id: str) -> NutritionEntry | None: ...

    async def update(self, entry: NutritionEntry) -> NutritionEntry: ...

    async def delete(self, entry_id: str) -> bool: ...

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
        """One page (newest first) plus the total matching count."""
        ...

    async def list_between(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[NutritionEntry]:
        """Entries recorded in ``[start, end]``, oldest first."""
        ...


class UserDirectory(Protocol):
    async def list_user_ids(self) -> list[str]: ...

    async def get_user(self, user_id: str) -> UserProfile | None: ...


class ReminderSender(Protocol):
    """
    Outbound notification channel for meal reminders.

    Delivery failure is returned as ``Result.err`` and must never be process-fatal.
    """

    async def send_meal_reminder(
        self, email: str, first_name: str, message: MealReminderMessage
    ) -> Result[str, ExternalDependencyError]: ...


class DocumentTextExtractor(Protocol):
    """Best-effort document-to-text conversion. An empty string is a valid result."""

    async def extract_text(self, document: bytes) -> Result[str, ExternalDependencyError]: ...


class NutrientLookup(Protocol):
    """Nutrient facts for a quantity of a named food. Failure is returned, not raised."""

    async def lookup(
        self, name: str, quantity: float, unit: str = "g"
    ) -> Result[NutrientTotals, ExternalDependencyError]: ...
