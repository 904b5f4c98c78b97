"""
Domain models for patient health telemetry.

These models represent the core business concepts and are framework-agnostic.
Readings are immutable once created; alerts and reminders change state only by
producing an updated copy (``model_copy``) that the owning store persists.
"""

from datetime import UTC, date, datetime, time
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def _new_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(UTC)


class VitalsSource(str, Enum):
    """How a reading was acquired."""

    MANUAL = "manual"
    DOCUMENT = "document"
    SIMULATOR = "simulator"


class Scenario(str, Enum):
    """Synthetic-data profiles used by the simulator."""

    NORMAL = "normal"
    EMERGENCY = "emergency"
    OXYGEN_DROP = "oxygen_drop"


class AlertType(str, Enum):
    """One alert type per vital dimension."""

    HIGH_HEART_RATE = "high_heart_rate"
    LOW_OXYGEN = "low_oxygen"
    HIGH_GLUCOSE = "high_glucose"
    HIGH_BP = "high_bp"
    TEMPERATURE_SPIKE = "temperature_spike"


class Severity(str, Enum):
    """Alert severity tiers, ordered ``critical > high``."""

    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.HIGH: 1, Severity.CRITICAL: 2}


class MealType(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


class ReminderStatus(str, Enum):
    """Reminder lifecycle states. See ``telemetry.services.reminders`` for transitions."""

    PENDING = "pending"
    SENT = "sent"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


class BloodPressure(BaseModel):
    """Systolic/diastolic pair in mmHg."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    systolic: float = Field(ge=50, le=250)
    diastolic: float = Field(ge=30, le=150)


VITAL_FIELDS = ("heart_rate", "blood_pressure", "oxygen_level", "temperature", "glucose_level")


class Vitals(BaseModel):
    """
    Any subset of the five physiological measurements.

    Every field is optional; ``has_any()`` reports whether at least one is present.
    Ranges reject physiologically impossible values. Keys are accepted in
    snake_case or camelCase (``oxygenLevel``); any other key is rejected.
    """

    model_config = ConfigDict(
        frozen=True, extra="forbid", alias_generator=to_camel, populate_by_name=True
    )

    heart_rate: float | None = Field(default=None, ge=20, le=250, description="bpm")
    blood_pressure: BloodPressure | None = None
    oxygen_level: float | None = Field(default=None, ge=50, le=100, description="SpO2 %")
    temperature: float | None = Field(default=None, ge=30, le=45, description="degrees Celsius")
    glucose_level: float | None = Field(default=None, ge=20, le=600, description="mg/dL")

    def present_fields(self) -> list[str]:
        return [name for name in VITAL_FIELDS if getattr(self, name) is not None]

    def has_any(self) -> bool:
        return bool(self.present_fields())

    def vitals_only(self) -> "Vitals":
        """Project any subclass instance down to the bare measurement fields."""
        return Vitals(**{name: getattr(self, name) for name in VITAL_FIELDS})


class DocumentMetadata(BaseModel):
    """Free-text metadata pulled out of an uploaded report (or describing a simulation)."""

    model_config = ConfigDict(frozen=True)

    report_name: str | None = None
    hospital_name: str | None = None
    doctor_name: str | None = None
    extracted_at: datetime = Field(default_factory=_utcnow)


class VitalsReading(Vitals):
    """A persisted, timestamped reading. Immutable once created."""

    id: str = Field(default_factory=_new_id)
    user_id: str = Field(min_length=1)
    source: VitalsSource
    is_emergency: bool = False
    recorded_at: datetime = Field(default_factory=_utcnow)
    document_ref: str | None = Field(
        default=None, description="Pointer to the uploaded source document"
    )
    metadata: DocumentMetadata | None = None


class AlertDraft(BaseModel):
    """Evaluator output: an alert that has not been persisted yet."""

    model_config = ConfigDict(frozen=True)

    alert_type: AlertType
    severity: Severity
    message: str


class Alert(BaseModel):
    """A persisted alert derived from a reading crossing a clinical threshold."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    user_id: str
    reading_id: str | None = Field(
        default=None, description="Triggering reading; may outlive it"
    )
    alert_type: AlertType
    severity: Severity
    message: str
    resolved: bool = False
    resolved_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class IngestionResult(BaseModel):
    """Outcome of one ingestion: the stored reading plus the alerts it raised."""

    reading: VitalsReading
    alerts: list[Alert] = Field(default_factory=list)
    extracted_text: str | None = Field(
        default=None, description="Preview of text pulled from a document upload"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def alerts_triggered(self) -> int:
        return len(self.alerts)


class MealItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    quantity: float = Field(ge=0)
    unit: str = "g"
    calories: float = Field(default=0, ge=0)
    protein: float = Field(default=0, ge=0)
    carbohydrates: float = Field(default=0, ge=0)
    fat: float = Field(default=0, ge=0)
    fiber: float = Field(default=0, ge=0)


class MealPlan(BaseModel):
    """
    Recurring meal schedule, owned by a user and optionally authored by a doctor.

    ``scheduled_days`` uses 0=Sunday .. 6=Saturday. When any day is scheduled a
    ``scheduled_time`` (HH:MM) is required.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    user_id: str
    doctor_id: str | None = None
    plan_name: str
    meal_type: MealType
    meal_name: str | None = None
    items: list[MealItem] = Field(default_factory=list)
    scheduled_days: frozenset[int] = Field(default_factory=frozenset)
    scheduled_time: time | None = None
    reminder_enabled: bool = True
    reminder_minutes_before: int = Field(default=15, ge=0, le=120)
    start_date: date = Field(default_factory=lambda: _utcnow().date())
    end_date: date | None = None
    is_active: bool = True

    @field_validator("scheduled_days")
    @classmethod
    def validate_days(cls, days: frozenset[int]) -> frozenset[int]:
        if any(d < 0 or d > 6 for d in days):
            raise ValueError("Days must be 0-6 (Sunday-Saturday)")
        return days

    @field_validator("scheduled_time", mode="before")
    @classmethod
    def parse_hhmm(cls, value: Any) -> Any:
        if isinstance(value, str):
            hours, _, minutes = value.partition(":")
            if not (hours.isdigit() and minutes.isdigit() and len(minutes) == 2):
                raise ValueError(f"scheduled_time must be HH:MM, got {value!r}")
            return time(int(hours), int(minutes))
        return value

    @model_validator(mode="after")
    def time_required_with_days(self) -> "MealPlan":
        if self.scheduled_days and self.scheduled_time is None:
            raise ValueError("scheduled_time is required when scheduled_days is set")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    @property
    def display_name(self) -> str:
        return self.meal_name or self.meal_type.value.capitalize()


class ReminderDraft(BaseModel):
    """Expander output: one concrete occurrence not yet stored."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    meal_plan_id: str
    scheduled_date: date
    reminder_time: datetime
    meal_type: MealType
    meal_name: str | None = None

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.meal_plan_id, self.scheduled_date.isoformat())


class MealReminder(ReminderDraft):
    """A materialized reminder instance; unique per ``(meal_plan_id, scheduled_date)``."""

    id: str = Field(default_factory=_new_id)
    status: ReminderStatus = ReminderStatus.PENDING
    notification_sent: bool = False
    sent_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class UserProfile(BaseModel):
    """What the user directory exposes about a user."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    first_name: str


class MealReminderMessage(BaseModel):
    """Content handed to the notification sender."""

    model_config = ConfigDict(frozen=True)

    meal_name: str
    meal_type: MealType
    scheduled_time: datetime
    items: list[MealItem] = Field(default_factory=list)


class ReportPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VitalStats(BaseModel):
    """Min/avg/max rollup for one vital over a report window."""

    avg: float
    min: float
    max: float
    count: int = Field(gt=0)


class AlertSummary(BaseModel):
    total: int = 0
    resolved: int = 0
    unresolved: int = 0
    breakdown: dict[Severity, int] = Field(default_factory=dict)
    recent: list[Alert] = Field(default_factory=list)


class RiskDetection(BaseModel):
    emergency_readings: int
    risk_level: RiskLevel
    recommendation: str


class HealthReport(BaseModel):
    """Windowed statistical rollup of a user's vitals and alerts."""

    report_type: ReportPeriod
    user_id: str
    period_start: datetime
    period_end: datetime
    total_records: int
    source_breakdown: dict[VitalsSource, int] = Field(default_factory=dict)
    vitals: dict[str, VitalStats | None]
    alerts: AlertSummary
    risk_detection: RiskDetection
    generated_at: datetime = Field(default_factory=_utcnow)


class NutrientTotals(BaseModel):
    """Summed macronutrients for one meal or a set of meals."""

    model_config = ConfigDict(frozen=True)

    calories: float = Field(default=0, ge=0)
    protein: float = Field(default=0, ge=0)
    carbohydrates: float = Field(default=0, ge=0)
    fat: float = Field(default=0, ge=0)
    fiber: float = Field(default=0, ge=0)


class DoctorRecommendation(BaseModel):
    """A clinician's note and optional daily targets attached to a logged meal."""

    model_config = ConfigDict(frozen=True)

    doctor_id: str = Field(min_length=1)
    message: str | None = None
    target_calories: float | None = Field(default=None, ge=0)
    target_protein: float | None = Field(default=None, ge=0)
    target_carbohydrates: float | None = Field(default=None, ge=0)
    target_fat: float | None = Field(default=None, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)


class NutritionEntry(BaseModel):
    """
    One logged meal. ``totals`` is always the sum of ``items``; edits that
    replace the items produce a copy with recomputed totals.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    user_id: str = Field(min_length=1)
    meal_type: MealType
    meal_name: str | None = None
    items: list[MealItem] = Field(default_factory=list)
    totals: NutrientTotals = Field(default_factory=NutrientTotals)
    notes: str | None = None
    doctor_recommendation: DoctorRecommendation | None = None
    recorded_at: datetime = Field(default_factory=_utcnow)


class TopCalorieMeal(BaseModel):
    meal_name: str
    calories: float
    recorded_at: datetime


class NutritionAnalysis(BaseModel):
    """Intake rollup over a weekly or monthly window."""

    report_type: ReportPeriod
    user_id: str
    period_start: datetime
    period_end: datetime
    total_meals: int
    meal_type_breakdown: dict[MealType, int] = Field(default_factory=dict)
    totals: NutrientTotals
    daily_averages: NutrientTotals
    top_calorie_meals: list[TopCalorieMeal] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=_utcnow)
