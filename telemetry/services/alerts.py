"""
Threshold-based clinical alert derivation.

``evaluate`` is pure: reading in, alert drafts out, no I/O. Each vital dimension
has an ordered tier table (most severe first); the first tier that matches wins,
so a vital can never raise both a ``high`` and a ``critical`` alert.

``AlertService`` persists drafts for a stored reading in one batch and exposes
alert listing/resolution to the CRUD layer.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from telemetry.domain.models import (
    Alert,
    AlertDraft,
    AlertType,
    BloodPressure,
    Severity,
    Vitals,
    VitalsReading,
)
from telemetry.errors import NotFoundError
from telemetry.services.ports import AlertStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ThresholdTier:
    """One severity tier: a breach predicate and the message it produces."""

    severity: Severity
    breached: Callable[[Any], bool]
    message: Callable[[Any], str]


@dataclass(frozen=True)
class VitalRule:
    """Tiers for one vital dimension, evaluated most severe first."""

    alert_type: AlertType
    field: str
    tiers: tuple[ThresholdTier, ...]

    def evaluate(self, vitals: Vitals) -> AlertDraft | None:
        value = getattr(vitals, self.field)
        if value is None:
            return None
        for tier in self.tiers:
            if tier.breached(value):
                return AlertDraft(
                    alert_type=self.alert_type,
                    severity=tier.severity,
                    message=tier.message(value),
                )
        return None


def _bp(value: BloodPressure) -> str:
    return f"{value.systolic:g}/{value.diastolic:g}"


VITAL_RULES: tuple[VitalRule, ...] = (
    VitalRule(
        alert_type=AlertType.HIGH_HEART_RATE,
        field="heart_rate",
        tiers=(
            ThresholdTier(
                Severity.CRITICAL, lambda v: v > 150, lambda v: f"Critical heart rate: {v:g} bpm"
            ),
            ThresholdTier(
                Severity.HIGH, lambda v: v > 120, lambda v: f"High heart rate: {v:g} bpm"
            ),
        ),
    ),
    VitalRule(
        alert_type=AlertType.LOW_OXYGEN,
        field="oxygen_level",
        tiers=(
            ThresholdTier(
                Severity.CRITICAL, lambda v: v < 85, lambda v: f"Critical oxygen level: {v:g}%"
            ),
            ThresholdTier(Severity.HIGH, lambda v: v < 90, lambda v: f"Low oxygen level: {v:g}%"),
        ),
    ),
    VitalRule(
        alert_type=AlertType.HIGH_GLUCOSE,
        field="glucose_level",
        tiers=(
            ThresholdTier(
                Severity.CRITICAL,
                lambda v: v > 400,
                lambda v: f"Critical glucose level: {v:g} mg/dL",
            ),
            ThresholdTier(
                Severity.HIGH, lambda v: v > 200, lambda v: f"High glucose level: {v:g} mg/dL"
            ),
        ),
    ),
    VitalRule(
        alert_type=AlertType.HIGH_BP,
        field="blood_pressure",
        tiers=(
            ThresholdTier(
                Severity.CRITICAL,
                lambda v: v.systolic > 180 or v.diastolic > 120,
                lambda v: f"Hypertensive crisis: {_bp(v)} mmHg",
            ),
            ThresholdTier(
                Severity.HIGH,
                lambda v: v.systolic > 140 or v.diastolic > 90,
                lambda v: f"High blood pressure: {_bp(v)} mmHg",
            ),
        ),
    ),
    VitalRule(
        alert_type=AlertType.TEMPERATURE_SPIKE,
        field="temperature",
        tiers=(
            ThresholdTier(
                Severity.CRITICAL, lambda v: v >= 40, lambda v: f"Critical temperature: {v:g}°C"
            ),
            ThresholdTier(
                Severity.HIGH, lambda v: v >= 38.5, lambda v: f"High temperature (fever): {v:g}°C"
            ),
        ),
    ),
)


def evaluate(vitals: Vitals, rules: tuple[VitalRule, ...] = VITAL_RULES) -> list[AlertDraft]:
    """Return at most one draft per vital present, at the highest matching severity."""
    drafts = []
    for rule in rules:
        draft = rule.evaluate(vitals)
        if draft is not None:
            drafts.append(draft)
    return drafts


class AlertService:
    """Persists evaluator output and serves alert history."""

    def __init__(self, store: AlertStore) -> None:
        self.store = store
        self.logger = logger.bind(component="alert_service")

    async def evaluate_and_store(self, reading: VitalsReading) -> list[Alert]:
        """
        Evaluate a reading that is already persisted and store its alerts in one batch.

        Returns the persisted alerts (empty when no threshold was crossed).
        """
        drafts = evaluate(reading)
        if not drafts:
            return []

        alerts = [
            Alert(
                user_id=reading.user_id,
                reading_id=reading.id,
                alert_type=draft.alert_type,
                severity=draft.severity,
                message=draft.message,
            )
            for draft in drafts
        ]
        saved = await self.store.add_many(alerts)

        self.logger.info(
            "alerts_created",
            user_id=reading.user_id,
            reading_id=reading.id,
            count=len(saved),
            highest_severity=max((a.severity for a in saved), key=lambda s: s.rank).value,
        )
        return saved

    async def list_alerts(
        self,
        user_id: str,
        *,
        severity: Severity | None = None,
        resolved: bool | None = None,
        limit: int = 50,
    ) -> list[Alert]:
        return await self.store.list_for_user(
            user_id, severity=severity, resolved=resolved, limit=max(1, limit)
        )

    async def resolve_alert(self, alert_id: str) -> Alert:
        """Mark an alert resolved. Resolution is terminal; resolving twice is a no-op."""
        alert = await self.store.get(alert_id)
        if alert is None:
            raise NotFoundError("Alert", alert_id)
        if alert.resolved:
            return alert

        resolved = alert.model_copy(update={"resolved": True, "resolved_at": datetime.now(UTC)})
        saved = await self.store.update(resolved)
        self.logger.info("alert_resolved", alert_id=alert_id, user_id=alert.user_id)
        return saved
