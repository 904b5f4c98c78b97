"""
Windowed rollups over a user's vitals and alerts, consumed by report endpoints.
"""

from calendar import monthrange
from collections import Counter
from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta, tzinfo

import structlog

from telemetry.domain.models import (
    AlertSummary,
    HealthReport,
    ReportPeriod,
    RiskDetection,
    RiskLevel,
    VitalStats,
    VitalsReading,
)
from telemetry.errors import ValidationError
from telemetry.services.ports import AlertStore, VitalsStore

logger = structlog.get_logger(__name__)

RECENT_ALERTS = 5

RECOMMENDATIONS = {
    RiskLevel.HIGH: "Immediate medical consultation recommended.",
    RiskLevel.MEDIUM: "Schedule a check-up soon.",
    RiskLevel.LOW: "Readings are within normal range.",
}

# Report key -> attribute path on a reading.
STAT_FIELDS: dict[str, tuple[str, ...]] = {
    "heart_rate": ("heart_rate",),
    "oxygen_level": ("oxygen_level",),
    "temperature": ("temperature",),
    "glucose_level": ("glucose_level",),
    "systolic": ("blood_pressure", "systolic"),
    "diastolic": ("blood_pressure", "diastolic"),
}


def _one_month_back(day: date) -> date:
    year, month = (day.year, day.month - 1) if day.month > 1 else (day.year - 1, 12)
    return day.replace(year=year, month=month, day=min(day.day, monthrange(year, month)[1]))


def report_window(
    period: ReportPeriod, now: datetime, tz: tzinfo = UTC
) -> tuple[datetime, datetime]:
    """Start of the first day through the last instant of today, in ``tz``."""
    today = now.astimezone(tz).date()
    if period == ReportPeriod.WEEKLY:
        first_day = today - timedelta(days=7)
    elif period == ReportPeriod.MONTHLY:
        first_day = _one_month_back(today)
    else:
        first_day = today
    return (
        datetime.combine(first_day, time.min, tzinfo=tz),
        datetime.combine(today, time.max, tzinfo=tz),
    )


def _value(reading: VitalsReading, path: tuple[str, ...]) -> float | None:
    value: object = reading
    for attr in path:
        value = getattr(value, attr, None)
        if value is None:
            return None
    return float(value)  # type: ignore[arg-type]


def build_stats(readings: Iterable[VitalsReading], path: tuple[str, ...]) -> VitalStats | None:
    values = [v for v in (_value(r, path) for r in readings) if v is not None]
    if not values:
        return None
    return VitalStats(
        avg=round(sum(values) / len(values), 2),
        min=min(values),
        max=max(values),
        count=len(values),
    )


def assess_risk(emergency_readings: int) -> RiskDetection:
    if emergency_readings > 5:
        level = RiskLevel.HIGH
    elif emergency_readings > 2:
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.LOW
    return RiskDetection(
        emergency_readings=emergency_readings,
        risk_level=level,
        recommendation=RECOMMENDATIONS[level],
    )


class ReportAggregator:
    """Builds ``HealthReport`` rollups from the vitals and alert stores."""

    def __init__(self, readings: VitalsStore, alerts: AlertStore, tz: tzinfo = UTC) -> None:
        self.readings = readings
        self.alerts = alerts
        self.tz = tz
        self.logger = logger.bind(component="report_aggregator")

    async def generate_report(
        self,
        user_id: str,
        period: ReportPeriod | str = ReportPeriod.WEEKLY,
        now: datetime | None = None,
    ) -> HealthReport:
        if not user_id:
            raise ValidationError("user_id is required")
        try:
            period = ReportPeriod(period)
        except ValueError:
            raise ValidationError(f"Unknown report period {period!r}") from None

        start, end = report_window(period, now or datetime.now(UTC), self.tz)
        records = await self.readings.list_between(user_id, start, end)
        alerts = await self.alerts.list_between(user_id, start, end)

        resolved = sum(1 for a in alerts if a.resolved)
        report = HealthReport(
            report_type=period,
            user_id=user_id,
            period_start=start,
            period_end=end,
            total_records=len(records),
            source_breakdown=dict(Counter(r.source for r in records)),
            vitals={key: build_stats(records, path) for key, path in STAT_FIELDS.items()},
            alerts=AlertSummary(
                total=len(alerts),
                resolved=resolved,
                unresolved=len(alerts) - resolved,
                breakdown=dict(Counter(a.severity for a in alerts)),
                recent=alerts[:RECENT_ALERTS],
            ),
            risk_detection=assess_risk(sum(1 for r in records if r.is_emergency)),
        )

        self.logger.info(
            "report_generated",
            user_id=user_id,
            period=period.value,
            records=report.total_records,
            alerts=report.alerts.total,
            risk_level=report.risk_detection.risk_level.value,
        )
        return report
