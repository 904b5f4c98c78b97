"""
Vitals ingestion: every acquisition path converges on "persist reading, then evaluate".

The reading is stored first so that every alert references a real, visible
reading. There is no transaction around the two steps: if alert storage fails
the reading stays without alerts. Nothing here retries, since re-running an
ingestion would duplicate the reading.
"""

import random
from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from telemetry.config import IngestionConfig
from telemetry.domain.models import (
    DocumentMetadata,
    IngestionResult,
    Scenario,
    Vitals,
    VitalsReading,
    VitalsSource,
)
from telemetry.errors import NotFoundError, ValidationError
from telemetry.services.alerts import AlertService
from telemetry.services.extraction import extract_metadata, extract_vitals
from telemetry.services.ports import DocumentTextExtractor, VitalsStore
from telemetry.services.scenarios import generate_vitals, parse_scenario

logger = structlog.get_logger(__name__)


def _require_user(user_id: str | None) -> str:
    if not user_id or not str(user_id).strip():
        raise ValidationError("user_id is required")
    return str(user_id)


def _coerce_vitals(vitals: Vitals | Mapping[str, Any]) -> Vitals:
    if isinstance(vitals, Vitals):
        return vitals.vitals_only()
    try:
        return Vitals.model_validate(dict(vitals))
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e


class VitalsIngestionService:
    """Records readings from manual entry, documents and the simulator."""

    def __init__(
        self,
        readings: VitalsStore,
        alerts: AlertService,
        extractor: DocumentTextExtractor | None = None,
        config: IngestionConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.readings = readings
        self.alerts = alerts
        self.extractor = extractor
        self.config = config or IngestionConfig()
        self.rng = rng or random.Random()
        self.logger = logger.bind(component="vitals_ingestion")

    async def _store_and_evaluate(self, reading: VitalsReading) -> IngestionResult:
        stored = await self.readings.add(reading)
        alerts = await self.alerts.evaluate_and_store(stored)

        self.logger.info(
            "reading_recorded",
            user_id=stored.user_id,
            reading_id=stored.id,
            source=stored.source.value,
            vitals=stored.present_fields(),
            alerts=len(alerts),
        )
        return IngestionResult(reading=stored, alerts=alerts)

    async def record_manual(
        self, user_id: str, vitals: Vitals | Mapping[str, Any]
    ) -> IngestionResult:
        """Store a user-entered reading. At least one vital is required."""
        user_id = _require_user(user_id)
        parsed = _coerce_vitals(vitals)
        if not parsed.has_any():
            raise ValidationError("At least one vital sign is required")

        reading = VitalsReading(
            user_id=user_id, source=VitalsSource.MANUAL, **parsed.model_dump(exclude_none=True)
        )
        return await self._store_and_evaluate(reading)

    async def record_from_document(
        self, user_id: str, document: bytes, document_ref: str | None = None
    ) -> IngestionResult:
        """
        Extract vitals from an uploaded report and store them.

        Unlike manual entry, a document yielding no vitals is still stored.
        Extraction failure degrades to empty text rather than failing the call.
        """
        user_id = _require_user(user_id)
        if self.extractor is None:
            raise ValidationError("Document ingestion is not configured")

        result = await self.extractor.extract_text(document)
        if result.is_err():
            self.logger.warning(
                "document_extraction_failed",
                user_id=user_id,
                document_ref=document_ref,
                error=str(result.unwrap_err()),
            )
        text = result.unwrap_or("")

        vitals = extract_vitals(text)
        reading = VitalsReading(
            user_id=user_id,
            source=VitalsSource.DOCUMENT,
            document_ref=document_ref,
            metadata=extract_metadata(text),
            **vitals.model_dump(exclude_none=True),
        )
        if not vitals.has_any():
            self.logger.warning(
                "document_without_vitals", user_id=user_id, document_ref=document_ref
            )

        outcome = await self._store_and_evaluate(reading)
        outcome.extracted_text = text[: self.config.extracted_text_preview_chars]
        return outcome

    async def record_simulated(
        self, user_id: str, scenario: str | Scenario = Scenario.NORMAL
    ) -> IngestionResult:
        """Generate one synthetic reading for ``scenario`` and run it through the pipeline."""
        user_id = _require_user(user_id)
        parsed = parse_scenario(scenario)
        vitals, is_emergency = generate_vitals(parsed, self.rng)

        reading = VitalsReading(
            user_id=user_id,
            source=VitalsSource.SIMULATOR,
            is_emergency=is_emergency,
            metadata=DocumentMetadata(report_name=f"Simulated - {parsed.value}"),
            **vitals.model_dump(exclude_none=True),
        )
        return await self._store_and_evaluate(reading)

    async def record_bulk_simulated(
        self, user_id: str, count: int = 5, scenario: str | Scenario = Scenario.NORMAL
    ) -> list[IngestionResult]:
        """Generate up to ``bulk_simulate_cap`` readings, each evaluated independently."""
        user_id = _require_user(user_id)
        parsed = parse_scenario(scenario)
        if count < 1:
            raise ValidationError("count must be at least 1")

        capped = min(count, self.config.bulk_simulate_cap)
        if capped < count:
            self.logger.info("bulk_simulate_capped", requested=count, cap=capped)

        results = []
        for _ in range(capped):
            results.append(await self.record_simulated(user_id, parsed))
        return results

    async def list_readings(
        self, user_id: str, *, limit: int | None = None, source: VitalsSource | None = None
    ) -> list[VitalsReading]:
        user_id = _require_user(user_id)
        return await self.readings.list_for_user(
            user_id, limit=max(1, limit or self.config.default_reading_limit), source=source
        )

    async def get_reading(self, reading_id: str) -> VitalsReading:
        reading = await self.readings.get(reading_id)
        if reading is None:
            raise NotFoundError("Reading", reading_id)
        return reading
