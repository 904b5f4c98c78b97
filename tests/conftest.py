"""Shared fixtures: in-memory stores and services wired the way the runtime wires them."""

import random

import pytest

from adapters.memory.stores import (
    InMemoryAlertStore,
    InMemoryMealPlanStore,
    InMemoryNutritionStore,
    InMemoryReminderStore,
    InMemoryUserDirectory,
    InMemoryVitalsStore,
)
from telemetry.domain.models import UserProfile
from telemetry.services.alerts import AlertService
from telemetry.services.ingestion import VitalsIngestionService


@pytest.fixture
def vitals_store() -> InMemoryVitalsStore:
    return InMemoryVitalsStore()


@pytest.fixture
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def plan_store() -> InMemoryMealPlanStore:
    return InMemoryMealPlanStore()


@pytest.fixture
def reminder_store() -> InMemoryReminderStore:
    return InMemoryReminderStore()


@pytest.fixture
def users() -> InMemoryUserDirectory:
    return InMemoryUserDirectory(
        [
            UserProfile(id="user-1", email="ada@example.com", first_name="Ada"),
            UserProfile(id="user-2", email="grace@example.com", first_name="Grace"),
        ]
    )


@pytest.fixture
def alert_service(alert_store: InMemoryAlertStore) -> AlertService:
    return AlertService(alert_store)


@pytest.fixture
def ingestion(
    vitals_store: InMemoryVitalsStore, alert_service: AlertService
) -> VitalsIngestionService:
    return VitalsIngestionService(vitals_store, alert_service, rng=random.Random(42))


@pytest.fixture
def nutrition_store() -> InMemoryNutritionStore:
    return InMemoryNutritionStore()
