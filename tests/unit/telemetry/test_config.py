"""
Tests for configuration management in `telemetry/config.py`.

Covers:
- Environment parsing and debug defaults
- Simulator interval conversion from milliseconds
- Notification backend selection from EMAIL_* variables
- Section validation (weights, timezone, smtp requirements)
- get_config cache behavior
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from pydantic import ValidationError

from telemetry.config import (
    AppConfig,
    NotificationConfig,
    ReminderConfig,
    SimulatorConfig,
    get_config,
    load_config_from_env,
)

_ENV_VARS = (
    "ENVIRONMENT",
    "SIMULATOR_ENABLED",
    "SIMULATOR_INTERVAL_MS",
    "REMINDER_TIMEZONE",
    "REMINDER_MAX_CONCURRENT_USERS",
    "EMAIL_HOST",
    "EMAIL_PORT",
    "EMAIL_USER",
    "EMAIL_PASSWORD",
    "EMAIL_FROM",
    "EMAIL_USE_TLS",
    "LOG_LEVEL",
    "NUTRITION_LOOKUP_ENABLED",
    "NUTRITION_LOOKUP_USER_AGENT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Isolate each test from the developer's environment and the get_config cache."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_config.cache_clear()
    yield
    get_config.cache_clear()


def test_load_config_dev_defaults() -> None:
    config = load_config_from_env()

    assert config.environment == "development"
    assert config.debug is True
    assert config.logging.format == "console"
    assert config.simulator.enabled is True
    assert config.simulator.interval_seconds == 30.0
    assert config.reminders.dispatch_interval_seconds == 60.0
    assert config.reminders.timezone == "UTC"
    assert config.ingestion.bulk_simulate_cap == 20
    assert config.notifications.backend == "console"
    assert config.nutrition.lookup_enabled is False


def test_production_uses_json_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "prod")
    monkeypatch.setenv("LOG_LEVEL", "warning")

    config = load_config_from_env()

    assert config.environment == "production"
    assert config.debug is False
    assert config.logging.format == "json"
    assert config.logging.level == "WARNING"


def test_simulator_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SIMULATOR_ENABLED", "false")
    monkeypatch.setenv("SIMULATOR_INTERVAL_MS", "5000")

    config = load_config_from_env()

    assert config.simulator.enabled is False
    assert config.simulator.interval_seconds == 5.0


def test_email_host_selects_smtp(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EMAIL_HOST", "smtp.example.com")
    monkeypatch.setenv("EMAIL_PORT", "2525")
    monkeypatch.setenv("EMAIL_FROM", "care@example.com")
    monkeypatch.setenv("EMAIL_USE_TLS", "no")

    notifications = load_config_from_env().notifications

    assert notifications.backend == "smtp"
    assert notifications.smtp_port == 2525
    assert notifications.sender == "care@example.com"
    assert notifications.use_tls is False


def test_nutrition_lookup_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NUTRITION_LOOKUP_ENABLED", "yes")
    monkeypatch.setenv("NUTRITION_LOOKUP_USER_AGENT", "clinic-app/2.0")

    nutrition = load_config_from_env().nutrition

    assert nutrition.lookup_enabled is True
    assert nutrition.user_agent == "clinic-app/2.0"


def test_email_host_without_sender_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EMAIL_HOST", "smtp.example.com")

    with pytest.raises(ValidationError, match="EMAIL_FROM"):
        load_config_from_env()


def test_invalid_timezone_is_rejected() -> None:
    with pytest.raises(ValidationError, match="Unknown timezone"):
        ReminderConfig(timezone="Mars/Olympus_Mons")


def test_timezone_property() -> None:
    assert ReminderConfig(timezone="Asia/Colombo").tzinfo.key == "Asia/Colombo"


def test_scenario_weights_must_leave_room_for_normal() -> None:
    with pytest.raises(ValidationError):
        SimulatorConfig(emergency_weight=0.7, oxygen_drop_weight=0.5)


def test_non_positive_interval_is_rejected() -> None:
    with pytest.raises(ValidationError):
        SimulatorConfig(interval_seconds=0)


def test_smtp_config_requires_host() -> None:
    with pytest.raises(ValidationError):
        NotificationConfig(backend="smtp", sender="care@example.com")


def test_get_config_cache() -> None:
    assert get_config() is get_config()


def test_app_config_debug_only_in_dev_validation() -> None:
    AppConfig(environment="development", debug=True)
    with pytest.raises(ValidationError):
        AppConfig(environment="production", debug=True)
