"""
Configuration management with environment variable support and validation.

Design principles:
- Validation at startup (fail fast)
- Type safety with Pydantic
- Secure defaults (no credentials in code)
"""

import os
from functools import lru_cache
from typing import Literal, cast
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables from .env file
load_dotenv()


class SimulatorConfig(BaseModel):
    """Continuous vitals simulator (background load generation)."""

    enabled: bool = Field(default=True, description="Run the continuous simulator")
    interval_seconds: float = Field(
        default=30.0, gt=0.0, description="Interval between simulator ticks"
    )
    emergency_weight: float = Field(default=0.15, ge=0.0, le=1.0)
    oxygen_drop_weight: float = Field(default=0.10, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def weights_leave_room_for_normal(self) -> "SimulatorConfig":
        if self.emergency_weight + self.oxygen_drop_weight > 1.0:
            raise ValueError("scenario weights must not sum to more than 1.0")
        return self


class ReminderConfig(BaseModel):
    """Meal reminder expansion and dispatch."""

    dispatch_interval_seconds: float = Field(
        default=60.0, gt=0.0, description="Interval between dispatch ticks"
    )
    horizon_days: int = Field(default=7, gt=0, description="Rolling expansion horizon")
    dispatch_batch_size: int = Field(
        default=10, gt=0, description="Max due reminders sent per user per tick"
    )
    max_concurrent_users: int = Field(
        default=10, gt=0, description="Users processed concurrently within one tick"
    )
    timezone: str = Field(default="UTC", description="Zone that meal times are expressed in")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class IngestionConfig(BaseModel):
    """Vitals ingestion limits."""

    bulk_simulate_cap: int = Field(default=20, gt=0, description="Max readings per bulk call")
    extracted_text_preview_chars: int = Field(default=500, ge=0)
    default_reading_limit: int = Field(default=20, gt=0)


class NutritionConfig(BaseModel):
    """Meal logging and nutrient lookup."""

    lookup_enabled: bool = Field(
        default=False, description="Fill in nutrients for gram-measured items from Open Food Facts"
    )
    lookup_url: str = Field(default="https://world.openfoodfacts.org/cgi/search.pl")
    user_agent: str = Field(default="health-telemetry/0.1 (nutrition lookup)")
    timeout_seconds: float = Field(default=12.0, gt=0.0)
    max_concurrent_lookups: int = Field(default=5, gt=0)
    default_page_size: int = Field(default=50, gt=0)


class NotificationConfig(BaseModel):
    """Outbound meal reminder delivery."""

    backend: Literal["console", "smtp"] = Field(default="console")
    smtp_host: str | None = None
    smtp_port: int = Field(default=587, gt=0, lt=65536)
    smtp_user: str | None = None
    smtp_password: str | None = None
    sender: str | None = Field(default=None, description="From address")
    use_tls: bool = True
    timeout_seconds: float = Field(default=10.0, gt=0.0)

    @model_validator(mode="after")
    def smtp_requires_host_and_sender(self) -> "NotificationConfig":
        if self.backend == "smtp" and not (self.smtp_host and self.sender):
            raise ValueError("smtp backend requires EMAIL_HOST and EMAIL_FROM")
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    simulator: SimulatorConfig = Field(default_factory=SimulatorConfig)
    reminders: ReminderConfig = Field(default_factory=ReminderConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    nutrition: NutritionConfig = Field(default_factory=NutritionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    def _parse_bool(val: str | None, default: bool) -> bool:
        if val is None:
            return default
        return val.strip().lower() in {"1", "true", "yes", "on"}

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    simulator_config = SimulatorConfig(
        enabled=_parse_bool(os.getenv("SIMULATOR_ENABLED"), True),
        interval_seconds=float(os.getenv("SIMULATOR_INTERVAL_MS", "30000")) / 1000.0,
    )

    reminder_config = ReminderConfig(
        timezone=os.getenv("REMINDER_TIMEZONE", "UTC"),
        max_concurrent_users=int(os.getenv("REMINDER_MAX_CONCURRENT_USERS", "10")),
    )

    notification_config = NotificationConfig(
        backend="smtp" if os.getenv("EMAIL_HOST") else "console",
        smtp_host=os.getenv("EMAIL_HOST") or None,
        smtp_port=int(os.getenv("EMAIL_PORT", "587")),
        smtp_user=os.getenv("EMAIL_USER") or None,
        smtp_password=os.getenv("EMAIL_PASSWORD") or None,
        sender=os.getenv("EMAIL_FROM") or None,
        use_tls=_parse_bool(os.getenv("EMAIL_USE_TLS"), True),
    )

    nutrition_config = NutritionConfig(
        lookup_enabled=_parse_bool(os.getenv("NUTRITION_LOOKUP_ENABLED"), False),
        user_agent=os.getenv("NUTRITION_LOOKUP_USER_AGENT", NutritionConfig().user_agent),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        simulator=simulator_config,
        reminders=reminder_config,
        ingestion=IngestionConfig(),
        notifications=notification_config,
        nutrition=nutrition_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"✅ Configuration loaded for {config.environment} environment")

        if config.notifications.backend == "smtp":
            print(f"✅ SMTP delivery via {config.notifications.smtp_host}")
        else:
            print("✅ Console reminder delivery (no EMAIL_HOST configured)")

    except Exception as e:
        print(f"❌ Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\n🔧 CONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\n🤖 SIMULATOR")
    print(f"Enabled: {config.simulator.enabled}")
    print(f"Interval: {config.simulator.interval_seconds}s")
    print(
        f"Weights: emergency={config.simulator.emergency_weight:.0%} "
        f"oxygen_drop={config.simulator.oxygen_drop_weight:.0%}"
    )

    print("\n🔔 MEAL REMINDERS")
    print(f"Dispatch Interval: {config.reminders.dispatch_interval_seconds}s")
    print(f"Horizon: {config.reminders.horizon_days} days")
    print(f"Timezone: {config.reminders.timezone}")
    print(f"Delivery: {config.notifications.backend}")

    print("\n🥗 NUTRITION")
    print(f"Nutrient Lookup: {'enabled' if config.nutrition.lookup_enabled else 'disabled'}")


if __name__ == "__main__":
    validate_config()
    print_config_summary()
