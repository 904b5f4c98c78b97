"""
Composition root for the telemetry subsystem.

Wires stores, adapters and services from ``AppConfig`` and owns the two
background loops (continuous simulator and reminder dispatch). The CRUD layer
calls the services exposed here; nothing in ``telemetry.services`` imports
this module.
"""

import asyncio
import signal

import structlog

from adapters.documents.pdf import PdfTextExtractor
from adapters.memory.stores import (
    InMemoryAlertStore,
    InMemoryMealPlanStore,
    InMemoryNutritionStore,
    InMemoryReminderStore,
    InMemoryUserDirectory,
    InMemoryVitalsStore,
)
from adapters.notifications.email import ConsoleReminderSender, SmtpReminderSender
from adapters.nutrition.openfoodfacts import OpenFoodFactsLookup
from telemetry.config import AppConfig, get_config
from telemetry.logging_setup import configure_logging
from telemetry.services.alerts import AlertService
from telemetry.services.background import PeriodicTask
from telemetry.services.ingestion import VitalsIngestionService
from telemetry.services.nutrition import NutritionService
from telemetry.services.ports import (
    AlertStore,
    DocumentTextExtractor,
    MealPlanStore,
    NutrientLookup,
    NutritionStore,
    ReminderSender,
    ReminderStore,
    UserDirectory,
    VitalsStore,
)
from telemetry.services.reminders import ReminderDispatcher, ReminderService
from telemetry.services.reporting import ReportAggregator
from telemetry.services.scheduling import ReminderScheduler
from telemetry.services.simulator import ContinuousSimulator

logger = structlog.get_logger(__name__)


def build_sender(config: AppConfig) -> ReminderSender:
    if config.notifications.backend == "smtp":
        return SmtpReminderSender(config.notifications)
    return ConsoleReminderSender()


def build_nutrient_lookup(config: AppConfig) -> NutrientLookup | None:
    if config.nutrition.lookup_enabled:
        return OpenFoodFactsLookup(config.nutrition)
    return None


class TelemetryRuntime:
    """
    Owns every telemetry service and the background loops that drive them.

    Any collaborator not passed in is built from config (in-memory stores,
    pypdf extraction, console or SMTP delivery, optional Open Food Facts lookup).
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        readings: VitalsStore | None = None,
        alert_store: AlertStore | None = None,
        plans: MealPlanStore | None = None,
        reminder_store: ReminderStore | None = None,
        users: UserDirectory | None = None,
        sender: ReminderSender | None = None,
        extractor: DocumentTextExtractor | None = None,
        nutrition_store: NutritionStore | None = None,
        nutrient_lookup: NutrientLookup | None = None,
    ) -> None:
        self.config = config or get_config()
        self.logger = logger.bind(component="telemetry_runtime")

        self.readings = readings or InMemoryVitalsStore()
        self.alert_store = alert_store or InMemoryAlertStore()
        self.plans = plans or InMemoryMealPlanStore()
        self.reminder_store = reminder_store or InMemoryReminderStore()
        self.users = users or InMemoryUserDirectory()
        self.nutrition_store = nutrition_store or InMemoryNutritionStore()
        self.sender = sender or build_sender(self.config)

        self.alerts = AlertService(self.alert_store)
        self.ingestion = VitalsIngestionService(
            self.readings,
            self.alerts,
            extractor=extractor or PdfTextExtractor(),
            config=self.config.ingestion,
        )
        self.scheduler = ReminderScheduler(self.plans, self.reminder_store, self.config.reminders)
        self.reminders = ReminderService(self.reminder_store, self.scheduler)
        self.dispatcher = ReminderDispatcher(
            self.users,
            self.plans,
            self.reminder_store,
            self.scheduler,
            self.sender,
            self.config.reminders,
        )
        self.simulator = ContinuousSimulator(self.ingestion, self.users, self.config.simulator)
        self.reports = ReportAggregator(
            self.readings, self.alert_store, tz=self.config.reminders.tzinfo
        )
        self.nutrition = NutritionService(
            self.nutrition_store,
            nutrient_lookup or build_nutrient_lookup(self.config),
            self.config.nutrition,
            tz=self.config.reminders.tzinfo,
        )

        self.tasks: list[PeriodicTask] = [
            PeriodicTask(
                "reminder_dispatch",
                self.config.reminders.dispatch_interval_seconds,
                self.dispatcher.run_tick,
            )
        ]
        if self.config.simulator.enabled:
            self.tasks.append(
                PeriodicTask(
                    "vitals_simulator",
                    self.config.simulator.interval_seconds,
                    self.simulator.run_tick,
                )
            )

    def start(self) -> None:
        for task in self.tasks:
            task.start()
        self.logger.info("runtime_started", tasks=[t.name for t in self.tasks])

    async def stop(self) -> None:
        """Signal every loop and wait for in-flight ticks to finish."""
        self.logger.info("runtime_stopping")
        await asyncio.gather(*(task.drain() for task in self.tasks))
        if isinstance(self.nutrition.lookup, OpenFoodFactsLookup):
            await self.nutrition.lookup.aclose()
        self.logger.info("runtime_stopped")


async def main() -> None:
    config = get_config()
    configure_logging(config.logging)

    runtime = TelemetryRuntime(config)
    stop_requested = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_requested.set)

    runtime.start()
    try:
        await stop_requested.wait()
    finally:
        await runtime.stop()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
