"""
Continuous vitals simulator.

Each tick draws a scenario per known user and runs one simulated ingestion
through exactly the same pipeline real readings use.
"""

import random
import time
from dataclasses import dataclass, field

import structlog

from telemetry.config import SimulatorConfig
from telemetry.domain.models import Scenario
from telemetry.services.ingestion import VitalsIngestionService
from telemetry.services.ports import UserDirectory
from telemetry.services.scenarios import pick_scenario

logger = structlog.get_logger(__name__)


@dataclass
class SimulatorTickSummary:
    users: int = 0
    readings: int = 0
    alerts: int = 0
    failures: int = 0
    scenarios: dict[str, int] = field(default_factory=dict)


class ContinuousSimulator:
    """Manufactures one synthetic reading per user per tick."""

    def __init__(
        self,
        ingestion: VitalsIngestionService,
        users: UserDirectory,
        config: SimulatorConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.ingestion = ingestion
        self.users = users
        self.config = config or SimulatorConfig()
        self.rng = rng or random.Random()
        self.logger = logger.bind(component="continuous_simulator")

    def choose_scenario(self) -> Scenario:
        return pick_scenario(
            self.rng.random(),
            emergency_weight=self.config.emergency_weight,
            oxygen_drop_weight=self.config.oxygen_drop_weight,
        )

    async def run_tick(self) -> SimulatorTickSummary:
        """One pass over every known user. A failing user never stops the others."""
        start_time = time.perf_counter()
        summary = SimulatorTickSummary()

        user_ids = await self.users.list_user_ids()
        if not user_ids:
            self.logger.info("simulator_no_users")
            return summary

        for user_id in user_ids:
            summary.users += 1
            scenario = self.choose_scenario()
            try:
                result = await self.ingestion.record_simulated(user_id, scenario)
            except Exception as e:
                summary.failures += 1
                self.logger.exception(
                    "simulated_reading_failed",
                    user_id=user_id,
                    scenario=scenario.value,
                    error=str(e),
                )
                continue

            summary.readings += 1
            summary.alerts += len(result.alerts)
            summary.scenarios[scenario.value] = summary.scenarios.get(scenario.value, 0) + 1
            self.logger.debug(
                "simulated_reading",
                user_id=user_id,
                scenario=scenario.value,
                alerts=len(result.alerts),
            )

        self.logger.info(
            "simulator_tick_completed",
            users=summary.users,
            readings=summary.readings,
            alerts=summary.alerts,
            failures=summary.failures,
            duration_seconds=round(time.perf_counter() - start_time, 3),
        )
        return summary
