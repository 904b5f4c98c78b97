"""
Synthetic vitals generators for the simulator.

Each scenario draws every vital from a fixed range. Integer-valued vitals
(heart rate, blood pressure, glucose) are drawn as whole numbers; oxygen and
temperature are rounded to one decimal place.
"""

import random
from dataclasses import dataclass

from telemetry.domain.models import BloodPressure, Scenario, Vitals
from telemetry.errors import ValidationError


@dataclass(frozen=True)
class ScenarioProfile:
    """Value ranges for one scenario, plus whether its readings are emergencies."""

    heart_rate: tuple[int, int]
    systolic: tuple[int, int]
    diastolic: tuple[int, int]
    oxygen_level: tuple[float, float]
    temperature: tuple[float, float]
    glucose_level: tuple[int, int]
    is_emergency: bool = False

    def generate(self, rng: random.Random) -> Vitals:
        return Vitals(
            heart_rate=rng.randint(*self.heart_rate),
            blood_pressure=BloodPressure(
                systolic=rng.randint(*self.systolic),
                diastolic=rng.randint(*self.diastolic),
            ),
            oxygen_level=round(rng.uniform(*self.oxygen_level), 1),
            temperature=round(rng.uniform(*self.temperature), 1),
            glucose_level=rng.randint(*self.glucose_level),
        )


SCENARIO_PROFILES: dict[Scenario, ScenarioProfile] = {
    Scenario.NORMAL: ScenarioProfile(
        heart_rate=(60, 100),
        systolic=(110, 130),
        diastolic=(70, 85),
        oxygen_level=(96, 100),
        temperature=(36.1, 37.2),
        glucose_level=(80, 140),
    ),
    Scenario.EMERGENCY: ScenarioProfile(
        heart_rate=(150, 200),
        systolic=(180, 220),
        diastolic=(110, 130),
        oxygen_level=(92, 95),
        temperature=(39.5, 41.0),
        glucose_level=(350, 500),
        is_emergency=True,
    ),
    Scenario.OXYGEN_DROP: ScenarioProfile(
        heart_rate=(90, 130),
        systolic=(100, 130),
        diastolic=(65, 85),
        oxygen_level=(78, 88),
        temperature=(36.5, 37.8),
        glucose_level=(80, 160),
        is_emergency=True,
    ),
}


def parse_scenario(value: str | Scenario) -> Scenario:
    """Coerce a scenario name, rejecting unknown names."""
    if isinstance(value, Scenario):
        return value
    try:
        return Scenario(value)
    except ValueError:
        valid = ", ".join(s.value for s in Scenario)
        raise ValidationError(f"Invalid scenario {value!r}. Valid options: {valid}") from None


def generate_vitals(
    scenario: Scenario, rng: random.Random | None = None
) -> tuple[Vitals, bool]:
    """Draw one set of vitals for ``scenario``; returns ``(vitals, is_emergency)``."""
    profile = SCENARIO_PROFILES[scenario]
    return profile.generate(rng or random.Random()), profile.is_emergency


def pick_scenario(
    roll: float, emergency_weight: float = 0.15, oxygen_drop_weight: float = 0.10
) -> Scenario:
    """
    Weighted roulette over scenarios for a uniform ``roll`` in ``[0, 1)``.

    Defaults give 15% emergency, 10% oxygen drop, 75% normal.
    """
    if roll < emergency_weight:
        return Scenario.EMERGENCY
    if roll < emergency_weight + oxygen_drop_weight:
        return Scenario.OXYGEN_DROP
    return Scenario.NORMAL
