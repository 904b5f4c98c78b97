"""
Telemetry services.

This package contains the alert evaluator, the vitals ingestion pipeline,
the continuous simulator, meal reminder scheduling and dispatch, meal logging
with nutrient rollups, and reporting.
"""

from .alerts import AlertService, evaluate
from .background import PeriodicTask
from .ingestion import VitalsIngestionService
from .nutrition import NutritionService
from .reminders import ReminderDispatcher, ReminderService
from .reporting import ReportAggregator
from .result import Result
from .scheduling import ReminderScheduler, expand
from .simulator import ContinuousSimulator

__all__ = [
    "AlertService",
    "ContinuousSimulator",
    "NutritionService",
    "PeriodicTask",
    "ReminderDispatcher",
    "ReminderScheduler",
    "ReminderService",
    "ReportAggregator",
    "Result",
    "VitalsIngestionService",
    "evaluate",
    "expand",
]
