"""Health telemetry: vitals ingestion, clinical alerting and meal reminders.

The core logic lives in ``telemetry.services`` and depends only on the
protocols in ``telemetry.services.ports``; concrete stores and delivery
channels are provided by the ``adapters`` package.
"""
