"""
Error taxonomy for the telemetry core.

- ``ValidationError``: bad input (missing user id, no vitals, unknown scenario).
  Surfaced to the caller, never retried.
- ``NotFoundError``: unknown reading/alert/reminder id.
- ``ExternalDependencyError``: a collaborator (mail server, PDF parser) failed.
  Usually carried inside a ``Result`` rather than raised.

Storage failures are not wrapped; whatever the store raises propagates as-is.
"""


class TelemetryError(Exception):
    """Base class for errors raised by the telemetry core."""


class ValidationError(TelemetryError, ValueError):
    """Input was missing or invalid."""


class InvalidTransitionError(ValidationError):
    """A reminder status change is not allowed from its current state."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot move reminder from {current!r} to {requested!r}")
        self.current = current
        self.requested = requested


class NotFoundError(TelemetryError, LookupError):
    """The referenced entity does not exist (or is not owned by the caller)."""

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} {entity_id!r} not found")
        self.entity = entity
        self.entity_id = entity_id


class ExternalDependencyError(TelemetryError):
    """A collaborator outside the core failed."""

    def __init__(self, dependency: str, message: str) -> None:
        super().__init__(f"{dependency}: {message}")
        self.dependency = dependency
