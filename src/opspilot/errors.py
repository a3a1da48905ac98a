"""Exceptions raised by the incident-response pipeline."""


class OpsPilotError(Exception):
    """Base class for pipeline errors."""


class TransientIOError(OpsPilotError):
    """A telemetry, reasoning-service or resource-controller call failed."""


class DiagnosisError(OpsPilotError):
    """The reasoning service could not produce a diagnosis."""


class PlanningError(OpsPilotError):
    """The remediation plan could not be generated."""


class PlanParseError(PlanningError):
    """The reasoning service returned a plan that cannot be interpreted."""


class IncidentStateError(OpsPilotError):
    """An incident status transition is not allowed, or the incident is already closed."""


class ActionExecutionError(OpsPilotError):
    """A remediation action handler reported failure."""


class ResourceBusyError(OpsPilotError):
    """Another incident holds the execution lease for the same resource."""
