"""
Exception types for the adaptive training engine.

Missing or stale data never raises: it resolves to documented defaults.
These exceptions cover collaborator failures and programming errors only.
"""


class AdaptiveCoachError(Exception):
    """Base class for engine errors."""


class DependencyUnavailableError(AdaptiveCoachError):
    """An optional collaborator (e.g. exercise substitution) could not be reached."""


class StorageError(AdaptiveCoachError):
    """A write to the storage collaborator failed."""


class PlanInvariantError(AdaptiveCoachError):
    """A finished plan violated one of its structural invariants."""
