"""
Exception handling utilities.

Defines categorized exception types for the distribution engine and the
helpers that decide how each category is handled.
"""

from sqlalchemy.exc import OperationalError


class EngineError(Exception):
    """Base class for all distribution engine errors."""

    retryable = False

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class InvalidInputError(EngineError):
    """Malformed request. Surfaced to the caller, never retried."""


class InvalidEligibilityError(EngineError):
    """The rule set rejected the event. A negative outcome, never retried."""


class ConfigUnavailableError(EngineError):
    """Config service could not be reached or returned an unusable payload."""


class HierarchyError(EngineError):
    """Hierarchy operation could not be completed."""


class ParticipantNotFoundError(HierarchyError):
    """Participant is not part of the hierarchy."""


class HierarchyCycleError(HierarchyError):
    """Re-parenting would make a participant its own ancestor."""


class PersistenceError(EngineError):
    """Database write failed or timed out. Safe to retry the whole event."""

    retryable = True


class StatisticsUpdateError(EngineError):
    """Statistics rollup failed. Logged only."""


# Exception categories based on handling strategy

# Degrade to defaults / warnings, never surfaced as a failure
BEST_EFFORT = (
    ConfigUnavailableError,
    StatisticsUpdateError,
)

# Surfaced, never retried
MUST_RAISE = (
    InvalidInputError,
    InvalidEligibilityError,
    HierarchyError,
)

# Surfaced, caller may retry
RETRYABLE = (
    PersistenceError,
    OperationalError,
    TimeoutError,
)


def is_best_effort(exc: Exception) -> bool:
    """
    Check if exception belongs to a best-effort side effect.

    Args:
        exc: Exception to check

    Returns:
        True if the failure must only be logged
    """
    return isinstance(exc, BEST_EFFORT)


def is_retryable(exc: Exception) -> bool:
    """
    Check if the operation that raised exc may be retried.

    Args:
        exc: Exception to check

    Returns:
        True if exception is classified as retryable
    """
    if isinstance(exc, EngineError):
        return exc.retryable
    return isinstance(exc, RETRYABLE)


def must_raise(exc: Exception) -> bool:
    """
    Check if exception must be surfaced without retry.

    Args:
        exc: Exception to check

    Returns:
        True if exception must be raised
    """
    return isinstance(exc, MUST_RAISE)
