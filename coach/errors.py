from __future__ import annotations


class CoachError(Exception):
    """Base class for errors surfaced at the request-handler boundary."""

    status_code = 500
    retryable = False


class NotFound(CoachError):
    status_code = 404


class ConcurrencyConflict(CoachError):
    """The activate/deactivate transaction could not complete atomically. Retry the whole operation."""

    status_code = 409
    retryable = True


class ValidationFailure(CoachError):
    status_code = 400


class ProviderFailure(CoachError):
    """The model provider failed or timed out. The cause is logged, never returned to clients."""

    status_code = 502
    retryable = True
