"""Standardized exception hierarchy for the dispatch service."""

from typing import Any


class DispatchError(Exception):
    """Base exception for all dispatch errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class TransientError(DispatchError):
    """Errors that may succeed on retry."""

    pass


class NetworkError(TransientError):
    """Network-related transient errors (timeout, connection refused)."""

    pass


class ServiceUnavailableError(TransientError):
    """External service temporarily unavailable (5xx responses)."""

    pass


class RoutingUnavailableError(ServiceUnavailableError):
    """Routing provider could not produce a route; estimates are unavailable."""

    pass


class PermanentError(DispatchError):
    """Errors that will not succeed on retry."""

    pass


class ValidationError(PermanentError):
    """Invalid input or data format."""

    pass


class NotFoundError(PermanentError):
    """Requested entity does not exist."""

    pass


class ConflictError(PermanentError):
    """Operation collides with existing state (duplicate request, double accept)."""

    pass


class AlreadyMatchedError(ConflictError):
    """Ride request was already claimed by another driver."""

    pass


class InvalidStateError(PermanentError):
    """Operation is not legal in the entity's current state."""

    pass


class InvalidTransitionError(InvalidStateError):
    """Ride status transition not allowed by the transition table."""

    pass


class StaleDataError(InvalidStateError):
    """Operation targets a ride request whose expiry has passed."""

    pass


class AlreadyCancelledError(InvalidStateError):
    """Ride request was cancelled before the operation reached it."""

    pass


class ConfigurationError(PermanentError):
    """Missing or invalid configuration."""

    pass
