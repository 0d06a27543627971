"""Core utilities: exceptions, retry, correlation."""

from .exceptions import (
    AlreadyCancelledError,
    AlreadyMatchedError,
    ConfigurationError,
    ConflictError,
    DispatchError,
    InvalidStateError,
    InvalidTransitionError,
    NetworkError,
    NotFoundError,
    PermanentError,
    RoutingUnavailableError,
    ServiceUnavailableError,
    StaleDataError,
    TransientError,
    ValidationError,
)
from .retry import RetryConfig, with_retry

__all__ = [
    "AlreadyCancelledError",
    "AlreadyMatchedError",
    "ConfigurationError",
    "ConflictError",
    "DispatchError",
    "InvalidStateError",
    "InvalidTransitionError",
    "NetworkError",
    "NotFoundError",
    "PermanentError",
    "RetryConfig",
    "RoutingUnavailableError",
    "ServiceUnavailableError",
    "StaleDataError",
    "TransientError",
    "ValidationError",
    "with_retry",
]
