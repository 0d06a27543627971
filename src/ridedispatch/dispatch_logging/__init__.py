"""Structured logging for the dispatch service."""

from .context import LogContext, log_context, log_request_context, log_ride_context
from .setup import setup_logging

__all__ = [
    "LogContext",
    "log_context",
    "log_request_context",
    "log_ride_context",
    "setup_logging",
]
