"""Ride dispatch core: driver discovery, accept-once matching, ride lifecycle and fares."""

__version__ = "0.1.0"
