"""Ride lifecycle state machine."""
