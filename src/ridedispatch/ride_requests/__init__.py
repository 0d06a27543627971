"""Ride request management."""
