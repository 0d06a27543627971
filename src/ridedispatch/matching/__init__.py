"""Driver discovery and accept-once matching."""
