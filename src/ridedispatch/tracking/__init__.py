"""Live ride tracking and status fan-out."""
