"""Database utility functions."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return current UTC time as naive datetime for SQLite compatibility.

    SQLite stores datetimes as TEXT without timezone info. Using naive
    datetimes that represent UTC ensures consistent comparisons.
    """
    return datetime.now(UTC).replace(tzinfo=None)


def format_location(location: tuple[float, float]) -> str:
    lat, lon = location
    return f"{lat},{lon}"


def parse_location(value: str) -> tuple[float, float]:
    lat, lon = map(float, value.split(","))
    return (lat, lon)
