# utils/clock.py
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC, the convention for every datetime stored by the project."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
