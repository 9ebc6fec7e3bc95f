"""UTC time helper shared by the store and the reaper"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)
