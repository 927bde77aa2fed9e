from datetime import datetime, timezone
from typing import Optional

def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def normalize_now(now: Optional[datetime] = None) -> datetime:
    # Aware datetimes are converted to UTC and stripped so they compare with stored values
    if now is None:
        return utcnow()
    if now.tzinfo is not None:
        return now.astimezone(timezone.utc).replace(tzinfo=None)
    return now
