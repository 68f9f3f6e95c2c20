"""UTC clock for stamping financial records."""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Every paid_at, sent_at and audit timestamp comes from here so
    reconciliation never compares naive and aware datetimes.
    """
    return datetime.now(timezone.utc)
