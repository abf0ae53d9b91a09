from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2026-10-19T08:30:00.000Z"""
    moment = moment or utc_now()
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def http_date(moment: datetime, offset_seconds: int = 0) -> str:
    """Format an HTTP-date (RFC 9110), optionally shifted into the future."""
    return format_datetime(moment + timedelta(seconds=offset_seconds), usegmt=True)
