from datetime import datetime, date, time, timedelta, timezone
from dateutil import tz
from dateutil import parser as date_parser

def now_utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def local_today(local_tz: str, now: datetime | None = None) -> date:
    tzinfo = tz.gettz(local_tz)
    now = now or datetime.now(timezone.utc)
    return now.astimezone(tzinfo).date()

def day_bounds(day: date, local_tz: str) -> tuple[datetime, datetime]:
    """Return the aware [start, end) instants of a local calendar day."""
    tzinfo = tz.gettz(local_tz)
    start = datetime.combine(day, time(0, 0), tzinfo=tzinfo)
    end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=tzinfo)
    return start, end

def parse_local_datetime(value, local_tz: str) -> datetime | None:
    # Naive values and bare dates are wall-clock times in local_tz
    if value is None:
        return None
    tzinfo = tz.gettz(local_tz)
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time(0, 0))
    else:
        text = str(value).strip()
        if not text:
            return None
        # ISO 8601 only; partial values like "10" are not dates
        try:
            dt = date_parser.isoparse(text)
        except (ValueError, OverflowError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tzinfo)
    return dt

def day_range(start: date, end: date) -> list[date]:
    out = []
    cur = start
    while cur <= end:
        out.append(cur)
        cur += timedelta(days=1)
    return out
