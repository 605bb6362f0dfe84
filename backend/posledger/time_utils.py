from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo


# Local formats fiscal devices use when reporting shift open time
DEVICE_DATETIME_FORMATS = (
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%Y-%m-%d %H:%M:%S",
)


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def parse_device_datetime(value: Optional[str], tz_name: str) -> Optional[datetime]:
    """
    Parse a device-reported timestamp into UTC-naive.

    Devices report either a local "d.m.Y H:i:s" token or an ISO token.
    Naive values are interpreted in the tenant's business timezone; values
    carrying an offset are converted as-is. Unparseable input -> None.
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None

    tz = ZoneInfo(tz_name)

    parsed = None
    for fmt in DEVICE_DATETIME_FORMATS:
        try:
            parsed = datetime.strptime(s, fmt)
            break
        except ValueError:
            continue

    if parsed is None:
        iso = s[:-1] + "+00:00" if s.endswith("Z") else s
        try:
            parsed = datetime.fromisoformat(iso)
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)

    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def to_date_str(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None
