# devlog/utils/dates.py
from datetime import date, datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app, has_app_context


def get_timezone(name: Optional[str] = None) -> tzinfo:
    """
    Zona "local" del diario (DEVLOG_TIMEZONE). Si no es válida, UTC.
    """
    if name is None and has_app_context():
        name = current_app.config.get("DEVLOG_TIMEZONE")
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def now_local(tz: Optional[tzinfo] = None) -> datetime:
    return datetime.now(tz or get_timezone())


def local_day(dt: datetime, tz: Optional[tzinfo] = None) -> date:
    """Día de calendario (en la zona local) de un timestamp."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz or get_timezone()).date()


def same_month(d: date, ref: date) -> bool:
    return d.year == ref.year and d.month == ref.month


def parse_day(s: Optional[str]) -> Optional[date]:
    """'YYYY-MM-DD' (o ISO con hora) -> date. None si no se puede."""
    if not s:
        return None
    try:
        if "T" in s:
            return datetime.fromisoformat(s).date()
        return datetime.strptime(s[:10], "%Y-%m-%d").date()
    except ValueError:
        return None
