from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

SEOUL_TZ = ZoneInfo("Asia/Seoul")


def now_seoul() -> datetime:
    return datetime.now(tz=SEOUL_TZ)


def today_seoul() -> date:
    return now_seoul().date()


def to_bkdate(d: date) -> str:
    return d.strftime("%Y%m%d")


def format_bkdate(bkdate: str | None) -> str:
    if not bkdate:
        return "-"
    if len(bkdate) == 8:
        return f"{bkdate[:4]}-{bkdate[4:6]}-{bkdate[6:8]}"
    return bkdate


def format_bktime(bktime: str | None) -> str:
    if not bktime:
        return "-"
    if len(bktime) == 6:
        return f"{bktime[:2]}:{bktime[2:4]}:{bktime[4:6]}"
    return bktime


def as_seoul(dt: datetime | None) -> datetime | None:
    """Database timestamps are naive UTC; attach the offset and show them in KST."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(SEOUL_TZ)
