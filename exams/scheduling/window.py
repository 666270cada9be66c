"""
Parsing of the loosely typed scheduling window stored on an exam.

All values are naive wall-clock datetimes; the stored window and "now" are
assumed to share the server's configured TIME_ZONE.
"""
from datetime import datetime, time
from typing import Optional

from django.utils import timezone

DATE_FORMAT = '%Y-%m-%d'
TIME_FORMAT = '%H:%M'
DATETIME_FORMATS = ('%Y-%m-%d %H:%M', '%Y-%m-%d %H:%M:%S')
END_OF_DAY = time(23, 59)


def wall_clock(now: Optional[datetime] = None) -> datetime:
    """Naive local wall-clock time for comparisons against the window."""
    if now is None:
        now = timezone.now()
    if timezone.is_aware(now):
        now = timezone.localtime(now).replace(tzinfo=None)
    return now


def _is_blank(value) -> bool:
    return value is None or not str(value).strip()


def parse_bound(date_value, time_value) -> Optional[datetime]:
    """
    Combine a date and a time string into a datetime.

    Returns None when either half is missing (the bound is unconstrained) and
    raises ValueError when the strings are present but malformed.
    """
    if _is_blank(date_value) or _is_blank(time_value):
        return None

    combined = f"{str(date_value).strip()} {str(time_value).strip()}"
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(combined, fmt)
        except ValueError:
            continue
    raise ValueError(f"Unparseable window bound: {combined!r}")


def parse_end_of_day(date_value) -> Optional[datetime]:
    """Date-only fallback: the last minute of the given day."""
    if _is_blank(date_value):
        return None
    day = datetime.strptime(str(date_value).strip(), DATE_FORMAT).date()
    return datetime.combine(day, END_OF_DAY)


def exam_start(exam) -> Optional[datetime]:
    return parse_bound(exam.start_date, exam.start_time)


def exam_end(exam) -> Optional[datetime]:
    return parse_bound(exam.end_date, exam.end_time)


def validate_date(value: str) -> str:
    datetime.strptime(value, DATE_FORMAT)
    return value


def validate_time(value: str) -> str:
    datetime.strptime(value, TIME_FORMAT)
    return value
