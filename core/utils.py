"""
Clock and calendar helpers for consistent date/time handling across the application.
"""
from datetime import date, datetime, time, timedelta

from django.utils import timezone

MINUTES_PER_DAY = 24 * 60


def get_local_today():
    """
    Get today's date in the clinic's timezone.

    Returns:
        date: Today's date in settings.TIME_ZONE
    """
    return timezone.localtime(timezone.now()).date()


def minutes_since_midnight(value):
    """Convert a time-of-day into whole minutes after midnight"""
    return value.hour * 60 + value.minute


def add_minutes(value, minutes):
    """
    Add minutes to a time-of-day.

    The result wraps past midnight like a wall clock, so callers that care
    about day overflow must check minutes_since_midnight() first.
    """
    return (datetime.combine(date.min, value) + timedelta(minutes=minutes)).time()


def parse_date(value):
    """Parse an ISO date (YYYY-MM-DD); dates pass through unchanged, datetimes are truncated"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value, '%Y-%m-%d').date()


def parse_time(value):
    """Parse HH:MM or HH:MM:SS; times pass through unchanged"""
    if isinstance(value, time):
        return value
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(value, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Invalid time '{value}', expected HH:MM")


def format_date_time(day, value):
    """Display a date and time-of-day as 'YYYY-MM-DD HH:MM'"""
    return f"{day.isoformat()} {value.strftime('%H:%M')}"
