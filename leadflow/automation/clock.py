"""
Calendar helpers shared by settings validation and the scheduler.

All functions are pure: they take the current time as an argument.
"""
import math
import re

from leadflow.errors import ScheduleConfigError

_TIME_RE = re.compile(r'^(\d{1,2}):(\d{2})$')


def parse_time_of_day(value):
    """Parse "HH:mm" into (hour, minute). Raises ScheduleConfigError."""
    if not isinstance(value, str):
        raise ScheduleConfigError(f'time of day must be a "HH:mm" string, got {value!r}')
    match = _TIME_RE.match(value.strip())
    if not match:
        raise ScheduleConfigError(f'malformed time of day {value!r} (expected "HH:mm")')
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ScheduleConfigError(f'time of day {value!r} is out of range')
    return hour, minute


def day_of_week(now):
    """0 = Sunday ... 6 = Saturday."""
    return (now.weekday() + 1) % 7


def period_id(cadence, now):
    """Run-marker period: 'YYYY-MM-DD' for daily jobs, ISO 'YYYY-Www' for weekly."""
    if cadence == 'daily':
        return now.date().isoformat()
    if cadence == 'weekly':
        iso_year, iso_week, _ = now.isocalendar()
        return f'{iso_year}-W{iso_week:02d}'
    raise ValueError(f'Unknown cadence: {cadence}')


def in_activation_window(now, hour, minute, window_minutes):
    """True when now's minute-of-day is in [configured, configured + window)."""
    start = hour * 60 + minute
    current = now.hour * 60 + now.minute
    return start <= current < start + window_minutes


def activation_window_minutes(tick_seconds, minimum=5):
    """Window wide enough that at least two ticks land inside it."""
    return max(minimum, math.ceil(2 * tick_seconds / 60))
