import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence

from models.schedule_models import Break, BreakType, Session, WeeklyBreaks
from utils.config import AppConfig


logger = logging.getLogger(__name__)

FALLBACK_START_TIME = "9:00 AM"
SHORT_BREAK_MINUTES = 15
LUNCH_BREAK_MINUTES = 45
LEGACY_BREAK_OFFSET_MINUTES = 120

# Clock times carry no date; anchor them to a fixed day for arithmetic
_ANCHOR = datetime(2000, 1, 1)


def format_clock(moment: datetime) -> str:
    """Format as a 12-hour clock string without a leading zero, e.g. '9:05 AM'"""
    return moment.strftime("%I:%M %p").lstrip("0")


def parse_clock(value: str) -> datetime:
    """Parse a '9:05 AM' or '09:05' clock string onto the anchor day"""
    value = value.strip()
    for fmt in ("%I:%M %p", "%H:%M"):
        try:
            parsed = datetime.strptime(value, fmt)
            return _ANCHOR.replace(hour=parsed.hour, minute=parsed.minute)
        except ValueError:
            continue
    raise ValueError(f"Unrecognized clock time: {value!r}")


def parse_minutes(duration: str) -> int:
    """'120min' -> 120"""
    match = re.match(r"\s*(\d+)", duration)
    if not match:
        raise ValueError(f"Unrecognized duration: {duration!r}")
    return int(match.group(1))


def compute_start_time(preferred_time: Optional[str] = None) -> str:
    """Turn a preferred 'HH:MM' start time into a 12-hour clock string.

    Missing input uses the configured default start time; malformed input
    falls back to '9:00 AM'. Never raises.
    """
    try:
        hours, minutes = (preferred_time or AppConfig.DEFAULT_START_TIME).split(":")
        moment = _ANCHOR.replace(hour=int(hours), minute=int(minutes))
        return format_clock(moment)
    except (AttributeError, TypeError, ValueError) as e:
        logger.error(f"Error calculating start time from {preferred_time!r}: {e}")
        return FALLBACK_START_TIME


def average_session_minutes(total_daily_hours: int, session_count: int) -> int:
    if session_count <= 0:
        raise ValueError("session_count must be positive")
    return int(round(total_daily_hours / session_count * 60))


class SessionClock:
    """Running clock for laying sessions out back to back"""

    def __init__(self, start_time: str):
        self._current = parse_clock(start_time)

    @property
    def current(self) -> str:
        return format_clock(self._current)

    def advance(self, minutes: int) -> str:
        self._current += timedelta(minutes=minutes)
        return self.current


@dataclass(frozen=True)
class SessionSlot:
    index: int
    subject_index: int
    start_time: str


def layout_sessions(start_time: str, durations: Sequence[int], subject_count: int) -> List[SessionSlot]:
    """Lay out sessions sequentially given each session's realized duration.

    Session i studies subject ``i % subject_count`` and starts when session
    i-1 ends.
    """
    if subject_count <= 0:
        raise ValueError("At least one subject is required")

    clock = SessionClock(start_time)
    slots = []
    for index, minutes in enumerate(durations):
        slots.append(SessionSlot(index=index, subject_index=index % subject_count, start_time=clock.current))
        clock.advance(minutes)
    return slots


def layout_breaks(sessions: Sequence[Session], offset_minutes: Optional[int] = None) -> List[Break]:
    """One break between each pair of consecutive sessions.

    The break after session ``len(sessions) // 2 - 1`` is lunch, all others
    are short. A break starts when its preceding session ends, unless
    ``offset_minutes`` is given, in which case it starts that many minutes
    after the preceding session's start.
    """
    lunch_index = len(sessions) // 2 - 1
    breaks = []

    for index, session in enumerate(sessions[:-1]):
        elapsed = offset_minutes if offset_minutes is not None else parse_minutes(session.duration)
        starts_at = parse_clock(session.start_time) + timedelta(minutes=elapsed)

        if index == lunch_index:
            minutes, kind = LUNCH_BREAK_MINUTES, BreakType.LUNCH
        else:
            minutes, kind = SHORT_BREAK_MINUTES, BreakType.SHORT

        breaks.append(Break(start_time=format_clock(starts_at), duration=f"{minutes}min", type=kind))

    return breaks


def weekly_breaks_template() -> WeeklyBreaks:
    """Standard breaks attached to every weekly schedule"""
    return WeeklyBreaks(
        daily_breaks=[
            Break(start_time="11:00 AM", duration="15min", type=BreakType.SHORT),
            Break(start_time="1:00 PM", duration="45min", type=BreakType.LUNCH),
            Break(start_time="4:00 PM", duration="15min", type=BreakType.SHORT),
        ],
        weekend_breaks=[
            Break(start_time="11:30 AM", duration="30min", type=BreakType.LONG),
            Break(start_time="2:00 PM", duration="60min", type=BreakType.RECREATION),
        ],
    )


def week_date_range(week_number: int, today: Optional[date] = None) -> tuple[str, str]:
    """ISO start and end dates of a week counted from today"""
    today = today or date.today()
    start = today + timedelta(days=(week_number - 1) * 7)
    end = start + timedelta(days=6)
    return start.isoformat(), end.isoformat()


_DURATION_UNITS = {
    "day": 1,
    "week": 7,
    "month": 30,
    "year": 365,
}
_DURATION_PATTERN = re.compile(r"(?<![\d.])(\d+(?:\.\d+)?)\s*(day|week|month|year)s?", re.IGNORECASE)


def parse_study_duration_days(study_duration: Optional[str]) -> Optional[int]:
    """'3 months' -> 90, '1.5 months' -> 45; None when the text has no duration.

    Fractional durations round up to whole days.
    """
    if not study_duration:
        return None
    match = _DURATION_PATTERN.search(study_duration)
    if not match:
        return None
    days = math.ceil(round(float(match.group(1)) * _DURATION_UNITS[match.group(2).lower()], 6))
    return days or None
