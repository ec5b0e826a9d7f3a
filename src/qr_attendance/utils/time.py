from __future__ import annotations

import time
from datetime import datetime

MILLIS_PER_MINUTE = 60 * 1000
DATE_FORMAT = "%Y-%m-%d"
CLOCK_FORMAT = "%H:%M"


class InvalidSessionWindow(ValueError):
    pass


def current_millis() -> int:
    return int(time.time() * 1000)


def to_millis(moment: datetime) -> int:
    """Epoch milliseconds for ``moment``; naive values are taken as local time."""

    return int(round(moment.timestamp() * 1000))


def from_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000)


def parse_session_window(date: str, start: str, end: str) -> tuple[datetime, datetime]:
    try:
        day = datetime.strptime(date.strip(), DATE_FORMAT)
    except (AttributeError, ValueError) as exc:
        raise InvalidSessionWindow("Date must use the YYYY-MM-DD format.") from exc

    try:
        start_clock = datetime.strptime(start.strip(), CLOCK_FORMAT)
        end_clock = datetime.strptime(end.strip(), CLOCK_FORMAT)
    except (AttributeError, ValueError) as exc:
        raise InvalidSessionWindow("Start and end times must use the HH:MM format.") from exc

    starts = day.replace(hour=start_clock.hour, minute=start_clock.minute)
    ends = day.replace(hour=end_clock.hour, minute=end_clock.minute)

    if ends <= starts:
        raise InvalidSessionWindow("End time must be later than start time.")

    return starts, ends


def scheduled_start_millis(date: str, start: str) -> int:
    """Epoch milliseconds of a session's declared local start."""

    try:
        moment = datetime.strptime(f"{date.strip()} {start.strip()}", f"{DATE_FORMAT} {CLOCK_FORMAT}")
    except (AttributeError, ValueError) as exc:
        raise InvalidSessionWindow(f"Unsupported session start: {date!r} {start!r}") from exc
    return to_millis(moment)


def _coerce_datetime(value: datetime | int | str) -> datetime:
    if isinstance(value, datetime):
        return value

    if isinstance(value, int):
        return from_millis(value)

    if isinstance(value, str):
        candidate = value.strip().replace(" ", "T", 1)
        try:
            return datetime.fromisoformat(candidate)
        except ValueError:
            pass

    raise ValueError(f"Unsupported datetime value: {value!r}")


def format_relative_time(value: datetime | int | str, *, now: datetime | None = None) -> str:
    reference = now or datetime.now()
    moment = _coerce_datetime(value)

    total_seconds = int((reference - moment).total_seconds())

    if total_seconds < 60:
        return "just now"

    minutes = total_seconds // 60
    if minutes == 1:
        return "1 minute ago"
    if minutes < 60:
        return f"{minutes} minutes ago"

    hours = minutes // 60
    if hours == 1:
        return "1 hour ago"
    if hours < 24:
        return f"{hours} hours ago"

    days = hours // 24
    if days == 1:
        return "Yesterday"
    if days < 7:
        return f"{days} days ago"

    return moment.strftime("%Y-%m-%d %H:%M")
