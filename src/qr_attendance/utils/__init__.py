from .time import (
    MILLIS_PER_MINUTE,
    InvalidSessionWindow,
    current_millis,
    format_relative_time,
    from_millis,
    parse_session_window,
    scheduled_start_millis,
    to_millis,
)

__all__ = [
    "MILLIS_PER_MINUTE",
    "InvalidSessionWindow",
    "current_millis",
    "format_relative_time",
    "from_millis",
    "parse_session_window",
    "scheduled_start_millis",
    "to_millis",
]
