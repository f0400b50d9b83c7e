"""
Moment-style date formatting (``YYYY-MM-DD HH:mm:ss``) for transform templates and scripts.
"""

import calendar
import re
from datetime import datetime, timezone
from typing import Any, Optional

from eventrelay.utils.serialization import parse_datetime

DEFAULT_FORMAT = "YYYY-MM-DD HH:mm:ss"

_TOKENS = re.compile(
    r"\[([^\]]*)\]|YYYY|YY|MMMM|MMM|MM|M|DD|D|dddd|ddd|HH|H|hh|h|mm|m|ss|s|SSS|A|a|ZZ|Z|X|x"
)


def _render_token(token: str, value: datetime) -> str:
    hour12 = value.hour % 12 or 12
    if token == "YYYY":
        return f"{value.year:04d}"
    if token == "YY":
        return f"{value.year % 100:02d}"
    if token == "MMMM":
        return calendar.month_name[value.month]
    if token == "MMM":
        return calendar.month_abbr[value.month]
    if token == "MM":
        return f"{value.month:02d}"
    if token == "M":
        return str(value.month)
    if token == "DD":
        return f"{value.day:02d}"
    if token == "D":
        return str(value.day)
    if token == "dddd":
        return calendar.day_name[value.weekday()]
    if token == "ddd":
        return calendar.day_abbr[value.weekday()]
    if token == "HH":
        return f"{value.hour:02d}"
    if token == "H":
        return str(value.hour)
    if token == "hh":
        return f"{hour12:02d}"
    if token == "h":
        return str(hour12)
    if token == "mm":
        return f"{value.minute:02d}"
    if token == "m":
        return str(value.minute)
    if token == "ss":
        return f"{value.second:02d}"
    if token == "s":
        return str(value.second)
    if token == "SSS":
        return f"{value.microsecond // 1000:03d}"
    if token == "A":
        return "PM" if value.hour >= 12 else "AM"
    if token == "a":
        return "pm" if value.hour >= 12 else "am"
    if token == "ZZ":
        return "+0000"
    if token == "Z":
        return "+00:00"
    if token == "X":
        return str(to_unix_seconds(value))
    if token == "x":
        return str(to_unix_seconds(value) * 1000 + value.microsecond // 1000)
    return token


def to_unix_seconds(value: datetime) -> int:
    """Naive values are treated as UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return calendar.timegm(value.utctimetuple())


def format_date(value: Any, fmt: Optional[str] = None) -> str:
    """Format ``value`` (datetime, ISO string or epoch seconds) in UTC using moment tokens."""
    parsed = parse_datetime(value)
    if parsed is None:
        return ""

    def replace(match):
        literal = match.group(1)
        if literal is not None:
            return literal
        return _render_token(match.group(0), parsed)

    return _TOKENS.sub(replace, fmt or DEFAULT_FORMAT)
