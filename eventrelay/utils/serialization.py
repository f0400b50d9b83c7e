import json
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 UTC string with millisecond precision and a ``Z`` suffix."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO string, epoch seconds or datetime into a naive UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported datetime value: {value!r}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _default(value: Any):
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (set, tuple)):
        return list(value)
    return str(value)


def json_dumps(value: Any, indent: Optional[int] = None) -> str:
    """Compact JSON text, the same bytes a JavaScript ``JSON.stringify`` would write."""
    if indent is not None:
        return json.dumps(value, indent=indent, ensure_ascii=False, default=_default)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=_default)


def to_jsonable(value: Any) -> Any:
    """Round-trip through JSON so datetimes and other values become plain JSON types."""
    return json.loads(json_dumps(value))
