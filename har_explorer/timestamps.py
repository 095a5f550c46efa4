"""
HAR timestamp parsing.

startedDateTime values are ISO 8601 in practice, but exporters disagree on
fractional precision and on "Z" versus numeric offsets. Formats are tried
in a fixed order and every result is normalised to UTC.
"""

import re
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple


_RFC3339_NANO = re.compile(
    r'^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d{1,9}))?(Z|[+-]\d{2}:\d{2})$'
)


def _strptime(fmt: str) -> Callable[[str], datetime]:
    def parse(value: str) -> datetime:
        parsed = datetime.strptime(value, fmt)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return parse


def _parse_rfc3339_nano(value: str) -> datetime:
    match = _RFC3339_NANO.match(value)
    if not match:
        raise ValueError(f"not an RFC 3339 timestamp: {value!r}")

    base, fraction, offset = match.groups()
    # datetime resolution is microseconds
    micros = (fraction or "0")[:6].ljust(6, "0")
    if offset == "Z":
        offset = "+00:00"
    return datetime.strptime(f"{base}.{micros}{offset}", "%Y-%m-%dT%H:%M:%S.%f%z")


# Tried in order, first success wins
SUPPORTED_FORMATS: List[Tuple[str, Callable[[str], datetime]]] = [
    ("har_millis_utc", _strptime("%Y-%m-%dT%H:%M:%S.%fZ")),
    ("rfc3339_nano", _parse_rfc3339_nano),
    ("rfc3339", _strptime("%Y-%m-%dT%H:%M:%S%z")),
    ("har_seconds_utc", _strptime("%Y-%m-%dT%H:%M:%SZ")),
    ("har_millis_offset", _strptime("%Y-%m-%dT%H:%M:%S.%f%z")),
    ("har_seconds_offset", _strptime("%Y-%m-%dT%H:%M:%S%z")),
]


def parse_har_datetime(value: str) -> datetime:
    """
    Parse a HAR startedDateTime value.

    Args:
        value: Timestamp string from the HAR entry

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        ValueError: If no supported format matches
    """
    if isinstance(value, str) and value:
        for _name, parse in SUPPORTED_FORMATS:
            try:
                return parse(value).astimezone(timezone.utc)
            except ValueError:
                continue
    raise ValueError(f"unable to parse datetime: {value!r}")


def try_parse_har_datetime(value: str) -> Optional[datetime]:
    """Like parse_har_datetime, but returns None for unparseable input."""
    try:
        return parse_har_datetime(value)
    except ValueError:
        return None


def format_har_datetime(moment: datetime) -> str:
    """Render as HAR's canonical UTC form, e.g. 2023-01-15T22:30:45.123Z"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{moment.microsecond // 1000:03d}Z"
