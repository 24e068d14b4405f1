import re
from datetime import datetime
from typing import Dict, Optional

_TWELVE_HOUR = re.compile(r"^(\d{1,2})(am|pm)-(\d{1,2})(am|pm)$")
_TWENTY_FOUR_HOUR = re.compile(r"^(\d{2}):\d{2}-(\d{2}):\d{2}$")

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _to_24h(hour: int, suffix: str) -> int:
    if suffix == "pm" and hour != 12:
        return hour + 12
    if suffix == "am" and hour == 12:
        return 0
    return hour


def parse_hours(hours: str) -> Optional[tuple]:
    """
    "9am-5pm" -> (9, 17), "09:00-17:00" -> (9, 17).
    Returns None for formats we do not recognise.
    """
    text = (hours or "").strip().lower().replace(" ", "")

    m = _TWELVE_HOUR.match(text)
    if m:
        return _to_24h(int(m.group(1)), m.group(2)), _to_24h(int(m.group(3)), m.group(4))

    m = _TWENTY_FOUR_HOUR.match(text)
    if m:
        return int(m.group(1)), int(m.group(2))

    return None


def is_available(availability: Optional[Dict[str, str]], at: datetime) -> bool:
    # no schedule on file: assume available
    if availability is None:
        return True

    day = WEEKDAYS[at.weekday()]
    hours = {k.strip().lower(): v for k, v in availability.items()}.get(day)
    if not hours or not hours.strip():
        return False

    parsed = parse_hours(hours)
    if parsed is None:
        return True

    start_hour, end_hour = parsed
    return start_hour <= at.hour < end_hour
