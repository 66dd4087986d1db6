import re
from typing import Optional

from ..models import OpeningHours

DEFAULT_HOURS = "08:00-20:00"
CLOSED_LABEL = "Zatvoreno"
ROUND_THE_CLOCK = "24/7"

_ALWAYS_OPEN = re.compile(r"(24/7|24 sata|24 hours|non[- ]?stop|(?<!\d)0?0:00\s*[-–]\s*24:00)")
_TIME_RANGE = re.compile(r"(\d{1,2}):(\d{2})\s*[-–]\s*(\d{1,2}):(\d{2})")
_SUNDAY = re.compile(r"(sun|ned(elja|jelja)|ned)", re.IGNORECASE)
_CLOSED = re.compile(r"(closed|zatvoreno|ne radi)", re.IGNORECASE)


def classify_opening_hours(text: Optional[str]) -> OpeningHours:
    """Classify free-text opening hours into 24h/Sunday flags and day buckets."""
    if not text or not isinstance(text, str):
        return OpeningHours()

    if _ALWAYS_OPEN.search(text.lower()):
        return OpeningHours(
            is_24h=True,
            open_sunday=True,
            hours_monfri=ROUND_THE_CLOCK,
            hours_sat=ROUND_THE_CLOCK,
            hours_sun=ROUND_THE_CLOCK,
        )

    match = _TIME_RANGE.search(text)
    hours = match.group(0) if match else DEFAULT_HOURS
    open_sunday = bool(_SUNDAY.search(text)) and not _CLOSED.search(text)
    return OpeningHours(
        is_24h=False,
        open_sunday=open_sunday,
        hours_monfri=hours,
        hours_sat=hours,
        hours_sun=hours if open_sunday else CLOSED_LABEL,
    )
