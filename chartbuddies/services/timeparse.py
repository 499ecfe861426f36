# chartbuddies/services/timeparse.py
"""
Lenient clock-time parsing for MAR hour cells and PRN entries.

Staff type hours every which way ("9", "09:00", "9:00 pm", "21:00:00+00").
Everything is normalized to a 12-hour ClockTime; input that cannot be read
falls back to 12:00 AM rather than erroring, so a cell is never rejected
for formatting alone.
"""
import re
from dataclasses import dataclass
from typing import Optional

_TZ_SUFFIX = re.compile(r"[+-]\d{2}(:\d{2})?$")
_TWELVE_HOUR = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?\s*(AM|PM)$", re.IGNORECASE)
_TWENTY_FOUR_HOUR = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")
_BARE_HOUR = re.compile(r"^(\d{1,2})$")
_LOOSE = re.compile(r"(\d{1,2})\s*[:\s]\s*(\d{2})")
# Suffix may sit right against the digits ("9 30pm"); PM wins if both appear
_PM = re.compile(r"pm", re.IGNORECASE)
_AM = re.compile(r"am", re.IGNORECASE)


@dataclass(frozen=True)
class ClockTime:
    hour12: int
    minute: int
    period: str  # "AM" | "PM"

    @property
    def minutes_since_midnight(self) -> int:
        hour24 = self.hour12 % 12
        if self.period == "PM":
            hour24 += 12
        return hour24 * 60 + self.minute

    def display(self) -> str:
        return f"{self.hour12}:{self.minute:02d} {self.period}"


MIDNIGHT = ClockTime(12, 0, "AM")


def _from_24(hour: int, minute: int) -> Optional[ClockTime]:
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    period = "PM" if hour >= 12 else "AM"
    hour12 = hour % 12 or 12
    return ClockTime(hour12, minute, period)


def _from_12(hour: int, minute: int, period: str) -> Optional[ClockTime]:
    if hour == 0:
        hour = 12
    elif hour > 12:
        hour -= 12
    if not (1 <= hour <= 12 and 0 <= minute <= 59):
        return None
    return ClockTime(hour, minute, period.upper())


def _parse(text: Optional[str]) -> Optional[ClockTime]:
    """Strict-then-loose parse; None when nothing matched."""
    if text is None:
        return None
    value = text.strip()
    if not value:
        return None
    value = _TZ_SUFFIX.sub("", value).strip()

    match = _TWELVE_HOUR.match(value)
    if match:
        return _from_12(int(match.group(1)), int(match.group(2)), match.group(3))

    match = _TWENTY_FOUR_HOUR.match(value)
    if match:
        return _from_24(int(match.group(1)), int(match.group(2)))

    match = _BARE_HOUR.match(value)
    if match:
        return _from_24(int(match.group(1)), 0)

    match = _LOOSE.search(value)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if _PM.search(value):
            return _from_12(hour, minute, "PM")
        if _AM.search(value):
            return _from_12(hour, minute, "AM")
        return _from_24(hour, minute)

    return None


def parse_time(text: Optional[str]) -> ClockTime:
    """Parse free-form time text. Empty or unreadable input yields 12:00 AM."""
    return _parse(text) or MIDNIGHT


def format_time_display(text: Optional[str]) -> str:
    """Render any accepted input as "H:MM AM"/"H:MM PM"."""
    return parse_time(text).display()


def to_minutes(text: Optional[str]) -> Optional[int]:
    """Minutes since midnight for sorting; None when empty or unparseable."""
    parsed = _parse(text)
    return parsed.minutes_since_midnight if parsed else None
