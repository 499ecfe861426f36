# chartbuddies/services/medication_grouping.py
"""
Translation between stored medication rows (one per daily hour) and the
logical medications a clinician edits (one per prescription).

Grouping partitions rows on the shared clinical fields; rows written together
also share a prescription token, so two independently prescribed but
identical-looking medications stay apart. Expansion is the inverse and is what
duplication and "add medication" write back to the database.
"""
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .timeparse import to_minutes
from ..models import VITALS_MEDICATION_NAME, VITALS_NOTES_MARKER

SHARED_FIELDS = (
    "medication_name",
    "dosage",
    "start_date",
    "stop_date",
    "route",
    "notes",
    "parameter",
    "frequency",
    "frequency_display",
)

ORDER_STEP = 10


def _get(row: Any, name: str, default=None):
    if isinstance(row, dict):
        return row.get(name, default)
    return getattr(row, name, default)


@dataclass
class MedicationEntry:
    """A logical medication with its list of daily hour slots."""
    medication_name: str
    dosage: str = ""
    start_date: Any = None
    stop_date: Any = None
    route: Optional[str] = None
    notes: Optional[str] = None
    parameter: Optional[str] = None
    frequency: Optional[int] = 1
    frequency_display: Optional[str] = None
    hours: List[Optional[str]] = field(default_factory=list)
    row_ids: List[str] = field(default_factory=list)
    is_grouped: bool = False
    display_order: Optional[int] = None
    prescription_group_id: Optional[str] = None

    def shared_fields(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in SHARED_FIELDS}


def is_vitals_placeholder(row: Any) -> bool:
    return (_get(row, "medication_name") == VITALS_MEDICATION_NAME
            or _get(row, "notes") == VITALS_NOTES_MARKER)


def grouping_key(row: Any) -> Tuple:
    key = tuple(_get(row, name) for name in SHARED_FIELDS)
    return key + (_get(row, "prescription_group_id"),)


def _hour_sort_key(hour: Optional[str]):
    minutes = to_minutes(hour)
    # Empty and unreadable hours sink to the end
    return (minutes is None, minutes if minutes is not None else 0)


def group_medications(rows: Iterable[Any]) -> List[MedicationEntry]:
    """Collapse per-hour rows into logical entries ordered by display order."""
    groups: Dict[Tuple, List[Any]] = {}
    for row in rows:
        if is_vitals_placeholder(row):
            continue
        groups.setdefault(grouping_key(row), []).append(row)

    entries = []
    for members in groups.values():
        first = members[0]
        # One slot per row, so two rows sharing an hour both come back
        hours: List[Optional[str]] = sorted((_get(m, "hour") for m in members), key=_hour_sort_key)

        orders = [_get(m, "display_order") for m in members if _get(m, "display_order") is not None]
        entries.append(MedicationEntry(
            hours=hours,
            row_ids=[_get(m, "id") for m in members],
            is_grouped=len(members) > 1,
            display_order=min(orders) if orders else None,
            prescription_group_id=_get(first, "prescription_group_id"),
            **{name: _get(first, name) for name in SHARED_FIELDS},
        ))

    entries.sort(key=lambda e: (e.display_order is None, e.display_order or 0))
    return entries


def resize_hours(hours: List[Optional[str]], frequency: Optional[int]) -> List[Optional[str]]:
    """Grow with empty slots or truncate from the end to `frequency` items."""
    if frequency is None or frequency < 1:
        return list(hours)
    if len(hours) >= frequency:
        return list(hours[:frequency])
    return list(hours) + [None] * (frequency - len(hours))


def add_hour(entry: MedicationEntry, hour: Optional[str] = None) -> MedicationEntry:
    """Client-side helper for the duplication editor; the edited entries are posted back as a list."""
    entry.hours.append(hour)
    entry.frequency = len(entry.hours)
    return entry


def remove_hour(entry: MedicationEntry, index: int) -> MedicationEntry:
    """Client-side counterpart of `add_hour`."""
    if not 0 <= index < len(entry.hours):
        raise IndexError(f"hour slot {index} out of range")
    del entry.hours[index]
    entry.frequency = len(entry.hours)
    return entry


def expand_medications(entries: Iterable[MedicationEntry], start_order: int = ORDER_STEP) -> List[Dict[str, Any]]:
    """
    Emit one row dict per hour slot. Frequency decides the slot count; empty
    slots are still emitted with hour=None. Each entry gets a fresh token and
    every row its own ORDER_STEP, so long hour lists never overlap.
    """
    rows = []
    order = start_order
    for entry in entries:
        hours = resize_hours(entry.hours, entry.frequency)
        if not hours:
            hours = [None]
        token = str(uuid.uuid4())
        for hour in hours:
            row = entry.shared_fields()
            row.update(hour=hour or None, display_order=order, prescription_group_id=token)
            rows.append(row)
            order += ORDER_STEP
    return rows
