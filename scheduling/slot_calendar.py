"""
Fixed daily slot set. No business-day or holiday rules: every calendar day
offers the same slots, and plausibility of the date is checked upstream.
"""
from datetime import date, datetime, time, timedelta

DEFAULT_SLOTS = ("09:00", "11:00", "14:00", "16:00", "18:00")


def daily_slots(day=None, slots=None) -> list:
    # day is accepted for symmetry with the availability calls; the set does not vary by date
    return list(slots or DEFAULT_SLOTS)


def to_day(value) -> date:
    """
    Normalise a date, datetime or ISO string ("2025-06-10" or
    "2025-06-10T14:00:00") to a calendar day. Raises ValueError otherwise.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        return datetime.fromisoformat(value.strip()[:19]).date()
    raise ValueError(f"Not a calendar date: {value!r}")


def day_bounds(day):
    start = datetime.combine(to_day(day), time.min)
    return start, start + timedelta(days=1)


def is_slot_label(label, slots=None) -> bool:
    return isinstance(label, str) and label in daily_slots(slots=slots)


def slot_instant(day, label: str) -> datetime:
    hour, minute = (int(p) for p in label.split(":"))
    return datetime.combine(to_day(day), time(hour, minute))
