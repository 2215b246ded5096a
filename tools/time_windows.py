"""
Time Window Utilities
Slot parsing, zone-aware instants and grace-window phases.

Every function takes the subject's zone explicitly; nothing here reads
the process time zone. "Now" comes from an injectable Clock.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, date, time, timedelta, timezone
from enum import Enum
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from config import settings
from exceptions import InvalidSlotError, InvalidTimezoneError


SLOT_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

ZoneLike = Union[str, ZoneInfo, None]


# ==================== CLOCK ====================

class Clock(ABC):
    """Source of the current instant"""

    @abstractmethod
    def utcnow(self) -> datetime:
        """Current instant as an aware UTC datetime"""

    def now(self, zone: ZoneLike = None) -> datetime:
        return self.utcnow().astimezone(resolve_zone(zone))


class SystemClock(Clock):
    def utcnow(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant; used by tests and replays"""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            raise ValueError("FixedClock requires an aware datetime")
        self._instant = instant.astimezone(timezone.utc)

    def utcnow(self) -> datetime:
        return self._instant

    def advance(self, **kwargs) -> None:
        self._instant = self._instant + timedelta(**kwargs)

    def set(self, instant: datetime) -> None:
        self._instant = instant.astimezone(timezone.utc)


system_clock = SystemClock()


# ==================== PARSING ====================

def resolve_zone(zone: ZoneLike) -> ZoneInfo:
    """Resolve an IANA identifier; blank values fall back to the default zone."""
    if isinstance(zone, ZoneInfo):
        return zone
    name = (zone or "").strip() or settings.DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezoneError(name) from exc


def parse_slot(slot: str) -> time:
    """Parse a 24h "HH:MM" slot string."""
    if not isinstance(slot, str):
        raise InvalidSlotError(slot)
    match = SLOT_PATTERN.match(slot.strip())
    if not match:
        raise InvalidSlotError(slot)
    return time(int(match.group(1)), int(match.group(2)))


def canonical_slot(slot: str) -> str:
    """The zero-padded "HH:MM" form used as the ledger key."""
    parsed = parse_slot(slot)
    return f"{parsed.hour:02d}:{parsed.minute:02d}"


def slot_hour(slot: str) -> int:
    return parse_slot(slot).hour


# ==================== INSTANTS ====================

def slot_instant(slot: str, day: date, zone: ZoneLike) -> datetime:
    """The aware instant at which `slot` falls on local calendar `day`."""
    return datetime.combine(day, parse_slot(slot), tzinfo=resolve_zone(zone))


def next_occurrence(slot: str, now_local: datetime) -> datetime:
    """
    Next occurrence of `slot` at or after `now_local`, rolling to the
    following day once today's instance has passed.
    """
    zone = now_local.tzinfo
    scheduled = slot_instant(slot, now_local.date(), zone)
    if scheduled < now_local:
        scheduled = slot_instant(slot, now_local.date() + timedelta(days=1), zone)
    return scheduled


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def to_utc_naive(value: datetime) -> datetime:
    """Storage form for timestamps: naive UTC"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def local_day_bounds(day: date, zone: ZoneLike) -> Tuple[datetime, datetime]:
    """[start, end) of a local calendar day, as naive UTC datetimes."""
    tz = resolve_zone(zone)
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return to_utc_naive(start), to_utc_naive(end)


# ==================== PHASES ====================

class SlotPhase(str, Enum):
    """Where a slot-instance sits relative to its grace window"""
    PENDING = "pending"
    GRACE = "grace"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class SlotWindow:
    slot: str
    scheduled_at: datetime
    grace_ends_at: datetime

    def phase(self, now: datetime) -> SlotPhase:
        if now < self.scheduled_at:
            return SlotPhase.PENDING
        if now <= self.grace_ends_at:
            return SlotPhase.GRACE
        return SlotPhase.OVERDUE


def slot_window(
    slot: str,
    day: date,
    zone: ZoneLike,
    grace_minutes: Optional[int] = None
) -> SlotWindow:
    grace = settings.GRACE_WINDOW_MINUTES if grace_minutes is None else grace_minutes
    scheduled = slot_instant(slot, day, zone)
    return SlotWindow(slot=slot, scheduled_at=scheduled, grace_ends_at=scheduled + timedelta(minutes=grace))
