"""
Tools Package
Clock, slot-window and notification utilities for DoseSentinel
"""

from .time_windows import (
    Clock,
    SystemClock,
    FixedClock,
    SlotPhase,
    SlotWindow,
    system_clock,
    resolve_zone,
    parse_slot,
    canonical_slot,
    slot_instant,
    slot_window,
    next_occurrence
)

from .notification_service import (
    NotificationService,
    NotificationType,
    RealtimeEvent,
    ReminderSignal,
    GuardianAlertSignal,
    notification_service
)

__all__ = [
    # Time windows
    "Clock",
    "SystemClock",
    "FixedClock",
    "SlotPhase",
    "SlotWindow",
    "system_clock",
    "resolve_zone",
    "parse_slot",
    "canonical_slot",
    "slot_instant",
    "slot_window",
    "next_occurrence",

    # Notification Service
    "NotificationService",
    "NotificationType",
    "RealtimeEvent",
    "ReminderSignal",
    "GuardianAlertSignal",
    "notification_service"
]
