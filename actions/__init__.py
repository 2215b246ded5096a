"""
Actions Module
Engines for guardian alerts and dose reminders
"""

from .alert_engine import (
    AlertSeverity,
    AlertType,
    MissedDoseAlert,
    FanOutResult,
    AlertEngine
)

from .reminder_engine import ReminderEngine


__all__ = [
    # Alert Engine
    "AlertSeverity",
    "AlertType",
    "MissedDoseAlert",
    "FanOutResult",
    "AlertEngine",

    # Reminder Engine
    "ReminderEngine"
]
