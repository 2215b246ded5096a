"""
Reminder Engine
Emits reminder signals for the next occurrence of each medication slot
"""

import logging
from typing import List, Optional

from models import Medication, MedicationType
from tools.notification_service import NotificationService, ReminderSignal, notification_service
from tools.time_windows import Clock, next_occurrence, system_clock


logger = logging.getLogger(__name__)


class ReminderEngine:
    """Queues one reminder per slot; delivery timing is the consumer's job"""

    def __init__(self, notifier: Optional[NotificationService] = None, clock: Optional[Clock] = None):
        self.notifier = notifier or notification_service
        self.clock = clock or system_clock

    def schedule_for_medication(self, medication: Medication, timezone: str) -> List[ReminderSignal]:
        if medication.med_type != MedicationType.SCHEDULED:
            return []

        now_local = self.clock.now(timezone)
        signals = []
        for slot in medication.slots or []:
            signal = ReminderSignal(
                user_id=medication.owner_id,
                medication_name=medication.name,
                scheduled_slot=slot,
                medication_id=medication.id,
                due_at=next_occurrence(slot, now_local)
            )
            self.notifier.enqueue_reminder(signal)
            signals.append(signal)

        logger.info(f"Queued {len(signals)} reminders for medication {medication.id}")
        return signals
