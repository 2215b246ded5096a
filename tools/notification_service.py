"""
Notification Service Tool
Outbound signal queue for reminders and guardian alerts, plus a
best-effort real-time channel.

Delivery (email, push, SMS) and its retries belong to whatever consumes
the queue; this side only guarantees a signal is emitted after the
ledger write it describes has committed.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Union

from config import settings


logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Types of outbound signals"""
    MEDICATION_REMINDER = "medication_reminder"
    GUARDIAN_ALERT = "guardian_alert"


class RealtimeEvent(str, Enum):
    EMERGENCY_ALERT = "emergency_alert"
    DOSE_UPDATED = "dose_updated"


@dataclass(frozen=True)
class ReminderSignal:
    """Ask the delivery layer to remind a patient about an upcoming slot"""
    user_id: int
    medication_name: str
    scheduled_slot: str
    medication_id: Optional[int] = None
    due_at: Optional[datetime] = None

    @property
    def notification_type(self) -> NotificationType:
        return NotificationType.MEDICATION_REMINDER


@dataclass(frozen=True)
class GuardianAlertSignal:
    """A patient missed a slot; tell one of their guardians"""
    guardian_contact: str
    patient_name: str
    medication_name: str
    missed_slot: str
    guardian_id: Optional[int] = None
    patient_id: Optional[int] = None

    @property
    def notification_type(self) -> NotificationType:
        return NotificationType.GUARDIAN_ALERT


Signal = Union[ReminderSignal, GuardianAlertSignal]


@dataclass
class QueuedNotification:
    signal: Signal
    queued_at: datetime = field(default_factory=datetime.utcnow)
    priority: int = 5  # lower is more urgent

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self.signal)
        if payload.get("due_at"):
            payload["due_at"] = payload["due_at"].isoformat()
        return {
            "type": self.signal.notification_type.value,
            "priority": self.priority,
            "queued_at": self.queued_at.isoformat(),
            "payload": payload
        }


# Message templates for downstream renderers
NOTIFICATION_TEMPLATES: Dict[NotificationType, Dict[str, str]] = {
    NotificationType.MEDICATION_REMINDER: {
        "title": "Medication Reminder",
        "push": "Time for {medication_name} ({scheduled_slot})",
    },
    NotificationType.GUARDIAN_ALERT: {
        "title": "Missed Dose Alert",
        "email_subject": "URGENT: {patient_name} missed a dose",
        "push": "{patient_name} missed {medication_name} at {missed_slot}",
    },
}

RealtimePublisher = Callable[[str, str, Dict[str, Any]], None]


class NotificationService:
    """
    In-process outbound queue.

    Producers call `enqueue_*`; a delivery worker calls `drain()`.
    The real-time channel is fire-and-forget: publisher failures are
    logged and never propagate to the caller.
    """

    def __init__(
        self,
        realtime_publisher: Optional[RealtimePublisher] = None,
        maxlen: Optional[int] = None
    ):
        self.templates = NOTIFICATION_TEMPLATES
        self._queue: Deque[QueuedNotification] = deque(
            maxlen=maxlen or settings.NOTIFICATION_QUEUE_MAXLEN
        )
        self._lock = threading.Lock()
        self._realtime_publisher = realtime_publisher

    # ==================== QUEUE ====================

    def enqueue_reminder(self, signal: ReminderSignal) -> QueuedNotification:
        return self._enqueue(QueuedNotification(signal=signal, priority=5))

    def enqueue_guardian_alert(self, signal: GuardianAlertSignal) -> QueuedNotification:
        return self._enqueue(QueuedNotification(signal=signal, priority=1))

    def _enqueue(self, item: QueuedNotification) -> QueuedNotification:
        with self._lock:
            if self._queue.maxlen is not None and len(self._queue) == self._queue.maxlen:
                logger.warning("Notification queue full; dropping oldest item")
            self._queue.append(item)
        logger.info(
            "Queued %s notification (priority %s)",
            item.signal.notification_type.value, item.priority
        )
        return item

    def drain(self, limit: Optional[int] = None) -> List[QueuedNotification]:
        """Remove and return queued items, most urgent first."""
        with self._lock:
            items = sorted(self._queue, key=lambda n: (n.priority, n.queued_at))
            if limit is not None:
                items = items[:limit]
            for item in items:
                self._queue.remove(item)
        return items

    def pending(self) -> List[QueuedNotification]:
        with self._lock:
            return list(self._queue)

    def clear(self) -> None:
        with self._lock:
            self._queue.clear()

    # ==================== REAL-TIME ====================

    def set_realtime_publisher(self, publisher: Optional[RealtimePublisher]) -> None:
        self._realtime_publisher = publisher

    def publish_realtime(self, room: str, event: RealtimeEvent, payload: Dict[str, Any]) -> bool:
        """Best-effort push to a connected client room; returns delivery success."""
        if self._realtime_publisher is None:
            logger.debug("No real-time publisher configured; skipping %s to %s", event.value, room)
            return False
        try:
            self._realtime_publisher(room, event.value, payload)
            return True
        except Exception as e:
            logger.error(f"Real-time publish to room {room} failed: {e}")
            return False

    def format_message(self, signal: Signal, template_key: str = "push") -> str:
        template = self.templates.get(signal.notification_type, {})
        message_template = template.get(template_key, template.get("title", ""))
        return message_template.format(**asdict(signal))


# Singleton instance
notification_service = NotificationService()
