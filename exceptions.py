"""
Adherence Errors
Exception hierarchy shared by the recorder, sweeper and analytics
"""

from typing import Optional


class AdherenceError(Exception):
    """Base exception for all adherence-engine errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ==================== VALIDATION ====================

class ValidationError(AdherenceError):
    """Malformed input; rejected before any side effect."""


class InvalidSlotError(ValidationError):
    """Raised when a slot is not a valid 24h "HH:MM" value or not on the schedule."""

    def __init__(self, slot: object, message: Optional[str] = None):
        super().__init__(message or f"Invalid scheduled slot: {slot!r}", {"slot": slot})
        self.slot = slot


class InvalidTimezoneError(ValidationError):
    def __init__(self, zone: object):
        super().__init__(f"Unknown time zone: {zone!r}", {"timezone": zone})
        self.zone = zone


# ==================== CONFLICT ====================

class ConflictError(AdherenceError):
    """Recoverable conflict; callers may treat it as already handled."""


class DuplicateSubmissionError(ConflictError):
    """
    Raised when the same dose was reported as taken within the
    duplicate window (double taps, client retries).
    """


class SlotAlreadyResolvedError(ConflictError):
    """Raised when the ledger already holds an entry for the slot-instance."""


class SweepInProgressError(ConflictError):
    """Raised when a sweep pass is requested while another one is running."""


# ==================== STATE ====================

class StateError(AdherenceError):
    """The target record is missing, inactive or soft-deleted."""


class MedicationUnavailableError(StateError):
    def __init__(self, medication_id: int, owner_id: Optional[int] = None):
        super().__init__(
            f"Medication {medication_id} not found or unavailable",
            {"medication_id": medication_id, "owner_id": owner_id}
        )
        self.medication_id = medication_id


class UserNotFoundError(StateError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found", {"user_id": user_id})
        self.user_id = user_id


# ==================== INFRASTRUCTURE ====================

class TransientStoreError(AdherenceError):
    """The underlying store failed; the unit of work was rolled back."""


class RecorderTimeoutError(TransientStoreError):
    """The recorder's unit of work exceeded its time budget and was rolled back."""


class SweepAbortedError(AdherenceError):
    """The sweep pass failed before iterating any medication."""
