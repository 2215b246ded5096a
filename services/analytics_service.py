"""
Analytics Service
Read-only adherence signals derived from the dose ledger.

Nothing here writes, caches or keeps state between calls: every query is
recomputed from the ledger as of the last committed write.
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional
from sqlalchemy.orm import Session

from config import settings
from database import get_db_context
import models
from models import DoseOutcome, MedicationType
from exceptions import InvalidSlotError, UserNotFoundError
from services.adherence_service import active_medication_query
from tools.time_windows import Clock, minutes_between, next_occurrence, resolve_zone, slot_hour, system_clock


logger = logging.getLogger(__name__)


class RiskWindow(str, Enum):
    """Named daily windows for missed-dose hotspots"""
    MORNING = "Morning"      # [06, 12)
    AFTERNOON = "Afternoon"  # [12, 18)
    EVENING = "Evening"      # [18, 22)
    NIGHT = "Night"          # [22, 06)


class RunwayStatus(str, Enum):
    CRITICAL = "Critical"
    LOW = "Low"
    HEALTHY = "Healthy"


def risk_window_for_hour(hour: int) -> RiskWindow:
    if 6 <= hour < 12:
        return RiskWindow.MORNING
    if 12 <= hour < 18:
        return RiskWindow.AFTERNOON
    if 18 <= hour < 22:
        return RiskWindow.EVENING
    return RiskWindow.NIGHT


def runway_status(days_remaining: int) -> RunwayStatus:
    if days_remaining <= settings.RUNWAY_CRITICAL_DAYS:
        return RunwayStatus.CRITICAL
    if days_remaining <= settings.RUNWAY_LOW_DAYS:
        return RunwayStatus.LOW
    return RunwayStatus.HEALTHY


def rounded_percentage(part: int, total: int) -> int:
    """part/total as a whole percentage, halves rounded up; 0 when total is 0"""
    if total == 0:
        return 0
    return int(math.floor(part * 100 / total + 0.5))


@dataclass(frozen=True)
class HeatmapDay:
    date: date
    percentage: int
    taken: int
    total: int


@dataclass(frozen=True)
class InventoryRunway:
    medication_id: int
    name: str
    current_stock: int
    daily_doses: int
    days_remaining: int
    status: RunwayStatus


@dataclass(frozen=True)
class NextDose:
    medication_id: int
    medication_name: str
    scheduled_slot: str
    due_at: datetime
    minutes_until: float


class AnalyticsService:
    """
    Service for adherence analytics
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        session_factory: Optional[Callable[[], Session]] = None
    ):
        self.clock = clock or system_clock
        self.session_factory = session_factory

    def _run(self, fn, db: Optional[Session]):
        if db:
            return fn(db)
        with get_db_context(self.session_factory) as session:
            return fn(session)

    def _local_today(self, session: Session, user_id: int) -> date:
        return self._local_now(session, user_id).date()

    def _local_now(self, session: Session, user_id: int) -> datetime:
        user = session.get(models.User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return self.clock.now(resolve_zone(user.timezone))

    async def reliability_index(self, user_id: int, db: Optional[Session] = None) -> int:
        """
        Consecutive days, counting back from today, that have ledger
        entries and no missed dose. A day without entries ends the streak
        without counting against it. Capped at RELIABILITY_MAX_DAYS.
        """
        def _calculate(session: Session) -> int:
            today = self._local_today(session, user_id)
            max_days = settings.RELIABILITY_MAX_DAYS
            oldest = today - timedelta(days=max_days - 1)

            rows = session.query(models.DoseLog.slot_date, models.DoseLog.outcome).filter(
                models.DoseLog.user_id == user_id,
                models.DoseLog.slot_date >= oldest,
                models.DoseLog.slot_date <= today
            ).all()

            outcomes_by_day: Dict[date, List[DoseOutcome]] = defaultdict(list)
            for slot_date, outcome in rows:
                outcomes_by_day[slot_date].append(outcome)

            streak = 0
            checking = today
            while streak < max_days:
                day_outcomes = outcomes_by_day.get(checking)
                if not day_outcomes:
                    break
                if DoseOutcome.MISSED in day_outcomes:
                    break
                streak += 1
                checking -= timedelta(days=1)
            return streak

        return self._run(_calculate, db)

    async def compliance_heatmap(self, user_id: int, db: Optional[Session] = None) -> List[HeatmapDay]:
        """Daily taken/total percentage for the trailing window, oldest first"""
        def _calculate(session: Session) -> List[HeatmapDay]:
            today = self._local_today(session, user_id)
            days = [
                today - timedelta(days=offset)
                for offset in range(settings.ANALYTICS_WINDOW_DAYS - 1, -1, -1)
            ]

            rows = session.query(models.DoseLog.slot_date, models.DoseLog.outcome).filter(
                models.DoseLog.user_id == user_id,
                models.DoseLog.slot_date >= days[0],
                models.DoseLog.slot_date <= today
            ).all()

            totals: Dict[date, int] = defaultdict(int)
            taken: Dict[date, int] = defaultdict(int)
            for slot_date, outcome in rows:
                totals[slot_date] += 1
                if outcome == DoseOutcome.TAKEN:
                    taken[slot_date] += 1

            return [
                HeatmapDay(
                    date=day,
                    percentage=rounded_percentage(taken[day], totals[day]),
                    taken=taken[day],
                    total=totals[day]
                )
                for day in days
            ]

        return self._run(_calculate, db)

    async def temporal_risk(self, user_id: int, db: Optional[Session] = None) -> Dict[RiskWindow, int]:
        """Missed doses in the trailing window, bucketed by the slot's hour"""
        def _calculate(session: Session) -> Dict[RiskWindow, int]:
            today = self._local_today(session, user_id)
            oldest = today - timedelta(days=settings.ANALYTICS_WINDOW_DAYS - 1)

            slots = session.query(models.DoseLog.scheduled_slot).filter(
                models.DoseLog.user_id == user_id,
                models.DoseLog.outcome == DoseOutcome.MISSED,
                models.DoseLog.slot_date >= oldest,
                models.DoseLog.slot_date <= today
            ).all()

            buckets = {window: 0 for window in RiskWindow}
            for (slot,) in slots:
                try:
                    buckets[risk_window_for_hour(slot_hour(slot))] += 1
                except InvalidSlotError:
                    logger.warning(f"Ignoring ledger entry with malformed slot {slot!r}")
            return buckets

        return self._run(_calculate, db)

    async def inventory_runway(self, user_id: int, db: Optional[Session] = None) -> List[InventoryRunway]:
        """Projected days of stock left for every active medication"""
        def _calculate(session: Session) -> List[InventoryRunway]:
            medications = active_medication_query(session, user_id).order_by(models.Medication.id).all()

            reports = []
            for med in medications:
                daily = med.daily_slot_count
                days_remaining = med.remaining_quantity // daily if daily > 0 else 0
                reports.append(InventoryRunway(
                    medication_id=med.id,
                    name=med.name,
                    current_stock=med.remaining_quantity,
                    daily_doses=daily,
                    days_remaining=days_remaining,
                    status=runway_status(days_remaining)
                ))
            return reports

        return self._run(_calculate, db)

    async def next_dose(self, user_id: int, db: Optional[Session] = None) -> Optional[NextDose]:
        """The single soonest upcoming slot across scheduled medications"""
        def _calculate(session: Session) -> Optional[NextDose]:
            now_local = self._local_now(session, user_id)
            medications = active_medication_query(session, user_id).filter(
                models.Medication.med_type == MedicationType.SCHEDULED
            ).all()

            soonest: Optional[NextDose] = None
            for med in medications:
                for slot in med.slots or []:
                    try:
                        due_at = next_occurrence(slot, now_local)
                    except InvalidSlotError:
                        logger.warning(f"Medication {med.id} has malformed slot {slot!r}")
                        continue
                    candidate = NextDose(
                        medication_id=med.id,
                        medication_name=med.name,
                        scheduled_slot=slot,
                        due_at=due_at,
                        minutes_until=minutes_between(now_local, due_at)
                    )
                    if soonest is None or candidate.minutes_until < soonest.minutes_until:
                        soonest = candidate
            return soonest

        return self._run(_calculate, db)


# Singleton instance
analytics_service = AnalyticsService()
