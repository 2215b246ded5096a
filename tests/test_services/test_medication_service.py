"""
Tests for Medication Service
Tests enrollment, updates, refills, soft delete and ledger reads
"""

import pytest
from datetime import timedelta

from services.audit_service import list_events
from services.medication_service import normalize_slots
from models import AdherenceClass, AuditEventType, DoseOutcome, MedicationType
from exceptions import InvalidSlotError, MedicationUnavailableError, UserNotFoundError, ValidationError
from tools.notification_service import ReminderSignal
from tests.conftest import TEST_DAY, utc


class TestNormalizeSlots:
    def test_sorted_and_deduplicated(self):
        assert normalize_slots(["20:00", "08:00", "08:00", " 12:30"]) == ["08:00", "12:30", "20:00"]

    def test_rejects_malformed(self):
        with pytest.raises(InvalidSlotError):
            normalize_slots(["08:00", "9pm"])


# =============================================================================
# Enrollment
# =============================================================================

class TestAddMedication:
    """Tests for add_medication"""

    @pytest.mark.asyncio
    async def test_add_scheduled_medication(self, medications, clock, notifier, test_user):
        clock.set(utc(9, 0))

        medication = await medications.add_medication(
            owner_id=test_user.id,
            name="Metformin",
            dosage="500mg",
            frequency="twice daily",
            slots=["20:00", "08:00"],
            total_quantity=60
        )

        assert medication.id is not None
        assert medication.slots == ["08:00", "20:00"]
        assert medication.remaining_quantity == 60
        assert medication.is_active is True
        assert medication.is_deleted is False

        reminders = [n.signal for n in notifier.pending()]
        assert all(isinstance(s, ReminderSignal) for s in reminders)
        due = {s.scheduled_slot: s.due_at for s in reminders}
        assert due["20:00"].date() == TEST_DAY
        assert due["08:00"].date().day == TEST_DAY.day + 1

    @pytest.mark.asyncio
    async def test_start_date_is_owner_local_day(self, medications, clock, db_session, test_user):
        """20:00 UTC is already 01:30 the next day in Kolkata"""
        test_user.timezone = "Asia/Kolkata"
        db_session.commit()
        clock.set(utc(20, 0))

        medication = await medications.add_medication(
            owner_id=test_user.id, name="Metformin", dosage="500mg",
            frequency="daily", slots=["08:00"]
        )

        assert medication.start_date == TEST_DAY + timedelta(days=1)

    @pytest.mark.asyncio
    async def test_as_needed_needs_no_slots(self, medications, notifier, test_user):
        medication = await medications.add_medication(
            owner_id=test_user.id,
            name="Ibuprofen",
            dosage="200mg",
            frequency="as needed",
            slots=[],
            med_type=MedicationType.AS_NEEDED,
            total_quantity=20
        )

        assert medication.med_type == MedicationType.AS_NEEDED
        assert notifier.pending() == []

    @pytest.mark.asyncio
    async def test_scheduled_without_slots_is_rejected(self, medications, test_user):
        with pytest.raises(ValidationError):
            await medications.add_medication(
                owner_id=test_user.id, name="X", dosage="1mg", frequency="daily", slots=[]
            )

    @pytest.mark.asyncio
    async def test_negative_quantity_is_rejected(self, medications, test_user):
        with pytest.raises(ValidationError):
            await medications.add_medication(
                owner_id=test_user.id, name="X", dosage="1mg", frequency="daily",
                slots=["08:00"], total_quantity=-1
            )

    @pytest.mark.asyncio
    async def test_unknown_owner(self, medications):
        with pytest.raises(UserNotFoundError):
            await medications.add_medication(
                owner_id=999, name="X", dosage="1mg", frequency="daily", slots=["08:00"]
            )


# =============================================================================
# Lifecycle
# =============================================================================

class TestMedicationLifecycle:
    """Tests for update, refill and soft delete"""

    @pytest.mark.asyncio
    async def test_update_normalizes_slots(self, medications, test_user, test_medication):
        updated = await medications.update_medication(
            test_medication.id, test_user.id,
            {"slots": ["21:00", "09:00"], "dosage": "850mg", "owner_id": 12345}
        )

        assert updated.slots == ["09:00", "21:00"]
        assert updated.dosage == "850mg"
        assert updated.owner_id == test_user.id

    @pytest.mark.asyncio
    async def test_scheduled_medication_keeps_a_slot(self, medications, db_session, test_user, test_medication):
        with pytest.raises(ValidationError):
            await medications.update_medication(test_medication.id, test_user.id, {"slots": []})

        db_session.refresh(test_medication)
        assert test_medication.slots == ["08:00"]

    @pytest.mark.asyncio
    async def test_switch_to_as_needed_may_clear_slots(self, medications, test_user, test_medication):
        updated = await medications.update_medication(
            test_medication.id, test_user.id,
            {"slots": [], "med_type": MedicationType.AS_NEEDED}
        )

        assert updated.med_type == MedicationType.AS_NEEDED
        assert updated.slots == []

    @pytest.mark.asyncio
    async def test_switch_to_scheduled_needs_slots(self, medications, test_user, make_medication):
        medication = make_medication(med_type=MedicationType.AS_NEEDED, slots=[])

        with pytest.raises(ValidationError):
            await medications.update_medication(medication.id, test_user.id, {"med_type": "scheduled"})

    @pytest.mark.asyncio
    async def test_refill(self, medications, test_user, test_medication):
        refilled = await medications.refill_medication(test_medication.id, test_user.id, 30)

        assert refilled.remaining_quantity == 60
        assert refilled.total_quantity == 60

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5])
    async def test_refill_requires_positive_amount(self, medications, test_user, test_medication, amount):
        with pytest.raises(ValidationError):
            await medications.refill_medication(test_medication.id, test_user.id, amount)

    @pytest.mark.asyncio
    async def test_soft_delete(self, medications, db_session, test_user, test_medication):
        deleted = await medications.delete_medication(test_medication.id, test_user.id)

        assert deleted.is_deleted is True
        assert deleted.is_active is False
        assert deleted.deleted_at is not None

        events = list_events(db_session, test_user.id, AuditEventType.MEDICATION_DELETED)
        assert len(events) == 1
        assert events[0].medication_id == test_medication.id

        assert await medications.list_medications(test_user.id) == []
        with pytest.raises(MedicationUnavailableError):
            await medications.get_medication(test_medication.id, test_user.id)

    @pytest.mark.asyncio
    async def test_deleted_medication_cannot_be_updated_or_refilled(self, medications, test_user, test_medication):
        await medications.delete_medication(test_medication.id, test_user.id)

        with pytest.raises(MedicationUnavailableError):
            await medications.update_medication(test_medication.id, test_user.id, {"dosage": "1g"})
        with pytest.raises(MedicationUnavailableError):
            await medications.refill_medication(test_medication.id, test_user.id, 10)
        with pytest.raises(MedicationUnavailableError):
            await medications.delete_medication(test_medication.id, test_user.id)

    @pytest.mark.asyncio
    async def test_other_owner_cannot_read(self, medications, test_medication):
        with pytest.raises(MedicationUnavailableError):
            await medications.get_medication(test_medication.id, test_medication.owner_id + 100)


# =============================================================================
# Reads
# =============================================================================

class TestMedicationReads:
    """Tests for low stock, history and the adherence report"""

    @pytest.mark.asyncio
    async def test_low_stock(self, medications, test_user, make_medication):
        make_medication(name="Plenty", remaining_quantity=50)
        make_medication(name="Scarce", remaining_quantity=2)
        make_medication(name="Gone", remaining_quantity=1, is_deleted=True)

        low = await medications.low_stock_medications(test_user.id)

        assert [m.name for m in low] == ["Scarce"]

    @pytest.mark.asyncio
    async def test_dose_history_pages_newest_first(self, medications, test_user, test_medication, add_log):
        for day in range(1, 6):
            add_log(test_medication, TEST_DAY.replace(day=day))

        total, page_one = await medications.dose_history(test_medication.id, test_user.id, page=1, limit=2)
        _, page_three = await medications.dose_history(test_medication.id, test_user.id, page=3, limit=2)

        assert total == 5
        assert [log.slot_date.day for log in page_one] == [5, 4]
        assert [log.slot_date.day for log in page_three] == [1]

    @pytest.mark.asyncio
    async def test_dose_history_clamps_paging(self, medications, test_user, test_medication, add_log):
        add_log(test_medication, TEST_DAY)

        total, logs = await medications.dose_history(test_medication.id, test_user.id, page=0, limit=500)

        assert total == 1
        assert len(logs) == 1

    @pytest.mark.asyncio
    async def test_adherence_report(self, medications, test_user, make_medication, add_log):
        medication = make_medication(slots=["08:00", "14:00", "20:00"])
        add_log(medication, TEST_DAY, slot="08:00")
        add_log(medication, TEST_DAY, slot="14:00", classification=AdherenceClass.LATE)
        add_log(medication, TEST_DAY, DoseOutcome.MISSED, slot="20:00")

        report = await medications.adherence_report(test_user.id)

        assert report == {"total_doses": 3, "on_time": 1, "adherence_percentage": 33.33}

    @pytest.mark.asyncio
    async def test_adherence_report_empty(self, medications, test_user):
        report = await medications.adherence_report(test_user.id)
        assert report["adherence_percentage"] == 0.0
