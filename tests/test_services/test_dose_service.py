"""
Tests for Dose Service
Tests read-time reconciliation, materialization and dose confirmations
"""

import pytest
from datetime import datetime, timedelta

from models import DoseLog, Device, Patient, UserRole, DoseStatus
from services.dose_service import DoseService, format_dosage
from services.errors import ConflictError, NotFoundError, ValidationFailed
from tools.dose_keys import virtual_dose_id
from tools.dose_lifecycle import AUTO_MISSED_REASON


NOW = datetime(2026, 10, 21, 9, 0)
TODAY_8 = datetime(2026, 10, 21, 8, 0)
TODAY_20 = datetime(2026, 10, 21, 20, 0)
TOMORROW_8 = datetime(2026, 10, 22, 8, 0)


@pytest.fixture
def dose_service():
    """Create dose service instance"""
    return DoseService()


@pytest.fixture
def other_patient(db_session, make_user):
    """Second patient with their own dispenser"""
    user = make_user(UserRole.PATIENT, name="Meera Iyer")
    device = Device(device_id="DR-0002", slot_count=4, timezone="UTC")
    db_session.add(device)
    db_session.commit()
    patient = Patient(user_id=user.id, device_id=device.id, illnesses=[], allergies=[])
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


# =============================================================================
# Upcoming
# =============================================================================

class TestUpcoming:
    """Tests for the device upcoming window"""

    @pytest.mark.asyncio
    async def test_materializes_occurrences_in_window(self, dose_service, db_session, test_device, test_plan):
        doses = await dose_service.get_upcoming(test_device.device_id, NOW, db=db_session)

        # 08:00 today is before the grace window start, 20:00 tomorrow after the horizon
        assert [d.scheduled_at for d in doses] == [TODAY_20, TOMORROW_8]
        assert all(d.status == DoseStatus.PENDING for d in doses)
        assert all(d.slot_index == test_plan.slot_index for d in doses)

    @pytest.mark.asyncio
    async def test_repeated_calls_are_idempotent(self, dose_service, db_session, test_device, test_plan):
        first = await dose_service.get_upcoming(test_device.device_id, NOW, db=db_session)
        second = await dose_service.get_upcoming(test_device.device_id, NOW, db=db_session)

        assert [d.id for d in first] == [d.id for d in second]
        assert db_session.query(DoseLog).count() == 2

    @pytest.mark.asyncio
    async def test_overdue_pending_dose_is_auto_missed(self, dose_service, db_session, test_device, test_plan, make_dose):
        overdue = make_dose(test_plan, TODAY_8)

        await dose_service.get_upcoming(test_device.device_id, NOW, db=db_session)
        db_session.refresh(overdue)

        assert overdue.status == DoseStatus.MISSED
        assert overdue.missed_reason == AUTO_MISSED_REASON

    @pytest.mark.asyncio
    async def test_stale_dispense_reverts_to_pending(self, dose_service, db_session, test_device, test_plan, make_dose):
        dispensed = make_dose(
            test_plan,
            datetime(2026, 10, 21, 8, 45),
            status=DoseStatus.DISPENSED,
            dispensed_at=datetime(2026, 10, 21, 8, 50),
        )

        doses = await dose_service.get_upcoming(test_device.device_id, NOW, db=db_session)
        db_session.refresh(dispensed)

        assert dispensed.status == DoseStatus.PENDING
        assert dispensed.dispensed_at is None
        assert doses[0].id == dispensed.id

    @pytest.mark.asyncio
    async def test_recent_dispense_is_kept(self, dose_service, db_session, test_device, test_plan, make_dose):
        dispensed = make_dose(
            test_plan,
            datetime(2026, 10, 21, 8, 45),
            status=DoseStatus.DISPENSED,
            dispensed_at=datetime(2026, 10, 21, 8, 57),
        )

        await dose_service.get_upcoming(test_device.device_id, NOW, db=db_session)
        db_session.refresh(dispensed)

        assert dispensed.status == DoseStatus.DISPENSED

    @pytest.mark.asyncio
    async def test_inactive_plan_is_not_projected(self, dose_service, db_session, test_device, make_plan):
        make_plan(active=False)

        doses = await dose_service.get_upcoming(test_device.device_id, NOW, db=db_session)

        assert doses == []

    @pytest.mark.asyncio
    async def test_unknown_device(self, dose_service, db_session):
        with pytest.raises(NotFoundError):
            await dose_service.get_upcoming("DR-9999", NOW, db=db_session)

    @pytest.mark.asyncio
    async def test_blank_device_id(self, dose_service, db_session):
        with pytest.raises(ValidationFailed):
            await dose_service.get_upcoming("  ", NOW, db=db_session)


# =============================================================================
# Confirmations
# =============================================================================

class TestMarkDoses:
    """Tests for patient and device confirmations"""

    @pytest.mark.asyncio
    async def test_virtual_key_is_materialized(self, dose_service, db_session, patient_user, test_plan):
        key = virtual_dose_id(test_plan.id, TODAY_20)

        dose = await dose_service.mark_taken(patient_user.id, key, NOW, db=db_session)

        assert dose.id is not None
        assert dose.status == DoseStatus.TAKEN
        assert dose.taken_at == NOW
        assert dose.scheduled_at == TODAY_20

    @pytest.mark.asyncio
    async def test_virtual_key_reuses_existing_row(self, dose_service, db_session, patient_user, test_plan, make_dose):
        existing = make_dose(test_plan, TODAY_20)

        dose = await dose_service.mark_taken(
            patient_user.id, virtual_dose_id(test_plan.id, TODAY_20), NOW, db=db_session
        )

        assert dose.id == existing.id
        assert db_session.query(DoseLog).count() == 1

    @pytest.mark.asyncio
    async def test_same_status_is_a_noop(self, dose_service, db_session, patient_user, test_plan, make_dose):
        dose = make_dose(test_plan, TODAY_8, status=DoseStatus.TAKEN, taken_at=TODAY_8)

        result = await dose_service.mark_taken(patient_user.id, str(dose.id), NOW, db=db_session)

        assert result.taken_at == TODAY_8

    @pytest.mark.asyncio
    async def test_terminal_dose_cannot_change(self, dose_service, db_session, patient_user, test_plan, make_dose):
        dose = make_dose(test_plan, TODAY_8, status=DoseStatus.TAKEN)

        with pytest.raises(ConflictError):
            await dose_service.mark_missed(patient_user.id, str(dose.id), NOW, db=db_session)

    @pytest.mark.asyncio
    async def test_mark_missed_records_reason(self, dose_service, db_session, patient_user, test_plan, make_dose):
        dose = make_dose(test_plan, TODAY_8)

        result = await dose_service.mark_missed(
            patient_user.id, str(dose.id), NOW, reason="Away from home", db=db_session
        )

        assert result.status == DoseStatus.MISSED
        assert result.missed_reason == "Away from home"

    @pytest.mark.asyncio
    async def test_other_patients_dose_is_not_found(self, dose_service, db_session, other_patient, test_plan, make_dose):
        dose = make_dose(test_plan, TODAY_8)

        with pytest.raises(NotFoundError):
            await dose_service.mark_taken(other_patient.user_id, str(dose.id), NOW, db=db_session)

    @pytest.mark.asyncio
    async def test_other_patients_plan_is_not_found(self, dose_service, db_session, other_patient, test_plan):
        with pytest.raises(NotFoundError):
            await dose_service.mark_taken(
                other_patient.user_id, virtual_dose_id(test_plan.id, TODAY_20), NOW, db=db_session
            )

    @pytest.mark.asyncio
    async def test_malformed_key(self, dose_service, db_session, patient_user, test_patient):
        with pytest.raises(ValidationFailed):
            await dose_service.mark_taken(patient_user.id, "abc", NOW, db=db_session)

    @pytest.mark.asyncio
    async def test_device_dispense_then_take(self, dose_service, db_session, test_device, test_plan, make_dose):
        dose = make_dose(test_plan, datetime(2026, 10, 21, 8, 45))

        dispensed = await dose_service.device_mark(
            test_device.device_id, str(dose.id), DoseStatus.DISPENSED, NOW, db=db_session
        )
        assert dispensed.dispensed_at == NOW

        later = NOW + timedelta(minutes=2)
        taken = await dose_service.device_mark(
            test_device.device_id, str(dose.id), DoseStatus.TAKEN, later, db=db_session
        )
        assert taken.status == DoseStatus.TAKEN
        assert taken.taken_at == later

    @pytest.mark.asyncio
    async def test_device_cannot_touch_other_devices_dose(self, dose_service, db_session, other_patient, test_plan, make_dose):
        dose = make_dose(test_plan, TODAY_8)

        with pytest.raises(NotFoundError):
            await dose_service.device_mark("DR-0002", str(dose.id), DoseStatus.TAKEN, NOW, db=db_session)

    @pytest.mark.asyncio
    async def test_device_cannot_mark_missed(self, dose_service, db_session, test_device, test_plan, make_dose):
        dose = make_dose(test_plan, TODAY_8)

        with pytest.raises(ValidationFailed):
            await dose_service.device_mark(
                test_device.device_id, str(dose.id), DoseStatus.MISSED, NOW, db=db_session
            )


# =============================================================================
# Schedule
# =============================================================================

class TestScheduleToday:
    """Tests for the patient's schedule view"""

    @pytest.mark.asyncio
    async def test_schedule_does_not_persist(self, dose_service, db_session, patient_user, test_plan):
        entries = await dose_service.get_schedule_today(patient_user.id, NOW, db=db_session)

        assert [e.scheduled_at for e in entries] == [TODAY_8, TODAY_20]
        assert db_session.query(DoseLog).count() == 0

    @pytest.mark.asyncio
    async def test_missing_profile(self, dose_service, db_session, make_user):
        caretaker = make_user(UserRole.CARETAKER)

        with pytest.raises(NotFoundError):
            await dose_service.get_schedule_today(caretaker.id, NOW, db=db_session)


class TestFormatDosage:
    """Tests for the hardware dosage label"""

    @pytest.mark.unit
    def test_labels(self, test_plan):
        assert format_dosage(test_plan) == "1 x 500mg"
        test_plan.medication_strength = None
        test_plan.dosage_per_intake = 0.5
        assert format_dosage(test_plan) == "0.5 unit"
        assert format_dosage(None) == ""
