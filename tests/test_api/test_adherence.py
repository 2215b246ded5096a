"""
Tests for Dose and Sweep API
============================

Tests dose reporting, error envelopes and the manual sweep trigger.
"""

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from models import DoseLog
from tests.conftest import TEST_DAY, utc


@pytest.fixture
def dose_payload(test_user, test_medication):
    return {
        "medication_id": test_medication.id,
        "owner_id": test_user.id,
        "scheduled_slot": "08:00",
    }


# ==================== DOSES ====================

class TestRecordDose:
    """Tests for POST /api/v1/doses"""

    @pytest.mark.api
    def test_record_on_time(self, client: TestClient, clock, dose_payload):
        clock.set(utc(8, 5))

        response = client.post("/api/v1/doses", json=dose_payload)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["outcome"] == "taken"
        assert data["classification"] == "on_time"
        assert data["delay_minutes"] == 0
        assert data["slot_date"] == TEST_DAY.isoformat()

    @pytest.mark.api
    def test_record_late(self, client: TestClient, clock, dose_payload):
        clock.set(utc(8, 45))

        response = client.post("/api/v1/doses", json=dose_payload)

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["classification"] == "late"
        assert response.json()["delay_minutes"] == 45

    @pytest.mark.api
    def test_record_skipped(self, client: TestClient, clock, dose_payload):
        response = client.post("/api/v1/doses", json={**dose_payload, "outcome": "skipped"})

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["outcome"] == "skipped"

    @pytest.mark.api
    def test_duplicate_is_conflict(self, client: TestClient, clock, db_session, dose_payload):
        clock.set(utc(8, 5))
        client.post("/api/v1/doses", json=dose_payload)

        clock.advance(minutes=1)
        response = client.post("/api/v1/doses", json=dose_payload)

        assert response.status_code == status.HTTP_409_CONFLICT
        body = response.json()
        assert body["error"] is True
        assert body["status_code"] == 409
        assert "timestamp" in body
        assert db_session.query(DoseLog).count() == 1

    @pytest.mark.api
    def test_malformed_slot_is_unprocessable(self, client: TestClient, dose_payload):
        response = client.post("/api/v1/doses", json={**dose_payload, "scheduled_slot": "25:00"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["details"] == {"slot": "25:00"}

    @pytest.mark.api
    def test_unscheduled_slot_is_unprocessable(self, client: TestClient, db_session, dose_payload):
        response = client.post("/api/v1/doses", json={**dose_payload, "scheduled_slot": "03:17"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert db_session.query(DoseLog).count() == 0

    @pytest.mark.api
    def test_unknown_outcome_is_rejected(self, client: TestClient, dose_payload):
        response = client.post("/api/v1/doses", json={**dose_payload, "outcome": "eaten"})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_missing_fields(self, client: TestClient):
        response = client.post("/api/v1/doses", json={"scheduled_slot": "08:00"})
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    @pytest.mark.api
    def test_deleted_medication_is_not_found(self, client: TestClient, db_session, test_medication, dose_payload):
        test_medication.is_deleted = True
        db_session.commit()

        response = client.post("/api/v1/doses", json=dose_payload)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert db_session.query(DoseLog).count() == 0


# ==================== SWEEPS ====================

class TestRunSweep:
    """Tests for POST /api/v1/sweeps/run"""

    @pytest.mark.api
    def test_manual_sweep(self, client: TestClient, clock, test_medication):
        clock.set(utc(10, 5))

        response = client.post("/api/v1/sweeps/run")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["missed_recorded"] == 1
        assert data["medications_scanned"] == 1
        assert data["failures"] == 0

        second = client.post("/api/v1/sweeps/run")
        assert second.json()["missed_recorded"] == 0

    @pytest.mark.api
    def test_overlapping_sweep_is_conflict(self, client: TestClient, sweeper):
        sweeper._run_lock.acquire()
        try:
            response = client.post("/api/v1/sweeps/run")
        finally:
            sweeper._run_lock.release()

        assert response.status_code == status.HTTP_409_CONFLICT

    @pytest.mark.api
    def test_report_after_sweep_conflicts(self, client: TestClient, clock, dose_payload):
        clock.set(utc(10, 5))
        client.post("/api/v1/sweeps/run")

        clock.advance(minutes=10)
        response = client.post("/api/v1/doses", json=dose_payload)

        assert response.status_code == status.HTTP_409_CONFLICT


# ==================== HEALTH ====================

class TestHealth:
    @pytest.mark.api
    def test_health(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["sweep_scheduler"] is False
