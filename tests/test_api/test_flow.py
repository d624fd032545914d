"""
End-to-end flow
===============

A new patient signs up, links a dispenser, loads a medicine, and the
dispenser reports the morning dose.
"""

import pytest
from fastapi import status
from fastapi.testclient import TestClient


@pytest.mark.integration
def test_signup_to_taken_dose(client: TestClient, clock, device_headers):
    signup = client.post("/api/auth/signup", json={
        "name": "Leela Nair",
        "email": "leela@example.com",
        "password": "secret123",
    })
    assert signup.status_code == status.HTTP_201_CREATED
    headers = {"Authorization": f"Bearer {signup.json()['token']}"}

    linked = client.post("/api/dashboard/device", json={"deviceId": "DR-0200"}, headers=headers)
    assert linked.status_code == status.HTTP_200_OK

    added = client.post("/api/dashboard/medicines", json={
        "medication_name": "Amlodipine",
        "medication_strength": "5mg",
        "dosage_per_intake": 0.5,
        "slot_index": 1,
        "times": ["09:15"],
        "days_of_week": [1, 2, 3, 4, 5, 6, 7],
        "stock": {"remaining": 14},
    }, headers=headers)
    assert added.status_code == status.HTTP_201_CREATED

    schedule = client.get("/api/dashboard/schedule", headers=headers).json()
    assert len(schedule) == 1
    assert schedule[0]["status"] == "pending"

    doses = client.get("/api/hardware/upcoming?deviceId=DR-0200", headers=device_headers).json()["data"]
    assert [d["dosage"] for d in doses] == ["0.5 x 5mg"]
    dose_id = doses[0]["id"]

    clock.advance(minutes=15)
    body = {"deviceId": "DR-0200"}
    client.patch(f"/api/hardware/doses/{dose_id}/mark-dispensed", json=body, headers=device_headers)
    taken = client.patch(f"/api/hardware/doses/{dose_id}/mark-taken", json=body, headers=device_headers)
    assert taken.json()["dose"]["status"] == "taken"

    schedule = client.get("/api/dashboard/schedule", headers=headers).json()
    assert schedule[0]["id"] == dose_id
    assert schedule[0]["status"] == "taken"

    summary = client.get("/api/dashboard/summary", headers=headers).json()
    assert summary["doses_taken"] == 1
    assert summary["active_medicines"] == 1
