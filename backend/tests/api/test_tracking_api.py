"""
API Tests for tracking reconciliation triggers and record lookup
"""
import pytest

from tests.factories import create_test_order, create_test_tracking_order

pytestmark = pytest.mark.api

BASE = "/api/v1/tracking"


def test_reconcile_pass(client, db, carrier):
    record = create_test_tracking_order(db)
    db.commit()
    carrier.set_status(record.waybill, "In Transit")

    response = client.post(f"{BASE}/reconcile")

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["successful"] == 1
    assert body["skipped"] is False
    assert body["duration_ms"] is not None


def test_force_refresh(client, db, carrier):
    order = create_test_order(db, status="delivered")
    record = create_test_tracking_order(db, order=order)
    db.commit()
    carrier.set_status(record.waybill, "Delivered")

    response = client.post(f"{BASE}/force-refresh")

    assert response.status_code == 200
    assert response.json()["total"] == 1


def test_reconcile_one(client, db, carrier):
    create_test_order(db, waybill="WB-ONE")
    db.commit()
    carrier.set_status("WB-ONE", "Dispatched")

    response = client.post(f"{BASE}/WB-ONE/reconcile")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["status"] == "out_for_delivery"
    assert body["changed"] is True


def test_reconcile_one_unknown_waybill(client):
    response = client.post(f"{BASE}/NOPE/reconcile")
    assert response.status_code == 404


def test_reconcile_one_without_pickup(client, db):
    create_test_order(db, waybill="WB-NOPICKUP", pickup_request_id=None)
    db.commit()

    response = client.post(f"{BASE}/WB-NOPICKUP/reconcile")

    assert response.status_code == 400
    assert response.json()["details"]["field"] == "pickup_request_id"


def test_resync(client, db):
    order = create_test_order(db, status="ready_to_ship")
    create_test_tracking_order(db, order=order, current_status="in_transit")
    db.commit()

    response = client.post(f"{BASE}/resync")

    assert response.status_code == 200
    assert response.json() == {"total": 1, "synced": 1, "skipped": 0, "errors": 0}


def test_status(client):
    response = client.get(f"{BASE}/status")

    assert response.status_code == 200
    body = response.json()
    assert body["is_running"] is False
    assert body["in_progress"] is False
    assert body["last_run"] is None


def test_read_tracking_record(client, db, carrier):
    record = create_test_tracking_order(db)
    db.commit()
    waybill = record.waybill
    carrier.set_status(waybill, "Undelivered", instructions="Customer not available")
    client.post(f"{BASE}/reconcile")
    db.expire_all()

    response = client.get(f"{BASE}/{waybill}")

    assert response.status_code == 200
    body = response.json()
    assert body["waybill"] == waybill
    assert body["current_status"] == "ndr"
    assert body["ndr_attempts"] == 1
    assert body["ndr_reason"] == "Customer not available"
    assert body["status_history"][0]["status"] == "Undelivered"
    assert body["failures"] == []


def test_read_unknown_tracking_record(client):
    response = client.get(f"{BASE}/NOPE")

    assert response.status_code == 404
    assert response.json()["error"] == "NOT_FOUND"
