"""
Integration Tests for the Tracking Reconciler

Uses the scripted FakeCarrier and the shared in-memory database. Rows are
committed before a pass runs since the reconciler opens its own session.
"""
import pytest

from shipsarthi.exceptions import NotFoundError, TransientCarrierError, ValidationError
from shipsarthi.models.order import Order
from shipsarthi.models.tracking_order import TrackingOrder
from shipsarthi.services.tracking_service import TrackingReconciler
from tests.factories import create_test_order, create_test_tracking_order
from tests.fakes import FakeCarrier

pytestmark = pytest.mark.integration


def _record(db, waybill) -> TrackingOrder:
    db.expire_all()
    return db.query(TrackingOrder).filter(TrackingOrder.waybill == waybill).one()


def _order(db, waybill) -> Order:
    db.expire_all()
    return db.query(Order).filter(Order.waybill == waybill).one()


class TestReconcileAll:
    def test_batch_isolates_a_failing_shipment(self, db, reconciler, carrier):
        first = create_test_tracking_order(db)
        second = create_test_tracking_order(db)
        third = create_test_tracking_order(db)
        db.commit()
        carrier.set_status(first.waybill, "In Transit")
        carrier.responses[second.waybill] = TransientCarrierError("read timeout")
        carrier.set_status(third.waybill, "Delivered", received_by="Ravi")

        summary = reconciler.reconcile_all()

        assert summary.total == 3
        assert summary.successful == 2
        assert summary.failed == 1
        assert summary.delivered == 1
        assert [call[0] for call in carrier.track_calls] == [first.waybill, second.waybill, third.waybill]

        failed = _record(db, second.waybill)
        assert failed.current_status == "pickups_manifests"
        assert len(failed.failures) == 1
        assert failed.failures[0].error_type == "CARRIER_UNAVAILABLE"
        assert _record(db, first.waybill).current_status == "in_transit"
        assert _order(db, third.waybill).status == "delivered"

    def test_status_change_notifies_owner(self, db, reconciler, carrier, notifier):
        record = create_test_tracking_order(db)
        db.commit()
        carrier.set_status(record.waybill, "Dispatched", location="Andheri_DC")

        reconciler.reconcile_all()

        assert len(notifier.events) == 1
        user_id, event = notifier.events[0]
        assert user_id == record.user_id
        assert event["type"] == "order_status_update"
        assert event["status"] == "out_for_delivery"
        assert event["old_status"] == "pickups_manifests"
        assert event["location"] == "Andheri_DC"

    def test_unchanged_status_still_records_history(self, db, reconciler, carrier, notifier):
        order = create_test_order(db, status="in_transit")
        record = create_test_tracking_order(db, order=order)
        db.commit()
        carrier.set_status(record.waybill, "In Transit")

        reconciler.reconcile_all()

        refreshed = _record(db, record.waybill)
        assert len(refreshed.status_history) == 1
        assert refreshed.tracking_count == 1
        assert refreshed.last_tracked_at is not None
        assert notifier.events == []

    def test_records_without_pickup_are_skipped(self, db, reconciler, carrier):
        no_pickup = create_test_order(db, pickup_request_id=None)
        create_test_tracking_order(db, order=no_pickup)
        tracked = create_test_tracking_order(db)
        db.commit()
        carrier.set_status(tracked.waybill, "In Transit")

        summary = reconciler.reconcile_all()

        assert summary.total == 1
        assert carrier.track_calls == [(tracked.waybill, None)]

    def test_delivered_records_are_excluded(self, db, reconciler, carrier):
        order = create_test_order(db, status="delivered")
        create_test_tracking_order(db, order=order)
        db.commit()

        summary = reconciler.reconcile_all()

        assert summary.total == 0
        assert carrier.track_calls == []

    def test_force_refresh_includes_terminal_records(self, db, reconciler, carrier):
        order = create_test_order(db, status="delivered")
        record = create_test_tracking_order(db, order=order)
        db.commit()
        carrier.set_status(record.waybill, "Delivered")

        summary = reconciler.force_refresh_all()

        assert summary.total == 1
        assert summary.successful == 1
        assert _record(db, record.waybill).current_status == "delivered"

    def test_backfill_creates_missing_records(self, db, reconciler, carrier):
        order = create_test_order(db, status="ready_to_ship")
        create_test_order(db, pickup_request_id=None)
        db.commit()
        carrier.set_status(order.waybill, "In Transit")

        summary = reconciler.reconcile_all()

        assert summary.total == 1
        record = _record(db, order.waybill)
        assert record.order_id == order.order_id
        assert record.current_status == "in_transit"
        assert db.query(TrackingOrder).count() == 1

    def test_response_without_status_is_a_data_error(self, db, reconciler, carrier):
        record = create_test_tracking_order(db)
        db.commit()
        carrier.responses[record.waybill] = {"ShipmentData": [{"Shipment": {}}]}

        summary = reconciler.reconcile_all()

        assert summary.failed == 1
        refreshed = _record(db, record.waybill)
        assert refreshed.failures[0].error_type == "CARRIER_DATA_ERROR"
        assert refreshed.current_status == "pickups_manifests"

    def test_unmapped_status_is_flagged_as_fallback(self, db, reconciler, carrier):
        record = create_test_tracking_order(db)
        db.commit()
        carrier.set_status(record.waybill, "Shipment in transit - delayed")

        reconciler.reconcile_all()

        refreshed = _record(db, record.waybill)
        assert refreshed.current_status == "in_transit"
        assert refreshed.status_history[-1].is_fallback is True
        assert _order(db, record.waybill).status_history[-1].is_fallback is True

    def test_missing_order_is_reported(self, db, reconciler, carrier):
        order = create_test_order(db, pickup_request_id=None)
        record = create_test_tracking_order(
            db, order=order, order_id="ORD-GONE", waybill="WB-ORPHAN", pickup_request_id="PR-0009"
        )
        db.commit()
        carrier.set_status("WB-ORPHAN", "In Transit")

        summary = reconciler.reconcile_all()

        assert summary.failed == 1
        assert reconciler.last_summary is summary
        assert _record(db, record.waybill).current_status == "in_transit"


class TestRunGuard:
    def test_overlapping_pass_is_skipped(self, db, reconciler, notifier):
        nested = []

        class ReentrantCarrier(FakeCarrier):
            def track(self, waybill, reference=None):
                nested.append(guarded.reconcile_all())
                return super().track(waybill, reference)

        guarded = TrackingReconciler(ReentrantCarrier(), reconciler.session_factory, notifier, request_delay=0)
        create_test_tracking_order(db)
        db.commit()

        summary = guarded.reconcile_all()

        assert not summary.skipped
        assert len(nested) == 1
        assert nested[0].skipped
        assert nested[0].total == 0

    def test_flag_is_reset_after_a_crash(self, db, reconciler, monkeypatch):
        def explode(session=None):
            raise RuntimeError("disk full")

        monkeypatch.setattr(reconciler, "backfill_tracking_records", explode)
        with pytest.raises(RuntimeError):
            reconciler.reconcile_all()

        assert reconciler.get_status()["in_progress"] is False
        monkeypatch.undo()
        assert not reconciler.reconcile_all().skipped


class TestReconcileOne:
    def test_unknown_waybill(self, db, reconciler):
        with pytest.raises(NotFoundError):
            reconciler.reconcile_one("NOPE")

    def test_order_without_pickup_is_rejected(self, db, reconciler):
        order = create_test_order(db, pickup_request_id=None)
        db.commit()

        with pytest.raises(ValidationError):
            reconciler.reconcile_one(order.waybill)

    def test_creates_record_and_tracks(self, db, reconciler, carrier):
        order = create_test_order(db, status="ready_to_ship")
        db.commit()
        carrier.set_status(order.waybill, "Picked Up")

        result = reconciler.reconcile_one(order.waybill)

        assert result.success
        assert result.changed
        assert result.status == "in_transit"
        assert _record(db, order.waybill).tracking_count == 1
        assert _order(db, order.waybill).status == "in_transit"

    def test_carrier_failure_is_returned(self, db, reconciler, carrier):
        record = create_test_tracking_order(db)
        db.commit()
        carrier.responses[record.waybill] = TransientCarrierError("HTTP 503", carrier_status_code=503)

        result = reconciler.reconcile_one(record.waybill)

        assert not result.success
        assert result.error_type == "CARRIER_UNAVAILABLE"
        assert _record(db, record.waybill).failures[0].status_code == 503


class TestResync:
    def test_resync_aligns_orders_and_is_idempotent(self, db, reconciler):
        behind = create_test_order(db, status="ready_to_ship")
        create_test_tracking_order(db, order=behind, current_status="in_transit")
        aligned = create_test_order(db, status="in_transit")
        create_test_tracking_order(db, order=aligned, current_status="in_transit")
        db.commit()

        first = reconciler.resync_canonical_orders()
        second = reconciler.resync_canonical_orders()

        assert first == {"total": 2, "synced": 1, "skipped": 1, "errors": 0}
        assert second == {"total": 2, "synced": 0, "skipped": 2, "errors": 0}
        assert _order(db, behind.waybill).status == "in_transit"

    def test_resync_repairs_delivered_flag(self, db, reconciler):
        order = create_test_order(db, status="out_for_delivery")
        create_test_tracking_order(db, order=order, current_status="in_transit", is_delivered=True)
        db.commit()

        reconciler.resync_canonical_orders()

        record = _record(db, order.waybill)
        assert record.current_status == "delivered"
        assert record.is_tracking_active is False
        assert _order(db, order.waybill).status == "delivered"


class TestScheduling:
    def test_start_and_stop(self, db, reconciler):
        reconciler.start()
        try:
            status = reconciler.get_status()
            assert status["is_running"] is True
            assert status["next_run"] is not None
            assert status["interval_minutes"] == reconciler.interval_minutes
        finally:
            reconciler.stop()

        assert reconciler.get_status()["is_running"] is False
