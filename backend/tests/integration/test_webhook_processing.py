"""
Integration Tests for webhook ingestion

Covers the submit -> queue -> process path with the real WebhookService:
1. Scan pushes update the tracking record and the order in one transaction
2. Duplicate pushes are acknowledged and never applied twice
3. EPOD, sorter and QC images are stored and linked to their order
"""
import base64
from datetime import datetime

import pytest

from shipsarthi.exceptions import DuplicateEventError, ValidationError
from shipsarthi.models.order import Order
from shipsarthi.models.shipment_document import ShipmentDocument
from shipsarthi.models.shipment_tracking_event import ShipmentTrackingEvent
from shipsarthi.models.tracking_order import TrackingOrder
from shipsarthi.schemas.webhook import WebhookType
from shipsarthi.services.webhook_service import parse_push
from tests.factories import create_test_order, create_test_tracking_order

pytestmark = pytest.mark.integration

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x01" * 24
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x02" * 24


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def scan_push(waybill, status, date_time="2024-01-01T10:00:00Z", **shipment):
    status_node = {"Status": status}
    if date_time is not None:
        status_node["StatusDateTime"] = date_time
    return {"Shipment": {"AWB": waybill, "Status": status_node, **shipment}}


class TestScanPush:
    def test_delivered_push_closes_out_the_shipment(self, db, webhook_service, webhook_queue, notifier):
        order = create_test_order(db, waybill="WB1", status="out_for_delivery")
        create_test_tracking_order(db, order=order, current_status="out_for_delivery")
        db.commit()

        ack = webhook_service.submit(webhook_queue, WebhookType.SCAN_STATUS, scan_push("WB1", "Delivered"))
        assert ack.queued
        assert webhook_queue.drain() == 1

        db.expire_all()
        order = db.query(Order).filter(Order.waybill == "WB1").one()
        record = db.query(TrackingOrder).filter(TrackingOrder.waybill == "WB1").one()
        assert order.status == "delivered"
        assert order.delivered_date == datetime(2024, 1, 1, 10, 0)
        assert record.is_tracking_active is False
        assert record.is_delivered is True
        assert len(record.status_history) == 1
        assert record.status_history[0].source == "webhook"
        assert len(notifier.events) == 1
        assert notifier.events[0][1]["status"] == "delivered"

        event = db.query(ShipmentTrackingEvent).one()
        assert event.processed is True
        assert event.mapped_status == "delivered"
        assert event.order_ref == order.id

    def test_process_returns_summary(self, db, webhook_service):
        create_test_order(db, waybill="WB2", status="in_transit")
        db.commit()

        result = webhook_service.process_scan_push(
            parse_push(WebhookType.SCAN_STATUS, scan_push("WB2", "Dispatched"))
        )

        assert result["waybill"] == "WB2"
        assert result["status"] == "out_for_delivery"
        assert result["order_updated"] is True
        assert result["duplicate"] is False

    def test_tracking_record_is_created_for_known_order(self, db, webhook_service, webhook_queue):
        create_test_order(db, waybill="WB3", status="ready_to_ship")
        db.commit()

        webhook_service.submit(webhook_queue, "scan-status", scan_push("WB3", "In Transit"))
        webhook_queue.drain()

        db.expire_all()
        record = db.query(TrackingOrder).filter(TrackingOrder.waybill == "WB3").one()
        assert record.current_status == "in_transit"

    def test_order_found_by_reference_number(self, db, webhook_service, webhook_queue):
        create_test_order(db, order_id="ORD-REF", waybill="WB4", status="in_transit")
        db.commit()

        webhook_service.submit(
            webhook_queue, "scan-status",
            scan_push("WB4", "Dispatched", ReferenceNo="ORD-REF"),
        )
        webhook_queue.drain()

        db.expire_all()
        assert db.query(Order).filter(Order.order_id == "ORD-REF").one().status == "out_for_delivery"

    def test_unknown_waybill_is_stored_without_order(self, db, webhook_service, webhook_queue, notifier):
        db.commit()

        webhook_service.submit(webhook_queue, "scan-status", scan_push("WB-UNKNOWN", "In Transit"))
        webhook_queue.drain()

        db.expire_all()
        event = db.query(ShipmentTrackingEvent).one()
        assert event.order_ref is None
        assert event.processed is True
        assert notifier.events == []
        assert webhook_queue.get_stats()["processed"] == 1

    def test_missing_timestamp_uses_receive_time(self, db, webhook_service, webhook_queue):
        create_test_order(db, waybill="WB5", status="in_transit")
        db.commit()
        before = datetime.utcnow().replace(microsecond=0)

        webhook_service.submit(webhook_queue, "scan-status", scan_push("WB5", "Dispatched", date_time=None))
        webhook_queue.drain()

        db.expire_all()
        event = db.query(ShipmentTrackingEvent).one()
        assert event.status_date_time >= before
        assert event.raw_payload["Shipment"]["Status"]["StatusDateTime"] is not None

    def test_late_push_after_delivery_does_not_regress(self, db, webhook_service, webhook_queue, notifier):
        order = create_test_order(db, waybill="WB6", status="out_for_delivery")
        create_test_tracking_order(db, order=order, current_status="out_for_delivery")
        db.commit()

        webhook_service.submit(webhook_queue, "scan-status", scan_push("WB6", "Delivered"))
        webhook_service.submit(
            webhook_queue, "scan-status", scan_push("WB6", "In Transit", "2024-01-01T09:00:00Z")
        )
        webhook_queue.drain()

        db.expire_all()
        record = db.query(TrackingOrder).filter(TrackingOrder.waybill == "WB6").one()
        assert record.current_status == "delivered"
        assert [h.applied for h in record.status_history] == [True, False]
        assert db.query(Order).filter(Order.waybill == "WB6").one().status == "delivered"
        assert len(notifier.events) == 1


class TestIdempotence:
    def test_duplicate_while_queued(self, db, webhook_service, webhook_queue):
        create_test_order(db, waybill="WB7", status="in_transit")
        db.commit()

        first = webhook_service.submit(webhook_queue, "scan-status", scan_push("WB7", "Dispatched"))
        second = webhook_service.submit(webhook_queue, "scan-status", scan_push("WB7", "Dispatched"))

        assert first.queued and not first.duplicate
        assert second.duplicate and not second.queued
        assert second.message == "Event already queued"
        assert webhook_queue.drain() == 1

    def test_duplicate_after_processing(self, db, webhook_service, webhook_queue):
        create_test_order(db, waybill="WB8", status="in_transit")
        db.commit()

        webhook_service.submit(webhook_queue, "scan-status", scan_push("WB8", "Dispatched"))
        webhook_queue.drain()
        again = webhook_service.submit(webhook_queue, "scan-status", scan_push("WB8", "Dispatched"))

        assert again.duplicate
        assert again.message == "Event already processed"
        db.expire_all()
        assert db.query(ShipmentTrackingEvent).count() == 1
        order = db.query(Order).filter(Order.waybill == "WB8").one()
        assert len(order.status_history) == 1

    def test_reprocessing_raises_duplicate(self, db, webhook_service):
        create_test_order(db, waybill="WB9", status="in_transit")
        db.commit()
        cleaned = parse_push(WebhookType.SCAN_STATUS, scan_push("WB9", "Dispatched"))

        webhook_service.process_scan_push(cleaned)
        with pytest.raises(DuplicateEventError):
            webhook_service.process_scan_push(cleaned)

        db.expire_all()
        assert db.query(ShipmentTrackingEvent).count() == 1

    def test_same_status_at_new_time_is_a_new_event(self, db, webhook_service, webhook_queue):
        order = create_test_order(db, waybill="WB10", status="out_for_delivery")
        create_test_tracking_order(db, order=order, current_status="out_for_delivery")
        db.commit()

        webhook_service.submit(webhook_queue, "scan-status", scan_push("WB10", "Undelivered", "2024-01-01T18:00:00Z"))
        webhook_service.submit(webhook_queue, "scan-status", scan_push("WB10", "Undelivered", "2024-01-02T18:00:00Z"))
        webhook_queue.drain()

        db.expire_all()
        assert db.query(ShipmentTrackingEvent).count() == 2
        record = db.query(TrackingOrder).filter(TrackingOrder.waybill == "WB10").one()
        assert record.ndr_attempts == 2

    def test_day_first_timestamp_redelivery_is_a_duplicate(self, db, webhook_service, webhook_queue):
        create_test_order(db, waybill="WB12", status="in_transit")
        db.commit()
        push = scan_push("WB12", "Dispatched", "15-01-2024 10:30:00")

        webhook_service.submit(webhook_queue, "scan-status", push)
        webhook_queue.drain()
        again = webhook_service.submit(webhook_queue, "scan-status", push)

        assert again.duplicate
        db.expire_all()
        event = db.query(ShipmentTrackingEvent).one()
        assert event.status_date_time == datetime(2024, 1, 15, 10, 30)
        assert event.status_time_key == "2024-01-15T10:30:00"

    def test_unparseable_timestamp_is_keyed_on_raw_text(self, db, webhook_service, webhook_queue):
        create_test_order(db, waybill="WB13", status="in_transit")
        db.commit()
        push = scan_push("WB13", "Dispatched", " Monday evening ")

        webhook_service.submit(webhook_queue, "scan-status", push)
        webhook_queue.drain()
        again = webhook_service.submit(webhook_queue, "scan-status", push)

        assert again.duplicate
        assert again.message == "Event already processed"
        db.expire_all()
        event = db.query(ShipmentTrackingEvent).one()
        assert event.status_time_key == "Monday evening"
        assert event.status_date_time is not None

    def test_invalid_payload_is_rejected_before_queueing(self, db, webhook_service, webhook_queue):
        with pytest.raises(ValidationError):
            webhook_service.submit(webhook_queue, "scan-status", {"Shipment": {"AWB": "WB11"}})
        assert webhook_queue.get_stats()["queue_size"] == 0


class TestDocuments:
    def test_epod_is_stored_and_linked(self, db, webhook_service, webhook_queue, image_store, notifier):
        create_test_order(db, order_id="ORD-EPOD", waybill="WB20", status="delivered")
        db.commit()

        ack = webhook_service.submit(
            webhook_queue, "epod",
            {"waybill": "WB20", "EPOD": "data:image/png;base64," + _b64(PNG_BYTES), "orderID": "ORD-EPOD"},
        )
        assert ack.queued
        webhook_queue.drain()

        db.expire_all()
        document = db.query(ShipmentDocument).one()
        order = db.query(Order).filter(Order.waybill == "WB20").one()
        assert document.document_type == "epod"
        assert document.mime_type == "image/png"
        assert document.file_size == len(PNG_BYTES)
        assert document.carrier_order_id == "ORD-EPOD"
        assert document.image_url.startswith("memory://shipsarthi/epod/")
        assert image_store.saved[document.image_url] == PNG_BYTES
        assert order.epod_url == document.image_url
        assert order.epod_date is not None
        assert notifier.of_type("epod_received")[0]["order_id"] == "ORD-EPOD"

    def test_same_image_twice_is_a_duplicate(self, db, webhook_service, webhook_queue):
        create_test_order(db, waybill="WB21", status="delivered")
        db.commit()
        payload = {"waybill": "WB21", "EPOD": _b64(PNG_BYTES)}

        webhook_service.submit(webhook_queue, "epod", payload)
        webhook_queue.drain()
        again = webhook_service.submit(webhook_queue, "epod", payload)

        assert again.duplicate
        db.expire_all()
        assert db.query(ShipmentDocument).count() == 1

    def test_first_weight_photo_wins(self, db, webhook_service, webhook_queue):
        create_test_order(db, waybill="WB22", status="in_transit")
        db.commit()

        webhook_service.submit(webhook_queue, "sorter-image", {"Waybill": "WB22", "Weight_images": _b64(PNG_BYTES)})
        webhook_service.submit(
            webhook_queue, "sorter-image", {"Waybill": "WB22", "Weight_images": _b64(JPEG_BYTES), "doc": "D-2"}
        )
        webhook_queue.drain()

        db.expire_all()
        documents = db.query(ShipmentDocument).order_by(ShipmentDocument.id).all()
        order = db.query(Order).filter(Order.waybill == "WB22").one()
        assert len(documents) == 2
        assert documents[1].doc_reference == "D-2"
        assert documents[1].mime_type == "image/jpeg"
        assert order.weight_photo_url == documents[0].image_url

    def test_qc_image_links_by_return_id(self, db, webhook_service, webhook_queue):
        create_test_order(db, order_id="RET-77", waybill="WB23", status="rto")
        db.commit()

        webhook_service.submit(
            webhook_queue, "qc-image", {"waybillId": "WB-RETURN", "Image": _b64(PNG_BYTES), "returnId": "RET-77"}
        )
        webhook_queue.drain()

        db.expire_all()
        document = db.query(ShipmentDocument).one()
        order = db.query(Order).filter(Order.order_id == "RET-77").one()
        assert document.return_id == "RET-77"
        assert document.order_ref == order.id
        assert order.qc_image_url == document.image_url

    def test_image_for_unknown_waybill_is_kept(self, db, webhook_service, webhook_queue):
        db.commit()

        webhook_service.submit(webhook_queue, "qc-image", {"waybillId": "WB-NONE", "Image": _b64(PNG_BYTES)})
        webhook_queue.drain()

        db.expire_all()
        assert db.query(ShipmentDocument).one().order_ref is None

