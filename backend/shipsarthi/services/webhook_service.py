"""
Webhook ingestion

`submit()` runs in the HTTP handler: parse, check for duplicates,
enqueue, answer. `process()` runs on the queue's drain thread and
dispatches to one processor per job kind.

Every processor is idempotent through a dedup key backed by a unique
constraint:
    scan-status   (waybill, status, status time key)
    images        (waybill, document type, content-derived image URL)

Scan pushes are applied in a single transaction: the event row, the
tracking record and the order either all commit or none do. A concurrent
duplicate loses on the unique constraint and is reported as a duplicate.
Notifications go out after the commit.
"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shipsarthi.exceptions import DuplicateEventError, ValidationError
from shipsarthi.integrations.image_storage import ImageStore, sniff_image_type
from shipsarthi.logging_config import get_logger
from shipsarthi.models.order import Order
from shipsarthi.models.shipment_document import ShipmentDocument
from shipsarthi.models.shipment_tracking_event import ShipmentTrackingEvent
from shipsarthi.models.tracking_order import TrackingOrder
from shipsarthi.schemas.webhook import (
    PUSH_MODELS,
    DocumentType,
    WebhookAck,
    WebhookType,
    decode_image,
)
from shipsarthi.services.notification_service import (
    EPOD_RECEIVED,
    Notifier,
    build_status_event,
    safe_notify,
)
from shipsarthi.services.status_extraction import parse_carrier_datetime
from shipsarthi.services.status_mapper import fallback_status, normalize
from shipsarthi.services.transition_service import (
    SOURCE_WEBHOOK,
    StatusUpdate,
    apply_transition,
    build_tracking_record,
    find_order,
)
from shipsarthi.services.webhook_queue import WebhookJob, WebhookQueue

logger = get_logger(__name__)

# Job kind -> (document type, waybill field, image field)
IMAGE_JOBS = {
    WebhookType.EPOD.value: (DocumentType.EPOD.value, "waybill", "EPOD"),
    WebhookType.SORTER_IMAGE.value: (DocumentType.SORTER_IMAGE.value, "Waybill", "Weight_images"),
    WebhookType.QC_IMAGE.value: (DocumentType.QC_IMAGE.value, "waybillId", "Image"),
}

IMAGE_FOLDER = "shipsarthi"
STATUS_TIME_KEY_LENGTH = 64


def parse_push(kind: WebhookType, payload: Any) -> Dict[str, Any]:
    """
    Validate a carrier push against its model and return it cleaned, in the
    carrier's field names. Raises ValidationError listing every bad field.
    """
    kind = WebhookType(kind)
    try:
        push = PUSH_MODELS[kind].model_validate(payload)
    except PydanticValidationError as e:
        errors = [
            {"field": ".".join(str(loc) for loc in error["loc"]), "message": error["msg"]}
            for error in e.errors(include_url=False)
        ]
        raise ValidationError(
            f"Invalid {kind.value} payload",
            details={"errors": errors, "webhook_type": kind.value},
        ) from None
    return push.model_dump(by_alias=True)


def resolve_status_time(cleaned: Dict[str, Any]) -> Tuple[datetime, str]:
    """
    (event time, dedup time key) for a cleaned scan push.

    A missing StatusDateTime is filled in with the receive time, written back
    into the payload so the queued job keys the same way. A present but
    unparseable one is keyed on its raw text, so redeliveries still collide.
    """
    shipment = cleaned["Shipment"]
    status = shipment["Status"]
    raw = status.get("StatusDateTime")
    if raw is None:
        received = datetime.utcnow().replace(microsecond=0)
        status["StatusDateTime"] = received.isoformat()
        logger.info(
            f"Scan push for {shipment['AWB']} has no StatusDateTime, using receive time",
            extra={"waybill": shipment["AWB"]},
        )
        return received, received.isoformat()

    parsed = parse_carrier_datetime(raw)
    if parsed is None:
        logger.info(
            f"Scan push for {shipment['AWB']} has unparseable StatusDateTime {raw!r}",
            extra={"waybill": shipment["AWB"], "raw": raw},
        )
        return datetime.utcnow().replace(microsecond=0), raw[:STATUS_TIME_KEY_LENGTH]
    return parsed, parsed.isoformat()


def scan_dedup_key(waybill: str, status: str, status_time_key: str) -> str:
    return f"scan:{waybill}:{status}:{status_time_key}"


def document_dedup_key(waybill: str, document_type: str, image_url: str) -> str:
    return f"document:{waybill}:{document_type}:{image_url}"


def _decode(cleaned: Dict[str, Any], image_field: str) -> bytes:
    try:
        return decode_image(cleaned[image_field])
    except ValueError as e:
        raise ValidationError(f"{image_field} could not be decoded", field=image_field) from e


class WebhookService:
    """Validates, deduplicates and processes carrier webhook pushes."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        image_store: ImageStore,
        notifier: Optional[Notifier] = None,
    ):
        self.session_factory = session_factory
        self.image_store = image_store
        self.notifier = notifier

    # ------------------------------------------------------------------
    # HTTP side
    # ------------------------------------------------------------------

    def _image_url(self, kind: str, cleaned: Dict[str, Any]) -> str:
        document_type, _, image_field = IMAGE_JOBS[kind]
        return self.image_store.url_for(
            f"{IMAGE_FOLDER}/{document_type}", _decode(cleaned, image_field)
        )

    def _dedup_key(self, kind: str, cleaned: Dict[str, Any]) -> str:
        if kind == WebhookType.SCAN_STATUS.value:
            shipment = cleaned["Shipment"]
            _, time_key = resolve_status_time(cleaned)
            return scan_dedup_key(shipment["AWB"], shipment["Status"]["Status"], time_key)
        document_type, waybill_field, _ = IMAGE_JOBS[kind]
        return document_dedup_key(cleaned[waybill_field], document_type, self._image_url(kind, cleaned))

    def _already_stored(self, db: Session, kind: str, cleaned: Dict[str, Any]) -> bool:
        if kind == WebhookType.SCAN_STATUS.value:
            shipment = cleaned["Shipment"]
            _, time_key = resolve_status_time(cleaned)
            return self._event_exists(db, shipment["AWB"], shipment["Status"]["Status"], time_key)
        document_type, waybill_field, _ = IMAGE_JOBS[kind]
        return self._document_exists(db, cleaned[waybill_field], document_type, self._image_url(kind, cleaned))

    def submit(self, queue: WebhookQueue, kind: WebhookType, payload: Any,
               request_id: Optional[str] = None) -> WebhookAck:
        """
        Parse and enqueue a push. Raises ValidationError for bad payloads
        and QueueFullError when the queue is at capacity.
        """
        kind = WebhookType(kind).value
        cleaned = parse_push(WebhookType(kind), payload)
        dedup_key = self._dedup_key(kind, cleaned)

        if queue.is_pending(dedup_key):
            logger.info(f"Duplicate {kind} push already queued", extra={"dedup_key": dedup_key})
            return WebhookAck(message="Event already queued", duplicate=True, request_id=request_id)

        db = self.session_factory()
        try:
            stored = self._already_stored(db, kind, cleaned)
        finally:
            db.close()
        if stored:
            logger.info(f"Duplicate {kind} push already processed", extra={"dedup_key": dedup_key})
            return WebhookAck(message="Event already processed", duplicate=True, request_id=request_id)

        job_id = queue.enqueue(kind, cleaned, dedup_key=dedup_key)
        return WebhookAck(message="Webhook received", queued=True, job_id=job_id, request_id=request_id)

    # ------------------------------------------------------------------
    # Queue side
    # ------------------------------------------------------------------

    def process(self, job: WebhookJob) -> Dict[str, Any]:
        if job.type == WebhookType.SCAN_STATUS.value:
            return self.process_scan_push(job.payload)
        if job.type == WebhookType.EPOD.value:
            return self.process_epod(job.payload)
        if job.type == WebhookType.SORTER_IMAGE.value:
            return self.process_sorter_image(job.payload)
        if job.type == WebhookType.QC_IMAGE.value:
            return self.process_qc_image(job.payload)
        raise ValueError(f"Unknown webhook job type: {job.type}")

    @staticmethod
    def _event_exists(db: Session, waybill: str, status: str, status_time_key: str) -> bool:
        return db.query(ShipmentTrackingEvent.id).filter(
            ShipmentTrackingEvent.waybill == waybill,
            ShipmentTrackingEvent.status == status,
            ShipmentTrackingEvent.status_time_key == status_time_key,
        ).first() is not None

    @staticmethod
    def _document_exists(db: Session, waybill: str, document_type: str, image_url: str) -> bool:
        return db.query(ShipmentDocument.id).filter(
            ShipmentDocument.waybill == waybill,
            ShipmentDocument.document_type == document_type,
            ShipmentDocument.image_url == image_url,
        ).first() is not None

    def _commit(self, db: Session, dedup_key: str) -> None:
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise DuplicateEventError(dedup_key=dedup_key) from e

    def process_scan_push(self, cleaned: Dict[str, Any]) -> Dict[str, Any]:
        shipment = cleaned["Shipment"]
        status = shipment["Status"]
        waybill = shipment["AWB"]
        raw_status = status["Status"]
        status_date_time, time_key = resolve_status_time(cleaned)
        dedup_key = scan_dedup_key(waybill, raw_status, time_key)

        db = self.session_factory()
        try:
            if self._event_exists(db, waybill, raw_status, time_key):
                raise DuplicateEventError(dedup_key=dedup_key)

            event = ShipmentTrackingEvent(
                waybill=waybill,
                reference_no=shipment.get("ReferenceNo"),
                status=raw_status,
                status_type=status.get("StatusType"),
                status_date_time=status_date_time,
                status_time_key=time_key,
                status_location=status.get("StatusLocation"),
                instructions=status.get("Instructions"),
                nsl_code=shipment.get("NSLCode"),
                sort_code=shipment.get("Sortcode"),
                pickup_date=parse_carrier_datetime(shipment.get("PickUpDate")),
                raw_payload=cleaned,
            )
            db.add(event)

            order = find_order(db, shipment.get("ReferenceNo"), waybill)
            tracking = db.query(TrackingOrder).filter(TrackingOrder.waybill == waybill).first()
            if tracking is None and order is not None and order.waybill and order.pickup_request_id:
                tracking = build_tracking_record(order)
                db.add(tracking)

            mapped = normalize(raw_status)
            is_fallback = mapped is None
            if is_fallback and (tracking is not None or order is not None):
                previous = tracking.current_status if tracking is not None else order.status
                mapped = fallback_status(raw_status, previous)
            event.mapped_status = mapped

            result = None
            if mapped and (tracking is not None or order is not None):
                update = StatusUpdate(
                    raw_status=raw_status,
                    mapped_status=mapped,
                    is_fallback=is_fallback,
                    status_type=status.get("StatusType"),
                    location=status.get("StatusLocation"),
                    date_time=status_date_time,
                    instructions=status.get("Instructions"),
                    received_by=status.get("RecievedBy"),
                    nsl_code=shipment.get("NSLCode"),
                    sort_code=shipment.get("Sortcode"),
                    raw_data=cleaned,
                )
                result = apply_transition(db, update, source=SOURCE_WEBHOOK, tracking=tracking, order=order)

            if order is not None:
                event.order = order
            else:
                logger.warning(
                    f"Scan push for unknown waybill {waybill}",
                    extra={"waybill": waybill, "reference_no": shipment.get("ReferenceNo")},
                )
            event.processed = True
            event.processed_at = datetime.utcnow()

            self._commit(db, dedup_key)

            if result is not None and result.should_notify:
                safe_notify(
                    self.notifier,
                    (order.user_id if order else None) or (tracking.user_id if tracking else None),
                    build_status_event(
                        order_id=order.order_id if order else tracking.order_id,
                        waybill=waybill,
                        status=result.current_status,
                        old_status=result.previous_status,
                        location=status.get("StatusLocation"),
                        source=SOURCE_WEBHOOK,
                    ),
                )

            logger.info(
                f"Scan push {raw_status} for {waybill} processed",
                extra={
                    "waybill": waybill,
                    "mapped_status": mapped,
                    "order_updated": bool(result and result.order_updated),
                },
            )
            return {
                "event_id": event.id,
                "waybill": waybill,
                "order_id": order.order_id if order else None,
                "status": mapped,
                "order_updated": bool(result and result.order_updated),
                "duplicate": False,
            }
        finally:
            db.close()

    def _store_document(
        self,
        kind: str,
        cleaned: Dict[str, Any],
        *,
        order_lookup_id: Optional[str] = None,
        patch_order: Optional[Callable[[Order, str], None]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        document_type, waybill_field, image_field = IMAGE_JOBS[kind]
        waybill = cleaned[waybill_field]
        data = _decode(cleaned, image_field)
        folder = f"{IMAGE_FOLDER}/{document_type}"
        image_url = self.image_store.url_for(folder, data)
        dedup_key = document_dedup_key(waybill, document_type, image_url)

        db = self.session_factory()
        try:
            if self._document_exists(db, waybill, document_type, image_url):
                raise DuplicateEventError(dedup_key=dedup_key)

            image_url = self.image_store.save(folder, data)
            _, mime_type = sniff_image_type(data)

            order = find_order(db, order_lookup_id, waybill)
            document = ShipmentDocument(
                waybill=waybill,
                document_type=document_type,
                image_url=image_url,
                file_size=len(data),
                mime_type=mime_type,
                order=order,
                **(extra or {}),
            )
            db.add(document)
            if order is not None and patch_order is not None:
                patch_order(order, image_url)
            elif order is None:
                logger.warning(
                    f"{document_type} received for unknown waybill {waybill}",
                    extra={"waybill": waybill, "document_type": document_type},
                )

            self._commit(db, dedup_key)

            if order is not None and document_type == DocumentType.EPOD.value:
                safe_notify(self.notifier, order.user_id, {
                    "type": EPOD_RECEIVED,
                    "order_id": order.order_id,
                    "waybill": waybill,
                    "epod_url": image_url,
                    "timestamp": datetime.utcnow().isoformat() + "Z",
                })

            logger.info(
                f"Stored {document_type} for {waybill}",
                extra={"waybill": waybill, "image_url": image_url, "size": len(data)},
            )
            return {
                "document_id": document.id,
                "waybill": waybill,
                "image_url": image_url,
                "order_id": order.order_id if order else None,
                "duplicate": False,
            }
        finally:
            db.close()

    def process_epod(self, cleaned: Dict[str, Any]) -> Dict[str, Any]:
        def patch(order: Order, url: str) -> None:
            order.epod_url = url
            order.epod_date = datetime.utcnow()

        return self._store_document(
            WebhookType.EPOD.value,
            cleaned,
            order_lookup_id=cleaned.get("orderID"),
            patch_order=patch,
            extra={"carrier_order_id": cleaned.get("orderID")},
        )

    def process_sorter_image(self, cleaned: Dict[str, Any]) -> Dict[str, Any]:
        def patch(order: Order, url: str) -> None:
            # First weight photo wins
            if not order.weight_photo_url:
                order.weight_photo_url = url

        return self._store_document(
            WebhookType.SORTER_IMAGE.value,
            cleaned,
            patch_order=patch,
            extra={"doc_reference": cleaned.get("doc")},
        )

    def process_qc_image(self, cleaned: Dict[str, Any]) -> Dict[str, Any]:
        def patch(order: Order, url: str) -> None:
            order.qc_image_url = url

        return self._store_document(
            WebhookType.QC_IMAGE.value,
            cleaned,
            order_lookup_id=cleaned.get("returnId"),
            patch_order=patch,
            extra={"return_id": cleaned.get("returnId")},
        )
