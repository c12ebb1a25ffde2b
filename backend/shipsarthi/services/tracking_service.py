"""
Tracking Reconciler

Periodically pulls shipment status from the carrier for every in-flight
tracking record and applies it through transition_service.

- One pass at a time: overlapping scheduled runs are skipped, not queued.
- Carrier calls are sequential with a small delay between them.
- A failing shipment is logged to its bounded failure log and counted as
  failed; the rest of the batch carries on.

Lifecycle: the application constructs one TrackingReconciler, calls
start() on startup and stop() on shutdown.
"""
import threading
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Callable, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shipsarthi.core.settings import settings
from shipsarthi.core.status_config import ShipmentStatus
from shipsarthi.exceptions import CarrierError, NotFoundError, ValidationError
from shipsarthi.integrations.delhivery import CarrierGateway
from shipsarthi.logging_config import get_logger
from shipsarthi.models.order import Order
from shipsarthi.models.tracking_order import TrackingOrder
from shipsarthi.services.notification_service import Notifier, build_status_event, safe_notify
from shipsarthi.services.status_extraction import extract_status
from shipsarthi.services.status_mapper import fallback_status, normalize
from shipsarthi.services.transition_service import (
    SOURCE_AUTOMATED_TRACKING,
    SOURCE_RESYNC,
    StatusUpdate,
    apply_transition,
    build_tracking_record,
    find_order,
    record_tracking_failure,
    sync_order_status,
)

logger = get_logger(__name__)

JOB_ID = "tracking_reconcile"


@dataclass
class TrackResult:
    waybill: str
    success: bool
    status: Optional[str] = None
    previous_status: Optional[str] = None
    changed: bool = False
    delivered: bool = False
    is_fallback: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class ReconcileSummary:
    total: int = 0
    successful: int = 0
    failed: int = 0
    delivered: int = 0
    skipped: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def add(self, result: TrackResult) -> None:
        if result.success:
            self.successful += 1
        else:
            self.failed += 1
        if result.delivered:
            self.delivered += 1

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat() if self.started_at else None
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        if self.started_at and self.finished_at:
            data["duration_ms"] = int((self.finished_at - self.started_at).total_seconds() * 1000)
        return data


class TrackingReconciler:
    """Scheduled carrier polling for in-flight shipments."""

    def __init__(
        self,
        carrier: CarrierGateway,
        session_factory: Callable[[], Session],
        notifier: Optional[Notifier] = None,
        request_delay: Optional[float] = None,
        interval_minutes: Optional[int] = None,
        timezone: Optional[str] = None,
    ):
        self.carrier = carrier
        self.session_factory = session_factory
        self.notifier = notifier
        self.request_delay = (
            settings.TRACKING_REQUEST_DELAY_SECONDS if request_delay is None else request_delay
        )
        self.interval_minutes = interval_minutes or settings.TRACKING_INTERVAL_MINUTES
        self.timezone = timezone or settings.TRACKING_TIMEZONE

        self._state_lock = threading.Lock()
        self._in_progress = False
        self._stop_event = threading.Event()
        self._scheduler: Optional[BackgroundScheduler] = None
        self.last_summary: Optional[ReconcileSummary] = None

    # ------------------------------------------------------------------
    # Batch passes
    # ------------------------------------------------------------------

    def reconcile_all(self) -> ReconcileSummary:
        """Track every active record with a pickup request."""
        return self._run_pass(
            "reconcile",
            [
                TrackingOrder.is_tracking_active.is_(True),
                TrackingOrder.is_delivered.is_(False),
                TrackingOrder.pickup_request_id.isnot(None),
                TrackingOrder.pickup_request_id != "",
            ],
        )

    def force_refresh_all(self) -> ReconcileSummary:
        """Track every record with a pickup request, terminal ones included."""
        return self._run_pass(
            "force_refresh",
            [
                TrackingOrder.pickup_request_id.isnot(None),
                TrackingOrder.pickup_request_id != "",
            ],
        )

    def _begin_run(self) -> bool:
        with self._state_lock:
            if self._in_progress:
                return False
            self._in_progress = True
            return True

    def _run_pass(self, label: str, filters: List) -> ReconcileSummary:
        if not self._begin_run():
            logger.info(f"Tracking {label} skipped: a pass is already in progress")
            return ReconcileSummary(skipped=True)

        summary = ReconcileSummary(started_at=datetime.utcnow())
        db = self.session_factory()
        try:
            self.backfill_tracking_records(db)

            ids = [
                row.id
                for row in db.query(TrackingOrder.id)
                .filter(*filters)
                .order_by(TrackingOrder.last_tracked_at.asc().nulls_first(), TrackingOrder.id)
                .all()
            ]
            summary.total = len(ids)
            logger.info(f"Tracking {label} started for {len(ids)} shipments")

            for index, record_id in enumerate(ids):
                if self._stop_event.is_set():
                    logger.info(f"Tracking {label} interrupted by shutdown after {index} shipments")
                    break
                summary.add(self._track_by_id(db, record_id))
                if index < len(ids) - 1 and self.request_delay > 0:
                    if self._stop_event.wait(self.request_delay):
                        logger.info(f"Tracking {label} interrupted by shutdown after {index + 1} shipments")
                        break
        finally:
            db.close()
            summary.finished_at = datetime.utcnow()
            self.last_summary = summary
            with self._state_lock:
                self._in_progress = False

        logger.info(
            f"Tracking {label} finished: {summary.successful} ok, {summary.failed} failed, "
            f"{summary.delivered} delivered of {summary.total}",
            extra=summary.to_dict(),
        )
        return summary

    def _track_by_id(self, db: Session, record_id: int) -> TrackResult:
        record = db.get(TrackingOrder, record_id)
        if record is None:
            return TrackResult(waybill=str(record_id), success=False, error="record vanished")
        waybill = record.waybill
        try:
            return self._track_record(db, record)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"Database error while tracking {waybill}: {e}",
                extra={"waybill": waybill},
                exc_info=True,
            )
            return TrackResult(waybill=waybill, success=False, error=str(e), error_type="DATABASE_ERROR")
        except Exception as e:
            db.rollback()
            logger.error(
                f"Unexpected error while applying tracking for {waybill}: {e}",
                extra={"waybill": waybill},
                exc_info=True,
            )
            return TrackResult(waybill=waybill, success=False, error=str(e), error_type="SYSTEM_ERROR")

    # ------------------------------------------------------------------
    # Single shipment
    # ------------------------------------------------------------------

    def _fail(self, db: Session, record: TrackingOrder, error: str, error_type: str,
              status_code: Optional[int] = None) -> TrackResult:
        record_tracking_failure(record, error, error_type=error_type, status_code=status_code)
        db.commit()
        return TrackResult(
            waybill=record.waybill,
            success=False,
            status=record.current_status,
            error=error,
            error_type=error_type,
        )

    def _track_record(self, db: Session, record: TrackingOrder) -> TrackResult:
        waybill = record.waybill
        try:
            payload = self.carrier.track(waybill, record.reference_id)
        except CarrierError as e:
            logger.warning(
                f"Carrier tracking failed for {waybill}: {e.message}",
                extra={"waybill": waybill, "error_type": e.error_code, "failures": len(record.failures) + 1},
            )
            return self._fail(db, record, e.message, e.error_code, e.carrier_status_code)
        except Exception as e:
            logger.error(
                f"Unexpected error tracking {waybill}: {e}",
                extra={"waybill": waybill},
                exc_info=True,
            )
            return self._fail(db, record, str(e), "SYSTEM_ERROR")

        record.tracking_count = (record.tracking_count or 0) + 1
        record.last_tracked_at = datetime.utcnow()
        record.last_tracking_response = payload

        extracted = extract_status(payload)
        if extracted is None:
            logger.warning(
                f"No status found in tracking response for {waybill}",
                extra={"waybill": waybill},
            )
            return self._fail(db, record, "No status in tracking response", "CARRIER_DATA_ERROR")

        mapped = normalize(extracted.status)
        is_fallback = mapped is None
        if is_fallback:
            mapped = fallback_status(extracted.status, record.current_status)

        update = StatusUpdate(
            raw_status=extracted.status,
            mapped_status=mapped,
            is_fallback=is_fallback,
            status_type=extracted.status_type,
            location=extracted.location,
            date_time=extracted.date_time,
            instructions=extracted.instructions,
            received_by=extracted.received_by,
            raw_data=extracted.to_dict(),
        )

        order = find_order(db, record.order_id, waybill)
        result = apply_transition(
            db, update, source=SOURCE_AUTOMATED_TRACKING, tracking=record, order=order
        )
        db.commit()

        if result.should_notify:
            safe_notify(
                self.notifier,
                record.user_id or (order.user_id if order else None),
                build_status_event(
                    order_id=record.order_id,
                    waybill=waybill,
                    status=record.current_status,
                    old_status=result.previous_status,
                    location=extracted.location,
                    source=SOURCE_AUTOMATED_TRACKING,
                ),
            )

        delivered = result.became_terminal and record.current_status == ShipmentStatus.DELIVERED.value
        if order is None:
            logger.warning(
                f"No order found for tracking record {waybill} (order_id {record.order_id})",
                extra={"waybill": waybill, "order_id": record.order_id},
            )
            return TrackResult(
                waybill=waybill,
                success=False,
                status=record.current_status,
                previous_status=result.previous_status,
                changed=result.status_changed,
                delivered=delivered,
                is_fallback=is_fallback,
                error="Order not found",
                error_type="ORDER_NOT_FOUND",
            )

        return TrackResult(
            waybill=waybill,
            success=True,
            status=record.current_status,
            previous_status=result.previous_status,
            changed=result.status_changed,
            delivered=delivered,
            is_fallback=is_fallback,
        )

    def reconcile_one(self, waybill: str) -> TrackResult:
        """
        Track one shipment now (manual correction).

        Creates the tracking record from the order if needed. Raises
        NotFoundError if nothing is known about the waybill.
        """
        db = self.session_factory()
        try:
            record = db.query(TrackingOrder).filter(TrackingOrder.waybill == waybill).first()
            if record is None:
                order = find_order(db, waybill=waybill)
                if order is None:
                    raise NotFoundError("Shipment", waybill)
                if not order.pickup_request_id:
                    raise ValidationError(
                        f"Order {order.order_id} has no pickup request yet",
                        field="pickup_request_id",
                    )
                record = build_tracking_record(order)
                db.add(record)
                db.flush()
                logger.info(f"Created tracking record for {waybill}")
            return self._track_record(db, record)
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def backfill_tracking_records(self, db: Optional[Session] = None) -> int:
        """Create tracking records for orders with a waybill and pickup request but none yet."""
        own_session = db is None
        db = db or self.session_factory()
        try:
            orders = (
                db.query(Order)
                .outerjoin(TrackingOrder, TrackingOrder.waybill == Order.waybill)
                .filter(
                    TrackingOrder.id.is_(None),
                    Order.waybill.isnot(None),
                    Order.waybill != "",
                    Order.pickup_request_id.isnot(None),
                    Order.pickup_request_id != "",
                )
                .all()
            )
            for order in orders:
                db.add(build_tracking_record(order))
            if orders:
                db.commit()
                logger.info(f"Backfilled {len(orders)} tracking records")
            return len(orders)
        finally:
            if own_session:
                db.close()

    def resync_canonical_orders(self) -> Dict[str, int]:
        """
        Re-align order statuses with their tracking records.

        Also repairs records flagged delivered whose current_status disagrees.
        Idempotent: a second run finds nothing to do.
        """
        summary = {"total": 0, "synced": 0, "skipped": 0, "errors": 0}
        db = self.session_factory()
        try:
            ids = [row.id for row in db.query(TrackingOrder.id).order_by(TrackingOrder.id).all()]
            summary["total"] = len(ids)
            for record_id in ids:
                try:
                    record = db.get(TrackingOrder, record_id)
                    if record.is_delivered and record.current_status != ShipmentStatus.DELIVERED.value:
                        logger.warning(
                            f"Repairing {record.waybill}: is_delivered set but status {record.current_status}",
                            extra={"waybill": record.waybill},
                        )
                        record.current_status = ShipmentStatus.DELIVERED.value
                        record.is_tracking_active = False

                    order = find_order(db, record.order_id, record.waybill)
                    if order is None:
                        summary["skipped"] += 1
                        db.commit()
                        continue

                    written = sync_order_status(
                        db,
                        order,
                        record.current_status,
                        source=SOURCE_RESYNC,
                        remarks="Resynced from tracking record",
                        enforce_progression=False,
                    )
                    db.commit()
                    summary["synced" if written else "skipped"] += 1
                except SQLAlchemyError as e:
                    db.rollback()
                    summary["errors"] += 1
                    logger.error(f"Resync failed for tracking record {record_id}: {e}", exc_info=True)
        finally:
            db.close()

        logger.info("Canonical order resync finished", extra=summary)
        return summary

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _scheduled_run(self) -> None:
        try:
            self.reconcile_all()
        except Exception:
            logger.exception("Scheduled tracking pass crashed")

    def start(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            return
        self._stop_event.clear()
        self._scheduler = BackgroundScheduler(timezone=self.timezone)
        self._scheduler.add_job(
            self._scheduled_run,
            "interval",
            minutes=self.interval_minutes,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(f"Tracking reconciler started (every {self.interval_minutes} min)")

    def stop(self, wait: bool = True) -> None:
        """Stop scheduling; an in-flight pass stops after its current shipment."""
        self._stop_event.set()
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Tracking reconciler stopped")
        self._scheduler = None

    def get_status(self) -> Dict:
        job = self._scheduler.get_job(JOB_ID) if self._scheduler is not None else None
        next_run = getattr(job, "next_run_time", None) if job else None
        return {
            "is_running": bool(self._scheduler and self._scheduler.running),
            "in_progress": self._in_progress,
            "interval_minutes": self.interval_minutes,
            "next_run": next_run.isoformat() if next_run else None,
            "last_run": self.last_summary.to_dict() if self.last_summary else None,
        }
