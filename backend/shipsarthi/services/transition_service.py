"""
Shipment status transition application

Shared by the tracking reconciler and the webhook pipeline. Functions here
mutate ORM objects and add rows to the session but never commit; the
caller owns the transaction and fires notifications only after commit.

Rules:
- Every carrier ping appends a tracking history entry, even when nothing
  changes, so the history is a full audit trail.
- `current_status` only moves along SHIPMENT_STATUS_TRANSITIONS. Once it is
  terminal it never changes again; regressions are recorded (applied=False)
  and logged.
- The canonical order follows the tracking record's status and is never
  overwritten once terminal.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from shipsarthi.core.settings import settings
from shipsarthi.core.status_config import (
    INITIAL_TRACKING_STATUS,
    SHIPMENT_STATUS_TRANSITIONS,
    ShipmentStatus,
    is_valid_shipment_transition,
)
from shipsarthi.logging_config import get_logger
from shipsarthi.models.order import Order, OrderStatusHistory
from shipsarthi.models.tracking_order import (
    TrackingFailure,
    TrackingOrder,
    TrackingStatusHistory,
)
from shipsarthi.services.status_mapper import is_terminal

logger = get_logger(__name__)

SOURCE_AUTOMATED_TRACKING = "automated_tracking"
SOURCE_WEBHOOK = "webhook"
SOURCE_RESYNC = "resync"


@dataclass
class StatusUpdate:
    """A mapped carrier status plus the scan details that came with it."""
    raw_status: str
    mapped_status: str
    is_fallback: bool = False
    status_type: Optional[str] = None
    location: Optional[str] = None
    date_time: Optional[datetime] = None
    instructions: Optional[str] = None
    received_by: Optional[str] = None
    nsl_code: Optional[str] = None
    sort_code: Optional[str] = None
    raw_data: Optional[Dict[str, Any]] = None


@dataclass
class TransitionResult:
    previous_status: Optional[str] = None
    current_status: Optional[str] = None
    status_changed: bool = False
    became_terminal: bool = False
    regression_ignored: bool = False
    order_previous_status: Optional[str] = None
    order_status: Optional[str] = None
    order_updated: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def should_notify(self) -> bool:
        return self.status_changed or self.order_updated


def find_order(db: Session, order_id: Optional[str] = None, waybill: Optional[str] = None) -> Optional[Order]:
    """Order by order id, falling back to the waybill. None if neither matches."""
    order = None
    if order_id:
        order = db.query(Order).filter(Order.order_id == order_id).first()
    if order is None and waybill:
        order = db.query(Order).filter(Order.waybill == waybill).first()
    return order


def build_tracking_record(order: Order) -> TrackingOrder:
    """New tracking record for an order that has a waybill and a pickup request."""
    status = order.status if order.status in SHIPMENT_STATUS_TRANSITIONS else INITIAL_TRACKING_STATUS
    if status in (ShipmentStatus.NEW.value, ShipmentStatus.READY_TO_SHIP.value):
        status = INITIAL_TRACKING_STATUS
    terminal = is_terminal(status)
    return TrackingOrder(
        order_id=order.order_id,
        user_id=order.user_id,
        waybill=order.waybill,
        reference_id=order.reference_id,
        pickup_request_id=order.pickup_request_id,
        pickup_request_date=order.pickup_request_date,
        current_status=status,
        is_tracking_active=not terminal,
        is_delivered=status == ShipmentStatus.DELIVERED.value,
        tracking_count=0,
        ndr_attempts=0,
    )


def record_tracking_failure(
    record: TrackingOrder,
    error: str,
    error_type: str = "SYSTEM_ERROR",
    status_code: Optional[int] = None,
    limit: Optional[int] = None,
) -> TrackingFailure:
    """Append to the bounded failure log, evicting the oldest entries."""
    limit = limit or settings.TRACKING_FAILURE_LOG_SIZE
    failure = TrackingFailure(
        timestamp=datetime.utcnow(),
        error=str(error)[:2000],
        error_type=error_type,
        status_code=status_code,
    )
    record.failures.append(failure)
    while len(record.failures) > limit:
        record.failures.pop(0)
    return failure


def _apply_terminal_fields(record: TrackingOrder, update: StatusUpdate, at: datetime) -> None:
    status = record.current_status
    record.is_tracking_active = False
    if status == ShipmentStatus.DELIVERED.value:
        record.is_delivered = True
        record.delivered_at = at
        record.delivered_by = update.received_by
        record.delivery_location = update.location
    elif status == ShipmentStatus.CANCELLED.value:
        record.cancelled_at = at
        record.cancellation_reason = update.instructions or update.raw_status
    elif status == ShipmentStatus.RTO.value:
        record.rto_at = at
        record.rto_reason = update.instructions or update.raw_status


def apply_tracking_update(
    db: Session,
    record: TrackingOrder,
    update: StatusUpdate,
    source: str,
    result: Optional[TransitionResult] = None,
) -> TransitionResult:
    """Append history and advance `current_status` if the transition is allowed."""
    result = result or TransitionResult()
    now = datetime.utcnow()
    previous = record.current_status

    allowed = not is_terminal(previous) and is_valid_shipment_transition(previous, update.mapped_status)
    changed = allowed and update.mapped_status != previous

    record.status_history.append(TrackingStatusHistory(
        status=update.raw_status,
        status_type=update.status_type,
        status_date_time=update.date_time,
        location=update.location,
        instructions=update.instructions,
        nsl_code=update.nsl_code,
        sort_code=update.sort_code,
        mapped_status=update.mapped_status,
        is_fallback=update.is_fallback,
        applied=allowed,
        source=source,
        raw_data=update.raw_data,
        created_at=now,
    ))

    # Diagnostics refresh even on terminal records
    record.api_status = update.raw_status
    if update.status_type:
        record.delhivery_status = update.status_type

    if not allowed:
        result.regression_ignored = update.mapped_status != previous
        if result.regression_ignored:
            logger.info(
                f"Ignoring {previous} -> {update.mapped_status} for {record.waybill}",
                extra={"waybill": record.waybill, "source": source, "raw_status": update.raw_status},
            )
    elif update.mapped_status == ShipmentStatus.NDR.value:
        # Count each distinct non-delivery attempt once
        if changed or (update.date_time and update.date_time != record.last_ndr_date):
            record.ndr_attempts = (record.ndr_attempts or 0) + 1
            record.last_ndr_date = update.date_time or now
            record.ndr_reason = update.instructions or update.raw_status

    if changed:
        record.current_status = update.mapped_status
        if is_terminal(update.mapped_status):
            _apply_terminal_fields(record, update, update.date_time or now)
            result.became_terminal = True
        logger.info(
            f"Tracking {record.waybill}: {previous} -> {record.current_status}",
            extra={
                "waybill": record.waybill,
                "source": source,
                "raw_status": update.raw_status,
                "is_fallback": update.is_fallback,
            },
        )

    result.previous_status = previous
    result.current_status = record.current_status
    result.status_changed = changed
    return result


def sync_order_status(
    db: Session,
    order: Order,
    status: str,
    *,
    source: str,
    remarks: Optional[str] = None,
    location: Optional[str] = None,
    is_fallback: bool = False,
    raw_status: Optional[str] = None,
    at: Optional[datetime] = None,
    enforce_progression: bool = True,
) -> bool:
    """
    Write `status` to the canonical order if it differs.

    Never overwrites a terminal order. With enforce_progression the write
    must also be an allowed transition from the order's current status;
    callers that follow a tracking record pass False since the record is
    already the authority.

    Returns True when the order status was written.
    """
    now = datetime.utcnow()
    if raw_status:
        order.carrier_status = raw_status
        order.last_status_update = now

    previous = order.status
    if previous == status:
        return False
    if is_terminal(previous):
        logger.warning(
            f"Order {order.order_id} is {previous}; not overwriting with {status}",
            extra={"order_id": order.order_id, "waybill": order.waybill, "source": source},
        )
        return False
    if enforce_progression and not is_valid_shipment_transition(previous, status):
        logger.info(
            f"Order {order.order_id}: ignoring {previous} -> {status}",
            extra={"order_id": order.order_id, "source": source},
        )
        return False

    order.status = status
    order.last_status_update = now
    at = at or now
    if status == ShipmentStatus.DELIVERED.value:
        order.delivered_date = at
    elif status == ShipmentStatus.CANCELLED.value:
        order.cancelled_date = at
    elif status == ShipmentStatus.RTO.value:
        order.rto_date = at

    order.status_history.append(OrderStatusHistory(
        status=status,
        previous_status=previous,
        source=source,
        remarks=remarks,
        location=location,
        is_fallback=is_fallback,
        created_at=now,
    ))
    return True


def apply_transition(
    db: Session,
    update: StatusUpdate,
    *,
    source: str,
    tracking: Optional[TrackingOrder] = None,
    order: Optional[Order] = None,
) -> TransitionResult:
    """
    Apply a mapped carrier status to a tracking record and its order.

    With a tracking record the order follows the record's resulting status;
    without one the order only moves forward along the transition table.
    """
    result = TransitionResult()

    if tracking is not None:
        apply_tracking_update(db, tracking, update, source, result)
        target = tracking.current_status
    else:
        target = update.mapped_status

    if order is not None:
        result.order_previous_status = order.status
        result.order_updated = sync_order_status(
            db,
            order,
            target,
            source=source,
            remarks=update.instructions or f"Status updated to {update.raw_status}",
            location=update.location,
            is_fallback=update.is_fallback,
            raw_status=update.raw_status,
            at=update.date_time,
            enforce_progression=tracking is None,
        )
        result.order_status = order.status
        if tracking is None:
            result.previous_status = result.order_previous_status
            result.current_status = order.status

    return result
