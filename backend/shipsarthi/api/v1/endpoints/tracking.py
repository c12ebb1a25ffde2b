"""
Tracking endpoints

Manual reconciliation triggers and read access to tracking records.
The triggers call the carrier once per shipment, so they are rate limited.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from shipsarthi.api.v1.deps import get_reconciler
from shipsarthi.core.limiter import limiter
from shipsarthi.core.settings import settings
from shipsarthi.db.session import get_db
from shipsarthi.exceptions import NotFoundError
from shipsarthi.logging_config import get_logger
from shipsarthi.models.tracking_order import TrackingOrder
from shipsarthi.schemas.tracking import (
    ReconcilerStatusResponse,
    ReconcileSummaryResponse,
    ResyncSummaryResponse,
    TrackingOrderResponse,
    TrackResultResponse,
)
from shipsarthi.services.tracking_service import TrackingReconciler

logger = get_logger(__name__)

router = APIRouter()


# ============================================================================
# Reconciliation triggers
# ============================================================================

@router.post("/reconcile", response_model=ReconcileSummaryResponse)
@limiter.limit(settings.RATE_LIMIT_ADMIN)
def reconcile_all(request: Request, reconciler: TrackingReconciler = Depends(get_reconciler)):
    """Run a reconciliation pass now. Skipped if one is already running."""
    logger.info("Manual reconciliation pass requested")
    return reconciler.reconcile_all().to_dict()


@router.post("/force-refresh", response_model=ReconcileSummaryResponse)
@limiter.limit(settings.RATE_LIMIT_ADMIN)
def force_refresh(request: Request, reconciler: TrackingReconciler = Depends(get_reconciler)):
    """Re-track every record with a pickup request, including finished ones."""
    logger.info("Forced tracking refresh requested")
    return reconciler.force_refresh_all().to_dict()


@router.post("/resync", response_model=ResyncSummaryResponse)
@limiter.limit(settings.RATE_LIMIT_ADMIN)
def resync_orders(request: Request, reconciler: TrackingReconciler = Depends(get_reconciler)):
    """Copy tracking record statuses back onto their orders."""
    return reconciler.resync_canonical_orders()


@router.post("/{waybill}/reconcile", response_model=TrackResultResponse)
@limiter.limit(settings.RATE_LIMIT_ADMIN)
def reconcile_one(
    request: Request,
    waybill: str,
    reconciler: TrackingReconciler = Depends(get_reconciler),
):
    return reconciler.reconcile_one(waybill).to_dict()


# ============================================================================
# Read access
# ============================================================================

@router.get("/status", response_model=ReconcilerStatusResponse)
def reconciler_status(reconciler: TrackingReconciler = Depends(get_reconciler)):
    return reconciler.get_status()


@router.get("/{waybill}", response_model=TrackingOrderResponse)
def read_tracking_record(waybill: str, db: Session = Depends(get_db)):
    record = db.query(TrackingOrder).filter(TrackingOrder.waybill == waybill).first()
    if record is None:
        raise NotFoundError("Tracking record", waybill)
    return TrackingOrderResponse.model_validate(record)
