"""
Tracking Schemas

Response models for shipment tracking records and reconciliation runs
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict


class TrackingStatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: Optional[str] = None
    mapped_status: Optional[str] = None
    status_type: Optional[str] = None
    status_date_time: Optional[datetime] = None
    location: Optional[str] = None
    instructions: Optional[str] = None
    is_fallback: bool = False
    applied: bool = True
    source: str
    created_at: datetime


class TrackingFailureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    error: str
    error_type: str
    status_code: Optional[int] = None


class TrackingOrderResponse(BaseModel):
    """Shipment tracking record with its history and recent failures"""
    model_config = ConfigDict(from_attributes=True)

    waybill: str
    order_id: str
    user_id: Optional[str] = None
    pickup_request_id: Optional[str] = None
    current_status: str
    api_status: Optional[str] = None
    delhivery_status: Optional[str] = None
    is_tracking_active: bool
    is_delivered: bool
    tracking_count: int
    last_tracked_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    delivered_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    rto_at: Optional[datetime] = None
    ndr_attempts: int = 0
    last_ndr_date: Optional[datetime] = None
    ndr_reason: Optional[str] = None
    status_history: List[TrackingStatusHistoryResponse] = []
    failures: List[TrackingFailureResponse] = []


class TrackResultResponse(BaseModel):
    waybill: str
    success: bool
    status: Optional[str] = None
    previous_status: Optional[str] = None
    changed: bool = False
    delivered: bool = False
    is_fallback: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None


class ReconcileSummaryResponse(BaseModel):
    total: int
    successful: int
    failed: int
    delivered: int
    skipped: bool = False
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    duration_ms: Optional[int] = None


class ResyncSummaryResponse(BaseModel):
    total: int
    synced: int
    skipped: int
    errors: int


class ReconcilerStatusResponse(BaseModel):
    is_running: bool
    in_progress: bool
    interval_minutes: int
    next_run: Optional[str] = None
    last_run: Optional[Dict[str, Any]] = None
