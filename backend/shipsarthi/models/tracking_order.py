"""
Tracking Order Model

One row per shipment under carrier surveillance. The reconciler and the
webhook pipeline advance `current_status`; `status_history` is append-only
and `failures` keeps the most recent carrier errors.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Boolean, JSON
)
from sqlalchemy.orm import relationship
from datetime import datetime

from shipsarthi.db.base import Base


class TrackingOrder(Base):
    """Shipment tracking record"""
    __tablename__ = "tracking_orders"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Identity
    order_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)
    waybill = Column(String(64), unique=True, nullable=False, index=True)
    reference_id = Column(String(100), nullable=True)

    # Pickup request
    pickup_request_id = Column(String(100), nullable=True, index=True)
    pickup_request_date = Column(DateTime, nullable=True)
    pickup_request_status = Column(String(50), nullable=True)

    # Status
    current_status = Column(String(50), nullable=False, default="pickups_manifests", index=True)
    delhivery_status = Column(String(100), nullable=True)  # StatusType from the carrier
    api_status = Column(String(255), nullable=True)  # Raw carrier status string

    # Tracking control
    is_tracking_active = Column(Boolean, nullable=False, default=True, index=True)
    is_delivered = Column(Boolean, nullable=False, default=False, index=True)

    # Diagnostics
    tracking_count = Column(Integer, nullable=False, default=0)
    last_tracked_at = Column(DateTime, nullable=True, index=True)
    last_tracking_response = Column(JSON, nullable=True)

    # Delivery
    delivered_at = Column(DateTime, nullable=True)
    delivered_by = Column(String(255), nullable=True)  # Receiver name
    delivery_location = Column(String(255), nullable=True)

    # Cancellation
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    # Return to origin
    rto_at = Column(DateTime, nullable=True)
    rto_reason = Column(Text, nullable=True)

    # Non-delivery reports
    ndr_attempts = Column(Integer, nullable=False, default=0)
    last_ndr_date = Column(DateTime, nullable=True)
    ndr_reason = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    status_history = relationship(
        "TrackingStatusHistory",
        back_populates="tracking_order",
        cascade="all, delete-orphan",
        order_by="TrackingStatusHistory.id",
    )
    failures = relationship(
        "TrackingFailure",
        back_populates="tracking_order",
        cascade="all, delete-orphan",
        order_by="TrackingFailure.id",
    )

    def __repr__(self):
        return f"<TrackingOrder {self.waybill} ({self.current_status})>"


class TrackingStatusHistory(Base):
    """One carrier ping for a tracking record, kept even when nothing changed"""
    __tablename__ = "tracking_status_history"

    id = Column(Integer, primary_key=True, index=True)
    tracking_order_id = Column(
        Integer,
        ForeignKey("tracking_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Raw carrier values
    status = Column(String(255), nullable=True)
    status_type = Column(String(100), nullable=True)
    status_date_time = Column(DateTime, nullable=True)
    location = Column(String(255), nullable=True)
    instructions = Column(Text, nullable=True)
    nsl_code = Column(String(50), nullable=True)
    sort_code = Column(String(100), nullable=True)

    # Mapped value and how it was reached
    mapped_status = Column(String(50), nullable=True)
    is_fallback = Column(Boolean, nullable=False, default=False)
    applied = Column(Boolean, nullable=False, default=True)  # False when a regression was ignored

    # automated_tracking, webhook
    source = Column(String(50), nullable=False, default="automated_tracking")
    raw_data = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    tracking_order = relationship("TrackingOrder", back_populates="status_history")

    def __repr__(self):
        return f"<TrackingStatusHistory {self.status} -> {self.mapped_status}>"


class TrackingFailure(Base):
    """Failed carrier call for a tracking record (bounded, oldest evicted first)"""
    __tablename__ = "tracking_failures"

    id = Column(Integer, primary_key=True, index=True)
    tracking_order_id = Column(
        Integer,
        ForeignKey("tracking_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)
    error = Column(Text, nullable=False)
    error_type = Column(String(50), nullable=False, default="SYSTEM_ERROR")
    status_code = Column(Integer, nullable=True)

    tracking_order = relationship("TrackingOrder", back_populates="failures")

    def __repr__(self):
        return f"<TrackingFailure {self.error_type} at {self.timestamp}>"
