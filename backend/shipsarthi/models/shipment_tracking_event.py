"""
Shipment Tracking Event Model

One row per distinct scan push received from the carrier. The unique
constraint on (waybill, status, status_time_key) is the dedup key: a
redelivered push fails the insert and is reported as a duplicate.

status_time_key is the normalized ISO timestamp when the carrier's
StatusDateTime parses, and the trimmed raw text when it does not, so a
redelivery always produces the same key.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Boolean, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime

from shipsarthi.db.base import Base


class ShipmentTrackingEvent(Base):
    """Webhook-sourced carrier scan event"""
    __tablename__ = "shipment_tracking_events"
    __table_args__ = (
        UniqueConstraint(
            "waybill", "status", "status_time_key", name="uq_tracking_event_dedup"
        ),
    )

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Identity
    waybill = Column(String(64), nullable=False, index=True)
    reference_no = Column(String(100), nullable=True, index=True)

    # Carrier status
    status = Column(String(255), nullable=False)
    status_type = Column(String(100), nullable=True)
    status_date_time = Column(DateTime, nullable=False, index=True)
    status_time_key = Column(String(64), nullable=False)
    status_location = Column(String(255), nullable=True)
    instructions = Column(Text, nullable=True)
    mapped_status = Column(String(50), nullable=True)

    # Carrier specific codes
    nsl_code = Column(String(50), nullable=True)
    sort_code = Column(String(100), nullable=True)
    pickup_date = Column(DateTime, nullable=True)

    raw_payload = Column(JSON, nullable=True)

    # Processing
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime, nullable=True)
    order_ref = Column(
        Integer,
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    order = relationship("Order")

    def __repr__(self):
        return f"<ShipmentTrackingEvent {self.waybill} {self.status} @ {self.status_date_time}>"
