"""
Order Model

Projection of the canonical order aggregate that shipment reconciliation
reads and writes: identifiers, the canonical status with its history, and
the document URLs patched in by carrier webhooks.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime

from shipsarthi.db.base import Base


class Order(Base):
    """Order - canonical shipment status owner"""
    __tablename__ = "orders"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Identity
    order_id = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)
    waybill = Column(String(64), unique=True, nullable=True, index=True)
    reference_id = Column(String(100), nullable=True, index=True)

    # Pickup request (tracking starts once one exists)
    pickup_request_id = Column(String(100), nullable=True)
    pickup_request_date = Column(DateTime, nullable=True)

    # Canonical status
    status = Column(String(50), nullable=False, default="new", index=True)
    carrier_status = Column(String(255), nullable=True)  # Last raw carrier string
    last_status_update = Column(DateTime, nullable=True)

    # Terminal dates
    delivered_date = Column(DateTime, nullable=True)
    cancelled_date = Column(DateTime, nullable=True)
    rto_date = Column(DateTime, nullable=True)

    # Carrier documents
    epod_url = Column(String(500), nullable=True)
    epod_date = Column(DateTime, nullable=True)
    weight_photo_url = Column(String(500), nullable=True)
    qc_image_url = Column(String(500), nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )

    def __repr__(self):
        return f"<Order {self.order_id} ({self.status})>"


class OrderStatusHistory(Base):
    """Order status change log entry"""
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status = Column(String(50), nullable=False)
    previous_status = Column(String(50), nullable=True)

    # automated_tracking, webhook, resync, manual
    source = Column(String(50), nullable=False, default="manual")
    remarks = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    is_fallback = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    order = relationship("Order", back_populates="status_history")

    def __repr__(self):
        return f"<OrderStatusHistory {self.previous_status} -> {self.status} ({self.source})>"
