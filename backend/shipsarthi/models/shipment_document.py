"""
Shipment Document Model

Images pushed by the carrier: proof of delivery, sorter weight photos and
return QC images.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime

from shipsarthi.db.base import Base


class ShipmentDocument(Base):
    """Carrier-supplied shipment image"""
    __tablename__ = "shipment_documents"
    __table_args__ = (
        UniqueConstraint(
            "waybill", "document_type", "image_url", name="uq_shipment_document_dedup"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    waybill = Column(String(64), nullable=False, index=True)

    # epod, sorter_image, qc_image, other
    document_type = Column(String(50), nullable=False, index=True)

    image_url = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=True)  # Bytes after decoding
    mime_type = Column(String(100), nullable=True)

    # Optional references supplied by the carrier
    order_ref = Column(
        Integer,
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    carrier_order_id = Column(String(100), nullable=True)  # EPOD orderID
    return_id = Column(String(100), nullable=True)  # QC returnId
    doc_reference = Column(String(255), nullable=True)  # Sorter doc field

    metadata_json = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    order = relationship("Order")

    def __repr__(self):
        return f"<ShipmentDocument {self.document_type} for {self.waybill}>"
