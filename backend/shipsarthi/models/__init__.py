"""Database models"""
from shipsarthi.models.order import Order, OrderStatusHistory
from shipsarthi.models.tracking_order import (
    TrackingOrder, TrackingStatusHistory, TrackingFailure
)
from shipsarthi.models.shipment_tracking_event import ShipmentTrackingEvent
from shipsarthi.models.shipment_document import ShipmentDocument
from shipsarthi.models.rate_card import RateCard

__all__ = [
    "Order",
    "OrderStatusHistory",
    "TrackingOrder",
    "TrackingStatusHistory",
    "TrackingFailure",
    "ShipmentTrackingEvent",
    "ShipmentDocument",
    "RateCard",
]
