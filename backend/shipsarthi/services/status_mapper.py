"""
Carrier Status Mapper

Translates raw Delhivery status strings into internal shipment statuses.

The lookup table is the only primary mapping path: an unknown string maps
to None and the caller decides what to do. `fallback_status()` is a
separate, explicitly degraded heuristic whose results must be flagged
(`is_fallback=True`) wherever they are stored.
"""
import re
from typing import Dict, Optional

from shipsarthi.core.status_config import (
    DEFAULT_CATEGORY,
    INITIAL_TRACKING_STATUS,
    STATUS_CATEGORIES,
    ShipmentStatus,
    StatusCategory,
    is_terminal_status,
    status_value,
)
from shipsarthi.logging_config import get_logger

logger = get_logger(__name__)

_SEPARATORS = re.compile(r"[-_\s]+")

# Keys are in normalized form (see normalize_key)
CARRIER_STATUS_MAP: Dict[str, str] = {
    # Pickup / manifest
    "manifested": ShipmentStatus.PICKUPS_MANIFESTS.value,
    "manifest": ShipmentStatus.PICKUPS_MANIFESTS.value,
    "pickup": ShipmentStatus.PICKUPS_MANIFESTS.value,
    "pickup and manifest": ShipmentStatus.PICKUPS_MANIFESTS.value,
    "pickup scheduled": ShipmentStatus.PICKUPS_MANIFESTS.value,
    "pickup exception": ShipmentStatus.PICKUPS_MANIFESTS.value,
    "not picked": ShipmentStatus.PICKUPS_MANIFESTS.value,
    "ready to ship": ShipmentStatus.READY_TO_SHIP.value,

    # In transit (including misspellings seen in carrier payloads)
    "pending": ShipmentStatus.IN_TRANSIT.value,
    "in transit": ShipmentStatus.IN_TRANSIT.value,
    "intransit": ShipmentStatus.IN_TRANSIT.value,
    "in transist": ShipmentStatus.IN_TRANSIT.value,
    "intranist": ShipmentStatus.IN_TRANSIT.value,
    "picked up": ShipmentStatus.IN_TRANSIT.value,
    "reached at destination": ShipmentStatus.IN_TRANSIT.value,
    "reached destination city": ShipmentStatus.IN_TRANSIT.value,

    # Out for delivery
    "out for delivery": ShipmentStatus.OUT_FOR_DELIVERY.value,
    "ofd": ShipmentStatus.OUT_FOR_DELIVERY.value,
    "dispatched": ShipmentStatus.OUT_FOR_DELIVERY.value,

    # Delivered
    "delivered": ShipmentStatus.DELIVERED.value,

    # Non-delivery
    "ndr": ShipmentStatus.NDR.value,
    "non delivery report": ShipmentStatus.NDR.value,
    "non delivery": ShipmentStatus.NDR.value,
    "undelivered": ShipmentStatus.NDR.value,
    "customer not available": ShipmentStatus.NDR.value,
    "customer refused": ShipmentStatus.NDR.value,
    "incomplete address": ShipmentStatus.NDR.value,
    "cash not ready": ShipmentStatus.NDR.value,
    "consignee not available": ShipmentStatus.NDR.value,
    "delivery attempted": ShipmentStatus.NDR.value,

    # Return to origin
    "rto": ShipmentStatus.RTO.value,
    "rto initiated": ShipmentStatus.RTO.value,
    "rto delivered": ShipmentStatus.RTO.value,
    "return to origin": ShipmentStatus.RTO.value,
    "returned": ShipmentStatus.RTO.value,
    "r.t.o": ShipmentStatus.RTO.value,
    "r.t.o.": ShipmentStatus.RTO.value,

    # Cancelled
    "cancelled": ShipmentStatus.CANCELLED.value,
    "canceled": ShipmentStatus.CANCELLED.value,
    "cancel": ShipmentStatus.CANCELLED.value,

    # Lost
    "lost": ShipmentStatus.LOST.value,
    "damaged": ShipmentStatus.LOST.value,
}

# Checked before any positive substring so "Not Delivered" never reads as delivered
_NEGATIVE_DELIVERY_MARKERS = ("undeliver", "not deliver", "delivery fail", "attempt")


def normalize_key(raw_status: str) -> str:
    """Lowercase, trim, and collapse '-', '_' and whitespace runs to one space."""
    return _SEPARATORS.sub(" ", raw_status.strip().lower()).strip()


def normalize(raw_status: Optional[str]) -> Optional[str]:
    """Map a raw carrier status to an internal status, or None if unmapped."""
    if raw_status is None:
        return None
    key = normalize_key(str(raw_status))
    if not key:
        return None
    return CARRIER_STATUS_MAP.get(key)


def fallback_status(raw_status: Optional[str], previous_status: Optional[str]) -> str:
    """
    Degraded mapping for strings missing from CARRIER_STATUS_MAP.

    Substring heuristics, else keep the previous status. Always logged;
    callers must record the result with is_fallback=True.
    """
    key = normalize_key(str(raw_status or ""))
    if any(marker in key for marker in _NEGATIVE_DELIVERY_MARKERS):
        result = ShipmentStatus.NDR.value
    elif "out for delivery" in key or key.split(" ")[0] == "ofd":
        result = ShipmentStatus.OUT_FOR_DELIVERY.value
    elif "transit" in key:
        result = ShipmentStatus.IN_TRANSIT.value
    elif "deliver" in key:
        result = ShipmentStatus.DELIVERED.value
    else:
        result = previous_status or INITIAL_TRACKING_STATUS

    logger.warning(
        f"Unmapped carrier status '{raw_status}', fallback -> {result}",
        extra={"raw_status": raw_status, "fallback_status": result, "previous_status": previous_status},
    )
    return result


def category_of(status: Optional[str]) -> StatusCategory:
    """Display category for an internal status (defaults to IN_TRANSIT)."""
    return STATUS_CATEGORIES.get(status_value(status), DEFAULT_CATEGORY)


def is_terminal(status: Optional[str]) -> bool:
    """True for delivered, cancelled, rto and lost. Tracking stops there."""
    return status is not None and is_terminal_status(status)
