"""Shipment Status Configuration and Transition Rules

Defines the internal shipment status values, their display categories,
and the allowed transitions. Statuses only move forward: pre-transit
states advance toward the in-flight group, the in-flight group
(in transit, out for delivery, NDR) may cycle among itself while the
carrier re-attempts delivery, and terminal states accept nothing.
"""
from enum import Enum
from typing import Dict, List, Set


# =============================================================================
# Shipment Status
# =============================================================================

class ShipmentStatus(str, Enum):
    """Internal status of a shipment, shared by orders and tracking records"""
    NEW = "new"
    READY_TO_SHIP = "ready_to_ship"
    PICKUPS_MANIFESTS = "pickups_manifests"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    NDR = "ndr"  # Non-delivery report, awaiting re-attempt
    DELIVERED = "delivered"
    RTO = "rto"  # Return to origin
    CANCELLED = "cancelled"
    LOST = "lost"


class StatusCategory(str, Enum):
    """Display grouping used by the dashboard tabs"""
    NEW = "NEW"
    READY_TO_SHIP = "READY_TO_SHIP"
    PICKUPS_AND_MANIFESTS = "PICKUPS_AND_MANIFESTS"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    NDR = "NDR"
    RTO = "RTO"
    CANCELLED = "CANCELLED"
    LOST = "LOST"


TERMINAL_STATUSES: Set[str] = {
    ShipmentStatus.DELIVERED.value,
    ShipmentStatus.CANCELLED.value,
    ShipmentStatus.RTO.value,
    ShipmentStatus.LOST.value,
}

IN_FLIGHT_STATUSES: Set[str] = {
    ShipmentStatus.IN_TRANSIT.value,
    ShipmentStatus.OUT_FOR_DELIVERY.value,
    ShipmentStatus.NDR.value,
}

# Initial status of a freshly created tracking record
INITIAL_TRACKING_STATUS = ShipmentStatus.PICKUPS_MANIFESTS.value

STATUS_CATEGORIES: Dict[str, StatusCategory] = {
    ShipmentStatus.NEW.value: StatusCategory.NEW,
    ShipmentStatus.READY_TO_SHIP.value: StatusCategory.READY_TO_SHIP,
    ShipmentStatus.PICKUPS_MANIFESTS.value: StatusCategory.PICKUPS_AND_MANIFESTS,
    ShipmentStatus.IN_TRANSIT.value: StatusCategory.IN_TRANSIT,
    ShipmentStatus.OUT_FOR_DELIVERY.value: StatusCategory.IN_TRANSIT,
    ShipmentStatus.NDR.value: StatusCategory.NDR,
    ShipmentStatus.DELIVERED.value: StatusCategory.DELIVERED,
    ShipmentStatus.RTO.value: StatusCategory.RTO,
    ShipmentStatus.CANCELLED.value: StatusCategory.CANCELLED,
    ShipmentStatus.LOST.value: StatusCategory.LOST,
}

DEFAULT_CATEGORY = StatusCategory.IN_TRANSIT


# Allowed transitions: current_status -> set of allowed next statuses
SHIPMENT_STATUS_TRANSITIONS: Dict[str, Set[str]] = {
    ShipmentStatus.NEW.value: {
        ShipmentStatus.READY_TO_SHIP.value,
        ShipmentStatus.PICKUPS_MANIFESTS.value,
    } | IN_FLIGHT_STATUSES | TERMINAL_STATUSES,
    ShipmentStatus.READY_TO_SHIP.value: {
        ShipmentStatus.PICKUPS_MANIFESTS.value,
    } | IN_FLIGHT_STATUSES | TERMINAL_STATUSES,
    ShipmentStatus.PICKUPS_MANIFESTS.value: IN_FLIGHT_STATUSES | TERMINAL_STATUSES,
    ShipmentStatus.IN_TRANSIT.value: IN_FLIGHT_STATUSES | TERMINAL_STATUSES,
    ShipmentStatus.OUT_FOR_DELIVERY.value: IN_FLIGHT_STATUSES | TERMINAL_STATUSES,
    ShipmentStatus.NDR.value: IN_FLIGHT_STATUSES | TERMINAL_STATUSES,
    ShipmentStatus.DELIVERED.value: set(),  # Terminal state - no transitions allowed
    ShipmentStatus.RTO.value: set(),  # Terminal state
    ShipmentStatus.CANCELLED.value: set(),  # Terminal state
    ShipmentStatus.LOST.value: set(),  # Terminal state
}


def status_value(status) -> str:
    """Plain string for a ShipmentStatus member or raw value (members hash by name)"""
    return status.value if isinstance(status, Enum) else status


def get_allowed_shipment_transitions(current_status: str) -> List[str]:
    """Get list of allowed next statuses for a shipment"""
    return sorted(SHIPMENT_STATUS_TRANSITIONS.get(status_value(current_status), set()))


def is_valid_shipment_transition(current_status: str, new_status: str) -> bool:
    """Check if a shipment status transition is valid"""
    current_status, new_status = status_value(current_status), status_value(new_status)
    if current_status == new_status:
        return True  # No change is always valid
    if current_status not in SHIPMENT_STATUS_TRANSITIONS:
        # Unknown legacy value on the order; anything recognised replaces it
        return new_status in SHIPMENT_STATUS_TRANSITIONS
    return new_status in SHIPMENT_STATUS_TRANSITIONS[current_status]


def is_terminal_status(status: str) -> bool:
    return status_value(status) in TERMINAL_STATUSES
