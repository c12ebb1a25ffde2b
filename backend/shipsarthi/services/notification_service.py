"""
Notification fan-out

The core only needs `notify(user_id, event)`; delivery to connected
dashboards is the notifier implementation's concern. `safe_notify` is the
call site used after commits: it never raises and never retries.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from shipsarthi.logging_config import get_logger

logger = get_logger(__name__)

ORDER_STATUS_UPDATE = "order_status_update"
EPOD_RECEIVED = "epod_received"


class Notifier(ABC):
    @abstractmethod
    def notify(self, user_id: Optional[str], event: Dict[str, Any]) -> None:
        ...


class LoggingNotifier(Notifier):
    """Default notifier: writes the event to the log."""

    def notify(self, user_id: Optional[str], event: Dict[str, Any]) -> None:
        logger.info(
            f"Notification {event.get('type')} for user {user_id}",
            extra={"user_id": user_id, "event": event},
        )


def build_status_event(
    *,
    order_id: str,
    waybill: Optional[str],
    status: str,
    old_status: Optional[str] = None,
    location: Optional[str] = None,
    source: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "type": ORDER_STATUS_UPDATE,
        "order_id": order_id,
        "waybill": waybill,
        "status": status,
        "old_status": old_status,
        "location": location,
        "source": source,
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }


def safe_notify(notifier: Optional[Notifier], user_id: Optional[str], event: Dict[str, Any]) -> bool:
    """Best-effort delivery. Returns False (after logging) if the notifier failed."""
    if notifier is None:
        return False
    try:
        notifier.notify(user_id, event)
        return True
    except Exception as e:
        logger.warning(
            f"Notification {event.get('type')} failed: {e}",
            extra={"user_id": user_id, "order_id": event.get("order_id"), "waybill": event.get("waybill")},
        )
        return False
