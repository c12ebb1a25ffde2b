"""
Carrier tracking response parsing

Delhivery nests the current scan under different paths depending on the
endpoint and account. Each strategy below probes one path and returns None
when it does not apply; the first hit wins. Strategies never raise on
missing or oddly typed fields.
"""
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from shipsarthi.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ExtractedStatus:
    status: str
    status_type: Optional[str] = None
    location: Optional[str] = None
    date_time: Optional[datetime] = None
    instructions: Optional[str] = None
    received_by: Optional[str] = None
    path: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.date_time:
            data["date_time"] = self.date_time.isoformat()
        return data


# Tried in order once fromisoformat gives up. %f takes 1-6 digits and %z
# takes both +0530 and +05:30, which older fromisoformat rejects.
CARRIER_DATETIME_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S.%f",
    "%d-%m-%Y %H:%M:%S",
    "%d-%m-%Y %H:%M",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
)


def parse_carrier_datetime(value: Any) -> Optional[datetime]:
    """
    Carrier timestamp as naive UTC, or None if unparseable.

    Accepts ISO-8601 and Delhivery's day-first `dd-mm-YYYY HH:MM:SS`.
    Values without an offset are taken as already UTC.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            parsed = None
            for fmt in CARRIER_DATETIME_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            if parsed is None:
                logger.debug(f"Unparseable carrier timestamp: {value!r}")
                return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first_item(value: Any) -> Optional[Dict]:
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return value[0]
    return None


def _from_status_node(node: Any, path: str) -> Optional[ExtractedStatus]:
    """A Status node is either {"Status": ..., "StatusType": ...} or a bare string."""
    if isinstance(node, str):
        status = _text(node)
        return ExtractedStatus(status=status, path=path) if status else None
    if not isinstance(node, dict):
        return None

    status = _text(node.get("Status"))
    if not status:
        return None
    return ExtractedStatus(
        status=status,
        status_type=_text(node.get("StatusType")),
        location=_text(node.get("StatusLocation")),
        date_time=parse_carrier_datetime(node.get("StatusDateTime")),
        instructions=_text(node.get("Instructions")),
        received_by=_text(node.get("RecievedBy") or node.get("ReceivedBy")),
        path=path,
    )


def _shipment_data_shipment_status(payload: Dict) -> Optional[ExtractedStatus]:
    item = _first_item(payload.get("ShipmentData"))
    shipment = item.get("Shipment") if item else None
    if not isinstance(shipment, dict):
        return None
    return _from_status_node(shipment.get("Status"), "ShipmentData[0].Shipment.Status")


def _shipment_data_status(payload: Dict) -> Optional[ExtractedStatus]:
    item = _first_item(payload.get("ShipmentData"))
    if not item:
        return None
    return _from_status_node(item.get("Status"), "ShipmentData[0].Status")


def _root_status(payload: Dict) -> Optional[ExtractedStatus]:
    return _from_status_node(payload.get("Status"), "Status")


EXTRACTION_STRATEGIES: List[Callable[[Dict], Optional[ExtractedStatus]]] = [
    _shipment_data_shipment_status,
    _shipment_data_status,
    _root_status,
]


def extract_status(payload: Any) -> Optional[ExtractedStatus]:
    """Current status from a raw tracking payload, or None if no strategy matches."""
    if not isinstance(payload, dict):
        return None
    for strategy in EXTRACTION_STRATEGIES:
        result = strategy(payload)
        if result is not None:
            return result
    return None
