"""
Hand-written fakes for the carrier, notifier and image store.
"""
import hashlib
from typing import Any, Dict, List, Optional, Tuple

from shipsarthi.integrations.delhivery import CarrierGateway
from shipsarthi.integrations.image_storage import ImageStore
from shipsarthi.services.notification_service import Notifier


def tracking_payload(
    status: str,
    status_type: str = "UD",
    location: Optional[str] = "Mumbai_Hub (Maharashtra)",
    date_time: str = "2026-01-10T10:30:00",
    instructions: Optional[str] = None,
    received_by: Optional[str] = None,
) -> Dict[str, Any]:
    """Delhivery packages/json response with a single shipment"""
    return {
        "ShipmentData": [
            {
                "Shipment": {
                    "Status": {
                        "Status": status,
                        "StatusType": status_type,
                        "StatusLocation": location,
                        "StatusDateTime": date_time,
                        "Instructions": instructions,
                        "RecievedBy": received_by,
                    }
                }
            }
        ]
    }


class FakeCarrier(CarrierGateway):
    """
    Scripted carrier. `responses[waybill]` is either a payload dict or an
    exception instance to raise; a list is consumed one item per call.
    """

    def __init__(self):
        self.responses: Dict[str, Any] = {}
        self.track_calls: List[Tuple[str, Optional[str]]] = []

    def set_status(self, waybill: str, status: str, **kwargs) -> None:
        self.responses[waybill] = tracking_payload(status, **kwargs)

    def track(self, waybill: str, reference: Optional[str] = None) -> Dict[str, Any]:
        self.track_calls.append((waybill, reference))
        response = self.responses.get(waybill)
        if isinstance(response, list):
            response = response.pop(0)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return {"ShipmentData": []}
        return response

    def create_shipment(self, order: Dict[str, Any]) -> Dict[str, Any]:
        return {"waybill": f"WB{order.get('order', '0')}", "label_url": None, "eta": None}

    def cancel(self, waybill: str) -> Dict[str, Any]:
        return {"cancelled": True, "message": "Shipment cancelled successfully"}

    def get_label(self, waybill: str) -> Dict[str, Any]:
        return {"waybill": waybill, "label_url": f"https://labels.test/{waybill}.pdf"}

    def serviceability(self, pincode: str) -> Dict[str, Any]:
        return {"pincode": pincode, "serviceable": True, "cod_allowed": True}

    def quote(self, origin_pincode, dest_pincode, weight_grams, cod_amount=0) -> Dict[str, Any]:
        return {"freight_charge": 50.0, "cod_charge": 0.0, "total_amount": 50.0, "expected_delivery_days": 3}


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False):
        self.events: List[Tuple[Optional[str], Dict[str, Any]]] = []
        self.fail = fail

    def notify(self, user_id: Optional[str], event: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.events.append((user_id, event))

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [event for _, event in self.events if event.get("type") == event_type]


class InMemoryImageStore(ImageStore):
    """Content-addressed store kept in a dict"""

    def __init__(self):
        self.saved: Dict[str, bytes] = {}

    def url_for(self, folder: str, data: bytes) -> str:
        return f"memory://{folder}/{hashlib.sha256(data).hexdigest()}"

    def save(self, folder: str, data: bytes) -> str:
        url = self.url_for(folder, data)
        self.saved[url] = data
        return url
