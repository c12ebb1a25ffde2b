"""
Delhivery carrier integration

`CarrierGateway` is the interface the reconciler and the API program
against; `DelhiveryClient` implements it over the Delhivery REST API.

Every failure surfaces as one of two exceptions:
    TransientCarrierError  network error, timeout, 429 or 5xx. Retry later.
    CarrierDataError       carrier answered with an error or an unexpected body.
Callers treat both as "this attempt failed" and never as fatal.
"""
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from shipsarthi.core.settings import settings
from shipsarthi.exceptions import CarrierDataError, ConfigurationError, TransientCarrierError
from shipsarthi.logging_config import get_logger

logger = get_logger(__name__)

CARRIER_NAME = "Delhivery"


class CarrierGateway(ABC):
    """Abstract interface for the shipping carrier."""

    @abstractmethod
    def create_shipment(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """Create a shipment.

        Returns:
            dict with keys: waybill, label_url, eta
        """
        ...

    @abstractmethod
    def track(self, waybill: str, reference: Optional[str] = None) -> Dict[str, Any]:
        """Raw tracking payload for a waybill (carrier-specific nested shape)."""
        ...

    @abstractmethod
    def cancel(self, waybill: str) -> Dict[str, Any]:
        """Cancel a shipment.

        Returns:
            dict with keys: cancelled (bool), message
        """
        ...

    @abstractmethod
    def get_label(self, waybill: str) -> Dict[str, Any]:
        """Shipping label for a waybill.

        Returns:
            dict with keys: waybill, label_url
        """
        ...

    @abstractmethod
    def serviceability(self, pincode: str) -> Dict[str, Any]:
        """Pincode serviceability.

        Returns:
            dict with keys: serviceable, cod_allowed, prepaid_allowed, pickup_allowed,
            district, state_code
        """
        ...

    @abstractmethod
    def quote(
        self,
        origin_pincode: str,
        dest_pincode: str,
        weight_grams: int,
        cod_amount: float = 0,
    ) -> Dict[str, Any]:
        """Carrier quoted rate.

        Returns:
            dict with keys: freight_charge, cod_charge, total_amount, expected_delivery_days
        """
        ...


class DelhiveryClient(CarrierGateway):
    """Delhivery REST client on a shared requests.Session."""

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        pickup_location: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_token = api_token if api_token is not None else settings.DELHIVERY_API_TOKEN
        if not self.api_token:
            raise ConfigurationError(
                "Delhivery API token is not configured", setting="DELHIVERY_API_TOKEN"
            )
        self.base_url = (base_url or settings.delhivery_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.DELHIVERY_TIMEOUT_SECONDS
        self.pickup_location = pickup_location or settings.DELHIVERY_PICKUP_LOCATION
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Token {self.api_token}",
            "Accept": "application/json",
        })

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise TransientCarrierError(f"timeout calling {path}", carrier=CARRIER_NAME) from e
        except requests.ConnectionError as e:
            raise TransientCarrierError(f"connection error calling {path}: {e}", carrier=CARRIER_NAME) from e
        except requests.RequestException as e:
            raise TransientCarrierError(f"request to {path} failed: {e}", carrier=CARRIER_NAME) from e

        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientCarrierError(
                f"{path} returned HTTP {status}",
                carrier=CARRIER_NAME,
                carrier_status_code=status,
            )
        if status >= 400:
            raise CarrierDataError(
                f"{path} rejected the request (HTTP {status}): {response.text[:200]}",
                carrier=CARRIER_NAME,
                carrier_status_code=status,
            )

        try:
            return response.json()
        except ValueError as e:
            raise CarrierDataError(
                f"{path} returned a non-JSON body",
                carrier=CARRIER_NAME,
                carrier_status_code=status,
                details={"body": response.text[:200]},
            ) from e

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_shipment(self, order: Dict[str, Any]) -> Dict[str, Any]:
        payload = {
            "shipments": [order],
            "pickup_location": {"name": order.get("pickup_location") or self.pickup_location},
        }
        logger.info("Creating Delhivery shipment", extra={"order_id": order.get("order")})
        data = self._request(
            "POST",
            "/api/cmu/create.json",
            data={"format": "json", "data": json.dumps(payload)},
        )
        packages = data.get("packages") if isinstance(data, dict) else None
        if not isinstance(data, dict) or data.get("success") is False or not packages:
            remarks = data.get("rmk") if isinstance(data, dict) else None
            raise CarrierDataError(
                remarks or "shipment creation returned no packages",
                carrier=CARRIER_NAME,
                details={"order_id": order.get("order")},
            )

        package = packages[0]
        if not package.get("waybill"):
            raise CarrierDataError("shipment creation returned no waybill", carrier=CARRIER_NAME)
        return {
            "waybill": str(package["waybill"]),
            "label_url": package.get("label_url"),
            "eta": package.get("expected_delivery_date"),
        }

    def track(self, waybill: str, reference: Optional[str] = None) -> Dict[str, Any]:
        data = self._request(
            "GET",
            "/api/v1/packages/json/",
            params={"waybill": waybill, "ref_ids": reference or ""},
        )
        if not isinstance(data, dict):
            raise CarrierDataError(
                f"tracking response for {waybill} is not an object", carrier=CARRIER_NAME
            )
        return data

    def cancel(self, waybill: str) -> Dict[str, Any]:
        logger.info("Cancelling shipment", extra={"waybill": waybill})
        data = self._request(
            "POST",
            "/api/backend/clientwarehouse/editorders/",
            json={"waybill": waybill, "cancellation": True},
        )
        data = data if isinstance(data, dict) else {}
        return {
            "cancelled": bool(data.get("status", True)),
            "message": data.get("remark") or data.get("rmk") or "Shipment cancelled successfully",
        }

    def get_label(self, waybill: str) -> Dict[str, Any]:
        data = self._request("GET", "/api/p/packing_slip", params={"wbns": waybill, "pdf": "true"})
        packages = data.get("packages") if isinstance(data, dict) else None
        if not packages:
            raise CarrierDataError(f"no label returned for {waybill}", carrier=CARRIER_NAME)
        return {"waybill": waybill, "label_url": packages[0].get("pdf_download_link")}

    def serviceability(self, pincode: str) -> Dict[str, Any]:
        data = self._request("GET", "/c/api/pin-codes/json/", params={"filter_codes": pincode})
        codes = data.get("delivery_codes") if isinstance(data, dict) else None
        if not codes:
            return {"pincode": pincode, "serviceable": False}

        entry = codes[0].get("postal_code", codes[0])
        return {
            "pincode": pincode,
            "serviceable": True,
            "cod_allowed": entry.get("cod") == "Y" or entry.get("cash_on_delivery") == "Y",
            "prepaid_allowed": entry.get("pre_paid") == "Y",
            "pickup_allowed": entry.get("pickup") == "Y",
            "district": entry.get("district"),
            "state_code": entry.get("state_code"),
        }

    def quote(
        self,
        origin_pincode: str,
        dest_pincode: str,
        weight_grams: int,
        cod_amount: float = 0,
    ) -> Dict[str, Any]:
        data = self._request(
            "GET",
            "/api/kinko/v1/invoice/charges/.json",
            params={
                "md": "S",
                "ss": "Delivered",
                "o_pin": origin_pincode,
                "d_pin": dest_pincode,
                "cgm": int(weight_grams),
                "pt": "COD" if cod_amount and cod_amount > 0 else "Pre-paid",
            },
        )
        row = data[0] if isinstance(data, list) and data else data
        if not isinstance(row, dict) or "total_amount" not in row:
            raise CarrierDataError("quote response has no total_amount", carrier=CARRIER_NAME)
        return {
            "freight_charge": float(row.get("freight_charge") or 0),
            "cod_charge": float(row.get("cod_charges") or 0),
            "total_amount": float(row.get("total_amount") or 0),
            "expected_delivery_days": int(row.get("expected_delivery_days") or 0),
        }
