"""
Unit Tests for the Delhivery client

A stub requests session records calls and returns canned responses; no
network access.
"""
import json

import pytest
import requests

from shipsarthi.exceptions import (
    CarrierDataError,
    ConfigurationError,
    TransientCarrierError,
)
from shipsarthi.integrations.delhivery import DelhiveryClient


class StubResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self._body = body
        self.text = text if text is not None else json.dumps(body)

    def json(self):
        if self._body is None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class StubSession:
    def __init__(self, *responses):
        self.headers = {}
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_client(*responses):
    session = StubSession(*responses)
    client = DelhiveryClient(
        api_token="test-token",
        base_url="https://delhivery.test/",
        timeout=7,
        pickup_location="Warehouse 1",
        session=session,
    )
    return client, session


class TestTransport:
    def test_auth_header_and_timeout(self):
        client, session = make_client(StubResponse(body={"ShipmentData": []}))
        client.track("1490000001", "ORD-1")

        assert session.headers["Authorization"] == "Token test-token"
        call = session.calls[0]
        assert call["method"] == "GET"
        assert call["url"] == "https://delhivery.test/api/v1/packages/json/"
        assert call["params"] == {"waybill": "1490000001", "ref_ids": "ORD-1"}
        assert call["timeout"] == 7

    def test_missing_token(self, monkeypatch):
        from shipsarthi.core.settings import settings
        monkeypatch.setattr(settings, "DELHIVERY_API_TOKEN", None)
        with pytest.raises(ConfigurationError):
            DelhiveryClient(session=StubSession())

    @pytest.mark.parametrize("error", [
        requests.Timeout("read timed out"),
        requests.ConnectionError("refused"),
    ])
    def test_network_errors_are_transient(self, error):
        client, _ = make_client(error)
        with pytest.raises(TransientCarrierError):
            client.track("1")

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_throttling_and_server_errors_are_transient(self, status):
        client, _ = make_client(StubResponse(status_code=status, text="busy"))
        with pytest.raises(TransientCarrierError) as exc:
            client.track("1")
        assert exc.value.carrier_status_code == status

    def test_client_errors_are_data_errors(self):
        client, _ = make_client(StubResponse(status_code=401, text="bad token"))
        with pytest.raises(CarrierDataError) as exc:
            client.track("1")
        assert exc.value.carrier_status_code == 401

    def test_non_json_body(self):
        client, _ = make_client(StubResponse(body=None, text="<html>maintenance</html>"))
        with pytest.raises(CarrierDataError):
            client.track("1")

    def test_non_object_tracking_body(self):
        client, _ = make_client(StubResponse(body=["unexpected"]))
        with pytest.raises(CarrierDataError):
            client.track("1")


class TestOperations:
    def test_create_shipment(self):
        client, session = make_client(StubResponse(body={
            "success": True,
            "packages": [{"waybill": 1490000001, "expected_delivery_date": "2026-01-14"}],
        }))
        result = client.create_shipment({"order": "ORD-1", "name": "Asha"})

        assert result == {"waybill": "1490000001", "label_url": None, "eta": "2026-01-14"}
        form = session.calls[0]["data"]
        assert form["format"] == "json"
        assert json.loads(form["data"])["pickup_location"] == {"name": "Warehouse 1"}

    def test_create_shipment_rejected(self):
        client, _ = make_client(StubResponse(body={"success": False, "rmk": "Pincode not serviceable"}))
        with pytest.raises(CarrierDataError) as exc:
            client.create_shipment({"order": "ORD-1"})
        assert "Pincode not serviceable" in exc.value.message

    def test_cancel(self):
        client, session = make_client(StubResponse(body={"status": True, "remark": "Cancelled"}))
        assert client.cancel("1") == {"cancelled": True, "message": "Cancelled"}
        assert session.calls[0]["json"] == {"waybill": "1", "cancellation": True}

    def test_get_label(self):
        client, _ = make_client(StubResponse(body={"packages": [{"pdf_download_link": "https://l/1.pdf"}]}))
        assert client.get_label("1") == {"waybill": "1", "label_url": "https://l/1.pdf"}

    def test_serviceability(self):
        client, _ = make_client(StubResponse(body={"delivery_codes": [{"postal_code": {
            "cod": "Y", "pre_paid": "Y", "pickup": "N", "district": "Pune", "state_code": "MH",
        }}]}))
        result = client.serviceability("411001")
        assert result["serviceable"] is True
        assert result["cod_allowed"] is True
        assert result["pickup_allowed"] is False
        assert result["district"] == "Pune"

    def test_not_serviceable(self):
        client, _ = make_client(StubResponse(body={"delivery_codes": []}))
        assert client.serviceability("000000") == {"pincode": "000000", "serviceable": False}

    def test_quote(self):
        client, session = make_client(StubResponse(body=[{
            "freight_charge": 48.5, "cod_charges": 0, "total_amount": 57.23,
        }]))
        result = client.quote("400001", "411001", 500, cod_amount=0)

        assert result["total_amount"] == 57.23
        assert result["expected_delivery_days"] == 0
        assert session.calls[0]["params"]["pt"] == "Pre-paid"
        assert session.calls[0]["params"]["cgm"] == 500
