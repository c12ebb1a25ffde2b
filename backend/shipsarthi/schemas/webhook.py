"""
Webhook Schemas

Carrier push payloads, job kinds and the acknowledgement returned to the
carrier. Push models use the carrier's field names as aliases and dump back
to them, so queued jobs and stored raw payloads keep the carrier's shape.
"""
import base64
import binascii
import re
from enum import Enum
from typing import Any, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from shipsarthi.core.settings import settings


class WebhookType(str, Enum):
    """Carrier push kinds accepted by the webhook pipeline"""
    SCAN_STATUS = "scan-status"
    EPOD = "epod"
    SORTER_IMAGE = "sorter-image"
    QC_IMAGE = "qc-image"


class DocumentType(str, Enum):
    """Stored document kinds"""
    EPOD = "epod"
    SORTER_IMAGE = "sorter_image"
    QC_IMAGE = "qc_image"
    OTHER = "other"


# ============================================================================
# Push payloads
# ============================================================================

_DATA_URL_PREFIX = re.compile(r"^data:[\w/+.-]+;base64,", re.IGNORECASE)
_BASE64_BODY = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")
_WHITESPACE = re.compile(r"\s+")


def _blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _clean_base64(v: Any) -> Any:
    """Strip a data-URL prefix and whitespace, then check alphabet and size."""
    if not isinstance(v, str):
        return v
    text = _WHITESPACE.sub("", _DATA_URL_PREFIX.sub("", v.strip()))
    if not text:
        return text
    if not _BASE64_BODY.match(text) or len(text) % 4 == 1:
        raise ValueError("not valid base64 image data")
    estimated_size = len(text) * 3 // 4
    if estimated_size > settings.WEBHOOK_MAX_IMAGE_MB * 1024 * 1024:
        raise ValueError(f"image exceeds {settings.WEBHOOK_MAX_IMAGE_MB}MB ({estimated_size} bytes)")
    return text


def decode_image(data: str) -> bytes:
    """Decode base64 image data already cleaned by a push model."""
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("image data could not be decoded") from e


class PushModel(BaseModel):
    """Carrier payloads: trimmed strings, numbers accepted as text, unknown keys ignored"""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
    )


class ScanStatus(PushModel):
    status: str = Field(..., alias="Status", min_length=1)
    status_type: Optional[str] = Field(None, alias="StatusType")
    status_date_time: Optional[str] = Field(None, alias="StatusDateTime")
    status_location: Optional[str] = Field(None, alias="StatusLocation")
    instructions: Optional[str] = Field(None, alias="Instructions")
    # Delhivery spells it "RecievedBy"; accept the correct spelling too
    received_by: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("RecievedBy", "ReceivedBy"),
        serialization_alias="RecievedBy",
    )

    @field_validator(
        "status_type", "status_date_time", "status_location", "instructions", "received_by",
        mode="before",
    )
    @classmethod
    def blank_is_none(cls, v: Any) -> Any:
        return _blank_to_none(v)


class ScanShipment(PushModel):
    awb: str = Field(..., alias="AWB", min_length=1)
    reference_no: Optional[str] = Field(None, alias="ReferenceNo")
    status: ScanStatus = Field(..., alias="Status")
    nsl_code: Optional[str] = Field(None, alias="NSLCode")
    sort_code: Optional[str] = Field(None, alias="Sortcode")
    pickup_date: Optional[str] = Field(None, alias="PickUpDate")

    @field_validator("status", mode="before")
    @classmethod
    def bare_status_string(cls, v: Any) -> Any:
        """Some pushes send Status as a plain string"""
        if isinstance(v, str):
            return {"Status": v}
        return v

    @field_validator("reference_no", "nsl_code", "sort_code", "pickup_date", mode="before")
    @classmethod
    def blank_is_none(cls, v: Any) -> Any:
        return _blank_to_none(v)


class ScanPush(PushModel):
    """Scan / status push: `{"Shipment": {"AWB": ..., "Status": {...}}}`"""
    shipment: ScanShipment = Field(..., alias="Shipment")


class EpodPush(PushModel):
    """Proof of delivery image"""
    waybill: str = Field(..., min_length=1)
    epod: str = Field(..., alias="EPOD", min_length=1)
    order_id: Optional[str] = Field(None, alias="orderID")

    @field_validator("epod", mode="before")
    @classmethod
    def clean_image(cls, v: Any) -> Any:
        return _clean_base64(v)

    @field_validator("order_id", mode="before")
    @classmethod
    def blank_is_none(cls, v: Any) -> Any:
        return _blank_to_none(v)


class SorterImagePush(PushModel):
    """Weight photo taken at the sorter"""
    waybill: str = Field(..., alias="Waybill", min_length=1)
    weight_images: str = Field(..., alias="Weight_images", min_length=1)
    doc: Optional[str] = None

    @field_validator("weight_images", mode="before")
    @classmethod
    def clean_image(cls, v: Any) -> Any:
        return _clean_base64(v)

    @field_validator("doc", mode="before")
    @classmethod
    def blank_is_none(cls, v: Any) -> Any:
        return _blank_to_none(v)


class QcImagePush(PushModel):
    """Return QC image"""
    waybill_id: str = Field(..., alias="waybillId", min_length=1)
    image: str = Field(..., alias="Image", min_length=1)
    return_id: Optional[str] = Field(None, alias="returnId")

    @field_validator("image", mode="before")
    @classmethod
    def clean_image(cls, v: Any) -> Any:
        return _clean_base64(v)

    @field_validator("return_id", mode="before")
    @classmethod
    def blank_is_none(cls, v: Any) -> Any:
        return _blank_to_none(v)


PUSH_MODELS = {
    WebhookType.SCAN_STATUS: ScanPush,
    WebhookType.EPOD: EpodPush,
    WebhookType.SORTER_IMAGE: SorterImagePush,
    WebhookType.QC_IMAGE: QcImagePush,
}


# ============================================================================
# Responses
# ============================================================================

class WebhookAck(BaseModel):
    """Immediate response to the carrier. Duplicates are acknowledged as success."""
    success: bool = True
    message: str
    queued: bool = False
    duplicate: bool = False
    job_id: Optional[str] = None
    request_id: Optional[str] = None


class QueueStatsResponse(BaseModel):
    queue_size: int
    processing: bool
    running: bool
    max_size: int
    processed: int
    failed: int
    retries: int
    duplicates: int
