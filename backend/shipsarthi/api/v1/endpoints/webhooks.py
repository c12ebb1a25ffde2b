"""
Carrier webhook endpoints

Each push is validated and queued, and the carrier gets an answer right
away. Bodies are taken raw and parsed against the push models in
WebhookService.submit, so a malformed push answers 400 rather than 422.
Duplicates are acknowledged with success so the carrier does not keep
retrying them. A full queue answers 503 with Retry-After.
"""
import uuid
from typing import Any

from fastapi import APIRouter, Body, Depends, Request

from shipsarthi.api.v1.deps import get_webhook_queue, get_webhook_service
from shipsarthi.logging_config import get_logger
from shipsarthi.schemas.webhook import QueueStatsResponse, WebhookAck, WebhookType
from shipsarthi.services.webhook_queue import WebhookQueue
from shipsarthi.services.webhook_service import WebhookService

logger = get_logger(__name__)

router = APIRouter()


def _request_id(request: Request) -> str:
    return request.headers.get("X-Request-ID") or uuid.uuid4().hex


def _receive(
    kind: WebhookType,
    request: Request,
    payload: Any,
    service: WebhookService,
    queue: WebhookQueue,
) -> WebhookAck:
    request_id = _request_id(request)
    logger.info(
        f"Received {kind.value} webhook",
        extra={"request_id": request_id, "client": request.client.host if request.client else None},
    )
    return service.submit(queue, kind, payload, request_id=request_id)


@router.post("/delhivery/scan-status", response_model=WebhookAck)
def scan_status_push(
    request: Request,
    payload: Any = Body(None),
    service: WebhookService = Depends(get_webhook_service),
    queue: WebhookQueue = Depends(get_webhook_queue),
):
    """Scan / status push: `{"Shipment": {"AWB": ..., "Status": {...}}}`"""
    return _receive(WebhookType.SCAN_STATUS, request, payload, service, queue)


@router.post("/delhivery/epod", response_model=WebhookAck)
def epod_push(
    request: Request,
    payload: Any = Body(None),
    service: WebhookService = Depends(get_webhook_service),
    queue: WebhookQueue = Depends(get_webhook_queue),
):
    """Proof of delivery image: `{"waybill", "EPOD", "orderID"}`"""
    return _receive(WebhookType.EPOD, request, payload, service, queue)


@router.post("/delhivery/sorter-image", response_model=WebhookAck)
def sorter_image_push(
    request: Request,
    payload: Any = Body(None),
    service: WebhookService = Depends(get_webhook_service),
    queue: WebhookQueue = Depends(get_webhook_queue),
):
    return _receive(WebhookType.SORTER_IMAGE, request, payload, service, queue)


@router.post("/delhivery/qc-image", response_model=WebhookAck)
def qc_image_push(
    request: Request,
    payload: Any = Body(None),
    service: WebhookService = Depends(get_webhook_service),
    queue: WebhookQueue = Depends(get_webhook_queue),
):
    return _receive(WebhookType.QC_IMAGE, request, payload, service, queue)


@router.get("/queue/stats", response_model=QueueStatsResponse)
def queue_stats(queue: WebhookQueue = Depends(get_webhook_queue)):
    return queue.get_stats()
