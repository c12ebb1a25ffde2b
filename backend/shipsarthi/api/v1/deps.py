"""
API Dependencies

Long-lived components (webhook queue, webhook service, tracking reconciler)
are built once in the application lifespan and kept on `app.state`. Tests
swap them through `app.dependency_overrides`.
"""
from fastapi import HTTPException, Request, status

from shipsarthi.services.tracking_service import TrackingReconciler
from shipsarthi.services.webhook_queue import WebhookQueue
from shipsarthi.services.webhook_service import WebhookService


def _component(request: Request, name: str):
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name.replace('_', ' ').capitalize()} is not configured",
        )
    return component


def get_webhook_queue(request: Request) -> WebhookQueue:
    return _component(request, "webhook_queue")


def get_webhook_service(request: Request) -> WebhookService:
    return _component(request, "webhook_service")


def get_reconciler(request: Request) -> TrackingReconciler:
    """Reconciler is absent when no carrier token is configured."""
    return _component(request, "tracking_reconciler")
