"""
API v1 Router - Shipsarthi
"""
from fastapi import APIRouter
from shipsarthi.api.v1.endpoints import (
    rate_cards,
    tracking,
    webhooks,
)

router = APIRouter()

# Rate cards and charge calculation
router.include_router(
    rate_cards.router,
    prefix="/rate-cards",
    tags=["rate-cards"]
)

# Shipment tracking reconciliation
router.include_router(
    tracking.router,
    prefix="/tracking",
    tags=["tracking"]
)

# Carrier webhooks
router.include_router(
    webhooks.router,
    prefix="/webhooks",
    tags=["webhooks"]
)
