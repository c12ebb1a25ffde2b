"""
Rate card endpoints

Tier listing, rate card lookup and shipping charge calculation.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shipsarthi.db.session import get_db
from shipsarthi.exceptions import ConfigurationError, NotFoundError
from shipsarthi.logging_config import get_logger
from shipsarthi.schemas.rate_card import (
    ChargeBreakdownResponse,
    ChargeCalculationRequest,
    RateCardResponse,
    RateCardTiersResponse,
)
from shipsarthi.services.rate_card_cache import get_rate_card, get_rate_cards
from shipsarthi.services.rate_card_service import calculate_charges, normalize_tier

logger = get_logger(__name__)

router = APIRouter()


@router.get("", response_model=RateCardTiersResponse)
def list_tiers(db: Session = Depends(get_db)):
    """List the user tiers that have a rate card."""
    return RateCardTiersResponse(tiers=sorted(get_rate_cards(db).keys()))


@router.get("/{tier}", response_model=RateCardResponse)
def read_rate_card(tier: str, db: Session = Depends(get_db)):
    try:
        card = get_rate_card(db, tier)
    except ConfigurationError:
        raise NotFoundError("Rate card", tier) from None
    return RateCardResponse(tier_key=normalize_tier(tier), **card.model_dump())


@router.post("/calculate", response_model=ChargeBreakdownResponse)
def calculate(request: ChargeCalculationRequest, db: Session = Depends(get_db)):
    """
    Calculate forward/RTO freight and COD charges for a shipment.

    An unknown zone is not an error: the response comes back with
    serviceable=false and zero freight.
    """
    try:
        breakdown = calculate_charges(
            request.tier,
            request.weight_grams,
            dimensions=request.dimensions,
            zone=request.zone,
            cod_amount=request.cod_amount,
            direction=request.direction,
            rate_cards=get_rate_cards(db),
        )
    except ConfigurationError:
        raise NotFoundError("Rate card", request.tier) from None
    return ChargeBreakdownResponse(**breakdown.to_dict())
