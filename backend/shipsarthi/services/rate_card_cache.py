"""
Rate card cache: keeps validated rate cards in memory for fast pricing.

Active rows in `rate_cards` override the built-in tier cards. The cache
reloads after RATE_CARD_CACHE_TTL_SECONDS or on demand.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from shipsarthi.core.rate_card_config import (
    DEFAULT_RATE_CARDS,
    TERMS_AND_CONDITIONS,
    ZONE_DEFINITIONS,
)
from shipsarthi.core.settings import settings
from shipsarthi.logging_config import get_logger
from shipsarthi.models.rate_card import RateCard
from shipsarthi.schemas.rate_card import RateCardDefinition
from shipsarthi.services.rate_card_service import (
    builtin_rate_cards,
    normalize_tier,
    resolve_rate_card,
)

logger = get_logger(__name__)


@dataclass
class RateCardCache:
    cards: Dict[str, RateCardDefinition]
    last_loaded: datetime
    overridden: List[str]  # tiers served from the database


_RATE_CARD_CACHE: Optional[RateCardCache] = None
_CACHE_LOCK = Lock()


def _cache_ttl() -> timedelta:
    return timedelta(seconds=settings.RATE_CARD_CACHE_TTL_SECONDS)


def _definition_from_row(row: RateCard) -> RateCardDefinition:
    return RateCardDefinition(
        user_category=row.user_category,
        carrier=row.carrier,
        forward_charges=row.forward_charges,
        rto_charges=row.rto_charges,
        cod_charges={
            "percentage": row.cod_percentage,
            "minimum_amount": row.cod_minimum_amount,
            "gst_additional": row.cod_gst_additional,
        },
        zone_definitions=row.zone_definitions or ZONE_DEFINITIONS,
        terms_and_conditions=row.terms_and_conditions or TERMS_AND_CONDITIONS,
    )


def _load_rate_card_cache(db: Session) -> RateCardCache:
    cards = dict(builtin_rate_cards())
    overridden = []

    rows = db.query(RateCard).filter(RateCard.is_active.is_(True)).all()
    for row in rows:
        tier_key = normalize_tier(row.tier_key)
        try:
            cards[tier_key] = _definition_from_row(row)
        except PydanticValidationError as e:
            # Keep the built-in card for this tier (if any) rather than fail pricing
            logger.error(
                f"Invalid rate card in database for tier '{row.tier_key}', ignoring it",
                extra={"tier": row.tier_key, "errors": e.errors(include_url=False)},
            )
            continue
        overridden.append(tier_key)

    logger.info(
        f"Loaded {len(cards)} rate cards ({len(overridden)} from database)",
        extra={"tiers": sorted(cards), "overridden": overridden},
    )
    return RateCardCache(cards=cards, last_loaded=datetime.utcnow(), overridden=overridden)


def get_rate_card_cache(db: Session, force_reload: bool = False) -> RateCardCache:
    global _RATE_CARD_CACHE
    with _CACHE_LOCK:
        should_reload = force_reload or _RATE_CARD_CACHE is None
        if _RATE_CARD_CACHE and not should_reload:
            if datetime.utcnow() - _RATE_CARD_CACHE.last_loaded > _cache_ttl():
                should_reload = True
        if should_reload:
            _RATE_CARD_CACHE = _load_rate_card_cache(db)
        return _RATE_CARD_CACHE


def invalidate_rate_card_cache() -> None:
    global _RATE_CARD_CACHE
    with _CACHE_LOCK:
        _RATE_CARD_CACHE = None


def get_rate_cards(db: Session) -> Dict[str, RateCardDefinition]:
    return get_rate_card_cache(db).cards


def get_rate_card(db: Session, tier: str) -> RateCardDefinition:
    """Rate card for a tier. Raises ConfigurationError when the tier is unknown."""
    return resolve_rate_card(tier, get_rate_cards(db))


def seed_rate_cards(db: Session) -> int:
    """
    Upsert the built-in rate cards into the database.

    Returns the number of rows written. Commits, and drops the cache so the
    next lookup sees the seeded rows.
    """
    written = 0
    for tier_key, card in DEFAULT_RATE_CARDS.items():
        row = db.query(RateCard).filter(RateCard.tier_key == tier_key).first()
        if row is None:
            row = RateCard(tier_key=tier_key)
            db.add(row)
        row.user_category = card["user_category"]
        row.carrier = card["carrier"]
        row.forward_charges = card["forward_charges"]
        row.rto_charges = card["rto_charges"]
        row.cod_percentage = card["cod_charges"]["percentage"]
        row.cod_minimum_amount = card["cod_charges"]["minimum_amount"]
        row.cod_gst_additional = card["cod_charges"]["gst_additional"]
        row.zone_definitions = ZONE_DEFINITIONS
        row.terms_and_conditions = TERMS_AND_CONDITIONS
        row.is_active = True
        written += 1

    db.commit()
    invalidate_rate_card_cache()
    logger.info(f"Seeded {written} rate cards")
    return written
