"""
Rate Card Charge Calculator

Prices a shipment from the tier's cumulative weight slabs.

Weight bands (grams, chargeable weight):
    <= 250            base
    250 < w <= 500    base + 250-500 increment
    500 < w < 5000    base + 250-500 + ceil((w - 500) / 500) x "add 500 gm till 5kg"
    == 5000           flat "upto 5kgs"
    5000 < w < 10000  "upto 5kgs" + ceil((w - 5000) / 1000) x "add 1 kg till 10kg"
    == 10000          flat "upto 10 kgs"
    > 10000           "upto 10 kgs" + ceil((w - 10000) / 1000) x "add 1 kg"

The 5 kg and 10 kg checkpoints are flat tier prices and are matched
before any range check.

Pure functions only. Loading rate cards lives in rate_card_cache.
"""
from dataclasses import dataclass, asdict
from functools import lru_cache
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from typing import Dict, Mapping, Optional, Union
import re

from shipsarthi.core.rate_card_config import (
    DEFAULT_RATE_CARDS,
    SLAB_250_500,
    SLAB_ADD_1KG,
    SLAB_ADD_1KG_TILL_10KG,
    SLAB_ADD_500_TILL_5KG,
    SLAB_BASE,
    SLAB_UPTO_10KG,
    SLAB_UPTO_5KG,
    TERMS_AND_CONDITIONS,
    TIER_ALIASES,
    ZONE_ALIASES,
    ZONE_DEFINITIONS,
)
from shipsarthi.exceptions import ConfigurationError, ValidationError
from shipsarthi.schemas.rate_card import (
    CodRule,
    Dimensions,
    RateCardDefinition,
    ShipmentDirection,
)

Number = Union[int, float, str, Decimal]

VOLUMETRIC_DIVISOR = Decimal("5000")
GST_MULTIPLIER = Decimal("1.18")
TWO_PLACES = Decimal("0.01")

_WHITESPACE = re.compile(r"\s+")


@dataclass
class ChargeBreakdown:
    """Result of a charge calculation. Amounts in INR, weights as labelled."""
    user_category: str
    zone: Optional[str]
    serviceable: bool
    direction: ShipmentDirection
    forward: Decimal
    rto: Decimal
    cod: Decimal
    total: Decimal
    volumetric_weight: Decimal  # kg
    chargeable_weight: Decimal  # grams

    def to_dict(self) -> Dict:
        return asdict(self)


def _to_decimal(value: Optional[Number]) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _ceil_div(numerator: Decimal, denominator: int) -> Decimal:
    return (numerator / denominator).to_integral_value(rounding=ROUND_CEILING)


def normalize_tier(tier: str) -> str:
    """'  Advanced   User ' -> 'advanced'"""
    key = _WHITESPACE.sub(" ", str(tier or "").strip().lower())
    return TIER_ALIASES.get(key, key)


def normalize_zone(zone: Optional[str]) -> Optional[str]:
    """Carrier zone code to rate card zone; C1/C2 -> C, D1/D2 -> D, unknown -> None."""
    if zone is None:
        return None
    key = str(zone).strip().upper()
    if key.startswith("ZONE "):
        key = key[5:].strip()
    return ZONE_ALIASES.get(key)


def volumetric_weight_kg(dimensions: Optional[Union[Dimensions, Mapping]]) -> Decimal:
    """(L x B x H) / 5000 with dimensions in centimetres."""
    if dimensions is None:
        return Decimal("0")
    if isinstance(dimensions, Mapping):
        dimensions = Dimensions(**dimensions)
    return (dimensions.length * dimensions.breadth * dimensions.height) / VOLUMETRIC_DIVISOR


def slab_charge(slabs: Mapping[str, Mapping[str, Decimal]], weight_grams: Decimal, zone: str) -> Decimal:
    """Cumulative slab price for `weight_grams` in a normalized zone."""

    def price(slab: str) -> Decimal:
        return _to_decimal(slabs[slab][zone])

    # Exact checkpoints first
    if weight_grams == 5000:
        return price(SLAB_UPTO_5KG)
    if weight_grams == 10000:
        return price(SLAB_UPTO_10KG)

    if weight_grams <= 250:
        return price(SLAB_BASE)
    if weight_grams <= 500:
        return price(SLAB_BASE) + price(SLAB_250_500)
    if weight_grams < 5000:
        increments = _ceil_div(weight_grams - 500, 500)
        return price(SLAB_BASE) + price(SLAB_250_500) + increments * price(SLAB_ADD_500_TILL_5KG)
    if weight_grams < 10000:
        increments = _ceil_div(weight_grams - 5000, 1000)
        return price(SLAB_UPTO_5KG) + increments * price(SLAB_ADD_1KG_TILL_10KG)

    increments = _ceil_div(weight_grams - 10000, 1000)
    return price(SLAB_UPTO_10KG) + increments * price(SLAB_ADD_1KG)


def cod_charge(cod_amount: Number, rule: CodRule) -> Decimal:
    """max(amount x pct / 100, minimum), x1.18 when GST is additional. Zero without COD."""
    amount = _to_decimal(cod_amount)
    if amount <= 0:
        return Decimal("0.00")
    charge = max(amount * rule.percentage / 100, rule.minimum_amount)
    if rule.gst_additional:
        charge = charge * GST_MULTIPLIER
    return _money(charge)


@lru_cache(maxsize=1)
def builtin_rate_cards() -> Dict[str, RateCardDefinition]:
    """Validated copies of the built-in tier cards, keyed by normalized tier."""
    return {
        tier_key: RateCardDefinition(
            **card,
            zone_definitions=ZONE_DEFINITIONS,
            terms_and_conditions=TERMS_AND_CONDITIONS,
        )
        for tier_key, card in DEFAULT_RATE_CARDS.items()
    }


def resolve_rate_card(
    tier: str, rate_cards: Optional[Mapping[str, RateCardDefinition]] = None
) -> RateCardDefinition:
    cards = rate_cards if rate_cards is not None else builtin_rate_cards()
    card = cards.get(normalize_tier(tier))
    if card is None:
        raise ConfigurationError(
            f"Rate card not found for user category: {tier}",
            setting="rate_card",
            details={"tier": tier, "available": sorted(cards)},
        )
    return card


def calculate_charges(
    tier: str,
    weight_grams: Number,
    dimensions: Optional[Union[Dimensions, Mapping]] = None,
    zone: Optional[str] = None,
    cod_amount: Number = 0,
    direction: Union[ShipmentDirection, str] = ShipmentDirection.FORWARD,
    rate_cards: Optional[Mapping[str, RateCardDefinition]] = None,
) -> ChargeBreakdown:
    """
    Price a shipment for a tier.

    Raises ConfigurationError for an unknown tier. An unknown zone is not an
    error: forward and RTO come back as 0 with serviceable=False, which
    callers must treat as "cannot ship", never as free shipping.
    """
    card = resolve_rate_card(tier, rate_cards)
    direction = ShipmentDirection(direction)

    weight = _to_decimal(weight_grams)
    if weight < 0:
        raise ValidationError("Weight must not be negative", field="weight_grams", value=weight_grams)

    volumetric_kg = volumetric_weight_kg(dimensions)
    chargeable = max(weight, volumetric_kg * 1000)

    rate_zone = normalize_zone(zone)
    if rate_zone is None:
        forward = rto = Decimal("0.00")
    else:
        forward = _money(slab_charge(card.slab_table(ShipmentDirection.FORWARD), chargeable, rate_zone))
        rto = _money(slab_charge(card.slab_table(ShipmentDirection.RTO), chargeable, rate_zone))

    cod = cod_charge(cod_amount, card.cod_charges)
    base = forward if direction == ShipmentDirection.FORWARD else rto

    return ChargeBreakdown(
        user_category=card.user_category,
        zone=rate_zone,
        serviceable=rate_zone is not None,
        direction=direction,
        forward=forward,
        rto=rto,
        cod=cod,
        total=_money(base + cod),
        volumetric_weight=volumetric_kg.quantize(Decimal("0.001"), rounding=ROUND_HALF_UP),
        chargeable_weight=chargeable,
    )
