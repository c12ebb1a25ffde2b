"""
Rate Card Schemas

Pydantic models for rate card definitions and the charge calculator API
"""
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from shipsarthi.core.rate_card_config import RATE_CARD_ZONES, SLAB_KEYS


class ShipmentDirection(str, Enum):
    """Which slab table prices the shipment"""
    FORWARD = "forward"
    RTO = "rto"


class RateSlab(BaseModel):
    """One weight slab with a price per zone"""
    slab: str
    condition: str
    zones: Dict[str, Decimal]

    @field_validator("zones")
    @classmethod
    def all_zones_priced(cls, v: Dict[str, Decimal]) -> Dict[str, Decimal]:
        zones = {k.strip().upper(): price for k, price in v.items()}
        missing = [z for z in RATE_CARD_ZONES if z not in zones]
        if missing:
            raise ValueError(f"missing prices for zones {missing}")
        if any(price < 0 for price in zones.values()):
            raise ValueError("zone prices must not be negative")
        return zones


class CodRule(BaseModel):
    """COD charge rule: max(percentage of amount, minimum), plus GST if additional"""
    percentage: Decimal = Field(..., ge=0)
    minimum_amount: Decimal = Field(..., ge=0)
    gst_additional: bool = True


class ZoneDefinition(BaseModel):
    zone: str
    definition: str


class RateCardDefinition(BaseModel):
    """A complete rate card; validated whenever one is loaded"""
    user_category: str = Field(..., min_length=1)
    carrier: str = "DELHIVERY"
    forward_charges: List[RateSlab]
    rto_charges: List[RateSlab]
    cod_charges: CodRule
    zone_definitions: List[ZoneDefinition] = []
    terms_and_conditions: List[str] = []

    @model_validator(mode="after")
    def all_slabs_present(self):
        for name in ("forward_charges", "rto_charges"):
            present = {s.slab for s in getattr(self, name)}
            missing = [k for k in SLAB_KEYS if k not in present]
            if missing:
                raise ValueError(f"{name} is missing slabs {missing}")
        return self

    def slab_table(self, direction: ShipmentDirection) -> Dict[str, Dict[str, Decimal]]:
        slabs = self.forward_charges if direction == ShipmentDirection.FORWARD else self.rto_charges
        return {s.slab: s.zones for s in slabs}


class Dimensions(BaseModel):
    """Package dimensions in centimetres"""
    length: Decimal = Field(Decimal("0"), ge=0)
    breadth: Decimal = Field(Decimal("0"), ge=0)
    height: Decimal = Field(Decimal("0"), ge=0)


class ChargeCalculationRequest(BaseModel):
    """Schema for POST /rate-cards/calculate"""
    tier: str = Field(..., min_length=1, description="User tier, e.g. 'Basic User'")
    weight_grams: Decimal = Field(..., ge=0)
    dimensions: Optional[Dimensions] = None
    zone: str = Field(..., min_length=1, max_length=5)
    cod_amount: Decimal = Field(Decimal("0"), ge=0)
    direction: ShipmentDirection = ShipmentDirection.FORWARD


class ChargeBreakdownResponse(BaseModel):
    """Charge breakdown; total is the direction's charge plus COD"""
    user_category: str
    zone: Optional[str] = None
    serviceable: bool
    direction: ShipmentDirection
    forward: Decimal
    rto: Decimal
    cod: Decimal
    total: Decimal
    volumetric_weight: Decimal  # kg
    chargeable_weight: Decimal  # grams


class RateCardResponse(BaseModel):
    """Rate card as shown to sellers"""
    tier_key: str
    user_category: str
    carrier: str
    forward_charges: List[RateSlab]
    rto_charges: List[RateSlab]
    cod_charges: CodRule
    zone_definitions: List[ZoneDefinition]
    terms_and_conditions: List[str]


class RateCardTiersResponse(BaseModel):
    tiers: List[str]
