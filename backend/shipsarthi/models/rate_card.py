"""
Rate Card Model

Per-tier pricing overrides. Rows here take precedence over the built-in
cards in shipsarthi.core.rate_card_config.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON, Numeric
from datetime import datetime

from shipsarthi.db.base import Base


class RateCard(Base):
    """Shipping rate card for a user tier"""
    __tablename__ = "rate_cards"

    id = Column(Integer, primary_key=True, index=True)

    # Normalized tier name ("basic user") is the lookup key
    tier_key = Column(String(100), unique=True, nullable=False, index=True)
    user_category = Column(String(100), nullable=False)  # Display name ("Basic User")
    carrier = Column(String(50), nullable=False, default="DELHIVERY")

    # Slab tables: [{"slab", "condition", "zones": {"A": 36, ...}}, ...]
    forward_charges = Column(JSON, nullable=False)
    rto_charges = Column(JSON, nullable=False)

    # COD rule
    cod_percentage = Column(Numeric(6, 3), nullable=False)
    cod_minimum_amount = Column(Numeric(10, 2), nullable=False)
    cod_gst_additional = Column(Boolean, nullable=False, default=True)

    zone_definitions = Column(JSON, nullable=True)
    terms_and_conditions = Column(JSON, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<RateCard {self.user_category}>"
