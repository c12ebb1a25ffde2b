"""
Shipsarthi Rate Card Configuration

Built-in Delhivery rate cards for each user tier. These are the fallback
when the rate_cards table has no active row for a tier, and the source
for `seed_rate_cards()`.

Every rate card carries seven forward and seven RTO slabs. Slabs are
identified by a stable ``slab`` key; ``condition`` is the label shown on
the published rate sheet. Prices are INR per zone (A-F).
"""
from typing import Dict, List, Tuple

# ============================================================================
# ZONES
# ============================================================================

RATE_CARD_ZONES: Tuple[str, ...] = ("A", "B", "C", "D", "E", "F")

# Carrier zone code -> rate card zone
ZONE_ALIASES: Dict[str, str] = {
    "A": "A",
    "B": "B",
    "C": "C",
    "C1": "C",
    "C2": "C",
    "D": "D",
    "D1": "D",
    "D2": "D",
    "E": "E",
    "F": "F",
}

ZONE_DEFINITIONS: List[Dict[str, str]] = [
    {"zone": "Zone A", "definition": "Local within city pickup and delivery."},
    {"zone": "Zone B", "definition": "Origin to destination within 500 kms Regional."},
    {
        "zone": "Zone C (Metro to Metro)",
        "definition": "Origin to destination between 501 - 2500 kms (Metro to Metro only).",
    },
    {
        "zone": "Zone D (Rest of India)",
        "definition": "Origin to destination between 501 - 2500 kms (Rest of India only).",
    },
    {"zone": "Zone E & F (Special)", "definition": "NE, J&K and origin to destination >2500 kms"},
]

TERMS_AND_CONDITIONS: List[str] = [
    "Above Shared Commercials are Inclusive GST.",
    "Above pricing subject to change based on courier company updation or change in any commercials.",
    "Freight Weight is Picked - Volumetric or Dead weight whichever is higher will be charged.",
    "Other charges like address correction charges if applicable shall be charged extra.",
    "Prohibited item not to be ship, if any penalty will charge to seller.",
    "No Claim would be entertained for Glassware, Fragile products.",
    "Any weight dispute due to incorrect weight declaration cannot be claimed.",
    "Chargeable weight would be volumetric or actual weight, whichever is higher (LxBxH/5000).",
    "Liability maximum limit INR 2000 or product value whichever is lower.",
]

# ============================================================================
# SLABS
# ============================================================================

SLAB_BASE = "base"
SLAB_250_500 = "250_500"
SLAB_ADD_500_TILL_5KG = "add_500_till_5kg"
SLAB_UPTO_5KG = "upto_5kg"
SLAB_ADD_1KG_TILL_10KG = "add_1kg_till_10kg"
SLAB_UPTO_10KG = "upto_10kg"
SLAB_ADD_1KG = "add_1kg"

SLAB_KEYS: Tuple[str, ...] = (
    SLAB_BASE,
    SLAB_250_500,
    SLAB_UPTO_5KG,
    SLAB_ADD_500_TILL_5KG,
    SLAB_UPTO_10KG,
    SLAB_ADD_1KG_TILL_10KG,
    SLAB_ADD_1KG,
)

FORWARD_SLAB_LABELS: Dict[str, str] = {
    SLAB_BASE: "0-250 gm",
    SLAB_250_500: "250-500 gm",
    SLAB_UPTO_5KG: "Upto 5kgs",
    SLAB_ADD_500_TILL_5KG: "Add. 500 gm till 5kg",
    SLAB_UPTO_10KG: "Upto 10 kgs",
    SLAB_ADD_1KG_TILL_10KG: "Add. 1 kgs till 10kg",
    SLAB_ADD_1KG: "Add. 1 kgs",
}

RTO_SLAB_LABELS: Dict[str, str] = {
    SLAB_BASE: "DTO 0-250 gm",
    SLAB_250_500: "DTO 250-500 gm",
    SLAB_ADD_500_TILL_5KG: "DTO Add. 500 gm till 5kg",
    SLAB_UPTO_5KG: "DTO Upto 5kgs",
    SLAB_ADD_1KG_TILL_10KG: "DTO Add. 1 kgs till 10k",
    SLAB_UPTO_10KG: "DTO Upto 10 kgs",
    SLAB_ADD_1KG: "DTO Add. 1 kgs",
}


def _slabs(labels: Dict[str, str], rows: Dict[str, Tuple[int, ...]]) -> List[Dict]:
    """Expand {slab: (A..F prices)} into the stored slab list."""
    return [
        {
            "slab": slab,
            "condition": labels[slab],
            "zones": dict(zip(RATE_CARD_ZONES, prices)),
        }
        for slab, prices in rows.items()
    ]


# ============================================================================
# TIERS
# ============================================================================

# Tier aliases, applied after lowercasing and whitespace collapse
TIER_ALIASES: Dict[str, str] = {
    "advanced user": "advanced",
}

DEFAULT_RATE_CARDS: Dict[str, Dict] = {
    "new user": {
        "user_category": "New User",
        "carrier": "DELHIVERY",
        "forward_charges": _slabs(FORWARD_SLAB_LABELS, {
            SLAB_BASE: (36, 42, 43, 46, 56, 62),
            SLAB_250_500: (6, 8, 12, 13, 13, 14),
            SLAB_UPTO_5KG: (135, 188, 263, 278, 337, 375),
            SLAB_ADD_500_TILL_5KG: (10, 17, 28, 32, 40, 44),
            SLAB_UPTO_10KG: (221, 277, 387, 411, 498, 554),
            SLAB_ADD_1KG_TILL_10KG: (27, 30, 39, 46, 55, 65),
            SLAB_ADD_1KG: (19, 23, 29, 33, 46, 48),
        }),
        "rto_charges": _slabs(RTO_SLAB_LABELS, {
            SLAB_BASE: (43, 51, 52, 55, 68, 75),
            SLAB_250_500: (7, 7, 14, 14, 16, 17),
            SLAB_ADD_500_TILL_5KG: (12, 20, 36, 42, 51, 55),
            SLAB_UPTO_5KG: (156, 217, 302, 321, 389, 432),
            SLAB_ADD_1KG_TILL_10KG: (33, 36, 46, 55, 66, 78),
            SLAB_UPTO_10KG: (254, 319, 300, 474, 573, 638),
            SLAB_ADD_1KG: (23, 27, 35, 40, 55, 58),
        }),
        "cod_charges": {"percentage": "1.8", "minimum_amount": "45", "gst_additional": True},
    },
    "basic user": {
        "user_category": "Basic User",
        "carrier": "DELHIVERY",
        "forward_charges": _slabs(FORWARD_SLAB_LABELS, {
            SLAB_BASE: (33, 38, 40, 42, 52, 57),
            SLAB_250_500: (5, 5, 11, 11, 12, 13),
            SLAB_UPTO_5KG: (119, 165, 232, 245, 297, 330),
            SLAB_ADD_500_TILL_5KG: (9, 16, 28, 32, 38, 42),
            SLAB_UPTO_10KG: (195, 244, 340, 361, 438, 487),
            SLAB_ADD_1KG_TILL_10KG: (25, 28, 36, 42, 50, 60),
            SLAB_ADD_1KG: (17, 21, 26, 30, 42, 44),
        }),
        "rto_charges": _slabs(RTO_SLAB_LABELS, {
            SLAB_BASE: (40, 46, 48, 50, 62, 69),
            SLAB_250_500: (7, 7, 13, 13, 15, 16),
            SLAB_ADD_500_TILL_5KG: (11, 19, 33, 38, 46, 50),
            SLAB_UPTO_5KG: (143, 199, 277, 294, 356, 396),
            SLAB_ADD_1KG_TILL_10KG: (30, 33, 42, 50, 61, 71),
            SLAB_UPTO_10KG: (233, 293, 275, 434, 526, 585),
            SLAB_ADD_1KG: (21, 25, 32, 37, 50, 53),
        }),
        "cod_charges": {"percentage": "1.5", "minimum_amount": "35", "gst_additional": True},
    },
    "lite user": {
        "user_category": "Lite User",
        "carrier": "DELHIVERY",
        "forward_charges": _slabs(FORWARD_SLAB_LABELS, {
            SLAB_BASE: (34, 39, 42, 44, 53, 59),
            SLAB_250_500: (6, 6, 11, 11, 12, 14),
            SLAB_UPTO_5KG: (125, 173, 242, 256, 310, 345),
            SLAB_ADD_500_TILL_5KG: (10, 17, 28, 32, 39, 44),
            SLAB_UPTO_10KG: (203, 255, 356, 378, 458, 509),
            SLAB_ADD_1KG_TILL_10KG: (26, 29, 37, 44, 53, 62),
            SLAB_ADD_1KG: (18, 22, 28, 32, 44, 46),
        }),
        "rto_charges": _slabs(RTO_SLAB_LABELS, {
            SLAB_BASE: (42, 48, 50, 53, 65, 72),
            SLAB_250_500: (7, 7, 14, 14, 15, 17),
            SLAB_ADD_500_TILL_5KG: (11, 19, 35, 40, 48, 53),
            SLAB_UPTO_5KG: (149, 208, 289, 307, 372, 414),
            SLAB_ADD_1KG_TILL_10KG: (32, 35, 44, 53, 64, 75),
            SLAB_UPTO_10KG: (244, 306, 288, 454, 550, 612),
            SLAB_ADD_1KG: (22, 26, 33, 39, 53, 55),
        }),
        "cod_charges": {"percentage": "1.8", "minimum_amount": "40", "gst_additional": True},
    },
    "advanced": {
        "user_category": "Advanced",
        "carrier": "DELHIVERY",
        "forward_charges": _slabs(FORWARD_SLAB_LABELS, {
            SLAB_BASE: (32, 37, 38, 40, 49, 54),
            SLAB_250_500: (5, 5, 10, 10, 11, 13),
            SLAB_UPTO_5KG: (114, 158, 221, 234, 283, 315),
            SLAB_ADD_500_TILL_5KG: (9, 15, 27, 30, 37, 40),
            SLAB_UPTO_10KG: (186, 233, 325, 345, 418, 465),
            SLAB_ADD_1KG_TILL_10KG: (24, 27, 34, 40, 48, 57),
            SLAB_ADD_1KG: (16, 20, 25, 29, 40, 42),
        }),
        "rto_charges": _slabs(RTO_SLAB_LABELS, {
            SLAB_BASE: (38, 44, 45, 48, 59, 66),
            SLAB_250_500: (6, 6, 13, 13, 14, 15),
            SLAB_ADD_500_TILL_5KG: (10, 18, 32, 37, 44, 48),
            SLAB_UPTO_5KG: (136, 190, 264, 281, 340, 378),
            SLAB_ADD_1KG_TILL_10KG: (29, 32, 40, 48, 58, 68),
            SLAB_UPTO_10KG: (222, 279, 263, 415, 502, 559),
            SLAB_ADD_1KG: (20, 24, 30, 35, 48, 51),
        }),
        "cod_charges": {"percentage": "1.25", "minimum_amount": "25", "gst_additional": True},
    },
}
