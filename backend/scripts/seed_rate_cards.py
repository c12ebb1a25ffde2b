"""
Seed Rate Cards Script

Writes the built-in tier rate cards into the rate_cards table so they can be
edited in the database. Existing rows for the same tier are overwritten.

Usage:
    python scripts/seed_rate_cards.py
"""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from shipsarthi.db.base import Base
from shipsarthi.db.session import SessionLocal, engine
import shipsarthi.models  # noqa: F401
from shipsarthi.services.rate_card_cache import seed_rate_cards


def main():
    print("\n" + "=" * 60)
    print("SEEDING RATE CARDS")
    print("=" * 60)

    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        written = seed_rate_cards(db)
        print(f"\n  Wrote {written} rate cards")
    finally:
        db.close()


if __name__ == "__main__":
    main()
