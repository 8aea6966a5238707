"""
Seed the listings collection with sample marketplace data.

Every sample listing is created for the given seller at a random Toronto-area
location with a creation time spread over the last two days, so the home feed
has something to sort.
"""

from __future__ import annotations

import argparse
import json
import logging
import random
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from passit.dependencies import get_remote_data_source
from passit.remote import InMemoryRemoteDataSource, RemoteDataSource
from shared.documents import listing_from_document
from shared.formatting import HOUR_MS, now_millis
from shared.types import Listing

logger = logging.getLogger(__name__)

SAMPLE_LISTINGS_PATH = Path(__file__).resolve().parent / "sample_listings.json"

LOCATIONS = (
    "Downtown Toronto, ON",
    "North York, ON",
    "Scarborough, ON",
    "Etobicoke, ON",
    "Mississauga, ON",
)
MAX_AGE_HOURS = 48


def load_sample_listings(path: Path = SAMPLE_LISTINGS_PATH) -> List[Listing]:
    with path.open("r", encoding="utf-8") as f:
        payload = json.load(f)
    return [listing_from_document("", item) for item in payload]


def prepare_listing(
    listing: Listing, seller_id: str, rng: random.Random, now: int
) -> Listing:
    return replace(
        listing,
        seller_id=seller_id,
        location=rng.choice(LOCATIONS),
        created_timestamp=now - rng.randint(1, MAX_AGE_HOURS) * HOUR_MS,
        updated_timestamp=now,
        is_sold=False,
    )


def seed_listings(
    remote: RemoteDataSource,
    seller_id: str,
    *,
    dry_run: bool = False,
    limit: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> int:
    """Creates the sample listings; returns how many were written (or would be)."""
    rng = rng or random.Random()
    listings = load_sample_listings()
    if limit is not None:
        listings = listings[:limit]

    now = now_millis()
    created = 0
    for listing in listings:
        prepared = prepare_listing(listing, seller_id, rng, now)
        if dry_run:
            logger.info("Would create: %s (%s)", prepared.title, prepared.location)
            created += 1
            continue
        try:
            listing_id = remote.create_listing(prepared, seller_id)
            # create_listing stamps "now"; keep the spread-out creation time.
            remote.update_listing(replace(prepared, id=listing_id))
        except Exception as exc:
            logger.exception("Failed to create %s: %s", prepared.title, exc)
            continue
        logger.info("Created: %s (%s)", prepared.title, listing_id)
        created += 1
    return created


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed sample listings")
    parser.add_argument("seller_id", help="User id that will own the listings")
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Max number of sample listings to create",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the listings that would be created without writing them",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )
    if not args.seller_id.strip():
        logger.error("A seller id is required")
        return 1

    remote = get_remote_data_source()
    if isinstance(remote, InMemoryRemoteDataSource) and not args.dry_run:
        logger.error(
            "Firebase is not configured (or in-memory backends are forced); "
            "nothing would be persisted. Set FIREBASE_PROJECT_ID or use --dry-run"
        )
        return 1

    created = seed_listings(remote, args.seller_id, dry_run=args.dry_run, limit=args.limit)
    logger.info("Seed complete: %d listings", created)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
