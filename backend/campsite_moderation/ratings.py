"""Rating aggregation over the currently visible reviews of a listing.

The aggregate on the listing row is only ever written here. Every rounding
of a rating average goes through :func:`round_rating`, half-up to one
decimal place. An empty set yields ``0.0`` and a count of ``0``.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from . import models
from .database import storage_guard, unit_of_work
from .logging_utils import log_event, log_warning
from .repositories import ListingRepository, ReviewRepository
from .results import Err, ErrorKind, Ok, Result

EMPTY_AVERAGE = 0.0
_ONE_DECIMAL = Decimal("0.1")


def round_rating(total: int, count: int) -> float:
    if count <= 0:
        return EMPTY_AVERAGE
    mean = Decimal(total) / Decimal(count)
    return float(mean.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


def average(values: Iterable[int]) -> float:
    values = list(values)
    return round_rating(sum(values), len(values))


def recompute(db: Session, listing_id: str) -> Optional[models.Listing]:
    """Rewrite ``average_rating``/``review_count`` from the visible reviews.

    Runs inside the caller's transaction. On PostgreSQL the listing row is
    locked first so concurrent recomputations for the same listing
    serialize instead of overwriting each other.
    """
    listings = ListingRepository(db)
    listing = listings.get_for_update(listing_id)
    if listing is None:
        return None

    db.flush()
    ratings = ReviewRepository(db).visible_overall_ratings(listing_id)
    new_average = average(ratings)
    new_count = len(ratings)
    if listing.average_rating != new_average or listing.review_count != new_count:
        listing.average_rating = new_average
        listing.review_count = new_count
        db.flush()
        log_event("listing_aggregate_updated", listing_id=listing_id, average_rating=new_average, review_count=new_count)
    return listing


def summarize(db: Session, listing_id: str) -> dict:
    reviews = ReviewRepository(db).visible_for_listing(listing_id)
    total = len(reviews)
    distribution = {star: 0 for star in range(1, 6)}
    for review in reviews:
        if 1 <= review.rating_overall <= 5:
            distribution[review.rating_overall] += 1

    percentages = {
        star: int((Decimal(count * 100) / Decimal(total)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)) if total else 0
        for star, count in distribution.items()
    }

    category_averages = {}
    for category in models.SUB_RATINGS:
        values = [getattr(r, f"rating_{category}") for r in reviews if getattr(r, f"rating_{category}")]
        category_averages[category] = average(values) if values else None

    return {
        "listing_id": listing_id,
        "average_rating": average(r.rating_overall for r in reviews),
        "total_count": total,
        "rating_distribution": distribution,
        "rating_percentages": percentages,
        "category_averages": category_averages,
    }


@storage_guard
def review_summary(db: Session, listing_id: str) -> Result:
    if ListingRepository(db).get(listing_id) is None:
        return Err(ErrorKind.not_found, "Listing not found", "listing", listing_id)
    return Ok(summarize(db, listing_id))


def recompute_many(db: Session, listing_ids: Optional[Iterable[str]] = None) -> int:
    """Recompute each listing in its own transaction; returns how many aggregates changed."""
    ids = list(listing_ids) if listing_ids is not None else ListingRepository(db).all_ids()
    changed = 0
    for listing_id in ids:
        with unit_of_work(db):
            listing = ListingRepository(db).get(listing_id)
            if listing is None:
                log_warning("listing_aggregate_skipped", listing_id=listing_id)
                continue
            before = (listing.average_rating, listing.review_count)
            recompute(db, listing_id)
            if (listing.average_rating, listing.review_count) != before:
                changed += 1
    return changed
