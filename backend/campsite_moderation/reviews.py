"""Review visibility, reports and helpful votes.

``is_hidden`` and ``is_reported`` are two independent flags: hiding never
touches the report state and dismissing reports never touches visibility.
Any change to the set of visible reviews of a listing recomputes the
listing aggregate inside the same transaction.
"""

from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from . import audit_log, ratings
from .auth import ensure_admin
from .database import storage_guard, unit_of_work
from .logging_utils import log_event
from .models import SUB_RATINGS, ModerationAction, ReportReason, Review
from .notifications import NotificationKind, Notifier, send_best_effort
from .repositories import (
    Conflict,
    HelpfulVoteRepository,
    ListingRepository,
    ReportRepository,
    ReviewRepository,
    now_utc,
)
from .results import Err, ErrorKind, Ok, Result
from .schemas import Identity

ENTITY = "review"
DELETE_REASON = "Permanently deleted by admin"
DISMISS_REASON = "Reports dismissed by admin"
MAX_CONTENT_LENGTH = 2000
MAX_TITLE_LENGTH = 200
MAX_REPORT_DETAILS_LENGTH = 500
DEFAULT_PAGE_SIZE = 5
MAX_PAGE_SIZE = 50

SORT_ORDERS = {
    "newest": Review.created_at.desc(),
    "helpful": Review.helpful_count.desc(),
    "rating_high": Review.rating_overall.desc(),
    "rating_low": Review.rating_overall.asc(),
}


def _not_found(review_id: str) -> Err:
    return Err(ErrorKind.not_found, "Review not found", ENTITY, review_id)


def _valid_star(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 5


def review_snapshot(review: Review) -> Dict[str, Any]:
    snapshot = {}
    for column in inspect(Review).columns:
        value = getattr(review, column.key)
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        snapshot[column.key] = value
    return snapshot


def _aggregate_payload(listing) -> Dict[str, Any]:
    if listing is None:
        return {"average_rating": None, "review_count": None}
    return {"average_rating": listing.average_rating, "review_count": listing.review_count}


@storage_guard
def create_review(
    db: Session,
    actor: Identity,
    listing_id: str,
    *,
    rating_overall: int,
    content: str,
    title: Optional[str] = None,
    sub_ratings: Optional[Mapping[str, Optional[int]]] = None,
) -> Result:
    sub_ratings = dict(sub_ratings or {})
    unknown = set(sub_ratings) - set(SUB_RATINGS)
    if unknown:
        return Err(ErrorKind.invalid_input, f"Unknown rating categories: {', '.join(sorted(unknown))}", ENTITY)
    if not _valid_star(rating_overall):
        return Err(ErrorKind.invalid_input, "Overall rating must be an integer between 1 and 5", ENTITY)
    if any(value is not None and not _valid_star(value) for value in sub_ratings.values()):
        return Err(ErrorKind.invalid_input, "Category ratings must be integers between 1 and 5", ENTITY)
    content = (content or "").strip()
    if not content or len(content) > MAX_CONTENT_LENGTH:
        return Err(ErrorKind.invalid_input, f"Review content must be 1-{MAX_CONTENT_LENGTH} characters", ENTITY)
    if title is not None and len(title) > MAX_TITLE_LENGTH:
        return Err(ErrorKind.invalid_input, f"Review title must be at most {MAX_TITLE_LENGTH} characters", ENTITY)

    with unit_of_work(db):
        if ListingRepository(db).get_approved(listing_id) is None:
            return Err(ErrorKind.not_found, "Listing not found or not available for reviews", "listing", listing_id)
        review = ReviewRepository(db).try_create(
            listing_id=listing_id,
            author_id=actor.actor_id,
            rating_overall=rating_overall,
            title=title,
            content=content,
            is_hidden=False,
            is_reported=False,
            report_count=0,
            helpful_count=0,
            **{f"rating_{category}": value for category, value in sub_ratings.items()},
        )
        if isinstance(review, Conflict):
            return Err(
                ErrorKind.duplicate_relationship,
                "You have already reviewed this listing",
                ENTITY,
            )
        ratings.recompute(db, listing_id)
    log_event("review_created", review_id=review.id, listing_id=listing_id, author_id=actor.actor_id)
    return Ok(review)


@storage_guard
def hide_review(
    db: Session,
    actor: Identity,
    review_id: str,
    *,
    reason: Optional[str],
    notifier: Notifier,
) -> Result:
    denied = ensure_admin(actor)
    if denied:
        return denied
    reason = (reason or "").strip()
    if not reason:
        return Err(ErrorKind.missing_reason, "A reason is required to hide a review", ENTITY, review_id)

    reviews = ReviewRepository(db)
    with unit_of_work(db):
        review = reviews.get(review_id)
        if review is None:
            return _not_found(review_id)
        now = now_utc()
        review.is_hidden = True
        review.hidden_reason = reason
        review.hidden_by = actor.actor_id
        review.hidden_at = now
        review.updated_at = now
        audit_log.append(
            db,
            actor_id=actor.actor_id,
            action=ModerationAction.review_hide,
            entity_type=ENTITY,
            entity_id=review_id,
            reason=reason,
        )
        listing = ratings.recompute(db, review.listing_id)
    log_event("review_hidden", review_id=review_id, admin_id=actor.actor_id, reason=reason)

    sent = send_best_effort(
        notifier,
        NotificationKind.review_hidden,
        review.author_id,
        {
            "listing_name": listing.name if listing is not None else "Unknown",
            "review_id": review_id,
            "reason": reason,
            "entity_id": review_id,
        },
    )
    return Ok(
        {
            "review_id": review_id,
            "action": "hide",
            "listing_id": review.listing_id,
            "notification_sent": sent,
            **_aggregate_payload(listing),
        }
    )


@storage_guard
def unhide_review(db: Session, actor: Identity, review_id: str) -> Result:
    denied = ensure_admin(actor)
    if denied:
        return denied

    reviews = ReviewRepository(db)
    with unit_of_work(db):
        review = reviews.get(review_id)
        if review is None:
            return _not_found(review_id)
        review.is_hidden = False
        review.hidden_reason = None
        review.hidden_by = None
        review.hidden_at = None
        review.updated_at = now_utc()
        audit_log.append(
            db,
            actor_id=actor.actor_id,
            action=ModerationAction.review_unhide,
            entity_type=ENTITY,
            entity_id=review_id,
            reason=None,
        )
        listing = ratings.recompute(db, review.listing_id)
    log_event("review_unhidden", review_id=review_id, admin_id=actor.actor_id)
    return Ok({"review_id": review_id, "action": "unhide", "listing_id": review.listing_id, **_aggregate_payload(listing)})


@storage_guard
def delete_review(db: Session, actor: Identity, review_id: str) -> Result:
    denied = ensure_admin(actor)
    if denied:
        return denied

    reviews = ReviewRepository(db)
    with unit_of_work(db):
        review = reviews.get(review_id)
        if review is None:
            return _not_found(review_id)
        snapshot = review_snapshot(review)
        listing_id = review.listing_id
        was_visible = not review.is_hidden
        reviews.delete(review)
        audit_log.append(
            db,
            actor_id=actor.actor_id,
            action=ModerationAction.review_delete,
            entity_type=ENTITY,
            entity_id=review_id,
            reason=DELETE_REASON,
            meta={"original_review": snapshot},
        )
        # A hidden review was already excluded from the aggregate.
        listing = ratings.recompute(db, listing_id) if was_visible else ListingRepository(db).get(listing_id)
    log_event("review_deleted", review_id=review_id, admin_id=actor.actor_id, was_visible=was_visible)
    return Ok({"review_id": review_id, "action": "delete", "listing_id": listing_id, **_aggregate_payload(listing)})


@storage_guard
def report_review(
    db: Session,
    actor: Identity,
    review_id: str,
    *,
    reason: str,
    details: Optional[str] = None,
) -> Result:
    try:
        reason = ReportReason(reason)
    except ValueError:
        return Err(ErrorKind.invalid_input, "Report reason must be one of spam, inappropriate, fake, other", ENTITY)
    if details is not None and len(details) > MAX_REPORT_DETAILS_LENGTH:
        return Err(
            ErrorKind.invalid_input,
            f"Report details must be at most {MAX_REPORT_DETAILS_LENGTH} characters",
            ENTITY,
            review_id,
        )

    reviews = ReviewRepository(db)
    with unit_of_work(db):
        review = reviews.get(review_id)
        if review is not None and review.author_id == actor.actor_id:
            return Err(ErrorKind.self_report_forbidden, entity_type=ENTITY, entity_id=review_id)
        if review is None:
            return _not_found(review_id)
        report = ReportRepository(db).try_create(
            review_id=review_id,
            reporter_id=actor.actor_id,
            reason=reason.value,
            details=details,
        )
        if isinstance(report, Conflict):
            return Err(ErrorKind.duplicate_report, entity_type=ENTITY, entity_id=review_id)
        reviews.increment_reports(review_id)
        db.refresh(review)
        report_count = review.report_count
    log_event("review_reported", review_id=review_id, reporter_id=actor.actor_id, reason=reason.value)
    return Ok({"review_id": review_id, "report_count": report_count})


@storage_guard
def dismiss_reports(db: Session, actor: Identity, review_id: str) -> Result:
    denied = ensure_admin(actor)
    if denied:
        return denied

    reviews = ReviewRepository(db)
    with unit_of_work(db):
        if reviews.get(review_id) is None:
            return _not_found(review_id)
        dismissed = ReportRepository(db).delete_for_review(review_id)
        reviews.reset_reports(review_id)
        audit_log.append(
            db,
            actor_id=actor.actor_id,
            action=ModerationAction.review_dismiss,
            entity_type=ENTITY,
            entity_id=review_id,
            reason=DISMISS_REASON,
            meta={"dismissed_reports": dismissed},
        )
    log_event("review_reports_dismissed", review_id=review_id, admin_id=actor.actor_id, dismissed=dismissed)
    return Ok({"review_id": review_id, "action": "dismiss", "dismissed_reports": dismissed})


@storage_guard
def toggle_helpful(db: Session, actor: Identity, review_id: str) -> Result:
    reviews = ReviewRepository(db)
    votes = HelpfulVoteRepository(db)
    with unit_of_work(db):
        # Locking the review serializes toggles so each one flips the vote.
        if reviews.get_for_update(review_id) is None:
            return _not_found(review_id)
        voted = votes.toggle(review_id, actor.actor_id)
        db.flush()
        helpful_count = votes.count_for_review(review_id)
        reviews.set_helpful_count(review_id, helpful_count)
    return Ok({"review_id": review_id, "helpful_count": helpful_count, "user_voted": voted})


@storage_guard
def list_reviews(
    db: Session,
    listing_id: str,
    *,
    viewer_id: Optional[str] = None,
    sort_by: str = "newest",
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> Result:
    """Public page of a listing's visible reviews, each marked with whether ``viewer_id`` voted it helpful."""
    order_by = SORT_ORDERS.get(sort_by)
    if order_by is None:
        return Err(ErrorKind.invalid_input, f"sort_by must be one of {', '.join(SORT_ORDERS)}", ENTITY)
    if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
        return Err(ErrorKind.invalid_input, f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}", ENTITY)
    if ListingRepository(db).get(listing_id) is None:
        return Err(ErrorKind.not_found, "Listing not found", "listing", listing_id)

    rows, total = ReviewRepository(db).page_visible(
        listing_id, order_by=order_by, offset=(page - 1) * limit, limit=limit
    )
    voted = set()
    if viewer_id:
        voted = HelpfulVoteRepository(db).voted_review_ids(viewer_id, (review.id for review in rows))
    items = [{**review_snapshot(review), "user_voted": review.id in voted} for review in rows]
    return Ok({"items": items, "total": total, "page": page, "limit": limit})


@storage_guard
def list_reported_reviews(db: Session, actor: Identity, *, min_reports: int = 1) -> Result:
    denied = ensure_admin(actor)
    if denied:
        return denied
    return Ok(ReviewRepository(db).list_reported(max(int(min_reports), 1)))
