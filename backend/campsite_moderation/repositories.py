"""Typed storage access, one repository per entity.

Uniqueness of relationship rows (review per author/listing, report per
reporter/review, vote per voter/review, wishlist entry per user/listing,
pending owner request per requester) is enforced by the schema. The
repositories surface a violated key as :data:`CONFLICT` instead of an
exception so callers can tell it apart from a storage failure.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Generic, Iterable, Optional, Type, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models
from .database import is_postgres

ModelType = TypeVar("ModelType")


class Conflict:
    """Returned by ``try_create`` when the natural key already has a row."""

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "CONFLICT"


CONFLICT = Conflict()


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


class BaseRepository(Generic[ModelType]):
    model: Type[ModelType]

    def __init__(self, db: Session):
        self.db = db

    def get(self, entity_id: Any) -> Optional[ModelType]:
        return self.db.get(self.model, entity_id, populate_existing=True)

    def get_for_update(self, entity_id: Any) -> Optional[ModelType]:
        """Row lock on PostgreSQL; plain read elsewhere."""
        query = self.db.query(self.model).filter(self.model.id == entity_id)
        if is_postgres(self.db):
            query = query.with_for_update()
        return query.populate_existing().one_or_none()

    def add(self, **values: Any) -> ModelType:
        record = self.model(**values)
        self.db.add(record)
        self.db.flush()
        return record

    def try_create(self, **values: Any) -> ModelType | Conflict:
        # The savepoint keeps a duplicate-key failure from aborting the caller's transaction.
        record = self.model(**values)
        try:
            with self.db.begin_nested():
                self.db.add(record)
        except IntegrityError:
            return CONFLICT
        return record


class ProfileRepository(BaseRepository[models.Profile]):
    model = models.Profile

    def set_role(self, profile_id: str, role: models.UserRole) -> int:
        return (
            self.db.query(models.Profile)
            .filter(models.Profile.id == profile_id)
            .update({"role": role.value, "updated_at": now_utc()}, synchronize_session="fetch")
        )


class ListingRepository(BaseRepository[models.Listing]):
    model = models.Listing

    def transition_from_pending(self, listing_id: str, status: models.LifecycleStatus, **fields: Any) -> int:
        """Conditional ``UPDATE ... WHERE status = 'pending'``; returns the number of rows moved (0 or 1)."""
        values = {"status": status.value, "updated_at": now_utc(), **fields}
        return (
            self.db.query(models.Listing)
            .filter(
                models.Listing.id == listing_id,
                models.Listing.status == models.LifecycleStatus.pending.value,
            )
            .update(values, synchronize_session="fetch")
        )

    def get_approved(self, listing_id: str) -> Optional[models.Listing]:
        return (
            self.db.query(models.Listing)
            .filter(
                models.Listing.id == listing_id,
                models.Listing.status == models.LifecycleStatus.approved.value,
            )
            .first()
        )

    def list_by_status(self, status: models.LifecycleStatus) -> list[models.Listing]:
        return (
            self.db.query(models.Listing)
            .filter(models.Listing.status == status.value)
            .order_by(models.Listing.created_at.asc(), models.Listing.id.asc())
            .all()
        )

    def all_ids(self) -> list[str]:
        return [row[0] for row in self.db.query(models.Listing.id).order_by(models.Listing.id).all()]


class ReviewRepository(BaseRepository[models.Review]):
    model = models.Review

    def visible_for_listing(self, listing_id: str) -> list[models.Review]:
        return (
            self.db.query(models.Review)
            .filter(models.Review.listing_id == listing_id, models.Review.is_hidden.is_(False))
            .all()
        )

    def page_visible(self, listing_id: str, *, order_by: Any, offset: int, limit: int) -> tuple[list[models.Review], int]:
        query = self.db.query(models.Review).filter(
            models.Review.listing_id == listing_id, models.Review.is_hidden.is_(False)
        )
        total = query.count()
        rows = query.order_by(order_by, models.Review.id.asc()).offset(offset).limit(limit).all()
        return rows, total

    def visible_overall_ratings(self, listing_id: str) -> list[int]:
        rows = (
            self.db.query(models.Review.rating_overall)
            .filter(models.Review.listing_id == listing_id, models.Review.is_hidden.is_(False))
            .all()
        )
        return [int(row[0]) for row in rows]

    def increment_reports(self, review_id: str) -> int:
        return (
            self.db.query(models.Review)
            .filter(models.Review.id == review_id)
            .update(
                {
                    "report_count": models.Review.report_count + 1,
                    "is_reported": True,
                    "updated_at": now_utc(),
                },
                synchronize_session="fetch",
            )
        )

    def reset_reports(self, review_id: str) -> int:
        return (
            self.db.query(models.Review)
            .filter(models.Review.id == review_id)
            .update(
                {"report_count": 0, "is_reported": False, "updated_at": now_utc()},
                synchronize_session="fetch",
            )
        )

    def set_helpful_count(self, review_id: str, count: int) -> None:
        self.db.query(models.Review).filter(models.Review.id == review_id).update(
            {"helpful_count": count}, synchronize_session="fetch"
        )

    def list_reported(self, min_reports: int = 1) -> list[models.Review]:
        return (
            self.db.query(models.Review)
            .filter(
                models.Review.is_reported.is_(True),
                models.Review.is_hidden.is_(False),
                models.Review.report_count >= min_reports,
            )
            .order_by(models.Review.report_count.desc(), models.Review.created_at.asc())
            .all()
        )

    def delete(self, review: models.Review) -> None:
        self.db.delete(review)
        self.db.flush()


class ReportRepository(BaseRepository[models.ReviewReport]):
    model = models.ReviewReport

    def delete_for_review(self, review_id: str) -> int:
        return (
            self.db.query(models.ReviewReport)
            .filter(models.ReviewReport.review_id == review_id)
            .delete(synchronize_session="fetch")
        )


class HelpfulVoteRepository(BaseRepository[models.HelpfulVote]):
    model = models.HelpfulVote

    def toggle(self, review_id: str, voter_id: str) -> bool:
        """Delete the vote if present, insert it if absent; returns whether a vote is now present."""
        removed = (
            self.db.query(models.HelpfulVote)
            .filter(models.HelpfulVote.review_id == review_id, models.HelpfulVote.voter_id == voter_id)
            .delete(synchronize_session="fetch")
        )
        if removed:
            return False
        # A concurrent insert for the same key means the vote is present either way.
        self.try_create(review_id=review_id, voter_id=voter_id)
        return True

    def count_for_review(self, review_id: str) -> int:
        return int(
            self.db.query(func.count(models.HelpfulVote.id))
            .filter(models.HelpfulVote.review_id == review_id)
            .scalar()
            or 0
        )

    def voted_review_ids(self, voter_id: str, review_ids: Iterable[str]) -> set[str]:
        ids = list(review_ids)
        if not ids:
            return set()
        rows = (
            self.db.query(models.HelpfulVote.review_id)
            .filter(models.HelpfulVote.voter_id == voter_id, models.HelpfulVote.review_id.in_(ids))
            .all()
        )
        return {row[0] for row in rows}


class OwnerRequestRepository(BaseRepository[models.OwnerRequest]):
    model = models.OwnerRequest

    def transition_from_pending(self, request_id: str, status: models.LifecycleStatus, **fields: Any) -> int:
        values = {"status": status.value, **fields}
        return (
            self.db.query(models.OwnerRequest)
            .filter(
                models.OwnerRequest.id == request_id,
                models.OwnerRequest.status == models.LifecycleStatus.pending.value,
            )
            .update(values, synchronize_session="fetch")
        )

    def list_by_status(self, status: Optional[models.LifecycleStatus]) -> list[models.OwnerRequest]:
        """Newest first; ``None`` lists every status."""
        query = self.db.query(models.OwnerRequest)
        if status is not None:
            query = query.filter(models.OwnerRequest.status == status.value)
        return query.order_by(models.OwnerRequest.created_at.desc(), models.OwnerRequest.id.asc()).all()

    def for_requester(self, requester_id: str) -> list[models.OwnerRequest]:
        return (
            self.db.query(models.OwnerRequest)
            .filter(models.OwnerRequest.requester_id == requester_id)
            .order_by(models.OwnerRequest.created_at.desc())
            .all()
        )


class WishlistRepository(BaseRepository[models.WishlistEntry]):
    model = models.WishlistEntry

    def remove(self, user_id: str, listing_id: str) -> int:
        return (
            self.db.query(models.WishlistEntry)
            .filter(models.WishlistEntry.user_id == user_id, models.WishlistEntry.listing_id == listing_id)
            .delete(synchronize_session="fetch")
        )

    def for_user(self, user_id: str) -> list[models.WishlistEntry]:
        return (
            self.db.query(models.WishlistEntry)
            .filter(models.WishlistEntry.user_id == user_id)
            .order_by(models.WishlistEntry.created_at.desc(), models.WishlistEntry.id.desc())
            .all()
        )


class ModerationLogRepository(BaseRepository[models.ModerationLog]):
    """Append-only: exposes no update or delete."""

    model = models.ModerationLog

    def for_entity(self, entity_type: str, entity_id: str) -> list[models.ModerationLog]:
        return (
            self.db.query(models.ModerationLog)
            .filter(models.ModerationLog.entity_type == entity_type, models.ModerationLog.entity_id == entity_id)
            .order_by(models.ModerationLog.id.asc())
            .all()
        )
