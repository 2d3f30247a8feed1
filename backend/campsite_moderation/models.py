import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    text,
)
from sqlalchemy.orm import relationship

from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    user = "user"
    owner = "owner"
    admin = "admin"


class LifecycleStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class ReportReason(str, enum.Enum):
    spam = "spam"
    inappropriate = "inappropriate"
    fake = "fake"
    other = "other"


class ModerationAction(str, enum.Enum):
    listing_approve = "listing_approve"
    listing_reject = "listing_reject"
    review_hide = "review_hide"
    review_unhide = "review_unhide"
    review_delete = "review_delete"
    review_dismiss = "review_dismiss"
    owner_approve = "owner_approve"
    owner_reject = "owner_reject"


SUB_RATINGS = ("cleanliness", "staff", "facilities", "value", "location")


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    full_name = Column(String(255))
    role = Column(String(20), nullable=False, default=UserRole.user.value, server_default=UserRole.user.value)
    created_at = Column(TIMESTAMP(timezone=True), default=_now, server_default=func.now(), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), default=_now, server_default=func.now(), nullable=False)


class Listing(Base):
    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint("average_rating >= 0 AND average_rating <= 5", name="ck_listing_average_rating"),
        CheckConstraint("review_count >= 0", name="ck_listing_review_count"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    owner_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    status = Column(String(20), nullable=False, index=True, default=LifecycleStatus.pending.value, server_default=LifecycleStatus.pending.value)
    rejection_reason = Column(Text, nullable=True)
    average_rating = Column(Float, nullable=False, default=0, server_default=text("0"))
    review_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    created_at = Column(TIMESTAMP(timezone=True), default=_now, server_default=func.now(), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), default=_now, server_default=func.now(), nullable=False)

    reviews = relationship("Review", back_populates="listing", cascade="all, delete-orphan")
    wishlist_entries = relationship("WishlistEntry", back_populates="listing", cascade="all, delete-orphan")


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("author_id", "listing_id", name="uq_review_author_listing"),
        CheckConstraint("rating_overall BETWEEN 1 AND 5", name="ck_review_rating_overall"),
        CheckConstraint("report_count >= 0", name="ck_review_report_count"),
        CheckConstraint("helpful_count >= 0", name="ck_review_helpful_count"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    listing_id = Column(String(36), ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String(36), nullable=False, index=True)
    rating_overall = Column(Integer, nullable=False)
    rating_cleanliness = Column(Integer, nullable=True)
    rating_staff = Column(Integer, nullable=True)
    rating_facilities = Column(Integer, nullable=True)
    rating_value = Column(Integer, nullable=True)
    rating_location = Column(Integer, nullable=True)
    title = Column(String(200), nullable=True)
    content = Column(Text, nullable=False)
    is_hidden = Column(Boolean, nullable=False, default=False, server_default=false(), index=True)
    hidden_reason = Column(Text, nullable=True)
    hidden_by = Column(String(36), nullable=True)
    hidden_at = Column(TIMESTAMP(timezone=True), nullable=True)
    is_reported = Column(Boolean, nullable=False, default=False, server_default=false(), index=True)
    report_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    helpful_count = Column(Integer, nullable=False, default=0, server_default=text("0"))
    created_at = Column(TIMESTAMP(timezone=True), default=_now, server_default=func.now(), nullable=False)
    updated_at = Column(TIMESTAMP(timezone=True), default=_now, server_default=func.now(), nullable=False)

    listing = relationship("Listing", back_populates="reviews")
    reports = relationship("ReviewReport", back_populates="review", cascade="all, delete-orphan")
    helpful_votes = relationship("HelpfulVote", back_populates="review", cascade="all, delete-orphan")


class ReviewReport(Base):
    __tablename__ = "review_reports"
    __table_args__ = (UniqueConstraint("reporter_id", "review_id", name="uq_report_reporter_review"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    review_id = Column(String(36), ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    reporter_id = Column(String(36), nullable=False)
    reason = Column(String(20), nullable=False)
    details = Column(String(500), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), default=_now, server_default=func.now(), nullable=False)

    review = relationship("Review", back_populates="reports")


class HelpfulVote(Base):
    __tablename__ = "review_helpful_votes"
    __table_args__ = (UniqueConstraint("voter_id", "review_id", name="uq_helpful_vote_voter_review"),)

    id = Column(Integer, primary_key=True, index=True)
    review_id = Column(String(36), ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    voter_id = Column(String(36), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), default=_now, server_default=func.now(), nullable=False)

    review = relationship("Review", back_populates="helpful_votes")


class OwnerRequest(Base):
    __tablename__ = "owner_requests"
    __table_args__ = (
        Index(
            "uq_owner_request_pending",
            "requester_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    requester_id = Column(String(36), nullable=False, index=True)
    business_name = Column(String(255), nullable=False)
    business_description = Column(Text, nullable=True)
    contact_phone = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, index=True, default=LifecycleStatus.pending.value, server_default=LifecycleStatus.pending.value)
    reviewed_by = Column(String(36), nullable=True)
    reviewed_at = Column(TIMESTAMP(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), default=_now, server_default=func.now(), nullable=False)


class WishlistEntry(Base):
    __tablename__ = "wishlist_entries"
    __table_args__ = (UniqueConstraint("user_id", "listing_id", name="uq_wishlist_user_listing"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    listing_id = Column(String(36), ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)
    note = Column(String(500), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), default=_now, server_default=func.now(), nullable=False)

    listing = relationship("Listing", back_populates="wishlist_entries")


class ModerationLog(Base):
    __tablename__ = "moderation_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(String(36), nullable=False, index=True)
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(36), nullable=False, index=True)
    reason = Column(Text, nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), default=_now, server_default=func.now(), nullable=False, index=True)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    kind = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    entity_id = Column(String(36), nullable=True)
    read = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(TIMESTAMP(timezone=True), default=_now, server_default=func.now(), nullable=False)
