"""Create moderation schema

Revision ID: 0000_initial_schema
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0000_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.TIMESTAMP(timezone=True), server_default=sa.func.now(), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="user"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "listings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("owner_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("average_rating", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("review_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("average_rating >= 0 AND average_rating <= 5", name="ck_listing_average_rating"),
        sa.CheckConstraint("review_count >= 0", name="ck_listing_review_count"),
    )
    op.create_index("ix_listings_owner_id", "listings", ["owner_id"])
    op.create_index("ix_listings_status", "listings", ["status"])

    op.create_table(
        "reviews",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("listing_id", sa.String(length=36), sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("author_id", sa.String(length=36), nullable=False),
        sa.Column("rating_overall", sa.Integer(), nullable=False),
        sa.Column("rating_cleanliness", sa.Integer(), nullable=True),
        sa.Column("rating_staff", sa.Integer(), nullable=True),
        sa.Column("rating_facilities", sa.Integer(), nullable=True),
        sa.Column("rating_value", sa.Integer(), nullable=True),
        sa.Column("rating_location", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_hidden", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("hidden_reason", sa.Text(), nullable=True),
        sa.Column("hidden_by", sa.String(length=36), nullable=True),
        sa.Column("hidden_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("is_reported", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("report_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("helpful_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("author_id", "listing_id", name="uq_review_author_listing"),
        sa.CheckConstraint("rating_overall BETWEEN 1 AND 5", name="ck_review_rating_overall"),
        sa.CheckConstraint("report_count >= 0", name="ck_review_report_count"),
        sa.CheckConstraint("helpful_count >= 0", name="ck_review_helpful_count"),
    )
    op.create_index("ix_reviews_listing_id", "reviews", ["listing_id"])
    op.create_index("ix_reviews_author_id", "reviews", ["author_id"])
    op.create_index("ix_reviews_is_hidden", "reviews", ["is_hidden"])
    op.create_index("ix_reviews_is_reported", "reviews", ["is_reported"])

    op.create_table(
        "review_reports",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("review_id", sa.String(length=36), sa.ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reporter_id", sa.String(length=36), nullable=False),
        sa.Column("reason", sa.String(length=20), nullable=False),
        sa.Column("details", sa.String(length=500), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("reporter_id", "review_id", name="uq_report_reporter_review"),
    )
    op.create_index("ix_review_reports_review_id", "review_reports", ["review_id"])

    op.create_table(
        "review_helpful_votes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("review_id", sa.String(length=36), sa.ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False),
        sa.Column("voter_id", sa.String(length=36), nullable=False),
        _timestamp("created_at"),
        sa.UniqueConstraint("voter_id", "review_id", name="uq_helpful_vote_voter_review"),
    )
    op.create_index("ix_review_helpful_votes_id", "review_helpful_votes", ["id"])
    op.create_index("ix_review_helpful_votes_review_id", "review_helpful_votes", ["review_id"])

    op.create_table(
        "owner_requests",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("requester_id", sa.String(length=36), nullable=False),
        sa.Column("business_name", sa.String(length=255), nullable=False),
        sa.Column("business_description", sa.Text(), nullable=True),
        sa.Column("contact_phone", sa.String(length=50), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("reviewed_by", sa.String(length=36), nullable=True),
        sa.Column("reviewed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_owner_requests_requester_id", "owner_requests", ["requester_id"])
    op.create_index("ix_owner_requests_status", "owner_requests", ["status"])
    op.create_index(
        "uq_owner_request_pending",
        "owner_requests",
        ["requester_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        "wishlist_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("listing_id", sa.String(length=36), sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("note", sa.String(length=500), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("user_id", "listing_id", name="uq_wishlist_user_listing"),
    )
    op.create_index("ix_wishlist_entries_id", "wishlist_entries", ["id"])
    op.create_index("ix_wishlist_entries_user_id", "wishlist_entries", ["user_id"])

    op.create_table(
        "moderation_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_moderation_logs_id", "moderation_logs", ["id"])
    op.create_index("ix_moderation_logs_actor_id", "moderation_logs", ["actor_id"])
    op.create_index("ix_moderation_logs_action", "moderation_logs", ["action"])
    op.create_index("ix_moderation_logs_entity_type", "moderation_logs", ["entity_type"])
    op.create_index("ix_moderation_logs_entity_id", "moderation_logs", ["entity_id"])
    op.create_index("ix_moderation_logs_created_at", "moderation_logs", ["created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("kind", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("moderation_logs")
    op.drop_table("wishlist_entries")
    op.drop_index("uq_owner_request_pending", table_name="owner_requests")
    op.drop_table("owner_requests")
    op.drop_table("review_helpful_votes")
    op.drop_table("review_reports")
    op.drop_table("reviews")
    op.drop_table("listings")
    op.drop_table("profiles")
