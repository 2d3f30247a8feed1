"""Listing lifecycle: ``pending`` -> ``approved`` | ``rejected``, both terminal.

A transition is a single conditional update on ``status = 'pending'``, so
of two racing admins exactly one moves the row and the other gets
``not_pending_or_not_found``. The status write and its audit entry commit
together; the owner notification is sent only after that commit.
"""

from typing import Optional

from sqlalchemy.orm import Session

from . import audit_log
from .auth import ensure_admin, ensure_role
from .database import storage_guard, unit_of_work
from .logging_utils import log_event
from .models import LifecycleStatus, ModerationAction, UserRole
from .notifications import NotificationKind, Notifier, send_best_effort
from .repositories import ListingRepository
from .results import Err, ErrorKind, Ok, Result
from .schemas import Identity

ENTITY = "listing"


@storage_guard
def submit_listing(db: Session, actor: Identity, *, name: str, description: Optional[str] = None) -> Result:
    denied = ensure_role(actor, UserRole.owner)
    if denied:
        return denied
    name = (name or "").strip()
    if not name or len(name) > 255:
        return Err(ErrorKind.invalid_input, "Listing name must be between 1 and 255 characters", ENTITY)

    with unit_of_work(db):
        listing = ListingRepository(db).add(
            owner_id=actor.actor_id,
            name=name,
            description=description,
            status=LifecycleStatus.pending.value,
            average_rating=0.0,
            review_count=0,
        )
    log_event("listing_submitted", listing_id=listing.id, owner_id=actor.actor_id)
    return Ok(listing)


@storage_guard
def get_listing(db: Session, listing_id: str) -> Result:
    listing = ListingRepository(db).get(listing_id)
    if listing is None:
        return Err(ErrorKind.not_found, "Listing not found", ENTITY, listing_id)
    return Ok(listing)


@storage_guard
def list_pending_listings(db: Session, actor: Identity) -> Result:
    denied = ensure_admin(actor)
    if denied:
        return denied
    return Ok(ListingRepository(db).list_by_status(LifecycleStatus.pending))


@storage_guard
def approve_listing(db: Session, actor: Identity, listing_id: str, *, notifier: Notifier) -> Result:
    denied = ensure_admin(actor)
    if denied:
        return denied

    listings = ListingRepository(db)
    with unit_of_work(db):
        if not listings.transition_from_pending(listing_id, LifecycleStatus.approved):
            return Err(ErrorKind.not_pending_or_not_found, "Listing not found or not pending", ENTITY, listing_id)
        listing = listings.get(listing_id)
        audit_log.append(
            db,
            actor_id=actor.actor_id,
            action=ModerationAction.listing_approve,
            entity_type=ENTITY,
            entity_id=listing_id,
            reason=None,
        )
    log_event("listing_approved", listing_id=listing_id, admin_id=actor.actor_id)

    sent = send_best_effort(
        notifier,
        NotificationKind.listing_approved,
        listing.owner_id,
        {"listing_name": listing.name, "listing_id": listing_id, "entity_id": listing_id},
    )
    return Ok({"listing_id": listing_id, "new_status": LifecycleStatus.approved, "notification_sent": sent})


@storage_guard
def reject_listing(
    db: Session,
    actor: Identity,
    listing_id: str,
    *,
    reason: Optional[str],
    notifier: Notifier,
) -> Result:
    denied = ensure_admin(actor)
    if denied:
        return denied
    reason = (reason or "").strip()
    if not reason:
        return Err(ErrorKind.missing_reason, "A rejection reason is required", ENTITY, listing_id)

    listings = ListingRepository(db)
    with unit_of_work(db):
        moved = listings.transition_from_pending(listing_id, LifecycleStatus.rejected, rejection_reason=reason)
        if not moved:
            return Err(ErrorKind.not_pending_or_not_found, "Listing not found or not pending", ENTITY, listing_id)
        listing = listings.get(listing_id)
        audit_log.append(
            db,
            actor_id=actor.actor_id,
            action=ModerationAction.listing_reject,
            entity_type=ENTITY,
            entity_id=listing_id,
            reason=reason,
        )
    log_event("listing_rejected", listing_id=listing_id, admin_id=actor.actor_id, reason=reason)

    sent = send_best_effort(
        notifier,
        NotificationKind.listing_rejected,
        listing.owner_id,
        {"listing_name": listing.name, "listing_id": listing_id, "reason": reason, "entity_id": listing_id},
    )
    return Ok({"listing_id": listing_id, "new_status": LifecycleStatus.rejected, "notification_sent": sent})
