from typing import Optional

from sqlalchemy.orm import Session

from .database import storage_guard, unit_of_work
from .logging_utils import log_event
from .repositories import Conflict, ListingRepository, WishlistRepository
from .results import Err, ErrorKind, Ok, Result
from .schemas import Identity

MAX_NOTE_LENGTH = 500


@storage_guard
def add_to_wishlist(db: Session, actor: Identity, listing_id: str, *, note: Optional[str] = None) -> Result:
    if note is not None and len(note) > MAX_NOTE_LENGTH:
        return Err(ErrorKind.invalid_input, f"Note must be at most {MAX_NOTE_LENGTH} characters", "wishlist_entry")

    with unit_of_work(db):
        if ListingRepository(db).get_approved(listing_id) is None:
            return Err(ErrorKind.not_found, "Listing not found or not available", "listing", listing_id)
        entry = WishlistRepository(db).try_create(user_id=actor.actor_id, listing_id=listing_id, note=note)
        if isinstance(entry, Conflict):
            return Err(ErrorKind.duplicate_relationship, "Listing is already in your wishlist", "listing", listing_id)
    log_event("wishlist_added", user_id=actor.actor_id, listing_id=listing_id)
    return Ok(entry)


@storage_guard
def remove_from_wishlist(db: Session, actor: Identity, listing_id: str) -> Result:
    with unit_of_work(db):
        removed = WishlistRepository(db).remove(actor.actor_id, listing_id)
    if not removed:
        return Err(ErrorKind.not_found, "Listing is not in your wishlist", "listing", listing_id)
    log_event("wishlist_removed", user_id=actor.actor_id, listing_id=listing_id)
    return Ok({"listing_id": listing_id, "removed": True})


@storage_guard
def list_wishlist(db: Session, actor: Identity) -> Result:
    return Ok(WishlistRepository(db).for_user(actor.actor_id))
