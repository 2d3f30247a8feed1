"""Owner upgrade requests: ``pending`` -> ``approved`` | ``rejected``.

Approval commits the request transition and its audit entry first. The
role upgrade on the requester's profile is a second, separately committed
fact: if it fails the request stays approved and the result reports
``user_role_updated=False``.
"""

from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import audit_log
from .auth import ensure_admin
from .database import storage_guard, unit_of_work
from .logging_utils import log_event, log_warning
from .models import LifecycleStatus, ModerationAction, UserRole
from .notifications import NotificationKind, Notifier, send_best_effort
from .repositories import Conflict, OwnerRequestRepository, ProfileRepository, now_utc
from .results import Err, ErrorKind, Ok, Result
from .schemas import Identity

ENTITY = "owner_request"


def _not_pending(request_id: str) -> Err:
    return Err(ErrorKind.not_pending_or_not_found, "Owner request not found or not pending", ENTITY, request_id)


@storage_guard
def submit_owner_request(
    db: Session,
    actor: Identity,
    *,
    business_name: str,
    business_description: Optional[str] = None,
    contact_phone: Optional[str] = None,
) -> Result:
    profile = ProfileRepository(db).get(actor.actor_id)
    current_role = UserRole(profile.role) if profile is not None else actor.role
    if current_role == UserRole.owner:
        return Err(ErrorKind.forbidden, "You are already a campsite owner", ENTITY)
    if current_role == UserRole.admin:
        return Err(ErrorKind.forbidden, "Admins do not need to request owner status", ENTITY)
    business_name = (business_name or "").strip()
    if not business_name:
        return Err(ErrorKind.invalid_input, "Business name is required", ENTITY)

    with unit_of_work(db):
        request = OwnerRequestRepository(db).try_create(
            requester_id=actor.actor_id,
            business_name=business_name,
            business_description=business_description,
            contact_phone=contact_phone,
            status=LifecycleStatus.pending.value,
        )
        if isinstance(request, Conflict):
            return Err(ErrorKind.duplicate_relationship, "You already have a pending owner request", ENTITY)
    log_event("owner_request_submitted", request_id=request.id, requester_id=actor.actor_id)
    return Ok(request)


@storage_guard
def list_my_owner_requests(db: Session, actor: Identity) -> Result:
    return Ok(OwnerRequestRepository(db).for_requester(actor.actor_id))


@storage_guard
def list_owner_requests(db: Session, actor: Identity, *, status: str = LifecycleStatus.pending.value) -> Result:
    """Admin queue, newest first. ``status="all"`` disables the filter."""
    denied = ensure_admin(actor)
    if denied:
        return denied
    if status == "all":
        wanted = None
    else:
        try:
            wanted = LifecycleStatus(status)
        except ValueError:
            return Err(ErrorKind.invalid_input, "Status must be one of pending, approved, rejected, all", ENTITY)
    return Ok(OwnerRequestRepository(db).list_by_status(wanted))


def _upgrade_role(db: Session, requester_id: str) -> bool:
    try:
        with unit_of_work(db):
            updated = ProfileRepository(db).set_role(requester_id, UserRole.owner)
    except SQLAlchemyError as exc:
        log_warning("owner_role_upgrade_failed", requester_id=requester_id, error=str(exc))
        return False
    if not updated:
        log_warning("owner_role_upgrade_failed", requester_id=requester_id, error="profile not found")
        return False
    return True


@storage_guard
def approve_upgrade(db: Session, actor: Identity, request_id: str, *, notifier: Notifier) -> Result:
    denied = ensure_admin(actor)
    if denied:
        return denied

    requests = OwnerRequestRepository(db)
    with unit_of_work(db):
        moved = requests.transition_from_pending(
            request_id,
            LifecycleStatus.approved,
            reviewed_by=actor.actor_id,
            reviewed_at=now_utc(),
        )
        if not moved:
            return _not_pending(request_id)
        request = requests.get(request_id)
        audit_log.append(
            db,
            actor_id=actor.actor_id,
            action=ModerationAction.owner_approve,
            entity_type=ENTITY,
            entity_id=request_id,
            reason=None,
        )
    log_event("owner_request_approved", request_id=request_id, admin_id=actor.actor_id)

    role_updated = _upgrade_role(db, request.requester_id)
    sent = send_best_effort(
        notifier,
        NotificationKind.owner_request_approved,
        request.requester_id,
        {"business_name": request.business_name, "request_id": request_id, "entity_id": request_id},
    )
    return Ok(
        {
            "request_id": request_id,
            "new_status": LifecycleStatus.approved,
            "user_role_updated": role_updated,
            "notification_sent": sent,
        }
    )


@storage_guard
def reject_upgrade(
    db: Session,
    actor: Identity,
    request_id: str,
    *,
    reason: Optional[str],
    notifier: Notifier,
) -> Result:
    denied = ensure_admin(actor)
    if denied:
        return denied
    reason = (reason or "").strip()
    if not reason:
        return Err(ErrorKind.missing_reason, "A rejection reason is required", ENTITY, request_id)

    requests = OwnerRequestRepository(db)
    with unit_of_work(db):
        moved = requests.transition_from_pending(
            request_id,
            LifecycleStatus.rejected,
            reviewed_by=actor.actor_id,
            reviewed_at=now_utc(),
            rejection_reason=reason,
        )
        if not moved:
            return _not_pending(request_id)
        request = requests.get(request_id)
        audit_log.append(
            db,
            actor_id=actor.actor_id,
            action=ModerationAction.owner_reject,
            entity_type=ENTITY,
            entity_id=request_id,
            reason=reason,
        )
    log_event("owner_request_rejected", request_id=request_id, admin_id=actor.actor_id, reason=reason)

    sent = send_best_effort(
        notifier,
        NotificationKind.owner_request_rejected,
        request.requester_id,
        {"business_name": request.business_name, "request_id": request_id, "reason": reason, "entity_id": request_id},
    )
    return Ok({"request_id": request_id, "new_status": LifecycleStatus.rejected, "notification_sent": sent})
