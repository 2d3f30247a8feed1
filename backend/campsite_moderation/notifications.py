import enum
from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from . import models
from .config import settings
from .database import unit_of_work
from .logging_utils import log_event, log_warning


class NotificationKind(str, enum.Enum):
    listing_approved = "listing_approved"
    listing_rejected = "listing_rejected"
    owner_request_approved = "owner_request_approved"
    owner_request_rejected = "owner_request_rejected"
    review_hidden = "review_hidden"


def render_notification(kind: NotificationKind, payload: Dict[str, Any]) -> tuple[str, str]:
    if kind == NotificationKind.listing_approved:
        return (
            "Campsite Approved",
            f'Your campsite "{payload["listing_name"]}" has been approved and is now visible to the public.',
        )
    if kind == NotificationKind.listing_rejected:
        return (
            "Campsite Rejected",
            f'Your campsite "{payload["listing_name"]}" was not approved. Reason: {payload["reason"]}',
        )
    if kind == NotificationKind.owner_request_approved:
        return (
            "Owner Request Approved",
            f'Your request to become an owner for "{payload["business_name"]}" has been approved. '
            "You can now list your campsites.",
        )
    if kind == NotificationKind.owner_request_rejected:
        return (
            "Owner Request Rejected",
            f'Your owner request for "{payload["business_name"]}" was not approved. Reason: {payload["reason"]}',
        )
    return (
        "Review Hidden",
        f'Your review for "{payload["listing_name"]}" has been hidden by a moderator. Reason: {payload["reason"]}',
    )


class Notifier:
    """Outbound notification collaborator. Implementations may raise; callers treat delivery as best-effort."""

    def notify(self, kind: NotificationKind, recipient_id: str, payload: Dict[str, Any]) -> None:
        raise NotImplementedError


class DatabaseNotifier(Notifier):
    """Stores an in-app notification row using its own session, outside the caller's transaction."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def notify(self, kind: NotificationKind, recipient_id: str, payload: Dict[str, Any]) -> None:
        if not settings.notifications_enabled:
            log_warning("notifications_disabled", kind=kind.value, recipient_id=recipient_id)
            return
        title, message = render_notification(kind, payload)
        db = self._session_factory()
        try:
            with unit_of_work(db):
                db.add(
                    models.Notification(
                        user_id=recipient_id,
                        kind=kind.value,
                        title=title,
                        message=message,
                        entity_id=payload.get("entity_id"),
                    )
                )
        finally:
            db.close()
        log_event("notification_stored", kind=kind.value, recipient_id=recipient_id)


def send_best_effort(notifier: Notifier, kind: NotificationKind, recipient_id: str, payload: Dict[str, Any]) -> bool:
    """Deliver after the state change committed; a failure is logged and reported, never raised."""
    try:
        notifier.notify(kind, recipient_id, payload)
        return True
    except Exception as exc:  # noqa: BLE001
        log_warning("notification_failed", kind=kind.value, recipient_id=recipient_id, error=str(exc))
        return False
