from campsite_moderation import audit_log, listings, models
from campsite_moderation.notifications import NotificationKind
from campsite_moderation.results import ErrorKind


def _pending_listing(helpers):
    owner = helpers["identity"](models.UserRole.owner)
    return owner, helpers["make_listing"](owner, status=models.LifecycleStatus.pending)


def test_owner_submits_pending_listing(helpers):
    owner = helpers["identity"](models.UserRole.owner)
    result = listings.submit_listing(helpers["db"], owner, name="  Lakeside Camp  ", description="Quiet spot")
    assert result.ok
    assert result.data.name == "Lakeside Camp"
    assert result.data.status == models.LifecycleStatus.pending.value
    assert result.data.average_rating == 0.0
    assert result.data.review_count == 0


def test_regular_user_cannot_submit_listing(helpers):
    result = listings.submit_listing(helpers["db"], helpers["identity"](), name="Nope")
    assert not result.ok
    assert result.kind == ErrorKind.forbidden
    assert helpers["db"].query(models.Listing).count() == 0


def test_approve_listing_writes_status_audit_and_notifies_owner(helpers, notifier):
    admin = helpers["make_admin"]()
    owner, listing = _pending_listing(helpers)

    result = listings.approve_listing(helpers["db"], admin, listing.id, notifier=notifier)
    assert result.ok
    assert result.data == {
        "listing_id": listing.id,
        "new_status": models.LifecycleStatus.approved,
        "notification_sent": True,
    }

    stored = helpers["db"].get(models.Listing, listing.id, populate_existing=True)
    assert stored.status == "approved"

    entries = audit_log.entries_for(helpers["db"], "listing", listing.id)
    assert [(e.action, e.actor_id, e.reason) for e in entries] == [("listing_approve", admin.actor_id, None)]

    assert len(notifier.sent) == 1
    kind, recipient, payload = notifier.sent[0]
    assert kind == NotificationKind.listing_approved
    assert recipient == owner.actor_id
    assert payload["listing_name"] == listing.name


def test_second_approve_from_another_session_is_rejected_without_extra_audit(helpers, notifier):
    admin_a = helpers["make_admin"]()
    admin_b = helpers["make_admin"]()
    _, listing = _pending_listing(helpers)

    first = listings.approve_listing(helpers["db"], admin_a, listing.id, notifier=notifier)
    assert first.ok

    other = helpers["session_factory"]()
    try:
        second = listings.approve_listing(other, admin_b, listing.id, notifier=notifier)
    finally:
        other.close()

    assert not second.ok
    assert second.kind == ErrorKind.not_pending_or_not_found
    assert len(audit_log.entries_for(helpers["db"], "listing", listing.id)) == 1
    assert len(notifier.sent) == 1


def test_reject_requires_reason(helpers, notifier):
    admin = helpers["make_admin"]()
    _, listing = _pending_listing(helpers)

    for reason in (None, "", "   "):
        result = listings.reject_listing(helpers["db"], admin, listing.id, reason=reason, notifier=notifier)
        assert result.kind == ErrorKind.missing_reason

    stored = helpers["db"].get(models.Listing, listing.id, populate_existing=True)
    assert stored.status == "pending"
    assert audit_log.entries_for(helpers["db"], "listing", listing.id) == []
    assert notifier.sent == []


def test_reject_stores_reason_and_notifies(helpers, notifier):
    admin = helpers["make_admin"]()
    owner, listing = _pending_listing(helpers)

    result = listings.reject_listing(helpers["db"], admin, listing.id, reason="Missing photos", notifier=notifier)
    assert result.ok
    assert result.data["new_status"] == models.LifecycleStatus.rejected

    stored = helpers["db"].get(models.Listing, listing.id, populate_existing=True)
    assert stored.status == "rejected"
    assert stored.rejection_reason == "Missing photos"

    entry = audit_log.entries_for(helpers["db"], "listing", listing.id)[0]
    assert entry.action == "listing_reject"
    assert entry.reason == "Missing photos"
    assert notifier.sent[0][0] == NotificationKind.listing_rejected
    assert notifier.sent[0][1] == owner.actor_id


def test_terminal_listing_cannot_be_reapproved(helpers, notifier):
    admin = helpers["make_admin"]()
    _, listing = _pending_listing(helpers)
    assert listings.reject_listing(helpers["db"], admin, listing.id, reason="Spam", notifier=notifier).ok

    result = listings.approve_listing(helpers["db"], admin, listing.id, notifier=notifier)
    assert result.kind == ErrorKind.not_pending_or_not_found


def test_unknown_listing_is_not_pending_or_not_found(helpers, notifier):
    admin = helpers["make_admin"]()
    result = listings.approve_listing(helpers["db"], admin, "missing", notifier=notifier)
    assert result.kind == ErrorKind.not_pending_or_not_found


def test_non_admin_is_forbidden_before_anything_else(helpers, notifier):
    owner, listing = _pending_listing(helpers)

    result = listings.reject_listing(helpers["db"], owner, listing.id, reason=None, notifier=notifier)
    assert result.kind == ErrorKind.forbidden

    result = listings.approve_listing(helpers["db"], owner, listing.id, notifier=notifier)
    assert result.kind == ErrorKind.forbidden
    assert helpers["db"].get(models.Listing, listing.id, populate_existing=True).status == "pending"


def test_notification_failure_keeps_the_transition(helpers, failing_notifier):
    admin = helpers["make_admin"]()
    _, listing = _pending_listing(helpers)

    result = listings.approve_listing(helpers["db"], admin, listing.id, notifier=failing_notifier)
    assert result.ok
    assert result.data["notification_sent"] is False
    assert failing_notifier.attempts == 1
    assert helpers["db"].get(models.Listing, listing.id, populate_existing=True).status == "approved"
    assert len(audit_log.entries_for(helpers["db"], "listing", listing.id)) == 1


def test_pending_listings_are_admin_only(helpers):
    admin = helpers["make_admin"]()
    _, pending = _pending_listing(helpers)
    helpers["make_listing"](name="Already live")

    result = listings.list_pending_listings(helpers["db"], admin)
    assert [listing.id for listing in result.data] == [pending.id]

    result = listings.list_pending_listings(helpers["db"], helpers["identity"]())
    assert result.kind == ErrorKind.forbidden
