from unittest import mock

from campsite_moderation import audit_log, models, reviews
from campsite_moderation.notifications import NotificationKind
from campsite_moderation.repositories import ReviewRepository
from campsite_moderation.results import ErrorKind


def _listing_state(helpers, listing_id):
    listing = helpers["db"].get(models.Listing, listing_id, populate_existing=True)
    return listing.average_rating, listing.review_count


def _review(helpers, review_id):
    return helpers["db"].get(models.Review, review_id, populate_existing=True)


def test_creating_reviews_updates_the_aggregate(helpers):
    listing = helpers["make_listing"]()
    for rating in (5, 4, 1):
        helpers["make_review"](listing.id, rating)

    assert _listing_state(helpers, listing.id) == (3.3, 3)


def test_one_review_per_author_and_listing(helpers):
    listing = helpers["make_listing"]()
    author = helpers["identity"]()
    helpers["make_review"](listing.id, 4, author=author)

    result = reviews.create_review(helpers["db"], author, listing.id, rating_overall=2, content="Again")
    assert result.kind == ErrorKind.duplicate_relationship
    assert _listing_state(helpers, listing.id) == (4.0, 1)


def test_reviews_only_for_approved_listings(helpers):
    pending = helpers["make_listing"](status=models.LifecycleStatus.pending)
    result = reviews.create_review(helpers["db"], helpers["identity"](), pending.id, rating_overall=5, content="Hi")
    assert result.kind == ErrorKind.not_found


def test_review_rating_must_be_between_one_and_five(helpers):
    listing = helpers["make_listing"]()
    for rating in (0, 6, True):
        result = reviews.create_review(helpers["db"], helpers["identity"](), listing.id, rating_overall=rating, content="x")
        assert result.kind == ErrorKind.invalid_input


def test_hide_and_unhide_recompute_the_aggregate(helpers, notifier):
    admin = helpers["make_admin"]()
    listing = helpers["make_listing"]()
    helpers["make_review"](listing.id, 5)
    helpers["make_review"](listing.id, 4)
    author = helpers["identity"]()
    low = helpers["make_review"](listing.id, 1, author=author)

    hidden = reviews.hide_review(helpers["db"], admin, low.id, reason="Off-topic", notifier=notifier)
    assert hidden.ok
    assert hidden.data["average_rating"] == 4.5
    assert hidden.data["review_count"] == 2
    assert hidden.data["notification_sent"] is True
    assert _listing_state(helpers, listing.id) == (4.5, 2)

    stored = _review(helpers, low.id)
    assert stored.is_hidden is True
    assert stored.hidden_reason == "Off-topic"
    assert stored.hidden_by == admin.actor_id
    assert stored.hidden_at is not None

    kind, recipient, payload = notifier.sent[0]
    assert kind == NotificationKind.review_hidden
    assert recipient == author.actor_id
    assert payload["listing_name"] == listing.name

    shown = reviews.unhide_review(helpers["db"], admin, low.id)
    assert shown.ok
    assert _listing_state(helpers, listing.id) == (3.3, 3)
    stored = _review(helpers, low.id)
    assert stored.is_hidden is False
    assert stored.hidden_reason is None
    assert stored.hidden_by is None

    actions = [entry.action for entry in audit_log.entries_for(helpers["db"], "review", low.id)]
    assert actions == ["review_hide", "review_unhide"]


def test_hide_requires_reason_and_existing_review(helpers, notifier):
    admin = helpers["make_admin"]()
    listing = helpers["make_listing"]()
    review = helpers["make_review"](listing.id, 3)

    result = reviews.hide_review(helpers["db"], admin, review.id, reason="  ", notifier=notifier)
    assert result.kind == ErrorKind.missing_reason
    assert _review(helpers, review.id).is_hidden is False

    result = reviews.hide_review(helpers["db"], admin, "missing", reason="Spam", notifier=notifier)
    assert result.kind == ErrorKind.not_found
    assert notifier.sent == []


def test_hiding_the_only_review_resets_to_empty_aggregate(helpers, notifier):
    admin = helpers["make_admin"]()
    listing = helpers["make_listing"]()
    review = helpers["make_review"](listing.id, 4)

    assert reviews.hide_review(helpers["db"], admin, review.id, reason="Spam", notifier=notifier).ok
    assert _listing_state(helpers, listing.id) == (0.0, 0)


def test_hide_keeps_report_state(helpers, notifier):
    admin = helpers["make_admin"]()
    listing = helpers["make_listing"]()
    review = helpers["make_review"](listing.id, 2)
    assert reviews.report_review(helpers["db"], helpers["identity"](), review.id, reason="spam").ok

    assert reviews.hide_review(helpers["db"], admin, review.id, reason="Spam", notifier=notifier).ok
    stored = _review(helpers, review.id)
    assert stored.is_reported is True
    assert stored.report_count == 1


def test_non_admin_cannot_moderate(helpers, notifier):
    listing = helpers["make_listing"]()
    review = helpers["make_review"](listing.id, 2)
    user = helpers["identity"]()

    assert reviews.hide_review(helpers["db"], user, review.id, reason="x", notifier=notifier).kind == ErrorKind.forbidden
    assert reviews.unhide_review(helpers["db"], user, review.id).kind == ErrorKind.forbidden
    assert reviews.delete_review(helpers["db"], user, review.id).kind == ErrorKind.forbidden
    assert reviews.dismiss_reports(helpers["db"], user, review.id).kind == ErrorKind.forbidden
    assert reviews.list_reported_reviews(helpers["db"], user).kind == ErrorKind.forbidden


def test_delete_visible_review_recomputes_and_keeps_snapshot(helpers):
    admin = helpers["make_admin"]()
    listing = helpers["make_listing"]()
    helpers["make_review"](listing.id, 5)
    doomed = helpers["make_review"](listing.id, 1)
    assert reviews.report_review(helpers["db"], helpers["identity"](), doomed.id, reason="fake").ok

    result = reviews.delete_review(helpers["db"], admin, doomed.id)
    assert result.ok
    assert result.data["average_rating"] == 5.0
    assert result.data["review_count"] == 1

    assert _review(helpers, doomed.id) is None
    assert helpers["db"].query(models.ReviewReport).filter_by(review_id=doomed.id).count() == 0

    entry = audit_log.entries_for(helpers["db"], "review", doomed.id)[-1]
    assert entry.action == "review_delete"
    assert entry.reason == "Permanently deleted by admin"
    assert entry.meta["original_review"]["rating_overall"] == 1
    assert entry.meta["original_review"]["listing_id"] == listing.id


def test_delete_hidden_review_leaves_aggregate_untouched(helpers, notifier):
    admin = helpers["make_admin"]()
    listing = helpers["make_listing"]()
    helpers["make_review"](listing.id, 4)
    hidden = helpers["make_review"](listing.id, 1)
    assert reviews.hide_review(helpers["db"], admin, hidden.id, reason="Spam", notifier=notifier).ok
    assert _listing_state(helpers, listing.id) == (4.0, 1)

    assert reviews.delete_review(helpers["db"], admin, hidden.id).ok
    assert _listing_state(helpers, listing.id) == (4.0, 1)


def test_report_rules(helpers):
    listing = helpers["make_listing"]()
    author = helpers["identity"]()
    review = helpers["make_review"](listing.id, 3, author=author)
    reporter = helpers["identity"]()

    assert reviews.report_review(helpers["db"], author, review.id, reason="spam").kind == ErrorKind.self_report_forbidden
    assert reviews.report_review(helpers["db"], reporter, "missing", reason="spam").kind == ErrorKind.not_found
    assert reviews.report_review(helpers["db"], reporter, review.id, reason="boring").kind == ErrorKind.invalid_input

    first = reviews.report_review(helpers["db"], reporter, review.id, reason="spam", details="Advert")
    assert first.ok
    assert first.data == {"review_id": review.id, "report_count": 1}

    again = reviews.report_review(helpers["db"], reporter, review.id, reason="fake")
    assert again.kind == ErrorKind.duplicate_report

    stored = _review(helpers, review.id)
    assert stored.report_count == 1
    assert stored.is_reported is True


def test_report_count_matches_report_rows(helpers):
    listing = helpers["make_listing"]()
    review = helpers["make_review"](listing.id, 3)
    for _ in range(3):
        assert reviews.report_review(helpers["db"], helpers["identity"](), review.id, reason="other").ok

    rows = helpers["db"].query(models.ReviewReport).filter_by(review_id=review.id).count()
    assert rows == 3
    assert _review(helpers, review.id).report_count == 3


def test_dismiss_clears_reports_but_not_visibility(helpers, notifier):
    admin = helpers["make_admin"]()
    listing = helpers["make_listing"]()
    review = helpers["make_review"](listing.id, 2)
    for _ in range(2):
        assert reviews.report_review(helpers["db"], helpers["identity"](), review.id, reason="spam").ok
    assert reviews.hide_review(helpers["db"], admin, review.id, reason="Spam", notifier=notifier).ok

    result = reviews.dismiss_reports(helpers["db"], admin, review.id)
    assert result.ok
    assert result.data["dismissed_reports"] == 2

    stored = _review(helpers, review.id)
    assert stored.is_reported is False
    assert stored.report_count == 0
    assert stored.is_hidden is True
    assert helpers["db"].query(models.ReviewReport).filter_by(review_id=review.id).count() == 0

    entry = audit_log.entries_for(helpers["db"], "review", review.id)[-1]
    assert entry.action == "review_dismiss"
    assert entry.reason == "Reports dismissed by admin"


def test_reported_queue_orders_by_report_count(helpers):
    admin = helpers["make_admin"]()
    listing = helpers["make_listing"]()
    once = helpers["make_review"](listing.id, 3)
    twice = helpers["make_review"](listing.id, 2)
    helpers["make_review"](listing.id, 5)

    assert reviews.report_review(helpers["db"], helpers["identity"](), once.id, reason="spam").ok
    for _ in range(2):
        assert reviews.report_review(helpers["db"], helpers["identity"](), twice.id, reason="fake").ok

    queue = reviews.list_reported_reviews(helpers["db"], admin).data
    assert [review.id for review in queue] == [twice.id, once.id]

    queue = reviews.list_reported_reviews(helpers["db"], admin, min_reports=2).data
    assert [review.id for review in queue] == [twice.id]


def test_helpful_toggle_is_symmetric(helpers):
    listing = helpers["make_listing"]()
    review = helpers["make_review"](listing.id, 4)
    voter = helpers["identity"]()
    other = helpers["identity"]()

    first = reviews.toggle_helpful(helpers["db"], voter, review.id)
    assert first.data == {"review_id": review.id, "helpful_count": 1, "user_voted": True}

    second = reviews.toggle_helpful(helpers["db"], other, review.id)
    assert second.data["helpful_count"] == 2

    undone = reviews.toggle_helpful(helpers["db"], voter, review.id)
    assert undone.data == {"review_id": review.id, "helpful_count": 1, "user_voted": False}
    assert _review(helpers, review.id).helpful_count == 1

    assert reviews.toggle_helpful(helpers["db"], voter, "missing").kind == ErrorKind.not_found


def test_public_list_excludes_hidden_and_marks_viewer_votes(helpers, notifier):
    admin = helpers["make_admin"]()
    listing = helpers["make_listing"]()
    liked = helpers["make_review"](listing.id, 5)
    plain = helpers["make_review"](listing.id, 3)
    hidden = helpers["make_review"](listing.id, 1)
    viewer = helpers["identity"]()
    assert reviews.toggle_helpful(helpers["db"], viewer, liked.id).ok
    assert reviews.hide_review(helpers["db"], admin, hidden.id, reason="Spam", notifier=notifier).ok

    page = reviews.list_reviews(helpers["db"], listing.id, viewer_id=viewer.actor_id, sort_by="helpful").data
    assert page["total"] == 2
    assert [item["id"] for item in page["items"]] == [liked.id, plain.id]
    assert [item["user_voted"] for item in page["items"]] == [True, False]

    anonymous = reviews.list_reviews(helpers["db"], listing.id, sort_by="rating_low").data
    assert [item["id"] for item in anonymous["items"]] == [plain.id, liked.id]
    assert not any(item["user_voted"] for item in anonymous["items"])


def test_public_list_paginates(helpers):
    listing = helpers["make_listing"]()
    for rating in (1, 2, 3, 4, 5):
        helpers["make_review"](listing.id, rating)

    second = reviews.list_reviews(helpers["db"], listing.id, sort_by="rating_high", page=2, limit=2).data
    assert second["total"] == 5
    assert [item["rating_overall"] for item in second["items"]] == [3, 2]


def test_public_list_rejects_bad_arguments(helpers):
    listing = helpers["make_listing"]()
    db = helpers["db"]
    assert reviews.list_reviews(db, listing.id, sort_by="oldest").kind == ErrorKind.invalid_input
    assert reviews.list_reviews(db, listing.id, page=0).kind == ErrorKind.invalid_input
    assert reviews.list_reviews(db, listing.id, limit=500).kind == ErrorKind.invalid_input
    assert reviews.list_reviews(db, "missing").kind == ErrorKind.not_found


def test_helpful_toggle_locks_the_review_row(helpers):
    listing = helpers["make_listing"]()
    review = helpers["make_review"](listing.id, 4)
    locked = []
    original = ReviewRepository.get_for_update

    def recording(self, review_id):
        locked.append(review_id)
        return original(self, review_id)

    with mock.patch.object(ReviewRepository, "get_for_update", recording):
        assert reviews.toggle_helpful(helpers["db"], helpers["identity"](), review.id).ok

    assert locked == [review.id]
