import os
import uuid

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("LOG_JSON", "false")

from campsite_moderation import models, reviews  # noqa: E402
from campsite_moderation.api import app, get_notifier  # noqa: E402
from campsite_moderation.auth import create_access_token  # noqa: E402
from campsite_moderation.config import settings  # noqa: E402
from campsite_moderation.database import Base, build_engine, build_session_factory, get_db  # noqa: E402
from campsite_moderation.schemas import Identity  # noqa: E402

engine = build_engine(settings)
SessionLocal = build_session_factory(engine)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, kind, recipient_id, payload):
        self.sent.append((kind, recipient_id, payload))


class FailingNotifier:
    def __init__(self):
        self.attempts = 0

    def notify(self, kind, recipient_id, payload):
        self.attempts += 1
        raise RuntimeError("notification backend down")


@pytest.fixture(scope="session", autouse=True)
def _ensure_schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session():
    db = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
        yield db
    finally:
        db.close()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def failing_notifier():
    return FailingNotifier()


@pytest.fixture()
def client(db_session, notifier):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def helpers(db_session):
    def identity(role: models.UserRole = models.UserRole.user, actor_id: str | None = None) -> Identity:
        return Identity(actor_id=actor_id or str(uuid.uuid4()), role=role)

    def make_profile(role: models.UserRole = models.UserRole.user, full_name: str = "Camper") -> Identity:
        profile = models.Profile(full_name=full_name, role=role.value)
        db_session.add(profile)
        db_session.commit()
        return Identity(actor_id=profile.id, role=role)

    def make_admin() -> Identity:
        return make_profile(models.UserRole.admin, full_name="Admin")

    def make_listing(
        owner: Identity | None = None,
        status: models.LifecycleStatus = models.LifecycleStatus.approved,
        name: str = "Pine Valley",
    ) -> models.Listing:
        owner = owner or identity(models.UserRole.owner)
        listing = models.Listing(owner_id=owner.actor_id, name=name, status=status.value)
        db_session.add(listing)
        db_session.commit()
        return listing

    def make_review(listing_id: str, rating: int, author: Identity | None = None, **sub_ratings) -> models.Review:
        result = reviews.create_review(
            db_session,
            author or identity(),
            listing_id,
            rating_overall=rating,
            content=f"{rating} stars",
            sub_ratings=sub_ratings,
        )
        assert result.ok, result
        return result.data

    def auth_header(actor: Identity) -> dict:
        return {"Authorization": f"Bearer {create_access_token(actor.actor_id, actor.role)}"}

    return {
        "db": db_session,
        "identity": identity,
        "make_profile": make_profile,
        "make_admin": make_admin,
        "make_listing": make_listing,
        "make_review": make_review,
        "auth_header": auth_header,
        "session_factory": SessionLocal,
    }
