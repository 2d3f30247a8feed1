import os
import uuid
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import text


if os.environ.get("RUN_INTEGRATION_TESTS") != "1":
    pytest.skip(
        "Integration tests are disabled. Set RUN_INTEGRATION_TESTS=1 to enable.",
        allow_module_level=True,
    )

if not os.environ.get("DATABASE_URL"):
    pytest.skip("DATABASE_URL must be set for integration tests.", allow_module_level=True)

os.environ.setdefault("SECRET_KEY", "integration-test-secret")

from campsite_moderation import models  # noqa: E402
from campsite_moderation.config import settings  # noqa: E402
from campsite_moderation.database import Base, build_engine, build_session_factory  # noqa: E402
from campsite_moderation.schemas import Identity  # noqa: E402

engine = build_engine(settings)
SessionLocal = build_session_factory(engine)


def _run_migrations() -> None:
    backend_root = Path(__file__).resolve().parents[1]
    alembic_ini = backend_root / "alembic.ini"
    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(backend_root / "alembic"))
    command.upgrade(config, "head")


@pytest.fixture(scope="session", autouse=True)
def _ensure_schema():
    _run_migrations()
    yield
    Base.metadata.drop_all(bind=engine)
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE IF EXISTS alembic_version"))
    engine.dispose()


@pytest.fixture()
def db_session():
    db = SessionLocal()
    try:
        tables = [t.name for t in Base.metadata.sorted_tables]
        if tables:
            db.execute(text(f"TRUNCATE TABLE {', '.join(tables)} RESTART IDENTITY CASCADE"))
            db.commit()
        yield db
    finally:
        db.close()


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, kind, recipient_id, payload):
        self.sent.append((kind, recipient_id, payload))


@pytest.fixture()
def helpers(db_session):
    def identity(role: models.UserRole = models.UserRole.user) -> Identity:
        return Identity(actor_id=str(uuid.uuid4()), role=role)

    def make_listing(status: models.LifecycleStatus = models.LifecycleStatus.approved) -> models.Listing:
        listing = models.Listing(owner_id=str(uuid.uuid4()), name="Integration Camp", status=status.value)
        db_session.add(listing)
        db_session.commit()
        return listing

    return {
        "db": db_session,
        "identity": identity,
        "make_listing": make_listing,
        "session_factory": SessionLocal,
        "notifier": RecordingNotifier(),
    }
