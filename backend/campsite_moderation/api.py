import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text
from sqlalchemy.orm import Session

from . import audit_log, listings, owner_requests, ratings, reviews, schemas, wishlist
from .auth import ensure_admin, get_identity, get_optional_identity
from .config import settings
from .database import Base, build_engine, build_session_factory, get_db
from .logging_utils import RequestIdMiddleware, configure_logging, log_warning
from .notifications import DatabaseNotifier, Notifier
from .results import Err, ErrorKind, Result

configure_logging()


ERROR_STATUS = {
    ErrorKind.not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.not_pending_or_not_found: status.HTTP_404_NOT_FOUND,
    ErrorKind.forbidden: status.HTTP_403_FORBIDDEN,
    ErrorKind.self_report_forbidden: status.HTTP_403_FORBIDDEN,
    ErrorKind.duplicate_report: status.HTTP_409_CONFLICT,
    ErrorKind.duplicate_relationship: status.HTTP_409_CONFLICT,
    ErrorKind.missing_reason: status.HTTP_400_BAD_REQUEST,
    ErrorKind.invalid_input: status.HTTP_400_BAD_REQUEST,
    ErrorKind.storage_unavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class CoreError(Exception):
    def __init__(self, err: Err):
        super().__init__(err.message)
        self.err = err


def _unwrap(result: Result):
    if not result.ok:
        raise CoreError(result)
    return result.data


def _run_migrations():
    """Run Alembic migrations to latest head. Controlled via settings.auto_run_migrations."""
    try:
        from alembic import command
        from alembic.config import Config
        base_dir = Path(__file__).resolve().parent.parent
        alembic_ini = base_dir / "alembic.ini"
        if not alembic_ini.exists():
            logging.warning("alembic.ini not found; skipping migrations")
            return
        cfg = Config(str(alembic_ini))
        cfg.set_main_option("script_location", str(base_dir / "alembic"))
        command.upgrade(cfg, "head")
        logging.info("Migrations applied to head")
    except Exception:
        logging.exception("Failed to run migrations on startup")


def _check_configuration():
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is required")
    if not settings.secret_key:
        raise RuntimeError("SECRET_KEY is required")


@asynccontextmanager
async def lifespan(app_: FastAPI):
    _check_configuration()
    engine = build_engine(settings)
    app_.state.engine = engine
    app_.state.session_factory = build_session_factory(engine)
    app_.state.notifier = DatabaseNotifier(app_.state.session_factory)
    if settings.auto_run_migrations:
        _run_migrations()
    elif settings.auto_create_tables:
        Base.metadata.create_all(bind=engine)
    try:
        yield
    finally:
        engine.dispose()


ERROR_RESPONSES = {
    code: {"model": schemas.ErrorResponse} for code in sorted(set(ERROR_STATUS.values()))
}

app = FastAPI(
    title="Campsite Moderation API",
    version="1.0.0",
    lifespan=lifespan,
    responses=ERROR_RESPONSES,
)

app.add_middleware(RequestIdMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


@app.exception_handler(CoreError)
async def core_error_handler(request: Request, exc: CoreError):
    err = exc.err
    headers = {"Retry-After": "1"} if err.retryable else None
    return JSONResponse(
        status_code=ERROR_STATUS[err.kind],
        content={"error": {"code": err.kind.value, "message": err.message}, "detail": err.message},
        headers=headers,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    code = f"http_{exc.status_code}"
    message = exc.detail if isinstance(exc.detail, str) else "Error"
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": code, "message": message}, "detail": message},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log_warning("unhandled_exception", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": "internal_error", "message": "An unexpected error occurred."}},
    )


@app.get("/api/health")
def health_check(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}


# Listings


@app.post("/api/listings", response_model=schemas.ListingResponse, status_code=status.HTTP_201_CREATED)
def submit_listing(
    payload: schemas.ListingCreate,
    db: Session = Depends(get_db),
    actor: schemas.Identity = Depends(get_identity),
):
    return _unwrap(listings.submit_listing(db, actor, name=payload.name, description=payload.description))


@app.get("/api/listings/{listing_id}", response_model=schemas.ListingResponse)
def get_listing(listing_id: str, db: Session = Depends(get_db)):
    return _unwrap(listings.get_listing(db, listing_id))


@app.get("/api/listings/{listing_id}/reviews/summary", response_model=schemas.ReviewSummaryResponse)
def review_summary(listing_id: str, db: Session = Depends(get_db)):
    return _unwrap(ratings.review_summary(db, listing_id))


@app.get("/api/admin/listings/pending", response_model=List[schemas.ListingResponse])
def pending_listings(db: Session = Depends(get_db), actor: schemas.Identity = Depends(get_identity)):
    return _unwrap(listings.list_pending_listings(db, actor))


@app.post("/api/admin/listings/{listing_id}/approve", response_model=schemas.ListingTransitionResponse)
def approve_listing(
    listing_id: str,
    db: Session = Depends(get_db),
    actor: schemas.Identity = Depends(get_identity),
    notifier: Notifier = Depends(get_notifier),
):
    return _unwrap(listings.approve_listing(db, actor, listing_id, notifier=notifier))


@app.post("/api/admin/listings/{listing_id}/reject", response_model=schemas.ListingTransitionResponse)
def reject_listing(
    listing_id: str,
    payload: schemas.ReasonBody,
    db: Session = Depends(get_db),
    actor: schemas.Identity = Depends(get_identity),
    notifier: Notifier = Depends(get_notifier),
):
    return _unwrap(listings.reject_listing(db, actor, listing_id, reason=payload.reason, notifier=notifier))


# Reviews


@app.get("/api/listings/{listing_id}/reviews", response_model=schemas.ReviewPage)
def list_reviews(
    listing_id: str,
    sort_by: str = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(reviews.DEFAULT_PAGE_SIZE, ge=1, le=reviews.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    viewer: Optional[schemas.Identity] = Depends(get_optional_identity),
):
    viewer_id = viewer.actor_id if viewer else None
    return _unwrap(reviews.list_reviews(db, listing_id, viewer_id=viewer_id, sort_by=sort_by, page=page, limit=limit))


@app.post(
    "/api/listings/{listing_id}/reviews",
    response_model=schemas.ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_review(
    listing_id: str,
    payload: schemas.ReviewCreate,
    db: Session = Depends(get_db),
    actor: schemas.Identity = Depends(get_identity),
):
    return _unwrap(
        reviews.create_review(
            db,
            actor,
            listing_id,
            rating_overall=payload.rating_overall,
            content=payload.content,
            title=payload.title,
            sub_ratings=payload.sub_ratings(),
        )
    )


@app.post(
    "/api/reviews/{review_id}/report",
    response_model=schemas.ReportAccepted,
    status_code=status.HTTP_201_CREATED,
)
def report_review(
    review_id: str,
    payload: schemas.ReportCreate,
    db: Session = Depends(get_db),
    actor: schemas.Identity = Depends(get_identity),
):
    return _unwrap(reviews.report_review(db, actor, review_id, reason=payload.reason.value, details=payload.details))


@app.post("/api/reviews/{review_id}/helpful", response_model=schemas.HelpfulVoteResponse)
def toggle_helpful(review_id: str, db: Session = Depends(get_db), actor: schemas.Identity = Depends(get_identity)):
    return _unwrap(reviews.toggle_helpful(db, actor, review_id))


@app.get("/api/admin/reviews/reported", response_model=schemas.ReportedReviewList)
def reported_reviews(
    min_reports: int = Query(1, ge=1),
    db: Session = Depends(get_db),
    actor: schemas.Identity = Depends(get_identity),
):
    return {"items": _unwrap(reviews.list_reported_reviews(db, actor, min_reports=min_reports))}


@app.post("/api/admin/reviews/{review_id}/hide", response_model=schemas.ReviewModerationResponse)
def hide_review(
    review_id: str,
    payload: schemas.ReasonBody,
    db: Session = Depends(get_db),
    actor: schemas.Identity = Depends(get_identity),
    notifier: Notifier = Depends(get_notifier),
):
    return _unwrap(reviews.hide_review(db, actor, review_id, reason=payload.reason, notifier=notifier))


@app.post("/api/admin/reviews/{review_id}/unhide", response_model=schemas.ReviewModerationResponse)
def unhide_review(review_id: str, db: Session = Depends(get_db), actor: schemas.Identity = Depends(get_identity)):
    return _unwrap(reviews.unhide_review(db, actor, review_id))


@app.delete("/api/admin/reviews/{review_id}", response_model=schemas.ReviewModerationResponse)
def delete_review(review_id: str, db: Session = Depends(get_db), actor: schemas.Identity = Depends(get_identity)):
    return _unwrap(reviews.delete_review(db, actor, review_id))


@app.post("/api/admin/reviews/{review_id}/dismiss", response_model=schemas.ReviewModerationResponse)
def dismiss_reports(review_id: str, db: Session = Depends(get_db), actor: schemas.Identity = Depends(get_identity)):
    return _unwrap(reviews.dismiss_reports(db, actor, review_id))


@app.get("/api/admin/moderation-logs", response_model=List[schemas.ModerationLogResponse])
def moderation_logs(
    entity_type: str,
    entity_id: str,
    db: Session = Depends(get_db),
    actor: schemas.Identity = Depends(get_identity),
):
    denied = ensure_admin(actor)
    if denied:
        raise CoreError(denied)
    return audit_log.entries_for(db, entity_type, entity_id)


# Owner requests


@app.post(
    "/api/owner-requests",
    response_model=schemas.OwnerRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_owner_request(
    payload: schemas.OwnerRequestCreate,
    db: Session = Depends(get_db),
    actor: schemas.Identity = Depends(get_identity),
):
    return _unwrap(
        owner_requests.submit_owner_request(
            db,
            actor,
            business_name=payload.business_name,
            business_description=payload.business_description,
            contact_phone=payload.contact_phone,
        )
    )


@app.get("/api/owner-requests/me", response_model=List[schemas.OwnerRequestResponse])
def my_owner_requests(db: Session = Depends(get_db), actor: schemas.Identity = Depends(get_identity)):
    return _unwrap(owner_requests.list_my_owner_requests(db, actor))


@app.get("/api/admin/owner-requests", response_model=List[schemas.OwnerRequestResponse])
def admin_owner_requests(
    request_status: str = Query("pending", alias="status"),
    db: Session = Depends(get_db),
    actor: schemas.Identity = Depends(get_identity),
):
    return _unwrap(owner_requests.list_owner_requests(db, actor, status=request_status))


@app.post("/api/admin/owner-requests/{request_id}/approve", response_model=schemas.OwnerRequestTransitionResponse)
def approve_owner_request(
    request_id: str,
    db: Session = Depends(get_db),
    actor: schemas.Identity = Depends(get_identity),
    notifier: Notifier = Depends(get_notifier),
):
    return _unwrap(owner_requests.approve_upgrade(db, actor, request_id, notifier=notifier))


@app.post("/api/admin/owner-requests/{request_id}/reject", response_model=schemas.OwnerRequestTransitionResponse)
def reject_owner_request(
    request_id: str,
    payload: schemas.ReasonBody,
    db: Session = Depends(get_db),
    actor: schemas.Identity = Depends(get_identity),
    notifier: Notifier = Depends(get_notifier),
):
    return _unwrap(owner_requests.reject_upgrade(db, actor, request_id, reason=payload.reason, notifier=notifier))


# Wishlist


@app.post(
    "/api/listings/{listing_id}/wishlist",
    response_model=schemas.WishlistEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_to_wishlist(
    listing_id: str,
    payload: Optional[schemas.WishlistAdd] = Body(default=None),
    db: Session = Depends(get_db),
    actor: schemas.Identity = Depends(get_identity),
):
    note = payload.note if payload else None
    return _unwrap(wishlist.add_to_wishlist(db, actor, listing_id, note=note))


@app.delete("/api/listings/{listing_id}/wishlist", status_code=status.HTTP_204_NO_CONTENT)
def remove_from_wishlist(listing_id: str, db: Session = Depends(get_db), actor: schemas.Identity = Depends(get_identity)):
    _unwrap(wishlist.remove_from_wishlist(db, actor, listing_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/api/me/wishlist", response_model=schemas.WishlistListResponse)
def my_wishlist(db: Session = Depends(get_db), actor: schemas.Identity = Depends(get_identity)):
    return {"items": _unwrap(wishlist.list_wishlist(db, actor))}
