from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import LifecycleStatus, ReportReason, UserRole


class Identity(BaseModel):
    """Caller resolved by the identity provider before any core call."""

    actor_id: str
    role: UserRole

    model_config = ConfigDict(frozen=True)


class TokenData(BaseModel):
    sub: Optional[str] = None
    role: Optional[UserRole] = None


class ErrorBody(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorBody
    detail: str


def _strip_required(value: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValueError("must not be empty")
    return value


class ListingCreate(BaseModel):
    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        return _strip_required(v)


class ReasonBody(BaseModel):
    # Blank reasons are rejected by the core with `missing_reason`, not here.
    reason: Optional[str] = Field(default=None, max_length=1000)


class ListingResponse(BaseModel):
    id: str
    owner_id: str
    name: str
    description: Optional[str] = None
    status: LifecycleStatus
    rejection_reason: Optional[str] = None
    average_rating: float
    review_count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ListingTransitionResponse(BaseModel):
    listing_id: str
    new_status: LifecycleStatus
    notification_sent: bool


class ReviewCreate(BaseModel):
    rating_overall: int = Field(ge=1, le=5)
    rating_cleanliness: Optional[int] = Field(default=None, ge=1, le=5)
    rating_staff: Optional[int] = Field(default=None, ge=1, le=5)
    rating_facilities: Optional[int] = Field(default=None, ge=1, le=5)
    rating_value: Optional[int] = Field(default=None, ge=1, le=5)
    rating_location: Optional[int] = Field(default=None, ge=1, le=5)
    title: Optional[str] = Field(default=None, max_length=200)
    content: str = Field(min_length=1, max_length=2000)

    def sub_ratings(self) -> Dict[str, Optional[int]]:
        return {
            "cleanliness": self.rating_cleanliness,
            "staff": self.rating_staff,
            "facilities": self.rating_facilities,
            "value": self.rating_value,
            "location": self.rating_location,
        }


class ReviewResponse(BaseModel):
    id: str
    listing_id: str
    author_id: str
    rating_overall: int
    rating_cleanliness: Optional[int] = None
    rating_staff: Optional[int] = None
    rating_facilities: Optional[int] = None
    rating_value: Optional[int] = None
    rating_location: Optional[int] = None
    title: Optional[str] = None
    content: str
    is_hidden: bool
    hidden_reason: Optional[str] = None
    hidden_by: Optional[str] = None
    hidden_at: Optional[datetime] = None
    is_reported: bool
    report_count: int
    helpful_count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PublicReviewResponse(ReviewResponse):
    user_voted: bool = False


class ReviewPage(BaseModel):
    items: List[PublicReviewResponse]
    total: int
    page: int
    limit: int


class ReviewModerationResponse(BaseModel):
    review_id: str
    action: Literal["hide", "unhide", "delete", "dismiss"]
    listing_id: Optional[str] = None
    average_rating: Optional[float] = None
    review_count: Optional[int] = None
    dismissed_reports: Optional[int] = None
    notification_sent: Optional[bool] = None


class ReportCreate(BaseModel):
    reason: ReportReason
    details: Optional[str] = Field(default=None, max_length=500)


class ReportAccepted(BaseModel):
    review_id: str
    report_count: int


class ReportResponse(BaseModel):
    id: str
    reporter_id: str
    reason: ReportReason
    details: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReportedReviewResponse(ReviewResponse):
    reports: List[ReportResponse] = []


class ReportedReviewList(BaseModel):
    items: List[ReportedReviewResponse]


class HelpfulVoteResponse(BaseModel):
    review_id: str
    helpful_count: int
    user_voted: bool


class ReviewSummaryResponse(BaseModel):
    listing_id: str
    average_rating: float
    total_count: int
    rating_distribution: Dict[int, int]
    rating_percentages: Dict[int, int]
    category_averages: Dict[str, Optional[float]]


class OwnerRequestCreate(BaseModel):
    business_name: str = Field(max_length=255)
    business_description: Optional[str] = Field(default=None, max_length=2000)
    contact_phone: Optional[str] = Field(default=None, max_length=50)

    @field_validator("business_name")
    @classmethod
    def business_name_not_blank(cls, v: str) -> str:
        return _strip_required(v)


class OwnerRequestResponse(BaseModel):
    id: str
    requester_id: str
    business_name: str
    business_description: Optional[str] = None
    contact_phone: Optional[str] = None
    status: LifecycleStatus
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OwnerRequestTransitionResponse(BaseModel):
    request_id: str
    new_status: LifecycleStatus
    user_role_updated: Optional[bool] = None
    notification_sent: bool


class WishlistAdd(BaseModel):
    note: Optional[str] = Field(default=None, max_length=500)


class WishlistEntryResponse(BaseModel):
    id: int
    user_id: str
    listing_id: str
    note: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WishlistListResponse(BaseModel):
    items: List[WishlistEntryResponse]


class ModerationLogResponse(BaseModel):
    id: int
    actor_id: str
    action: str
    entity_type: str
    entity_id: str
    reason: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
