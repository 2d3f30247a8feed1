import enum
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    not_found = "not_found"
    not_pending_or_not_found = "not_pending_or_not_found"
    forbidden = "forbidden"
    self_report_forbidden = "self_report_forbidden"
    duplicate_report = "duplicate_report"
    duplicate_relationship = "duplicate_relationship"
    missing_reason = "missing_reason"
    invalid_input = "invalid_input"
    storage_unavailable = "storage_unavailable"


DEFAULT_MESSAGES = {
    ErrorKind.not_found: "Resource not found",
    ErrorKind.not_pending_or_not_found: "Resource not found or not pending",
    ErrorKind.forbidden: "You are not allowed to perform this action",
    ErrorKind.self_report_forbidden: "You cannot report your own review",
    ErrorKind.duplicate_report: "You have already reported this review",
    ErrorKind.duplicate_relationship: "This record already exists",
    ErrorKind.missing_reason: "A reason is required for this action",
    ErrorKind.invalid_input: "Invalid input",
    ErrorKind.storage_unavailable: "Storage is temporarily unavailable, please retry",
}


@dataclass(frozen=True)
class Ok(Generic[T]):
    data: T
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str = ""
    entity_type: str | None = None
    entity_id: str | None = None
    ok: bool = field(default=False, init=False)

    def __post_init__(self):
        if not self.message:
            object.__setattr__(self, "message", DEFAULT_MESSAGES[self.kind])

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.storage_unavailable


Result = Union[Ok[Any], Err]
