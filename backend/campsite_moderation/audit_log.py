from typing import Any, Optional

from sqlalchemy.orm import Session

from . import models
from .repositories import ModerationLogRepository


def append(
    db: Session,
    *,
    actor_id: str,
    action: models.ModerationAction,
    entity_type: str,
    entity_id: str,
    reason: Optional[str] = None,
    meta: Optional[dict[str, Any]] = None,
) -> models.ModerationLog:
    """Stage one audit entry in the caller's transaction; it commits or rolls back with the mutation it describes."""
    return ModerationLogRepository(db).add(
        actor_id=actor_id,
        action=action.value,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        meta=meta,
    )


def entries_for(db: Session, entity_type: str, entity_id: str) -> list[models.ModerationLog]:
    return ModerationLogRepository(db).for_entity(entity_type, entity_id)
