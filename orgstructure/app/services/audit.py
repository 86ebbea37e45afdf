from __future__ import annotations
from typing import Optional, Dict, Any, List
from datetime import datetime

import structlog
from sqlalchemy.orm import Session

from app.models.change_log import ChangeLogEntry, ChangeLogAction
from app.utils import audit_sink
from app.metrics import org_changes_total

log = structlog.get_logger(__name__)


def record_change(
    db: Session,
    action: ChangeLogAction,
    entity_type: str,
    entity_id: int,
    performed_by: Optional[str] = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    summary: Optional[str] = None,
) -> ChangeLogEntry:
    """
    Stage one append-only change-log row in the caller's transaction.
    The row becomes visible when the caller commits.
    """
    row = ChangeLogEntry(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        performed_by_employee_id=performed_by,
        before_snapshot=before,
        after_snapshot=after,
        summary=summary,
    )
    db.add(row)
    return row


def mirror_change(row: ChangeLogEntry) -> None:
    """Mirror a committed change-log row to the JSONL sink."""
    org_changes_total.labels(entity_type=row.entity_type, action=row.action.value).inc()
    if not audit_sink.AUDIT_MIRROR_ENABLED:
        return
    event = {
        "id": row.id,
        "action": row.action.value,
        "entity_type": row.entity_type,
        "entity_id": row.entity_id,
        "performed_by_employee_id": row.performed_by_employee_id,
        "before": row.before_snapshot,
        "after": row.after_snapshot,
        "summary": row.summary,
        "created_at": row.created_at.isoformat() if row.created_at else datetime.utcnow().isoformat(),
    }
    try:
        audit_sink.write_event(event)
    except OSError as e:
        # the database row is authoritative; a lost mirror line is only logged
        log.warning("audit_mirror_failed", change_id=row.id, error=str(e))


def list_changes(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[ChangeLogEntry]:
    q = db.query(ChangeLogEntry)
    if entity_type:
        q = q.filter(ChangeLogEntry.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(ChangeLogEntry.entity_id == entity_id)
    return q.order_by(ChangeLogEntry.id.desc()).offset(offset).limit(limit).all()
