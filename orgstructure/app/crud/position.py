# app/crud/position.py
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.database import atomic
from app.core.errors import NotFoundError, ValidationFailure, ConflictError
from app.models.department import Department
from app.models.position import Position, PositionAssignment
from app.models.change_log import ChangeLogAction
from app.services.audit import record_change, mirror_change
from app.services.hierarchy import would_create_cycle
from app.utils.snapshot import snapshot
from app.metrics import assignments_closed_total

log = structlog.get_logger(__name__)

ENTITY = "Position"
UPDATABLE_FIELDS = {"title", "description", "department_id", "reports_to_position_id", "is_active"}
# null for these means "leave as is"
REQUIRED_FIELDS = {"title", "department_id", "is_active"}


def get_position(db: Session, position_id: int) -> Position:
    p = db.get(Position, position_id)
    if not p:
        raise NotFoundError(ENTITY, position_id)
    return p


def get_position_by_title(db: Session, title: str) -> Position:
    """Case-insensitive exact match on the position title."""
    title = (title or "").strip()
    if not title:
        raise ValidationFailure("Position title is required")
    p = db.query(Position).filter(func.lower(Position.title) == title.lower()).first()
    if not p:
        raise NotFoundError(ENTITY, message=f'Position with title "{title}" not found')
    return p


def list_positions(
    db: Session,
    department_id: Optional[int] = None,
    titles: Optional[Sequence[str]] = None,
) -> List[Position]:
    q = db.query(Position)
    if department_id is not None:
        q = q.filter(Position.department_id == department_id)
    if titles:
        q = q.filter(func.lower(Position.title).in_([t.strip().lower() for t in titles]))
    return q.order_by(Position.id.asc()).all()


def list_assignments(db: Session, position_id: int) -> List[PositionAssignment]:
    get_position(db, position_id)
    return (
        db.query(PositionAssignment)
        .filter(PositionAssignment.position_id == position_id)
        .order_by(PositionAssignment.id.asc())
        .all()
    )


def _ensure_department(db: Session, department_id: int) -> Department:
    d = db.get(Department, department_id)
    if not d:
        raise NotFoundError("Department", department_id)
    return d


def _check_reports_to(db: Session, position_id: Optional[int], reports_to_id: Optional[int]) -> None:
    if reports_to_id is None:
        return
    if db.get(Position, reports_to_id) is None:
        raise NotFoundError(ENTITY, reports_to_id)
    if would_create_cycle(position_id, reports_to_id, db):
        raise ValidationFailure(
            f"Position {position_id} cannot report to position {reports_to_id}: reporting line would form a cycle"
        )


def create_position(
    db: Session,
    code: str,
    title: str,
    department_id: int,
    description: Optional[str] = None,
    reports_to_position_id: Optional[int] = None,
    performed_by: Optional[str] = None,
) -> Position:
    """
    Create a position inside an existing department.

    Without an explicit supervisor the position reports to the department's
    head position, when the department has one.
    """
    dept = _ensure_department(db, department_id)
    if reports_to_position_id is None:
        reports_to_position_id = dept.head_position_id
    _check_reports_to(db, None, reports_to_position_id)

    with atomic(db):
        p = Position(
            code=code,
            title=title,
            description=description,
            department_id=department_id,
            reports_to_position_id=reports_to_position_id,
        )
        db.add(p)
        db.flush()
        entry = record_change(
            db, ChangeLogAction.CREATED, ENTITY, p.id, performed_by,
            after=snapshot(p), summary=f"Position {p.code} created",
        )
    mirror_change(entry)
    log.info("position_created", position_id=p.id, code=p.code, department_id=department_id, performed_by=performed_by)
    return p


def update_position(
    db: Session,
    position_id: int,
    patch: Dict[str, Any],
    performed_by: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Position:
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationFailure(f"Unknown position fields: {sorted(unknown)}")
    patch = {k: v for k, v in patch.items() if not (v is None and k in REQUIRED_FIELDS)}

    p = get_position(db, position_id)
    if expected_version is not None and p.version != expected_version:
        raise ConflictError(f"Position {p.id} is at version {p.version}, expected {expected_version}")

    new_dept = patch.get("department_id")
    if new_dept is not None and new_dept != p.department_id:
        target = _ensure_department(db, new_dept)
        # a moved position reports to its new department's head unless told otherwise
        if "reports_to_position_id" not in patch:
            head = target.head_position_id
            patch["reports_to_position_id"] = head if head != p.id else None
    if "reports_to_position_id" in patch:
        _check_reports_to(db, p.id, patch["reports_to_position_id"])
    if "is_active" in patch and not isinstance(patch["is_active"], bool):
        raise ValidationFailure("is_active must be a boolean")

    with atomic(db):
        before = snapshot(p)
        for k, v in patch.items():
            setattr(p, k, v)
        db.flush()
        entry = record_change(
            db, ChangeLogAction.UPDATED, ENTITY, p.id, performed_by,
            before=before, after=snapshot(p), summary=f"Position {p.code} updated",
        )
    mirror_change(entry)
    log.info("position_updated", position_id=p.id, fields=sorted(patch), performed_by=performed_by)
    return p


def deactivate_position(
    db: Session,
    position_id: int,
    performed_by: Optional[str] = None,
    end_date: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> Position:
    """
    Deactivate a position and close its open assignments.

    All open assignments get the same end date: *end_date* or now.
    No-op if the position is already inactive.
    """
    p = get_position(db, position_id)
    if not p.is_active:
        log.info("position_already_inactive", position_id=p.id)
        return p

    closure = end_date or datetime.utcnow()
    with atomic(db):
        before = snapshot(p)
        p.is_active = False
        closed = (
            db.query(PositionAssignment)
            .filter(PositionAssignment.position_id == p.id, PositionAssignment.end_date.is_(None))
            .update({PositionAssignment.end_date: closure}, synchronize_session=False)
        )
        db.flush()
        entry = record_change(
            db, ChangeLogAction.DEACTIVATED, ENTITY, p.id, performed_by,
            before=before, after=snapshot(p),
            summary=reason or f"Position {p.code} deactivated",
        )
    mirror_change(entry)
    assignments_closed_total.inc(closed)
    log.info("position_deactivated", position_id=p.id, assignments_closed=closed, performed_by=performed_by)
    return p


def reactivate_position(
    db: Session,
    position_id: int,
    performed_by: Optional[str] = None,
    reason: Optional[str] = None,
) -> Position:
    """Reactivate a position. Assignments closed on deactivation stay closed."""
    p = get_position(db, position_id)
    if p.is_active:
        log.info("position_already_active", position_id=p.id)
        return p

    with atomic(db):
        before = snapshot(p)
        p.is_active = True
        db.flush()
        entry = record_change(
            db, ChangeLogAction.UPDATED, ENTITY, p.id, performed_by,
            before=before, after=snapshot(p),
            summary=reason or f"Position {p.code} reactivated",
        )
    mirror_change(entry)
    log.info("position_reactivated", position_id=p.id, performed_by=performed_by)
    return p
