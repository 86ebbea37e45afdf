# app/crud/department.py
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.database import atomic
from app.core.errors import NotFoundError, ValidationFailure, ConflictError
from app.models.department import Department
from app.models.position import Position
from app.models.change_log import ChangeLogAction
from app.services.audit import record_change, mirror_change
from app.utils.snapshot import snapshot
from app.metrics import positions_cascaded_total

log = structlog.get_logger(__name__)

ENTITY = "Department"
UPDATABLE_FIELDS = {"name", "description", "head_position_id"}
# null for these means "leave as is"
REQUIRED_FIELDS = {"name"}


def get_department(db: Session, department_id: int) -> Department:
    d = db.get(Department, department_id)
    if not d:
        raise NotFoundError(ENTITY, department_id)
    return d


def get_department_by_name(db: Session, name: str) -> Department:
    """Case-insensitive exact match on the department name."""
    name = (name or "").strip()
    if not name:
        raise ValidationFailure("Department name is required")
    d = db.query(Department).filter(func.lower(Department.name) == name.lower()).first()
    if not d:
        raise NotFoundError(ENTITY, message=f'Department with name "{name}" not found')
    return d


def list_departments(db: Session, active_only: bool = False) -> List[Department]:
    q = db.query(Department)
    if active_only:
        q = q.filter(Department.is_active.is_(True))
    return q.order_by(Department.id.asc()).all()


def _check_head(db: Session, head_position_id: Optional[int]) -> None:
    if head_position_id is not None and db.get(Position, head_position_id) is None:
        raise NotFoundError("Position", head_position_id)


def _check_version(d: Department, expected_version: Optional[int]) -> None:
    if expected_version is not None and d.version != expected_version:
        raise ConflictError(
            f"Department {d.id} is at version {d.version}, expected {expected_version}"
        )


def create_department(
    db: Session,
    code: str,
    name: str,
    description: Optional[str] = None,
    head_position_id: Optional[int] = None,
    performed_by: Optional[str] = None,
) -> Department:
    """Create a department. Code uniqueness is left to the storage constraint."""
    _check_head(db, head_position_id)
    with atomic(db):
        d = Department(code=code, name=name, description=description, head_position_id=head_position_id)
        db.add(d)
        db.flush()
        entry = record_change(
            db, ChangeLogAction.CREATED, ENTITY, d.id, performed_by,
            after=snapshot(d), summary=f"Department {d.code} created",
        )
    mirror_change(entry)
    log.info("department_created", department_id=d.id, code=d.code, performed_by=performed_by)
    return d


def update_department(
    db: Session,
    department_id: int,
    patch: Dict[str, Any],
    performed_by: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> Department:
    """Apply only the fields present in *patch*; omitted fields keep their value."""
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationFailure(f"Unknown department fields: {sorted(unknown)}")
    patch = {k: v for k, v in patch.items() if not (v is None and k in REQUIRED_FIELDS)}

    d = get_department(db, department_id)
    _check_version(d, expected_version)
    if "head_position_id" in patch:
        _check_head(db, patch["head_position_id"])

    with atomic(db):
        before = snapshot(d)
        for k, v in patch.items():
            setattr(d, k, v)
        db.flush()
        entry = record_change(
            db, ChangeLogAction.UPDATED, ENTITY, d.id, performed_by,
            before=before, after=snapshot(d), summary=f"Department {d.code} updated",
        )
    mirror_change(entry)
    log.info("department_updated", department_id=d.id, fields=sorted(patch), performed_by=performed_by)
    return d


def deactivate_department(
    db: Session,
    department_id: int,
    performed_by: Optional[str] = None,
    reason: Optional[str] = None,
) -> Department:
    """Deactivate a department and every position in it. No-op if already inactive."""
    d = get_department(db, department_id)
    if not d.is_active:
        log.info("department_already_inactive", department_id=d.id)
        return d

    with atomic(db):
        before = snapshot(d)
        d.is_active = False
        # cascade: positions are not audited individually
        cascaded = 0
        for p in db.query(Position).filter(Position.department_id == d.id, Position.is_active.is_(True)).all():
            p.is_active = False
            cascaded += 1
        db.flush()
        entry = record_change(
            db, ChangeLogAction.DEACTIVATED, ENTITY, d.id, performed_by,
            before=before, after=snapshot(d),
            summary=reason or f"Department {d.code} deactivated",
        )
    mirror_change(entry)
    positions_cascaded_total.inc(cascaded)
    log.info("department_deactivated", department_id=d.id, positions_deactivated=cascaded, performed_by=performed_by)
    return d


def reactivate_department(
    db: Session,
    department_id: int,
    performed_by: Optional[str] = None,
    reason: Optional[str] = None,
) -> Department:
    """Reactivate a department. Its positions stay as they are."""
    d = get_department(db, department_id)
    if d.is_active:
        log.info("department_already_active", department_id=d.id)
        return d

    with atomic(db):
        before = snapshot(d)
        d.is_active = True
        db.flush()
        entry = record_change(
            db, ChangeLogAction.UPDATED, ENTITY, d.id, performed_by,
            before=before, after=snapshot(d),
            summary=reason or f"Department {d.code} reactivated",
        )
    mirror_change(entry)
    log.info("department_reactivated", department_id=d.id, performed_by=performed_by)
    return d
