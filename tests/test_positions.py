from datetime import datetime

import pytest

from app.core.errors import NotFoundError, ValidationFailure
from app.crud.department import create_department, update_department
from app.crud.position import (
    create_position, update_position, deactivate_position, reactivate_position,
    get_position_by_title, list_positions, list_assignments,
)
from app.models import ChangeLogEntry, ChangeLogAction, Position, PositionAssignment
from app.services.hierarchy import get_reporting_chain, would_create_cycle


@pytest.fixture()
def eng(db):
    return create_department(db, "ENG", "Engineering")


def _assign(db, position_id, employee_id, end_date=None):
    a = PositionAssignment(position_id=position_id, employee_id=employee_id,
                           start_date=datetime(2023, 1, 1), end_date=end_date)
    db.add(a)
    db.commit()
    return a


def _last_entry(db):
    return db.query(ChangeLogEntry).order_by(ChangeLogEntry.id.desc()).first()


def test_create_requires_existing_department(db, log_count):
    with pytest.raises(NotFoundError):
        create_position(db, "X-1", "Ghost", department_id=404)
    assert log_count() == 0
    assert list_positions(db) == []


def test_create_position_logs_snapshot(db, eng):
    p = create_position(db, "ENG-1", "Lead", eng.id, "Leads the team", performed_by="emp-9")

    entry = _last_entry(db)
    assert entry.action == ChangeLogAction.CREATED
    assert entry.entity_type == "Position"
    assert entry.entity_id == p.id
    assert entry.after_snapshot["department_id"] == eng.id
    assert entry.after_snapshot["title"] == "Lead"
    assert entry.summary == "Position ENG-1 created"


def test_new_position_reports_to_department_head(db, eng):
    head = create_position(db, "ENG-HEAD", "Head of Engineering", eng.id)
    update_department(db, eng.id, {"head_position_id": head.id})

    p = create_position(db, "ENG-2", "Engineer", eng.id)
    assert p.reports_to_position_id == head.id

    explicit = create_position(db, "ENG-3", "Engineer", eng.id, reports_to_position_id=p.id)
    assert explicit.reports_to_position_id == p.id


def test_move_to_missing_department_fails_before_change(db, eng, log_count):
    p = create_position(db, "ENG-1", "Lead", eng.id)
    count = log_count()
    with pytest.raises(NotFoundError):
        update_position(db, p.id, {"department_id": 999})
    assert p.department_id == eng.id
    assert log_count() == count


def test_move_between_departments(db, eng):
    ops = create_department(db, "OPS", "Operations")
    p = create_position(db, "ENG-1", "Lead", eng.id)

    update_position(db, p.id, {"department_id": ops.id, "title": "Ops Lead"})

    assert p.department_id == ops.id
    assert p.title == "Ops Lead"
    entry = _last_entry(db)
    assert entry.before_snapshot["department_id"] == eng.id
    assert entry.after_snapshot["department_id"] == ops.id


def test_update_can_flip_is_active(db, eng):
    p = create_position(db, "ENG-1", "Lead", eng.id)
    update_position(db, p.id, {"is_active": False})
    assert p.is_active is False
    assert _last_entry(db).action == ChangeLogAction.UPDATED


def test_update_missing_position(db):
    with pytest.raises(NotFoundError):
        update_position(db, 1, {"title": "x"})


def test_reporting_line_cannot_loop(db, eng):
    a = create_position(db, "A", "Director", eng.id)
    b = create_position(db, "B", "Manager", eng.id, reports_to_position_id=a.id)
    c = create_position(db, "C", "Engineer", eng.id, reports_to_position_id=b.id)

    with pytest.raises(ValidationFailure):
        update_position(db, a.id, {"reports_to_position_id": c.id})
    with pytest.raises(ValidationFailure):
        update_position(db, a.id, {"reports_to_position_id": a.id})
    with pytest.raises(NotFoundError):
        update_position(db, a.id, {"reports_to_position_id": 12345})

    # re-pointing within the tree is fine
    update_position(db, c.id, {"reports_to_position_id": a.id})
    assert c.reports_to_position_id == a.id


def test_deactivate_closes_open_assignments_with_given_date(db, eng):
    p = create_position(db, "ENG-1", "Lead", eng.id)
    closed_earlier = datetime(2023, 6, 30, 17, 0)
    open_1 = _assign(db, p.id, "emp-1")
    open_2 = _assign(db, p.id, "emp-2")
    done = _assign(db, p.id, "emp-3", end_date=closed_earlier)
    end = datetime(2024, 12, 31, 23, 59, 59)

    deactivate_position(db, p.id, performed_by="emp-hr", end_date=end, reason="Role retired")

    assert p.is_active is False
    assert open_1.end_date == end
    assert open_2.end_date == end
    assert done.end_date == closed_earlier
    entry = _last_entry(db)
    assert entry.action == ChangeLogAction.DEACTIVATED
    assert entry.summary == "Role retired"


def test_deactivate_defaults_end_date_to_now(db, eng):
    p = create_position(db, "ENG-1", "Lead", eng.id)
    a = _assign(db, p.id, "emp-1")
    b = _assign(db, p.id, "emp-2")
    started = datetime.utcnow()

    deactivate_position(db, p.id)

    assert a.end_date is not None and a.end_date >= started.replace(microsecond=0)
    # one batch, one timestamp
    assert a.end_date == b.end_date
    assert [x.id for x in list_assignments(db, p.id)] == [a.id, b.id]


def test_second_position_deactivation_is_a_noop(db, eng, log_count):
    p = create_position(db, "ENG-1", "Lead", eng.id)
    deactivate_position(db, p.id)
    count = log_count()
    late = _assign(db, p.id, "emp-7")

    deactivate_position(db, p.id, end_date=datetime(2030, 1, 1))

    assert log_count() == count
    assert late.end_date is None


def test_reactivate_position(db, eng, log_count):
    p = create_position(db, "ENG-1", "Lead", eng.id)
    a = _assign(db, p.id, "emp-1")
    deactivate_position(db, p.id)

    reactivate_position(db, p.id)

    assert p.is_active is True
    assert a.end_date is not None
    assert _last_entry(db).summary == "Position ENG-1 reactivated"
    count = log_count()
    reactivate_position(db, p.id)
    assert log_count() == count


def test_lookups(db, eng):
    lead = create_position(db, "ENG-1", "Lead", eng.id)
    dev = create_position(db, "ENG-2", "Developer", eng.id)
    assert get_position_by_title(db, "LEAD").id == lead.id
    assert [p.id for p in list_positions(db, titles=["developer"])] == [dev.id]
    assert [p.id for p in list_positions(db, department_id=eng.id)] == [lead.id, dev.id]
    with pytest.raises(NotFoundError):
        get_position_by_title(db, "CEO")
    with pytest.raises(NotFoundError):
        list_assignments(db, 999)


def test_null_required_fields_in_patch_are_ignored(db, eng):
    p = create_position(db, "ENG-1", "Lead", eng.id)
    update_position(db, p.id, {"title": None, "department_id": None, "description": "Runs standups"})
    assert p.title == "Lead"
    assert p.department_id == eng.id
    assert p.description == "Runs standups"


def test_move_reports_to_new_department_head(db, eng):
    ops = create_department(db, "OPS", "Operations")
    eng_head = create_position(db, "ENG-HEAD", "Head of Engineering", eng.id)
    ops_head = create_position(db, "OPS-HEAD", "Head of Operations", ops.id)
    update_department(db, eng.id, {"head_position_id": eng_head.id})
    update_department(db, ops.id, {"head_position_id": ops_head.id})
    p = create_position(db, "ENG-1", "Engineer", eng.id)
    assert p.reports_to_position_id == eng_head.id

    update_position(db, p.id, {"department_id": ops.id})

    assert p.department_id == ops.id
    assert p.reports_to_position_id == ops_head.id
    entry = _last_entry(db)
    assert entry.before_snapshot["reports_to_position_id"] == eng_head.id
    assert entry.after_snapshot["reports_to_position_id"] == ops_head.id


def test_move_to_headless_department_clears_reports_to(db, eng):
    ops = create_department(db, "OPS", "Operations")
    head = create_position(db, "ENG-HEAD", "Head of Engineering", eng.id)
    update_department(db, eng.id, {"head_position_id": head.id})
    p = create_position(db, "ENG-1", "Engineer", eng.id)

    update_position(db, p.id, {"department_id": ops.id})

    assert p.reports_to_position_id is None


def test_move_keeps_explicit_reports_to(db, eng):
    ops = create_department(db, "OPS", "Operations")
    ops_head = create_position(db, "OPS-HEAD", "Head of Operations", ops.id)
    update_department(db, ops.id, {"head_position_id": ops_head.id})
    mentor = create_position(db, "ENG-2", "Staff Engineer", eng.id)
    p = create_position(db, "ENG-1", "Engineer", eng.id)

    update_position(db, p.id, {"department_id": ops.id, "reports_to_position_id": mentor.id})

    assert p.reports_to_position_id == mentor.id


def test_same_department_in_patch_keeps_reports_to(db, eng):
    mentor = create_position(db, "ENG-2", "Staff Engineer", eng.id)
    p = create_position(db, "ENG-1", "Engineer", eng.id, reports_to_position_id=mentor.id)

    update_position(db, p.id, {"department_id": eng.id, "title": "Senior Engineer"})

    assert p.reports_to_position_id == mentor.id


def test_cycle_found_through_a_deep_chain(db, eng):
    # P0 <- P1 <- ... <- P299, built directly so the test stays fast
    ids = []
    parent = None
    for i in range(300):
        row = Position(code=f"P{i}", title=f"Level {i}", department_id=eng.id, reports_to_position_id=parent)
        db.add(row)
        db.flush()
        ids.append(row.id)
        parent = row.id
    db.commit()

    assert len(get_reporting_chain(ids[-1], db)) == 299
    assert would_create_cycle(ids[0], ids[-1], db) is True
    with pytest.raises(ValidationFailure):
        update_position(db, ids[0], {"reports_to_position_id": ids[-1]})
    assert db.get(Position, ids[0]).reports_to_position_id is None
