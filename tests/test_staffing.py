import pytest

from movehub.models.enums import AssignmentStatus
from movehub.services import offers, staffing
from movehub.services.errors import ConflictError, NotAssignableError, NotFoundError, StateError
from movehub.services.transactions import atomic

from conftest import accepted_offer, make_order, make_terms


def leaders(db, offer_id):
    return [a for a in staffing.list_assignments(db, offer_id) if a.is_leader]


def test_assign_requires_accepted_offer(db, world):
    line = make_order(db, world).services[0]
    offer = offers.send_offer(db, line.id, make_terms())

    with pytest.raises(NotAssignableError):
        staffing.assign_employee(db, offer.id, world.worker_a.id)


def test_assign_creates_non_leader(db, world):
    offer = accepted_offer(db, world)

    assignment = staffing.assign_employee(db, offer.id, world.worker_a.id, actor=world.company_admin)

    assert assignment.status == AssignmentStatus.active
    assert assignment.is_leader is False
    assert assignment.assigned_by == world.company_admin.id


def test_duplicate_active_assignment_is_rejected(db, world):
    offer = accepted_offer(db, world)
    staffing.assign_employee(db, offer.id, world.worker_a.id)

    with pytest.raises(NotAssignableError):
        staffing.assign_employee(db, offer.id, world.worker_a.id)


def test_reassign_after_cancel(db, world):
    offer = accepted_offer(db, world)
    first = staffing.assign_employee(db, offer.id, world.worker_a.id)
    staffing.cancel_assignment(db, first.id)

    second = staffing.assign_employee(db, offer.id, world.worker_a.id)

    assert second.id != first.id
    assert [a.id for a in staffing.list_assignments(db, offer.id)] == [second.id]


def test_employee_without_employment_is_not_assignable(db, world):
    offer = accepted_offer(db, world)
    with pytest.raises(NotAssignableError):
        staffing.assign_employee(db, offer.id, world.freelancer.id)


def test_unknown_employee(db, world):
    offer = accepted_offer(db, world)
    with pytest.raises(NotFoundError):
        staffing.assign_employee(db, offer.id, 9999)


def test_make_leader_twice_keeps_most_recent(db, world):
    offer = accepted_offer(db, world)
    staffing.assign_employee(db, offer.id, world.worker_a.id)
    staffing.assign_employee(db, offer.id, world.worker_b.id)

    staffing.make_leader(db, offer.id, world.worker_a.id)
    staffing.make_leader(db, offer.id, world.worker_b.id)

    current = leaders(db, offer.id)
    assert [a.employee_id for a in current] == [world.worker_b.id]
    assert staffing.get_leader(db, offer.id).employee_id == world.worker_b.id


def test_make_leader_is_idempotent_for_current_leader(db, world):
    offer = accepted_offer(db, world)
    staffing.assign_employee(db, offer.id, world.worker_a.id)
    staffing.make_leader(db, offer.id, world.worker_a.id)
    staffing.make_leader(db, offer.id, world.worker_a.id)

    assert len(leaders(db, offer.id)) == 1


def test_make_leader_requires_active_assignment(db, world):
    offer = accepted_offer(db, world)
    assignment = staffing.assign_employee(db, offer.id, world.worker_a.id)
    staffing.cancel_assignment(db, assignment.id)

    with pytest.raises(NotFoundError):
        staffing.make_leader(db, offer.id, world.worker_a.id)


def test_cancelling_leader_leaves_offer_without_leader(db, world):
    offer = accepted_offer(db, world)
    staffing.assign_employee(db, offer.id, world.worker_a.id)
    leader = staffing.assign_employee(db, offer.id, world.worker_b.id)
    staffing.make_leader(db, offer.id, world.worker_b.id)

    cancelled = staffing.cancel_assignment(db, leader.id, actor=world.company_admin)

    assert cancelled.status == AssignmentStatus.cancelled
    assert cancelled.is_leader is False
    assert leaders(db, offer.id) == []
    assert staffing.get_leader(db, offer.id) is None

    staffing.make_leader(db, offer.id, world.worker_a.id)
    assert [a.employee_id for a in leaders(db, offer.id)] == [world.worker_a.id]


def test_cancelled_rows_are_kept_for_audit(db, world):
    offer = accepted_offer(db, world)
    assignment = staffing.assign_employee(db, offer.id, world.worker_a.id)
    staffing.cancel_assignment(db, assignment.id)

    assert staffing.list_assignments(db, offer.id) == []
    history = staffing.list_assignments(db, offer.id, include_cancelled=True)
    assert [a.id for a in history] == [assignment.id]


def test_cancel_twice_is_a_state_error(db, world):
    offer = accepted_offer(db, world)
    assignment = staffing.assign_employee(db, offer.id, world.worker_a.id)
    staffing.cancel_assignment(db, assignment.id)

    with pytest.raises(StateError):
        staffing.cancel_assignment(db, assignment.id)


def test_cancel_checks_offer_of_assignment(db, world):
    offer = accepted_offer(db, world)
    assignment = staffing.assign_employee(db, offer.id, world.worker_a.id)

    with pytest.raises(NotFoundError):
        staffing.cancel_assignment(db, assignment.id, offer_id=offer.id + 100)


def test_employee_assignment_listing(db, world):
    first = accepted_offer(db, world)
    second = accepted_offer(db, world)
    staffing.assign_employee(db, first.id, world.worker_a.id)
    staffing.assign_employee(db, second.id, world.worker_a.id)
    staffing.assign_employee(db, second.id, world.worker_b.id)

    mine = staffing.list_employee_assignments(db, world.worker_a.id)

    assert sorted(a.offer_id for a in mine) == sorted([first.id, second.id])


def test_single_leader_index_backs_the_invariant(db, world):
    offer = accepted_offer(db, world)
    staffing.assign_employee(db, offer.id, world.worker_a.id)
    second = staffing.assign_employee(db, offer.id, world.worker_b.id)
    staffing.make_leader(db, offer.id, world.worker_a.id)

    with pytest.raises(ConflictError):
        with atomic(db, "second leader"):
            second.is_leader = True
            db.flush()

    assert [a.employee_id for a in leaders(db, offer.id)] == [world.worker_a.id]


def test_make_leader_overrides_leader_committed_by_another_session(db, world, session_factory):
    offer = accepted_offer(db, world)
    staffing.assign_employee(db, offer.id, world.worker_a.id)
    staffing.assign_employee(db, offer.id, world.worker_b.id)
    staffing.make_leader(db, offer.id, world.worker_a.id)

    other = session_factory()
    try:
        # The other session still holds A flagged as leader
        cached = staffing.list_assignments(other, offer.id)
        assert [a.employee_id for a in cached if a.is_leader] == [world.worker_a.id]

        staffing.make_leader(db, offer.id, world.worker_b.id)
        staffing.make_leader(other, offer.id, world.worker_a.id)
    finally:
        other.close()

    db.expire_all()
    assert [a.employee_id for a in leaders(db, offer.id)] == [world.worker_a.id]


def test_make_leader_demotes_leader_unknown_to_the_session(db, world, session_factory):
    offer = accepted_offer(db, world)
    staffing.assign_employee(db, offer.id, world.worker_a.id)
    staffing.assign_employee(db, offer.id, world.worker_b.id)

    other = session_factory()
    try:
        # Loaded while the offer had no leader
        assert all(not a.is_leader for a in staffing.list_assignments(other, offer.id))

        staffing.make_leader(db, offer.id, world.worker_a.id)
        promoted = staffing.make_leader(other, offer.id, world.worker_b.id)
        assert promoted.is_leader is True
    finally:
        other.close()

    db.expire_all()
    assert [a.employee_id for a in leaders(db, offer.id)] == [world.worker_b.id]
