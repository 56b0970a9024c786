from datetime import date

import pytest

from movehub.models.enums import EmploymentStatus
from movehub.schemas.employments import EmploymentCreate, EmploymentUpdate
from movehub.services import employments, staffing
from movehub.services.errors import ConflictError, NotAuthorizedError, NotFoundError, StateError, ValidationError

from conftest import accepted_offer


def invite(db, world, **kwargs):
    data = EmploymentCreate(employee_id=world.freelancer.id, role="driver", hourly_rate=28, **kwargs)
    return employments.invite_employee(db, world.company.id, data, actor=world.company_admin)


def test_invite_creates_pending_employment_with_rate_history(db, world):
    employment = invite(db, world)

    assert employment.status == EmploymentStatus.pending
    assert employment.currency.value == "CHF"
    history = employments.rate_history(db, employment.id)
    assert [(c.old_rate, c.new_rate) for c in history] == [(None, 28)]


def test_second_open_invitation_conflicts(db, world):
    invite(db, world)
    with pytest.raises(ConflictError):
        invite(db, world)


def test_invalid_role_or_rate(db, world):
    with pytest.raises(ValidationError):
        employments.invite_employee(
            db, world.company.id, EmploymentCreate(employee_id=world.freelancer.id, role="pilot")
        )
    with pytest.raises(ValidationError):
        employments.invite_employee(
            db, world.company.id, EmploymentCreate(employee_id=world.freelancer.id, hourly_rate=-1)
        )


def test_accept_makes_employee_staffable(db, world):
    employment = invite(db, world)
    offer = accepted_offer(db, world)

    employments.accept_employment(db, employment.id, world.freelancer.id, actor=world.freelancer)

    assert employment.status == EmploymentStatus.active
    assert employment.start_date == date.today()
    assignment = staffing.assign_employee(db, offer.id, world.freelancer.id)
    assert assignment.employee_id == world.freelancer.id


def test_only_the_invited_employee_can_answer(db, world):
    employment = invite(db, world)
    with pytest.raises(NotAuthorizedError):
        employments.accept_employment(db, employment.id, world.worker_a.id)


def test_reject_and_reinvite(db, world):
    employment = invite(db, world)
    employments.reject_employment(db, employment.id, world.freelancer.id)
    assert employment.status == EmploymentStatus.cancelled

    again = invite(db, world)
    assert again.id != employment.id


def test_company_cancels_pending_invitation(db, world):
    employment = invite(db, world)
    employments.cancel_employment(db, employment.id, actor=world.company_admin)
    assert employment.status == EmploymentStatus.cancelled

    with pytest.raises(StateError):
        employments.accept_employment(db, employment.id, world.freelancer.id)


def test_terminate_only_active(db, world):
    employment = invite(db, world)
    with pytest.raises(StateError):
        employments.terminate_employment(db, employment.id)

    employments.accept_employment(db, employment.id, world.freelancer.id)
    employments.terminate_employment(db, employment.id, actor=world.company_admin)

    assert employment.status == EmploymentStatus.terminated
    assert employment.end_date == date.today()


def test_update_appends_rate_changes(db, world):
    employment = invite(db, world)
    employments.update_employment(db, employment.id, EmploymentUpdate(hourly_rate=30), actor=world.company_admin)
    employments.update_employment(db, employment.id, EmploymentUpdate(role="worker"))
    employments.update_employment(db, employment.id, EmploymentUpdate(hourly_rate=33))

    assert employment.role.value == "worker"
    history = employments.rate_history(db, employment.id)
    assert [(c.old_rate, c.new_rate) for c in history] == [(30, 33), (28, 30), (None, 28)]


def test_company_and_employee_listings(db, world):
    employment = invite(db, world)

    pending = employments.list_company_employments(db, world.company.id, status="pending")
    assert [e.id for e in pending] == [employment.id]
    assert len(employments.list_company_employments(db, world.company.id)) == 3
    assert [e.id for e in employments.list_employee_employments(db, world.freelancer.id)] == [employment.id]


def test_company_employment_lookup_is_scoped(db, world):
    employment = invite(db, world)
    with pytest.raises(NotFoundError):
        employments.get_company_employment(db, world.other_company.id, employment.id)
