"""
Employment lifecycle between companies and their workers/drivers.

pending -> active -> terminated
pending -> cancelled (company withdraws or employee rejects)

An active employment is what makes an employee staffable on the company's offers.
"""
from datetime import date, datetime
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..models.enums import Currency, EmploymentRole, EmploymentStatus
from ..models.models import Company, Employment, EmploymentRateChange, User
from ..schemas.employments import EmploymentCreate, EmploymentUpdate
from . import notifications
from .audit import compute_diff, create_audit_log
from .errors import ConflictError, NotAuthorizedError, NotFoundError, StateError, ValidationError, is_number
from .transactions import atomic, get_or_404, lock_row

logger = structlog.get_logger(__name__)

OPEN_CONFLICT = "Employee already has an open employment with this company"
OPEN_STATUSES = (EmploymentStatus.pending, EmploymentStatus.active)


def _parse_role(value: str) -> EmploymentRole:
    try:
        return EmploymentRole(value)
    except ValueError:
        raise ValidationError(f"Unknown employment role {value}", {"field": "role"})


def _parse_currency(value: Optional[str]) -> Currency:
    raw = (value or settings.default_currency).upper()
    try:
        return Currency(raw)
    except ValueError:
        raise ValidationError(f"Unsupported currency {raw}", {"field": "currency"})


def _check_rate(rate: float) -> None:
    if not is_number(rate) or rate < 0:
        raise ValidationError("hourly_rate must be 0 or more", {"field": "hourly_rate"})


def _snapshot(employment: Employment) -> dict:
    return {
        "role": employment.role.value,
        "hourly_rate": employment.hourly_rate,
        "currency": employment.currency.value,
        "status": employment.status.value,
    }


def _context(employment: Employment) -> dict:
    return {
        "employment_id": employment.id,
        "employee_id": employment.employee_id,
        "company_id": employment.company_id,
    }


def get_company_employment(db: Session, company_id: int, employment_id: int) -> Employment:
    employment = get_or_404(db, Employment, employment_id, "Employment")
    if employment.company_id != company_id:
        raise NotFoundError("Employment not found", {"company_id": company_id, "id": employment_id})
    return employment


def invite_employee(db: Session, company_id: int, data: EmploymentCreate, actor: Optional[User] = None) -> Employment:
    role = _parse_role(data.role)
    currency = _parse_currency(data.currency)
    _check_rate(data.hourly_rate)

    with atomic(db, OPEN_CONFLICT):
        get_or_404(db, Company, company_id, "Company")
        employee = get_or_404(db, User, data.employee_id, "Employee")
        existing = (
            db.query(Employment.id)
            .filter(
                Employment.employee_id == employee.id,
                Employment.company_id == company_id,
                Employment.status.in_(OPEN_STATUSES),
            )
            .first()
        )
        if existing is not None:
            raise ConflictError(OPEN_CONFLICT, {"employment_id": existing[0]})

        now = datetime.utcnow()
        employment = Employment(
            employee_id=employee.id,
            company_id=company_id,
            role=role,
            hourly_rate=data.hourly_rate,
            currency=currency,
            status=EmploymentStatus.pending,
            start_date=data.start_date,
            created_at=now,
            updated_at=now,
        )
        db.add(employment)
        db.flush()
        db.add(EmploymentRateChange(
            employment_id=employment.id,
            old_rate=None,
            new_rate=employment.hourly_rate,
            currency=currency,
            changed_by=actor.id if actor else None,
            changed_at=now,
        ))

        create_audit_log(
            db, "employment", employment.id, "INVITE", actor=actor,
            changes_json={"after": _snapshot(employment)}, context=_context(employment),
        )
        notifications.emit_event(db, notifications.EMPLOYMENT_INVITED, [employee.id], _context(employment))
    logger.info("employment_invited", employment_id=employment.id, employee_id=employee.id, company_id=company_id)
    return employment


def _transition(
    db: Session,
    employment_id: int,
    expected: EmploymentStatus,
    target: EmploymentStatus,
    action: str,
    event: Optional[str],
    recipients_fn,
    actor: Optional[User],
    employee_id: Optional[int] = None,
) -> Employment:
    with atomic(db):
        employment = lock_row(db, Employment, employment_id, "Employment")
        if employee_id is not None and employment.employee_id != employee_id:
            raise NotAuthorizedError("Employees can only answer their own invitations")
        if employment.status != expected:
            raise StateError(
                f"Cannot {action.lower()} an employment that is {employment.status.value}",
                {"employment_id": employment.id, "status": employment.status.value},
            )
        now = datetime.utcnow()
        employment.status = target
        employment.updated_at = now
        if target == EmploymentStatus.active and employment.start_date is None:
            employment.start_date = date.today()
        if target == EmploymentStatus.terminated:
            employment.end_date = date.today()

        context = _context(employment)
        create_audit_log(
            db, "employment", employment.id, action, actor=actor,
            changes_json={"status": {"before": expected.value, "after": target.value}}, context=context,
        )
        if event:
            notifications.emit_event(db, event, recipients_fn(db, employment), context)
    logger.info("employment_" + action.lower(), employment_id=employment_id, status=target.value)
    return employment


def _company_recipients(db: Session, employment: Employment) -> List[int]:
    return notifications.company_admin_ids(db, employment.company_id)


def _employee_recipient(db: Session, employment: Employment) -> List[int]:
    return [employment.employee_id]


def accept_employment(db: Session, employment_id: int, employee_id: int, actor: Optional[User] = None) -> Employment:
    return _transition(
        db, employment_id, EmploymentStatus.pending, EmploymentStatus.active, "ACCEPT",
        notifications.EMPLOYMENT_ACCEPTED, _company_recipients, actor, employee_id=employee_id,
    )


def reject_employment(db: Session, employment_id: int, employee_id: int, actor: Optional[User] = None) -> Employment:
    return _transition(
        db, employment_id, EmploymentStatus.pending, EmploymentStatus.cancelled, "REJECT",
        notifications.EMPLOYMENT_REJECTED, _company_recipients, actor, employee_id=employee_id,
    )


def cancel_employment(db: Session, employment_id: int, actor: Optional[User] = None) -> Employment:
    """Company withdraws an invitation that was not answered yet."""
    return _transition(
        db, employment_id, EmploymentStatus.pending, EmploymentStatus.cancelled, "CANCEL",
        None, None, actor,
    )


def terminate_employment(db: Session, employment_id: int, actor: Optional[User] = None) -> Employment:
    return _transition(
        db, employment_id, EmploymentStatus.active, EmploymentStatus.terminated, "TERMINATE",
        notifications.EMPLOYMENT_TERMINATED, _employee_recipient, actor,
    )


def update_employment(db: Session, employment_id: int, data: EmploymentUpdate, actor: Optional[User] = None) -> Employment:
    """Change role or pay of an open employment; every rate change is kept in history."""
    with atomic(db):
        employment = lock_row(db, Employment, employment_id, "Employment")
        if employment.status not in OPEN_STATUSES:
            raise StateError(
                f"Cannot update an employment that is {employment.status.value}",
                {"employment_id": employment.id, "status": employment.status.value},
            )
        before = _snapshot(employment)
        old_rate = employment.hourly_rate
        if data.role is not None:
            employment.role = _parse_role(data.role)
        if data.currency is not None:
            employment.currency = _parse_currency(data.currency)
        if data.hourly_rate is not None:
            _check_rate(data.hourly_rate)
            employment.hourly_rate = data.hourly_rate

        now = datetime.utcnow()
        if employment.hourly_rate != old_rate:
            db.add(EmploymentRateChange(
                employment_id=employment.id,
                old_rate=old_rate,
                new_rate=employment.hourly_rate,
                currency=employment.currency,
                changed_by=actor.id if actor else None,
                changed_at=now,
            ))
        employment.updated_at = now
        diff = compute_diff(before, _snapshot(employment))
        if diff:
            create_audit_log(
                db, "employment", employment.id, "UPDATE", actor=actor,
                changes_json=diff, context=_context(employment),
            )
    logger.info("employment_updated", employment_id=employment_id, fields=sorted(diff))
    return employment


def list_company_employments(db: Session, company_id: int, status: Optional[str] = None) -> List[Employment]:
    get_or_404(db, Company, company_id, "Company")
    query = db.query(Employment).filter(Employment.company_id == company_id)
    if status:
        try:
            query = query.filter(Employment.status == EmploymentStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown employment status {status}", {"field": "status"})
    return query.order_by(Employment.created_at.desc(), Employment.id.desc()).all()


def list_employee_employments(db: Session, employee_id: int) -> List[Employment]:
    return (
        db.query(Employment)
        .filter(Employment.employee_id == employee_id)
        .order_by(Employment.created_at.desc(), Employment.id.desc())
        .all()
    )


def rate_history(db: Session, employment_id: int) -> List[EmploymentRateChange]:
    """Rate changes, newest first."""
    get_or_404(db, Employment, employment_id, "Employment")
    return (
        db.query(EmploymentRateChange)
        .filter(EmploymentRateChange.employment_id == employment_id)
        .order_by(EmploymentRateChange.changed_at.desc(), EmploymentRateChange.id.desc())
        .all()
    )
