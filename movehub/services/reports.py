"""
Post-job report filed by the team leader of an accepted offer.
One report per service line; later submissions update it in place.
Submitting never completes the service line.
"""
from datetime import datetime
from typing import Dict, Optional

import structlog
from sqlalchemy.orm import Session

from ..models.enums import AssignmentStatus, PaymentMethod, REPORTABLE_SERVICE_STATUSES
from ..models.models import Assignment, Offer, OrderService, Report, ReportEmployee, ReportTransaction, User
from ..schemas.reports import ReportData
from . import notifications
from .audit import create_audit_log
from .errors import NotAuthorizedError, NotFoundError, ValidationError, is_number
from .offers import get_accepted_offer
from .staffing import get_leader
from .transactions import atomic, lock_row

logger = structlog.get_logger(__name__)


def _payment_method(value: Optional[str], field: str, errors: Dict[str, str]) -> Optional[PaymentMethod]:
    try:
        return PaymentMethod((value or "").strip().lower())
    except ValueError:
        errors[field] = f"must be one of {', '.join(m.value for m in PaymentMethod)}"
        return None


def validate_report(db: Session, offer: Offer, data: ReportData) -> PaymentMethod:
    """Check report figures; every listed employee must be staffed on the offer."""
    errors: Dict[str, str] = {}
    if not is_number(data.num_of_hours) or data.num_of_hours <= 0:
        errors["numofHours"] = "must be greater than 0"
    if not is_number(data.paid_amount) or data.paid_amount < 0:
        errors["paid_amount"] = "must be 0 or more"
    method = _payment_method(data.payment_method, "payment_method", errors)

    if not data.employee_hours:
        errors["employeeHours"] = "at least one entry is required"
    else:
        active_ids = {
            row[0]
            for row in db.query(Assignment.employee_id).filter(
                Assignment.offer_id == offer.id, Assignment.status == AssignmentStatus.active
            )
        }
        seen = set()
        for i, entry in enumerate(data.employee_hours):
            if not is_number(entry.hours) or entry.hours <= 0:
                errors[f"employeeHours[{i}].hours"] = "must be greater than 0"
            if entry.employee_id not in active_ids:
                errors[f"employeeHours[{i}].employee_id"] = "employee is not assigned to this offer"
            elif entry.employee_id in seen:
                errors[f"employeeHours[{i}].employee_id"] = "duplicate employee"
            seen.add(entry.employee_id)

    for i, tx in enumerate(data.transactions):
        if not (tx.name or "").strip():
            errors[f"transactions[{i}].name"] = "is required"
        if not is_number(tx.amount) or tx.amount <= 0:
            errors[f"transactions[{i}].amount"] = "must be greater than 0"
        _payment_method(tx.payment_method, f"transactions[{i}].payment_method", errors)

    if errors:
        raise ValidationError("Invalid report", errors)
    return method


def submit_report(
    db: Session,
    order_service_id: int,
    employee_id: int,
    data: ReportData,
    actor: Optional[User] = None,
) -> Report:
    """
    Create or update the report of a service line.

    Raises:
        NotAuthorizedError: the line is not in offer_accepted/in_progress, or
            employee_id is not the active leader on the accepted offer
        ValidationError: invalid figures
    """
    with atomic(db, "Report was submitted concurrently, reload and retry"):
        order_service = lock_row(db, OrderService, order_service_id, "Order service")
        if order_service.status not in REPORTABLE_SERVICE_STATUSES:
            raise NotAuthorizedError(
                f"Reports cannot be filed while the service is {order_service.status.value}",
                {"order_service_id": order_service.id, "status": order_service.status.value},
            )
        offer = get_accepted_offer(db, order_service.id)
        leader = get_leader(db, offer.id) if offer is not None else None
        if leader is None or leader.employee_id != employee_id:
            raise NotAuthorizedError(
                "Only the team leader can submit the report",
                {"order_service_id": order_service.id, "employee_id": employee_id},
            )
        method = validate_report(db, offer, data)

        now = datetime.utcnow()
        report = order_service.report
        action = "UPDATE" if report is not None else "CREATE"
        if report is None:
            report = Report(order_service=order_service, created_at=now)
            db.add(report)
        report.submitted_by = employee_id
        report.num_of_hours = data.num_of_hours
        report.paid_amount = data.paid_amount
        report.payment_method = method
        report.notes = data.notes
        report.updated_at = now
        report.employee_hours = [
            ReportEmployee(employee_id=entry.employee_id, hours=entry.hours) for entry in data.employee_hours
        ]
        report.transactions = [
            ReportTransaction(
                payment_method=PaymentMethod(tx.payment_method.strip().lower()),
                name=tx.name.strip(),
                amount=tx.amount,
                description=tx.description,
            )
            for tx in data.transactions
        ]
        db.flush()

        context = {
            "order_id": order_service.order_id,
            "order_service_id": order_service.id,
            "offer_id": offer.id,
            "report_id": report.id,
        }
        create_audit_log(
            db, "report", report.id, action, actor=actor,
            changes_json={"after": {
                "numofHours": report.num_of_hours,
                "paid_amount": report.paid_amount,
                "payment_method": method.value,
            }},
            context=context,
        )
        recipients = notifications.company_admin_ids(db, order_service.company_id) + notifications.site_admin_ids(db)
        notifications.emit_event(db, notifications.REPORT_SUBMITTED, recipients, context)
    logger.info("report_submitted", order_service_id=order_service_id, report_id=report.id, action=action)
    return report


def get_report(db: Session, order_service_id: int) -> Report:
    report = db.query(Report).filter(Report.order_service_id == order_service_id).first()
    if report is None:
        raise NotFoundError("Report not found", {"order_service_id": order_service_id})
    return report
