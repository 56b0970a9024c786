"""
Staffing of accepted offers: assignments and the single team leader.

All writers on one offer take a row lock on the Offer first, so assignment
and leader changes on the same offer are serialized.
"""
from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from ..models.enums import AssignmentStatus, EmploymentStatus, OfferStatus
from ..models.models import Assignment, Employment, Offer, User
from . import notifications
from .audit import create_audit_log
from .errors import NotAssignableError, NotFoundError, StateError
from .transactions import atomic, get_or_404, lock_row

logger = structlog.get_logger(__name__)


def _active_assignment(db: Session, offer_id: int, employee_id: int) -> Optional[Assignment]:
    return (
        db.query(Assignment)
        .filter(
            Assignment.offer_id == offer_id,
            Assignment.employee_id == employee_id,
            Assignment.status == AssignmentStatus.active,
        )
        .first()
    )


def get_leader(db: Session, offer_id: int) -> Optional[Assignment]:
    return (
        db.query(Assignment)
        .filter(
            Assignment.offer_id == offer_id,
            Assignment.status == AssignmentStatus.active,
            Assignment.is_leader == True,  # noqa: E712
        )
        .first()
    )


def _lock_active_assignments(db: Session, offer_id: int) -> List[Assignment]:
    # Rows already in the session are overwritten with the committed leader flags
    return (
        db.query(Assignment)
        .filter(Assignment.offer_id == offer_id, Assignment.status == AssignmentStatus.active)
        .with_for_update()
        .populate_existing()
        .order_by(Assignment.id.asc())
        .all()
    )


def has_active_employment(db: Session, employee_id: int, company_id: int) -> bool:
    employment = (
        db.query(Employment.id)
        .filter(
            Employment.employee_id == employee_id,
            Employment.company_id == company_id,
            Employment.status == EmploymentStatus.active,
        )
        .first()
    )
    return employment is not None


def _context(offer: Offer, assignment: Assignment) -> dict:
    return {
        "order_id": offer.order_service.order_id,
        "order_service_id": offer.order_service_id,
        "offer_id": offer.id,
        "assignment_id": assignment.id,
        "employee_id": assignment.employee_id,
    }


def assign_employee(db: Session, offer_id: int, employee_id: int, actor: Optional[User] = None) -> Assignment:
    """
    Staff an employee on an accepted offer (never as leader).

    Raises:
        NotAssignableError: offer not accepted, employee already active on it,
            or employee not actively employed by the offer's company
        NotFoundError: unknown offer or employee
    """
    with atomic(db, "Employee is already assigned to this offer"):
        offer = lock_row(db, Offer, offer_id, "Offer")
        if offer.status != OfferStatus.accepted:
            raise NotAssignableError(
                "Employees can only be assigned to an accepted offer",
                {"offer_id": offer.id, "status": offer.status.value},
            )
        employee = get_or_404(db, User, employee_id, "Employee")
        if _active_assignment(db, offer.id, employee.id) is not None:
            raise NotAssignableError(
                "Employee is already assigned to this offer",
                {"offer_id": offer.id, "employee_id": employee.id},
            )
        if offer.company_id is not None and not has_active_employment(db, employee.id, offer.company_id):
            raise NotAssignableError(
                "Employee is not actively employed by the offer's company",
                {"employee_id": employee.id, "company_id": offer.company_id},
            )

        now = datetime.utcnow()
        assignment = Assignment(
            offer_id=offer.id,
            employee_id=employee.id,
            is_leader=False,
            status=AssignmentStatus.active,
            assigned_by=actor.id if actor else None,
            created_at=now,
            updated_at=now,
        )
        db.add(assignment)
        db.flush()

        context = _context(offer, assignment)
        create_audit_log(db, "assignment", assignment.id, "CREATE", actor=actor, context=context)
        notifications.emit_event(db, notifications.ASSIGNMENT_CREATED, [employee.id], context)
    logger.info("employee_assigned", offer_id=offer_id, employee_id=employee_id, assignment_id=assignment.id)
    return assignment


def cancel_assignment(
    db: Session,
    assignment_id: int,
    actor: Optional[User] = None,
    offer_id: Optional[int] = None,
) -> Assignment:
    """
    Soft-cancel an assignment. Cancelling the leader leaves the offer
    without a leader until make_leader is called again.
    """
    with atomic(db):
        assignment = get_or_404(db, Assignment, assignment_id, "Assignment")
        if offer_id is not None and assignment.offer_id != offer_id:
            raise NotFoundError("Assignment not found", {"id": assignment_id, "offer_id": offer_id})
        offer = lock_row(db, Offer, assignment.offer_id, "Offer")
        assignment = lock_row(db, Assignment, assignment_id, "Assignment")
        if assignment.status != AssignmentStatus.active:
            raise StateError("Assignment is already cancelled", {"assignment_id": assignment.id})

        was_leader = assignment.is_leader
        now = datetime.utcnow()
        assignment.status = AssignmentStatus.cancelled
        assignment.is_leader = False
        assignment.cancelled_at = now
        assignment.updated_at = now

        context = {**_context(offer, assignment), "was_leader": was_leader}
        create_audit_log(
            db, "assignment", assignment.id, "CANCEL", actor=actor,
            changes_json={"status": {"before": "active", "after": "cancelled"}}, context=context,
        )
        notifications.emit_event(db, notifications.ASSIGNMENT_CANCELLED, [assignment.employee_id], context)
        if was_leader:
            notifications.emit_event(
                db, notifications.LEADER_CHANGED,
                notifications.company_admin_ids(db, offer.company_id),
                {**context, "leader_id": None},
            )
    logger.info("assignment_cancelled", assignment_id=assignment_id, offer_id=offer.id, was_leader=was_leader)
    return assignment


def make_leader(db: Session, offer_id: int, employee_id: int, actor: Optional[User] = None) -> Assignment:
    """
    Promote an actively assigned employee to team leader, demoting the
    previous leader in the same transaction.
    """
    with atomic(db, "Leader changed concurrently, reload and retry"):
        offer = lock_row(db, Offer, offer_id, "Offer")
        active = _lock_active_assignments(db, offer.id)
        target = next((a for a in active if a.employee_id == employee_id), None)
        if target is None:
            raise NotFoundError(
                "Employee has no active assignment on this offer",
                {"offer_id": offer.id, "employee_id": employee_id},
            )
        if target.is_leader:
            return target

        now = datetime.utcnow()
        previous = next((a for a in active if a.is_leader), None)
        if previous is not None:
            previous.is_leader = False
            previous.updated_at = now
            # Demotion must reach the database before the single-leader index sees the promotion
            db.flush()
        target.is_leader = True
        target.updated_at = now
        db.flush()

        context = {
            **_context(offer, target),
            "leader_id": employee_id,
            "previous_leader_id": previous.employee_id if previous else None,
        }
        create_audit_log(db, "assignment", target.id, "MAKE_LEADER", actor=actor, context=context)
        recipients = [employee_id, previous.employee_id if previous else None]
        recipients += notifications.company_admin_ids(db, offer.company_id)
        notifications.emit_event(db, notifications.LEADER_CHANGED, recipients, context)
    logger.info(
        "leader_changed",
        offer_id=offer_id,
        leader_id=employee_id,
        previous_leader_id=context["previous_leader_id"],
    )
    return target


def list_assignments(db: Session, offer_id: int, include_cancelled: bool = False) -> List[Assignment]:
    """Active assignments of an offer; cancelled rows only on request."""
    get_or_404(db, Offer, offer_id, "Offer")
    query = db.query(Assignment).filter(Assignment.offer_id == offer_id)
    if not include_cancelled:
        query = query.filter(Assignment.status == AssignmentStatus.active)
    return query.order_by(Assignment.id.asc()).all()


def list_employee_assignments(db: Session, employee_id: int) -> List[Assignment]:
    return (
        db.query(Assignment)
        .filter(Assignment.employee_id == employee_id, Assignment.status == AssignmentStatus.active)
        .order_by(Assignment.created_at.desc(), Assignment.id.desc())
        .all()
    )
