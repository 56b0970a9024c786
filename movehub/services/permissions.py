"""
Role and company-scope checks for workflow operations.
"""
from typing import Optional
from sqlalchemy.orm import Session

from ..models.enums import AssignmentStatus, UserRole
from ..models.models import Assignment, Offer, Order, OrderService, User
from .errors import NotAuthorizedError

PLATFORM_ROLES = {UserRole.site_admin, UserRole.super_admin}
COMPANY_STAFF_ROLES = {UserRole.company_admin, UserRole.company_secretary}
EMPLOYEE_ROLES = {UserRole.worker, UserRole.driver}


def is_platform_admin(user: User) -> bool:
    """Site and super admins act on every order."""
    return user.role in PLATFORM_ROLES


def is_company_staff(user: User, company_id: Optional[int]) -> bool:
    return (
        user.role in COMPANY_STAFF_ROLES
        and company_id is not None
        and user.company_id == company_id
    )


def ensure_platform_admin(user: User) -> None:
    if not is_platform_admin(user):
        raise NotAuthorizedError("Only site administrators can perform this action")


def ensure_company_scope(user: User, company_id: Optional[int]) -> None:
    """
    Pricing and staffing actions belong to the company the service line is
    assigned to (or to a platform admin).
    """
    if is_platform_admin(user):
        return
    if not is_company_staff(user, company_id):
        raise NotAuthorizedError(
            "Caller does not administer the assigned company",
            {"company_id": company_id, "caller_company_id": user.company_id},
        )


def ensure_can_send_offer(user: User, order_service: OrderService) -> None:
    """
    Offers on an unassigned line may come from any company's staff; the
    sending company then takes the line. Assigned lines stay with their company.
    """
    if order_service.company_id is None and user.role in COMPANY_STAFF_ROLES and user.company_id is not None:
        return
    ensure_company_scope(user, order_service.company_id)


def ensure_offer_responder(user: User, order: Order) -> None:
    """Offers are answered by the ordering client or a platform admin."""
    if is_platform_admin(user):
        return
    if user.role == UserRole.client and order.client_id == user.id:
        return
    raise NotAuthorizedError("Only the ordering customer can answer this offer", {"order_id": order.id})


def ensure_self(user: User, employee_id: int) -> None:
    if user.id != employee_id:
        raise NotAuthorizedError("Employees can only act on their own records")


def can_view_order(user: User, order: Order, db: Session) -> bool:
    """
    - Platform admins see every order
    - Clients see their own orders
    - Company staff see orders with a service line assigned to their company
    - Employees see orders they are actively staffed on
    """
    if is_platform_admin(user):
        return True
    if user.role == UserRole.client:
        return order.client_id == user.id
    if user.role in COMPANY_STAFF_ROLES:
        return any(os.company_id == user.company_id for os in order.services if os.company_id is not None)
    if user.role in EMPLOYEE_ROLES:
        staffed = (
            db.query(Assignment.id)
            .join(Offer, Offer.id == Assignment.offer_id)
            .join(OrderService, OrderService.id == Offer.order_service_id)
            .filter(
                OrderService.order_id == order.id,
                Assignment.employee_id == user.id,
                Assignment.status == AssignmentStatus.active,
            )
            .first()
        )
        return staffed is not None
    return False


def ensure_can_view_order(user: User, order: Order, db: Session) -> None:
    if not can_view_order(user, order, db):
        raise NotAuthorizedError("Access denied", {"order_id": order.id})
