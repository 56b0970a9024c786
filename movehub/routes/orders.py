from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.enums import UserRole
from ..models.models import Order, User
from ..schemas.orders import AssignCompanyRequest, CancelRequest, OrderCreate, OrderUpdate
from ..services import orders as order_service
from ..services.errors import NotAuthorizedError
from ..services.permissions import (
    COMPANY_STAFF_ROLES,
    ensure_can_view_order,
    ensure_company_scope,
    ensure_platform_admin,
    is_platform_admin,
)
from .serializers import order_dict, order_service_dict

router = APIRouter(prefix="/orders", tags=["orders"])


def _envelope(message: str, **data) -> dict:
    # Order payloads travel in the {success, message, data} envelope read by normalize_order
    return {"success": True, "message": message, "data": data}


def _ensure_order_owner(user: User, order: Order) -> None:
    if is_platform_admin(user):
        return
    if user.role == UserRole.client and order.client_id == user.id:
        return
    raise NotAuthorizedError("Only the ordering customer can change this order", {"order_id": order.id})


@router.post("")
def create_order(body: OrderCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    order = order_service.create_order(db, body, actor=user)
    return _envelope("Order created", order=order_dict(order))


@router.get("")
def list_orders(
    client_id: Optional[int] = None,
    company_id: Optional[int] = None,
    status: Optional[str] = None,
    service_id: Optional[int] = None,
    page: int = 1,
    limit: int = 20,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Orders visible to the caller. Customers only see their own orders and
    company staff only see orders with a line assigned to their company.
    """
    if user.role == UserRole.client:
        client_id = user.id
    elif user.role in COMPANY_STAFF_ROLES:
        company_id = user.company_id
    elif not is_platform_admin(user):
        raise NotAuthorizedError("Employees see their work through /employee/assignments")
    orders, total = order_service.list_orders(
        db,
        client_id=client_id,
        company_id=company_id,
        status=status,
        service_id=service_id,
        page=page,
        limit=limit,
    )
    return _envelope("OK", orders=[order_dict(o) for o in orders], total=total, page=page, limit=limit)


@router.get("/{order_id}")
def get_order(order_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    order = order_service.get_order(db, order_id)
    ensure_can_view_order(user, order, db)
    return _envelope("OK", order=order_dict(order))


@router.patch("/{order_id}")
def update_order(
    order_id: int,
    body: OrderUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    _ensure_order_owner(user, order_service.get_order(db, order_id))
    order = order_service.update_order(db, order_id, body, actor=user)
    return _envelope("Order updated", order=order_dict(order))


@router.patch("/{order_id}/cancel")
def cancel_order(
    order_id: int,
    body: Optional[CancelRequest] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    _ensure_order_owner(user, order_service.get_order(db, order_id))
    order = order_service.cancel_order(db, order_id, reason=body.reason if body else None, actor=user)
    return _envelope("Order cancelled", order=order_dict(order))


@router.post("/{order_id}/orderServices/{order_service_id}/assign")
def assign_company(
    order_id: int,
    order_service_id: int,
    body: AssignCompanyRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ensure_platform_admin(user)
    order_service.get_order_service(db, order_id, order_service_id)
    line = order_service.assign_company(db, order_service_id, body.company_id, actor=user)
    return order_service_dict(line)


@router.patch("/{order_id}/orderServices/{order_service_id}/decline")
def decline_order_service(
    order_id: int,
    order_service_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    line = order_service.get_order_service(db, order_id, order_service_id)
    ensure_company_scope(user, line.company_id)
    line = order_service.decline_order_service(db, order_service_id, actor=user)
    return order_service_dict(line)


@router.patch("/{order_id}/orderServices/{order_service_id}/start")
def start_service(
    order_id: int,
    order_service_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    line = order_service.get_order_service(db, order_id, order_service_id)
    ensure_company_scope(user, line.company_id)
    line = order_service.start_service(db, order_service_id, actor=user)
    return order_service_dict(line)


@router.patch("/{order_id}/orderServices/{order_service_id}/complete")
def complete_service(
    order_id: int,
    order_service_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    line = order_service.get_order_service(db, order_id, order_service_id)
    ensure_company_scope(user, line.company_id)
    line = order_service.complete_service(db, order_service_id, actor=user)
    return {"order_service": order_service_dict(line), "order_status": line.order.status.value}


@router.patch("/{order_id}/orderServices/{order_service_id}/cancel")
def cancel_service(
    order_id: int,
    order_service_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    _ensure_order_owner(user, order_service.get_order(db, order_id))
    order_service.get_order_service(db, order_id, order_service_id)
    line = order_service.cancel_service(db, order_service_id, actor=user)
    return {"order_service": order_service_dict(line), "order_status": line.order.status.value}
