"""
Order and service-line operations outside the offer and staffing flows:
creation, company assignment, start/complete/cancel. Every child change
recomputes the cached order status in the same transaction.
"""
from datetime import datetime
from typing import List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from ..models.enums import (
    OFFERABLE_SERVICE_STATUSES,
    REPORTABLE_SERVICE_STATUSES,
    TERMINAL_SERVICE_STATUSES,
    OfferStatus,
    OrderCreator,
    OrderServiceStatus,
    OrderStatus,
    UserRole,
)
from ..models.models import (
    Addition,
    Company,
    Location,
    Order,
    OrderService,
    OrderServiceAddition,
    Report,
    Service,
    User,
)
from ..schemas.orders import LocationInput, OrderCreate, OrderUpdate
from . import notifications
from .audit import compute_diff, create_audit_log
from .errors import NotAuthorizedError, NotFoundError, StateError, ValidationError, is_number
from .order_status import refresh_order_status
from .permissions import is_platform_admin
from .transactions import atomic, get_or_404, lock_row

logger = structlog.get_logger(__name__)

# Order details stay editable until a price has been proposed on any line
EDITABLE_SERVICE_STATUSES = frozenset({OrderServiceStatus.pending, OrderServiceStatus.assigned})


def _build_location(data: LocationInput) -> Location:
    if not data.address:
        raise ValidationError("Address is required", {"field": "address"})
    return Location(
        address=data.address,
        location_type=data.location_type,
        floor=data.floor,
        has_elevator=data.has_elevator,
        notes=data.notes,
    )


def _resolve_client(db: Session, data: OrderCreate, actor: User) -> Tuple[int, OrderCreator]:
    if is_platform_admin(actor):
        if data.client_id is None:
            raise ValidationError("client_id is required for orders placed by an administrator")
        client = get_or_404(db, User, data.client_id, "Client")
        if client.role != UserRole.client:
            raise ValidationError("Orders can only be placed for customers", {"client_id": client.id})
        return client.id, OrderCreator.site_admin
    if actor.role == UserRole.client:
        if data.client_id is not None and data.client_id != actor.id:
            raise NotAuthorizedError("Customers can only place orders for themselves")
        return actor.id, OrderCreator.customer
    raise NotAuthorizedError("Only customers and site administrators can place orders")


def _order_context(order: Order) -> dict:
    return {"order_id": order.id, "client_id": order.client_id}


def _service_context(order_service: OrderService) -> dict:
    return {
        "order_id": order_service.order_id,
        "order_service_id": order_service.id,
        "company_id": order_service.company_id,
    }


def create_order(db: Session, data: OrderCreate, actor: User) -> Order:
    """
    Place an order with one or more service lines, kept in submission order.
    A line created with a company starts as assigned.
    """
    if not data.services:
        raise ValidationError("An order needs at least one service", {"field": "services"})
    if data.number_of_rooms is not None and (not is_number(data.number_of_rooms) or data.number_of_rooms < 0):
        raise ValidationError("number_of_rooms cannot be negative", {"field": "number_of_rooms"})

    with atomic(db):
        client_id, created_by = _resolve_client(db, data, actor)
        now = datetime.utcnow()

        location = _build_location(data.location)
        db.add(location)
        destination = None
        if data.destination_location is not None:
            destination = _build_location(data.destination_location)
            db.add(destination)
        db.flush()

        order = Order(
            client_id=client_id,
            location_id=location.id,
            destination_location_id=destination.id if destination else None,
            preferred_date=data.preferred_date,
            preferred_time=data.preferred_time,
            number_of_rooms=data.number_of_rooms or 0,
            notes=data.notes,
            created_by=created_by,
            created_by_user_id=actor.id,
            status=OrderStatus.pending,
            created_at=now,
            updated_at=now,
        )
        db.add(order)

        for line in data.services:
            service = get_or_404(db, Service, line.service_id, "Service")
            if not service.is_active:
                raise ValidationError("Service is not available", {"service_id": service.id})
            if line.company_id is not None:
                if created_by != OrderCreator.site_admin:
                    raise NotAuthorizedError("Only site administrators can assign a company")
                get_or_404(db, Company, line.company_id, "Company")
            order_service = OrderService(
                service_id=service.id,
                company_id=line.company_id,
                status=OrderServiceStatus.assigned if line.company_id else OrderServiceStatus.pending,
                created_at=now,
                updated_at=now,
            )
            for extra in line.additions:
                get_or_404(db, Addition, extra.addition_id, "Addition")
                order_service.additions.append(OrderServiceAddition(
                    addition_id=extra.addition_id,
                    note=extra.note,
                    quantity=extra.quantity,
                    price=extra.price,
                ))
            order.services.append(order_service)

        refresh_order_status(order)
        db.flush()

        create_audit_log(
            db, "order", order.id, "CREATE", actor=actor,
            changes_json={"after": {"services": [os.service_id for os in order.services]}},
            context=_order_context(order),
        )
        recipients = [order.client_id] + notifications.site_admin_ids(db)
        for os in order.services:
            recipients += notifications.company_admin_ids(db, os.company_id)
        notifications.emit_event(db, notifications.ORDER_CREATED, recipients, _order_context(order))
    logger.info("order_created", order_id=order.id, client_id=order.client_id, services=len(order.services))
    return order


def get_order(db: Session, order_id: int) -> Order:
    return get_or_404(db, Order, order_id, "Order")


def get_order_service(db: Session, order_id: int, order_service_id: int) -> OrderService:
    """Service line looked up through its order; a mismatched pair is not found."""
    order_service = get_or_404(db, OrderService, order_service_id, "Order service")
    if order_service.order_id != order_id:
        raise NotFoundError("Order service not found", {"order_id": order_id, "id": order_service_id})
    return order_service


def list_orders(
    db: Session,
    client_id: Optional[int] = None,
    company_id: Optional[int] = None,
    status: Optional[str] = None,
    service_id: Optional[int] = None,
    page: int = 1,
    limit: int = 20,
) -> Tuple[List[Order], int]:
    """Filtered page of orders, newest first, with the total match count."""
    query = db.query(Order)
    if client_id is not None:
        query = query.filter(Order.client_id == client_id)
    if status:
        try:
            query = query.filter(Order.status == OrderStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown order status {status}", {"field": "status"})
    if company_id is not None or service_id is not None:
        sub = db.query(OrderService.order_id)
        if company_id is not None:
            sub = sub.filter(OrderService.company_id == company_id)
        if service_id is not None:
            sub = sub.filter(OrderService.service_id == service_id)
        query = query.filter(Order.id.in_(sub))

    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total


def update_order(db: Session, order_id: int, data: OrderUpdate, actor: Optional[User] = None) -> Order:
    with atomic(db):
        order = lock_row(db, Order, order_id, "Order")
        locked = [os.id for os in order.services if os.status not in EDITABLE_SERVICE_STATUSES]
        if locked:
            raise StateError("Order can no longer be edited", {"order_id": order.id, "order_service_ids": locked})
        if data.number_of_rooms is not None and (not is_number(data.number_of_rooms) or data.number_of_rooms < 0):
            raise ValidationError("number_of_rooms cannot be negative", {"field": "number_of_rooms"})

        before = {
            "preferred_date": order.preferred_date.isoformat() if order.preferred_date else None,
            "preferred_time": order.preferred_time.isoformat() if order.preferred_time else None,
            "number_of_rooms": order.number_of_rooms,
            "notes": order.notes,
        }
        updates = data.model_dump(exclude_unset=True)
        for field, value in updates.items():
            setattr(order, field, value)
        order.updated_at = datetime.utcnow()
        after = {
            "preferred_date": order.preferred_date.isoformat() if order.preferred_date else None,
            "preferred_time": order.preferred_time.isoformat() if order.preferred_time else None,
            "number_of_rooms": order.number_of_rooms,
            "notes": order.notes,
        }
        create_audit_log(
            db, "order", order.id, "UPDATE", actor=actor,
            changes_json=compute_diff(before, after), context=_order_context(order),
        )
    logger.info("order_updated", order_id=order.id, fields=sorted(updates))
    return order


def assign_company(db: Session, order_service_id: int, company_id: int, actor: Optional[User] = None) -> OrderService:
    """Hand a service line to a company; the company then prices it."""
    with atomic(db):
        order_service = lock_row(db, OrderService, order_service_id, "Order service")
        if order_service.status not in OFFERABLE_SERVICE_STATUSES:
            raise StateError(
                f"Cannot assign a company while the service is {order_service.status.value}",
                {"order_service_id": order_service.id, "status": order_service.status.value},
            )
        company = get_or_404(db, Company, company_id, "Company")
        if not company.is_active:
            raise ValidationError("Company is not active", {"company_id": company.id})

        previous_company_id = order_service.company_id
        order_service.company_id = company.id
        order_service.status = OrderServiceStatus.assigned
        order_service.updated_at = datetime.utcnow()
        refresh_order_status(order_service.order)

        context = _service_context(order_service)
        create_audit_log(
            db, "order_service", order_service.id, "ASSIGN_COMPANY", actor=actor,
            changes_json={"company_id": {"before": previous_company_id, "after": company.id}},
            context=context,
        )
        notifications.emit_event(
            db, notifications.COMPANY_ASSIGNED, notifications.company_admin_ids(db, company.id), context
        )
    logger.info("company_assigned", order_service_id=order_service_id, company_id=company_id)
    return order_service


def decline_order_service(db: Session, order_service_id: int, actor: Optional[User] = None) -> OrderService:
    """The assigned company gives the line back before pricing it."""
    with atomic(db):
        order_service = lock_row(db, OrderService, order_service_id, "Order service")
        if order_service.status != OrderServiceStatus.assigned:
            raise StateError(
                "Only an assigned service without an offer can be declined",
                {"order_service_id": order_service.id, "status": order_service.status.value},
            )
        context = _service_context(order_service)
        order_service.company_id = None
        order_service.status = OrderServiceStatus.pending
        order_service.updated_at = datetime.utcnow()
        refresh_order_status(order_service.order)

        create_audit_log(db, "order_service", order_service.id, "DECLINE", actor=actor, context=context)
        notifications.emit_event(db, notifications.ORDER_SERVICE_DECLINED, notifications.site_admin_ids(db), context)
    logger.info("order_service_declined", order_service_id=order_service_id, company_id=context["company_id"])
    return order_service


def start_service(db: Session, order_service_id: int, actor: Optional[User] = None) -> OrderService:
    with atomic(db):
        order_service = lock_row(db, OrderService, order_service_id, "Order service")
        if order_service.status != OrderServiceStatus.offer_accepted:
            raise StateError(
                "Only a service with an accepted offer can be started",
                {"order_service_id": order_service.id, "status": order_service.status.value},
            )
        now = datetime.utcnow()
        order_service.status = OrderServiceStatus.in_progress
        order_service.started_at = now
        order_service.updated_at = now
        refresh_order_status(order_service.order)

        context = _service_context(order_service)
        create_audit_log(
            db, "order_service", order_service.id, "START", actor=actor,
            changes_json={"status": {"before": "offer_accepted", "after": "in_progress"}}, context=context,
        )
        notifications.emit_event(db, notifications.SERVICE_STARTED, [order_service.order.client_id], context)
    logger.info("service_started", order_service_id=order_service_id)
    return order_service


def complete_service(db: Session, order_service_id: int, actor: Optional[User] = None) -> OrderService:
    """Explicit completion by the assigning party; the leader's report must exist."""
    with atomic(db):
        order_service = lock_row(db, OrderService, order_service_id, "Order service")
        if order_service.status not in REPORTABLE_SERVICE_STATUSES:
            raise StateError(
                f"Cannot complete a service that is {order_service.status.value}",
                {"order_service_id": order_service.id, "status": order_service.status.value},
            )
        has_report = db.query(Report.id).filter(Report.order_service_id == order_service.id).first()
        if has_report is None:
            raise StateError("A report must be submitted before completion", {"order_service_id": order_service.id})

        before = order_service.status.value
        now = datetime.utcnow()
        order_service.status = OrderServiceStatus.completed
        order_service.completed_at = now
        order_service.updated_at = now
        refresh_order_status(order_service.order)

        context = _service_context(order_service)
        create_audit_log(
            db, "order_service", order_service.id, "COMPLETE", actor=actor,
            changes_json={"status": {"before": before, "after": "completed"}}, context=context,
        )
        recipients = [order_service.order.client_id] + notifications.company_admin_ids(db, order_service.company_id)
        notifications.emit_event(db, notifications.SERVICE_COMPLETED, recipients, context)
    logger.info("service_completed", order_service_id=order_service_id, order_status=order_service.order.status.value)
    return order_service


def _cancel_line(order_service: OrderService, now: datetime) -> bool:
    if order_service.status in TERMINAL_SERVICE_STATUSES:
        return False
    for offer in order_service.offers:
        if offer.status == OfferStatus.pending:
            offer.status = OfferStatus.cancelled
            offer.decided_at = now
            offer.updated_at = now
    order_service.status = OrderServiceStatus.cancelled
    order_service.cancelled_at = now
    order_service.updated_at = now
    return True


def cancel_service(db: Session, order_service_id: int, actor: Optional[User] = None) -> OrderService:
    with atomic(db):
        order_service = lock_row(db, OrderService, order_service_id, "Order service")
        before = order_service.status.value
        if not _cancel_line(order_service, datetime.utcnow()):
            raise StateError(
                f"Cannot cancel a service that is {before}",
                {"order_service_id": order_service.id, "status": before},
            )
        refresh_order_status(order_service.order)

        context = _service_context(order_service)
        create_audit_log(
            db, "order_service", order_service.id, "CANCEL", actor=actor,
            changes_json={"status": {"before": before, "after": "cancelled"}}, context=context,
        )
        recipients = [order_service.order.client_id] + notifications.company_admin_ids(db, order_service.company_id)
        notifications.emit_event(db, notifications.ORDER_CANCELLED, recipients, context)
    logger.info("service_cancelled", order_service_id=order_service_id)
    return order_service


def cancel_order(db: Session, order_id: int, reason: Optional[str] = None, actor: Optional[User] = None) -> Order:
    """Cancel every service line that has not been completed."""
    with atomic(db):
        order = lock_row(db, Order, order_id, "Order")
        now = datetime.utcnow()
        cancelled = [os.id for os in order.services if _cancel_line(os, now)]
        if not cancelled:
            raise StateError(
                f"Cannot cancel an order that is {order.status.value}",
                {"order_id": order.id, "status": order.status.value},
            )
        order.cancel_reason = (reason or "").strip() or None
        order.updated_at = now
        refresh_order_status(order)

        context = {**_order_context(order), "order_service_ids": cancelled, "reason": order.cancel_reason}
        create_audit_log(db, "order", order.id, "CANCEL", actor=actor, context=context)
        recipients = [order.client_id]
        for os in order.services:
            recipients += notifications.company_admin_ids(db, os.company_id)
        notifications.emit_event(db, notifications.ORDER_CANCELLED, recipients, context)
    logger.info("order_cancelled", order_id=order_id, order_services=cancelled, order_status=order.status.value)
    return order
