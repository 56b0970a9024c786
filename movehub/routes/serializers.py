"""
Plain-dict views of workflow entities for JSON responses.
"""
from typing import Optional

from ..models.models import (
    Assignment,
    AuditLog,
    Employment,
    EmploymentRateChange,
    Location,
    Notification,
    Offer,
    Order,
    OrderService,
    Report,
)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def location_dict(location: Optional[Location]) -> Optional[dict]:
    if location is None:
        return None
    return {
        "id": location.id,
        "address": location.address,
        "location_type": location.location_type,
        "floor": location.floor,
        "has_elevator": location.has_elevator,
        "notes": location.notes,
    }


def offer_dict(offer: Offer) -> dict:
    return {
        "id": offer.id,
        "order_service_id": offer.order_service_id,
        "company_id": offer.company_id,
        "version": offer.version,
        "hourly_rate": offer.hourly_rate,
        "currency": offer.currency.value,
        "min_hours": offer.min_hours,
        "max_hours": offer.max_hours,
        "date": _iso(offer.date),
        "time": _iso(offer.time),
        "notes": offer.notes,
        "status": offer.status.value,
        "rejection_reason": offer.rejection_reason,
        "created_at": _iso(offer.created_at),
        "updated_at": _iso(offer.updated_at),
        "decided_at": _iso(offer.decided_at),
    }


def order_service_dict(order_service: OrderService, include_offers: bool = True) -> dict:
    data = {
        "id": order_service.id,
        "order_id": order_service.order_id,
        "service_id": order_service.service_id,
        "service_name": order_service.service.name if order_service.service else None,
        "company_id": order_service.company_id,
        "company_name": order_service.company.name if order_service.company else None,
        "status": order_service.status.value,
        "started_at": _iso(order_service.started_at),
        "completed_at": _iso(order_service.completed_at),
        "cancelled_at": _iso(order_service.cancelled_at),
        "additions": [
            {
                "addition_id": a.addition_id,
                "name": a.addition.name if a.addition else None,
                "note": a.note,
                "quantity": a.quantity,
            }
            for a in order_service.additions
        ],
        "has_report": order_service.report is not None,
    }
    if include_offers:
        data["offers"] = [offer_dict(o) for o in order_service.offers]
    return data


def order_dict(order: Order) -> dict:
    return {
        "id": order.id,
        "client_id": order.client_id,
        "client_name": order.client.name if order.client else None,
        "status": order.status.value,
        "created_by": order.created_by.value,
        "preferred_date": _iso(order.preferred_date),
        "preferred_time": _iso(order.preferred_time),
        "number_of_rooms": order.number_of_rooms,
        "notes": order.notes,
        "cancel_reason": order.cancel_reason,
        "location": location_dict(order.location),
        "destination_location": location_dict(order.destination_location),
        "services": [order_service_dict(os) for os in order.services],
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }


def assignment_dict(assignment: Assignment) -> dict:
    return {
        "id": assignment.id,
        "offer_id": assignment.offer_id,
        "employee_id": assignment.employee_id,
        "employee_name": assignment.employee.name if assignment.employee else None,
        "is_leader": assignment.is_leader,
        "status": assignment.status.value,
        "created_at": _iso(assignment.created_at),
        "cancelled_at": _iso(assignment.cancelled_at),
    }


def report_dict(report: Report) -> dict:
    return {
        "id": report.id,
        "order_service_id": report.order_service_id,
        "submitted_by": report.submitted_by,
        "numofHours": report.num_of_hours,
        "paid_amount": report.paid_amount,
        "payment_method": report.payment_method.value,
        "notes": report.notes,
        "employeeHours": [{"employee_id": e.employee_id, "hours": e.hours} for e in report.employee_hours],
        "transactions": [
            {
                "payment_method": t.payment_method.value,
                "name": t.name,
                "amount": t.amount,
                "description": t.description,
            }
            for t in report.transactions
        ],
        "created_at": _iso(report.created_at),
        "updated_at": _iso(report.updated_at),
    }


def employment_dict(employment: Employment) -> dict:
    return {
        "id": employment.id,
        "employee_id": employment.employee_id,
        "employee_name": employment.employee.name if employment.employee else None,
        "company_id": employment.company_id,
        "company_name": employment.company.name if employment.company else None,
        "role": employment.role.value,
        "hourly_rate": employment.hourly_rate,
        "currency": employment.currency.value,
        "status": employment.status.value,
        "start_date": _iso(employment.start_date),
        "end_date": _iso(employment.end_date),
    }


def rate_change_dict(change: EmploymentRateChange) -> dict:
    return {
        "id": change.id,
        "old_rate": change.old_rate,
        "new_rate": change.new_rate,
        "currency": change.currency.value,
        "changed_by": change.changed_by,
        "changed_at": _iso(change.changed_at),
    }


def notification_dict(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "event": notification.event,
        "payload": notification.payload_json or {},
        "is_read": notification.is_read,
        "status": notification.status,
        "created_at": _iso(notification.created_at),
    }


def audit_dict(entry: AuditLog) -> dict:
    return {
        "id": entry.id,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "action": entry.action,
        "actor_id": entry.actor_id,
        "actor_role": entry.actor_role,
        "source": entry.source,
        "changes": entry.changes_json,
        "context": entry.context,
        "timestamp_utc": _iso(entry.timestamp_utc),
    }
