"""
Offer lifecycle for one service line.

no_offer -> offer_sent -> offer_accepted | offer_rejected -> offer_sent (new version) ...

Every pricing change produces a new Offer version; earlier versions keep
their terms. At most one version per service line is pending at any time,
enforced under a row lock on the service line and by a partial unique index.
"""
from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..config import settings
from ..models.enums import (
    Currency,
    OFFERABLE_SERVICE_STATUSES,
    OfferStatus,
    OrderServiceStatus,
)
from ..models.models import Offer, OrderService, User
from ..schemas.offers import OfferTerms
from . import notifications
from .audit import create_audit_log
from .errors import ConflictError, StateError, ValidationError, is_number
from .order_status import refresh_order_status
from .transactions import atomic, get_or_404, lock_row

logger = structlog.get_logger(__name__)

PENDING_CONFLICT = "An offer is already pending for this service"


def validate_terms(terms: OfferTerms) -> Currency:
    """Check pricing terms and return the resolved currency."""
    errors = {}
    if not is_number(terms.hourly_rate) or terms.hourly_rate <= 0:
        errors["hourly_rate"] = "must be greater than 0"
    if not is_number(terms.min_hours) or terms.min_hours < 1:
        errors["min_hours"] = "must be at least 1"
    if not is_number(terms.max_hours) or (is_number(terms.min_hours) and terms.max_hours < terms.min_hours):
        errors["max_hours"] = "must be greater than or equal to min_hours"
    currency_raw = (terms.currency or settings.default_currency).upper()
    try:
        currency = Currency(currency_raw)
    except ValueError:
        errors["currency"] = f"unsupported currency {currency_raw}"
        currency = None
    if errors:
        raise ValidationError("Invalid offer terms", errors)
    return currency


def get_pending_offer(db: Session, order_service_id: int) -> Optional[Offer]:
    return (
        db.query(Offer)
        .filter(Offer.order_service_id == order_service_id, Offer.status == OfferStatus.pending)
        .first()
    )


def get_accepted_offer(db: Session, order_service_id: int) -> Optional[Offer]:
    return (
        db.query(Offer)
        .filter(Offer.order_service_id == order_service_id, Offer.status == OfferStatus.accepted)
        .order_by(Offer.version.desc())
        .first()
    )


def _next_version(db: Session, order_service_id: int) -> int:
    current = db.query(func.max(Offer.version)).filter(Offer.order_service_id == order_service_id).scalar()
    return (current or 0) + 1


def _issue_version(
    db: Session,
    order_service: OrderService,
    terms: OfferTerms,
    currency: Currency,
    actor: Optional[User],
    company_id: Optional[int],
) -> Offer:
    if order_service.company_id is None and company_id is not None:
        order_service.company_id = company_id

    now = datetime.utcnow()
    offer = Offer(
        order_service_id=order_service.id,
        company_id=order_service.company_id,
        version=_next_version(db, order_service.id),
        hourly_rate=terms.hourly_rate,
        currency=currency,
        min_hours=terms.min_hours,
        max_hours=terms.max_hours,
        date=terms.date,
        time=terms.time,
        notes=terms.notes,
        status=OfferStatus.pending,
        created_by=actor.id if actor else None,
        created_at=now,
        updated_at=now,
    )
    db.add(offer)
    order_service.status = OrderServiceStatus.offer_sent
    order_service.updated_at = now
    refresh_order_status(order_service.order)
    db.flush()
    return offer


def _offer_context(offer: Offer) -> dict:
    return {
        "order_id": offer.order_service.order_id,
        "order_service_id": offer.order_service_id,
        "offer_id": offer.id,
        "version": offer.version,
    }


def _terms_snapshot(offer: Offer) -> dict:
    return {
        "hourly_rate": offer.hourly_rate,
        "currency": offer.currency.value,
        "min_hours": offer.min_hours,
        "max_hours": offer.max_hours,
        "date": offer.date.isoformat() if offer.date else None,
        "time": offer.time.isoformat() if offer.time else None,
    }


def send_offer(
    db: Session,
    order_service_id: int,
    terms: OfferTerms,
    actor: Optional[User] = None,
    company_id: Optional[int] = None,
) -> Offer:
    """
    Emit a new offer version for a service line.

    Raises:
        ValidationError: invalid terms
        ConflictError: a pending offer already exists
        StateError: the service line cannot receive an offer in its status
    """
    currency = validate_terms(terms)
    with atomic(db, PENDING_CONFLICT):
        order_service = lock_row(db, OrderService, order_service_id, "Order service")
        if get_pending_offer(db, order_service.id) is not None:
            raise ConflictError(PENDING_CONFLICT, {"order_service_id": order_service.id})
        if order_service.status not in OFFERABLE_SERVICE_STATUSES:
            raise StateError(
                f"Cannot send an offer while the service is {order_service.status.value}",
                {"order_service_id": order_service.id, "status": order_service.status.value},
            )
        offer = _issue_version(db, order_service, terms, currency, actor, company_id)
        create_audit_log(
            db, "offer", offer.id, "SEND", actor=actor,
            changes_json={"after": _terms_snapshot(offer)}, context=_offer_context(offer),
        )
        notifications.emit_event(
            db, notifications.OFFER_SENT, [order_service.order.client_id], _offer_context(offer)
        )
    logger.info("offer_sent", offer_id=offer.id, order_service_id=order_service_id, version=offer.version)
    return offer


def modify_offer(
    db: Session,
    order_service_id: int,
    terms: OfferTerms,
    actor: Optional[User] = None,
) -> Offer:
    """
    Re-price a service line before or after the counterpart answered.
    A still-pending version is closed as cancelled (terms untouched) and a
    new version is issued in the same transaction.
    """
    currency = validate_terms(terms)
    with atomic(db, PENDING_CONFLICT):
        order_service = lock_row(db, OrderService, order_service_id, "Order service")
        if order_service.status not in (OrderServiceStatus.offer_sent, OrderServiceStatus.offer_rejected):
            raise StateError(
                f"Cannot modify the offer while the service is {order_service.status.value}",
                {"order_service_id": order_service.id, "status": order_service.status.value},
            )
        previous = get_pending_offer(db, order_service.id)
        if previous is not None:
            previous.status = OfferStatus.cancelled
            previous.decided_at = datetime.utcnow()
            previous.updated_at = previous.decided_at
            # Release the single-pending slot before the new version is inserted
            db.flush()
        offer = _issue_version(db, order_service, terms, currency, actor, None)
        create_audit_log(
            db, "offer", offer.id, "MODIFY", actor=actor,
            changes_json={"after": _terms_snapshot(offer)},
            context={**_offer_context(offer), "superseded_offer_id": previous.id if previous else None},
        )
        notifications.emit_event(
            db, notifications.OFFER_MODIFIED, [order_service.order.client_id], _offer_context(offer)
        )
    logger.info("offer_modified", offer_id=offer.id, order_service_id=order_service_id, version=offer.version)
    return offer


def _lock_pending_offer(db: Session, offer_id: int, action: str) -> Offer:
    offer = lock_row(db, Offer, offer_id, "Offer")
    if offer.status != OfferStatus.pending:
        raise StateError(
            f"Cannot {action} an offer that is {offer.status.value}",
            {"offer_id": offer.id, "status": offer.status.value},
        )
    return offer


def accept_offer(db: Session, offer_id: int, actor: Optional[User] = None) -> Offer:
    with atomic(db):
        offer = _lock_pending_offer(db, offer_id, "accept")
        now = datetime.utcnow()
        offer.status = OfferStatus.accepted
        offer.decided_at = now
        offer.updated_at = now
        order_service = offer.order_service
        order_service.status = OrderServiceStatus.offer_accepted
        order_service.updated_at = now
        refresh_order_status(order_service.order)
        create_audit_log(
            db, "offer", offer.id, "ACCEPT", actor=actor,
            changes_json={"status": {"before": "pending", "after": "accepted"}}, context=_offer_context(offer),
        )
        notifications.emit_event(
            db, notifications.OFFER_ACCEPTED,
            notifications.company_admin_ids(db, offer.company_id), _offer_context(offer),
        )
    logger.info("offer_accepted", offer_id=offer.id, order_service_id=offer.order_service_id)
    return offer


def reject_offer(db: Session, offer_id: int, reason: Optional[str] = None, actor: Optional[User] = None) -> Offer:
    with atomic(db):
        offer = _lock_pending_offer(db, offer_id, "reject")
        now = datetime.utcnow()
        offer.status = OfferStatus.rejected
        offer.rejection_reason = (reason or "").strip() or None
        offer.decided_at = now
        offer.updated_at = now
        order_service = offer.order_service
        order_service.status = OrderServiceStatus.offer_rejected
        order_service.updated_at = now
        refresh_order_status(order_service.order)
        context = {**_offer_context(offer), "reason": offer.rejection_reason}
        create_audit_log(
            db, "offer", offer.id, "REJECT", actor=actor,
            changes_json={"status": {"before": "pending", "after": "rejected"}}, context=context,
        )
        notifications.emit_event(
            db, notifications.OFFER_REJECTED, notifications.company_admin_ids(db, offer.company_id), context
        )
    logger.info("offer_rejected", offer_id=offer.id, order_service_id=offer.order_service_id)
    return offer


def cancel_offer(db: Session, offer_id: int, actor: Optional[User] = None) -> Offer:
    """Company withdraws a pending offer; the service line returns to assigned (or pending)."""
    with atomic(db):
        offer = _lock_pending_offer(db, offer_id, "cancel")
        now = datetime.utcnow()
        offer.status = OfferStatus.cancelled
        offer.decided_at = now
        offer.updated_at = now
        order_service = offer.order_service
        order_service.status = (
            OrderServiceStatus.assigned if order_service.company_id is not None else OrderServiceStatus.pending
        )
        order_service.updated_at = now
        refresh_order_status(order_service.order)
        create_audit_log(
            db, "offer", offer.id, "CANCEL", actor=actor,
            changes_json={"status": {"before": "pending", "after": "cancelled"}}, context=_offer_context(offer),
        )
        notifications.emit_event(
            db, notifications.OFFER_CANCELLED, [order_service.order.client_id], _offer_context(offer)
        )
    logger.info("offer_cancelled", offer_id=offer.id, order_service_id=offer.order_service_id)
    return offer


def get_offer(db: Session, offer_id: int) -> Offer:
    return get_or_404(db, Offer, offer_id, "Offer")


def list_offers(db: Session, order_service_id: int) -> List[Offer]:
    """Full version history of a service line, oldest first."""
    get_or_404(db, OrderService, order_service_id, "Order service")
    return (
        db.query(Offer)
        .filter(Offer.order_service_id == order_service_id)
        .order_by(Offer.version.asc())
        .all()
    )
