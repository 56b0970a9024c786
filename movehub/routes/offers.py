from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import Offer, User
from ..schemas.offers import AssignmentCreate, OfferTerms, RejectOfferRequest
from ..services import offers as offer_service
from ..services import staffing
from ..services.orders import get_order_service
from ..services.permissions import (
    ensure_can_send_offer,
    ensure_can_view_order,
    ensure_company_scope,
    ensure_offer_responder,
    is_company_staff,
)
from .serializers import assignment_dict, offer_dict

router = APIRouter(tags=["offers"])


def _sending_company(user: User) -> Optional[int]:
    return user.company_id if is_company_staff(user, user.company_id) else None


def _ensure_can_view_offer(user: User, offer: Offer, db: Session) -> None:
    if is_company_staff(user, offer.company_id):
        return
    ensure_can_view_order(user, offer.order_service.order, db)


@router.post("/orders/{order_id}/orderServices/{order_service_id}/offers")
def send_offer(
    order_id: int,
    order_service_id: int,
    terms: OfferTerms,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    line = get_order_service(db, order_id, order_service_id)
    ensure_can_send_offer(user, line)
    offer = offer_service.send_offer(db, order_service_id, terms, actor=user, company_id=_sending_company(user))
    return offer_dict(offer)


@router.put("/orders/{order_id}/orderServices/{order_service_id}/offers")
def modify_offer(
    order_id: int,
    order_service_id: int,
    terms: OfferTerms,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    line = get_order_service(db, order_id, order_service_id)
    ensure_company_scope(user, line.company_id)
    offer = offer_service.modify_offer(db, order_service_id, terms, actor=user)
    return offer_dict(offer)


@router.get("/orders/{order_id}/orderServices/{order_service_id}/offers")
def list_offers(
    order_id: int,
    order_service_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Version history, oldest first."""
    line = get_order_service(db, order_id, order_service_id)
    if not is_company_staff(user, line.company_id):
        ensure_can_view_order(user, line.order, db)
    return [offer_dict(o) for o in offer_service.list_offers(db, order_service_id)]


@router.patch("/offers/{offer_id}/accept")
def accept_offer(offer_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    offer = offer_service.get_offer(db, offer_id)
    ensure_offer_responder(user, offer.order_service.order)
    offer = offer_service.accept_offer(db, offer_id, actor=user)
    return {"offer": offer_dict(offer), "order_status": offer.order_service.order.status.value}


@router.patch("/offers/{offer_id}/reject")
def reject_offer(
    offer_id: int,
    body: Optional[RejectOfferRequest] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    offer = offer_service.get_offer(db, offer_id)
    ensure_offer_responder(user, offer.order_service.order)
    offer = offer_service.reject_offer(db, offer_id, reason=body.reason if body else None, actor=user)
    return {"offer": offer_dict(offer), "order_status": offer.order_service.order.status.value}


@router.patch("/offers/{offer_id}/cancel")
def cancel_offer(offer_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    offer = offer_service.get_offer(db, offer_id)
    ensure_company_scope(user, offer.company_id)
    offer = offer_service.cancel_offer(db, offer_id, actor=user)
    return offer_dict(offer)


@router.get("/offers/{offer_id}/assignments")
def list_assignments(
    offer_id: int,
    include_cancelled: bool = False,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    offer = offer_service.get_offer(db, offer_id)
    _ensure_can_view_offer(user, offer, db)
    rows = staffing.list_assignments(db, offer_id, include_cancelled=include_cancelled)
    return [assignment_dict(a) for a in rows]


@router.post("/offers/{offer_id}/assignments")
def assign_employee(
    offer_id: int,
    body: AssignmentCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    offer = offer_service.get_offer(db, offer_id)
    ensure_company_scope(user, offer.company_id)
    assignment = staffing.assign_employee(db, offer_id, body.employee_id, actor=user)
    return assignment_dict(assignment)


@router.patch("/offers/{offer_id}/assignments/{assignment_id}/cancel")
def cancel_assignment(
    offer_id: int,
    assignment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    offer = offer_service.get_offer(db, offer_id)
    ensure_company_scope(user, offer.company_id)
    assignment = staffing.cancel_assignment(db, assignment_id, actor=user, offer_id=offer_id)
    return assignment_dict(assignment)


@router.patch("/offers/{offer_id}/employees/{employee_id}/make-leader")
def make_leader(
    offer_id: int,
    employee_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    offer = offer_service.get_offer(db, offer_id)
    ensure_company_scope(user, offer.company_id)
    assignment = staffing.make_leader(db, offer_id, employee_id, actor=user)
    return assignment_dict(assignment)
