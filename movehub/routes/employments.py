from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..schemas.employments import EmploymentCreate, EmploymentUpdate
from ..services import employments as employment_service
from ..services import staffing
from ..services.permissions import ensure_company_scope
from .serializers import assignment_dict, employment_dict, offer_dict, rate_change_dict

router = APIRouter(prefix="/companies/{company_id}/employments", tags=["employments"])
employee_router = APIRouter(prefix="/employee", tags=["employee"])


@router.get("")
def list_company_employments(
    company_id: int,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ensure_company_scope(user, company_id)
    rows = employment_service.list_company_employments(db, company_id, status=status)
    return [employment_dict(e) for e in rows]


@router.post("")
def invite_employee(
    company_id: int,
    body: EmploymentCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ensure_company_scope(user, company_id)
    employment = employment_service.invite_employee(db, company_id, body, actor=user)
    return employment_dict(employment)


@router.patch("/{employment_id}")
def update_employment(
    company_id: int,
    employment_id: int,
    body: EmploymentUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ensure_company_scope(user, company_id)
    employment_service.get_company_employment(db, company_id, employment_id)
    employment = employment_service.update_employment(db, employment_id, body, actor=user)
    return employment_dict(employment)


@router.patch("/{employment_id}/terminate")
def terminate_employment(
    company_id: int,
    employment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ensure_company_scope(user, company_id)
    employment_service.get_company_employment(db, company_id, employment_id)
    return employment_dict(employment_service.terminate_employment(db, employment_id, actor=user))


@router.patch("/{employment_id}/cancel")
def cancel_employment(
    company_id: int,
    employment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ensure_company_scope(user, company_id)
    employment_service.get_company_employment(db, company_id, employment_id)
    return employment_dict(employment_service.cancel_employment(db, employment_id, actor=user))


@router.get("/{employment_id}/rate-history")
def rate_history(
    company_id: int,
    employment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ensure_company_scope(user, company_id)
    employment_service.get_company_employment(db, company_id, employment_id)
    return [rate_change_dict(c) for c in employment_service.rate_history(db, employment_id)]


@employee_router.get("/employments")
def my_employments(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [employment_dict(e) for e in employment_service.list_employee_employments(db, user.id)]


@employee_router.patch("/employments/{employment_id}/accept")
def accept_employment(employment_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return employment_dict(employment_service.accept_employment(db, employment_id, user.id, actor=user))


@employee_router.patch("/employments/{employment_id}/reject")
def reject_employment(employment_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return employment_dict(employment_service.reject_employment(db, employment_id, user.id, actor=user))


@employee_router.get("/assignments")
def my_assignments(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Active jobs of the caller with the offer they are staffed on."""
    result = []
    for assignment in staffing.list_employee_assignments(db, user.id):
        offer = assignment.offer
        item = assignment_dict(assignment)
        item["offer"] = offer_dict(offer)
        item["order_id"] = offer.order_service.order_id
        item["order_service_id"] = offer.order_service_id
        item["order_service_status"] = offer.order_service.status.value
        result.append(item)
    return result
