from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..schemas.reports import ReportData
from ..services import finance
from ..services import reports as report_service
from ..services.orders import get_order_service
from ..services.permissions import ensure_can_view_order, is_company_staff, is_platform_admin
from .serializers import report_dict

router = APIRouter(prefix="/orders/{order_id}/orderServices/{order_service_id}/report", tags=["reports"])


def _submit(db: Session, order_id: int, order_service_id: int, body: ReportData, user: User) -> dict:
    get_order_service(db, order_id, order_service_id)
    # The caller files the report as themselves; leadership is checked by the service
    report = report_service.submit_report(db, order_service_id, user.id, body, actor=user)
    return report_dict(report)


@router.post("")
def submit_report(
    order_id: int,
    order_service_id: int,
    body: ReportData,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return _submit(db, order_id, order_service_id, body, user)


@router.patch("")
def update_report(
    order_id: int,
    order_service_id: int,
    body: ReportData,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return _submit(db, order_id, order_service_id, body, user)


@router.get("")
def get_report(
    order_id: int,
    order_service_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Report of a service line; company staff and admins also get the money summary."""
    line = get_order_service(db, order_id, order_service_id)
    company_view = is_platform_admin(user) or is_company_staff(user, line.company_id)
    if not company_view:
        ensure_can_view_order(user, line.order, db)
    report = report_service.get_report(db, order_service_id)
    data = report_dict(report)
    if company_view:
        data["summary"] = finance.summarize_report(db, report)
    return data
