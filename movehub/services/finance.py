"""
Money figures derived from a submitted report and its accepted offer.
"""
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..models.enums import EmploymentStatus
from ..models.models import Employment, Offer, Report
from .offers import get_accepted_offer


def billed_hours(hours: float, offer: Optional[Offer]) -> float:
    """
    Worked hours clamped to the offer's agreed range.

    >>> billed_hours(5, Offer(min_hours=8, max_hours=20))
    8
    """
    if offer is None:
        return hours
    return min(max(hours, offer.min_hours), offer.max_hours)


def _employment_rate(db: Session, employee_id: int, company_id: Optional[int]) -> float:
    if company_id is None:
        return 0.0
    employment = (
        db.query(Employment)
        .filter(
            Employment.employee_id == employee_id,
            Employment.company_id == company_id,
            Employment.status.in_([EmploymentStatus.active, EmploymentStatus.terminated]),
        )
        .order_by(Employment.created_at.desc(), Employment.id.desc())
        .first()
    )
    return employment.hourly_rate if employment else 0.0


def summarize_report(db: Session, report: Report, markup: Optional[float] = None) -> Dict:
    """
    Totals for the finance view of one report. Worker pay is each employee's
    hours times their employment rate times the configured employer markup.
    """
    markup = settings.worker_pay_markup if markup is None else markup
    offer = get_accepted_offer(db, report.order_service_id)
    company_id = offer.company_id if offer else None

    workers: List[Dict] = []
    total_worker_pay = 0.0
    for entry in report.employee_hours:
        base_rate = _employment_rate(db, entry.employee_id, company_id)
        pay = round(entry.hours * base_rate * markup, 2)
        total_worker_pay += pay
        workers.append({
            "employee_id": entry.employee_id,
            "hours": entry.hours,
            "base_rate": base_rate,
            "pay": pay,
        })

    hours = billed_hours(report.num_of_hours, offer)
    expected = round(hours * offer.hourly_rate, 2) if offer else 0.0
    expenses = round(sum(tx.amount for tx in report.transactions), 2)
    return {
        "currency": offer.currency.value if offer else settings.default_currency,
        "billed_hours": hours,
        "expected_amount": expected,
        "paid_amount": report.paid_amount,
        "outstanding_amount": round(expected - report.paid_amount, 2),
        "worker_pay_markup": markup,
        "workers": workers,
        "total_worker_pay": round(total_worker_pay, 2),
        "total_expenses": expenses,
    }
