"""
Adapter between upstream payloads and the canonical workflow shapes.

The upstream order contract is exactly one envelope:

    {"success": true, "message": "...", "data": {"order": {...}}}

Anything else is rejected with ValidationError; there is no fallback to
other shapes.
"""
import datetime as dt
from typing import Any, List, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ..models.enums import OfferStatus, OrderServiceStatus, OrderStatus
from ..schemas.reports import EmployeeHoursEntry, ReportData, TransactionEntry
from .errors import ValidationError
from .order_status import derive_order_status


class LocationSnapshot(BaseModel):
    address: str
    location_type: Optional[str] = None
    floor: Optional[int] = None
    has_elevator: bool = False
    notes: Optional[str] = None


class OfferSnapshot(BaseModel):
    id: int
    order_service_id: int
    company_id: Optional[int] = None
    version: int
    hourly_rate: float
    currency: str
    min_hours: float
    max_hours: float
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None
    notes: Optional[str] = None
    status: OfferStatus
    rejection_reason: Optional[str] = None


class OrderServiceSnapshot(BaseModel):
    id: int
    service_id: int
    service_name: Optional[str] = None
    company_id: Optional[int] = None
    status: OrderServiceStatus
    offers: List[OfferSnapshot] = []

    @property
    def current_offer(self) -> Optional[OfferSnapshot]:
        """Latest version, whatever its status."""
        return max(self.offers, key=lambda o: o.version) if self.offers else None

    @property
    def pending_offer(self) -> Optional[OfferSnapshot]:
        return next((o for o in self.offers if o.status == OfferStatus.pending), None)


class OrderSnapshot(BaseModel):
    id: int
    client_id: int
    status: OrderStatus
    preferred_date: Optional[dt.date] = None
    preferred_time: Optional[dt.time] = None
    number_of_rooms: float = 0
    notes: Optional[str] = None
    location: Optional[LocationSnapshot] = None
    destination_location: Optional[LocationSnapshot] = None
    services: List[OrderServiceSnapshot]

    def derived_status(self) -> OrderStatus:
        return derive_order_status(s.status for s in self.services)

    def is_consistent(self) -> bool:
        """Reported order status matches the one derived from its service lines."""
        return self.status == self.derived_status()


class OrderEnvelopeData(BaseModel):
    order: OrderSnapshot


class OrderEnvelope(BaseModel):
    success: bool
    message: Optional[str] = None
    data: Optional[OrderEnvelopeData] = None


def _contract_errors(exc: PydanticValidationError) -> List[dict]:
    return [{"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]} for err in exc.errors()]


def normalize_order(payload: Any) -> OrderSnapshot:
    """Map an upstream order envelope to the canonical snapshot."""
    try:
        envelope = OrderEnvelope.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError("Order payload does not match the upstream contract", {"errors": _contract_errors(exc)})
    if not envelope.success:
        raise ValidationError(envelope.message or "Upstream reported a failure", {"success": False})
    if envelope.data is None:
        raise ValidationError("Order payload has no data.order", {"errors": [{"loc": "data", "msg": "Field required"}]})
    return envelope.data.order


class ReportFormWorker(BaseModel):
    employee_id: int = Field(alias="employeeId")
    hours: float
    base_pay: float = Field(default=0, alias="basePay")

    class Config:
        populate_by_name = True


class ReportFormExpense(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    amount: float


class ReportForm(BaseModel):
    """Report as captured by the leader's form."""
    worker_hours: List[ReportFormWorker] = Field(default_factory=list, alias="workerHours")
    client_paid: float = Field(default=0, alias="clientPaid")
    payment_method: str = Field(default="cash", alias="paymentMethod")
    additional_expenses: List[ReportFormExpense] = Field(default_factory=list, alias="additionalExpenses")
    notes: Optional[str] = None

    class Config:
        populate_by_name = True


def normalize_report_form(payload: Any) -> ReportData:
    """
    Map the form shape onto ReportData. Total hours is the sum of the
    workers' hours; expenses are recorded as cash transactions.
    """
    try:
        form = ReportForm.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError("Report form does not match the expected shape", {"errors": _contract_errors(exc)})
    return ReportData(
        num_of_hours=sum(w.hours for w in form.worker_hours),
        paid_amount=form.client_paid,
        payment_method=form.payment_method,
        notes=form.notes or None,
        employee_hours=[EmployeeHoursEntry(employee_id=w.employee_id, hours=w.hours) for w in form.worker_hours],
        transactions=[
            TransactionEntry(
                payment_method="cash",
                name=e.name or e.description or "Expense",
                amount=e.amount,
                description=e.description,
            )
            for e in form.additional_expenses
        ],
    )
