import datetime as dt
from typing import Optional

from pydantic import BaseModel


class OfferTerms(BaseModel):
    """Pricing terms of one offer version. Business rules are checked by the offer service."""
    hourly_rate: float
    currency: Optional[str] = None
    min_hours: float
    max_hours: float
    date: Optional[dt.date] = None
    time: Optional[dt.time] = None
    notes: Optional[str] = None


class RejectOfferRequest(BaseModel):
    reason: Optional[str] = None


class AssignmentCreate(BaseModel):
    employee_id: int
