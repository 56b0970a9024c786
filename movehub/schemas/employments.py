import datetime as dt
from typing import Optional

from pydantic import BaseModel


class EmploymentCreate(BaseModel):
    employee_id: int
    role: str = "worker"  # worker|driver|company_secretary
    hourly_rate: float = 0
    currency: Optional[str] = None
    start_date: Optional[dt.date] = None


class EmploymentUpdate(BaseModel):
    role: Optional[str] = None
    hourly_rate: Optional[float] = None
    currency: Optional[str] = None
