from typing import List, Optional

from pydantic import BaseModel, Field


class EmployeeHoursEntry(BaseModel):
    employee_id: int
    hours: float


class TransactionEntry(BaseModel):
    payment_method: str = "cash"
    name: str
    amount: float
    description: Optional[str] = None


class ReportData(BaseModel):
    """Report payload as filed by the team leader."""
    num_of_hours: float = Field(alias="numofHours")
    paid_amount: float = 0
    payment_method: str = "cash"
    notes: Optional[str] = None
    employee_hours: List[EmployeeHoursEntry] = Field(default_factory=list, alias="employeeHours")
    transactions: List[TransactionEntry] = Field(default_factory=list)

    class Config:
        populate_by_name = True
