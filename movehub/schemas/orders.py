import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class LocationInput(BaseModel):
    address: str
    location_type: Optional[str] = None  # apartment|house|office|warehouse|building
    floor: Optional[int] = None
    has_elevator: bool = False
    notes: Optional[str] = None

    @field_validator('address', mode='before')
    @classmethod
    def strip_address(cls, v):
        return str(v).strip() if v is not None else v


class AdditionInput(BaseModel):
    addition_id: int
    note: Optional[str] = None
    quantity: Optional[float] = None
    price: Optional[float] = None


class OrderServiceCreate(BaseModel):
    service_id: int
    company_id: Optional[int] = None  # Site-admin orders may be assigned directly
    additions: List[AdditionInput] = []


class OrderCreate(BaseModel):
    client_id: Optional[int] = None  # Defaults to the caller for customer orders
    location: LocationInput
    destination_location: Optional[LocationInput] = None
    preferred_date: Optional[dt.date] = None
    preferred_time: Optional[dt.time] = None
    number_of_rooms: float = 0
    notes: Optional[str] = None
    services: List[OrderServiceCreate]

    @field_validator('notes', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class OrderUpdate(BaseModel):
    preferred_date: Optional[dt.date] = None
    preferred_time: Optional[dt.time] = None
    number_of_rooms: Optional[float] = None
    notes: Optional[str] = None


class AssignCompanyRequest(BaseModel):
    company_id: int = Field(alias="companyId")

    class Config:
        populate_by_name = True


class CancelRequest(BaseModel):
    reason: Optional[str] = None
