from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional


class CustomerSearchRequest(BaseModel):
    given_name: str = Field(..., min_length=1, max_length=100)
    family_name: str = Field(..., min_length=1, max_length=100)
    email_address: str = Field(..., min_length=3, max_length=255)

    @field_validator('email_address')
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v:
            raise ValueError('email_address must be an email address')
        return v


class CustomerIdResponse(BaseModel):
    customer_id: str


class ServiceSelection(BaseModel):
    """A catalog service variation picked by the customer, with its price in minor units"""
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=255)
    amount: int = Field(..., ge=0)
    currency: str = Field(..., min_length=3, max_length=3)


class BookingDetails(CustomerSearchRequest):
    appointment_segments: List[Dict[str, Any]] = Field(..., min_length=1)
    start_at: str = Field(..., min_length=1)
    customer_note: Optional[str] = Field(None, max_length=4096)
    seller_note: Optional[str] = Field(None, max_length=4096)
    services: List[ServiceSelection] = Field(..., min_length=1)

    @field_validator('services')
    @classmethod
    def single_currency(cls, v: List[ServiceSelection]) -> List[ServiceSelection]:
        if len({s.currency for s in v}) > 1:
            raise ValueError('all services must share one currency')
        return v


class BookingCreateRequest(BaseModel):
    booking: BookingDetails


class BookingUpdateRequest(BaseModel):
    booking: Dict[str, Any]
    service_names: List[str] = Field(..., min_length=1)


class BookingCancelResponse(BaseModel):
    booking_id: str
    cancelled: bool
