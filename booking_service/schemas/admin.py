from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class WebhookEventResponse(BaseModel):
    """Stored webhook event as shown to administrators"""
    id: str
    provider: str
    event_id: Optional[str]
    event_type: Optional[str]
    correlation_id: Optional[str]
    status: str
    attempts: int
    result_action: Optional[str]
    result_record_id: Optional[str]
    error_message: Optional[str]
    received_at: Optional[datetime]
    processed_at: Optional[datetime]

    class Config:
        from_attributes = True


class ReconciliationResponse(BaseModel):
    outcome: str
    record_id: Optional[str] = None
    field: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None
