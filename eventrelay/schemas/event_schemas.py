from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any
from datetime import datetime


class EventCreate(BaseModel):
    event_name: str = Field(..., alias="eventName", min_length=1, max_length=255)
    timestamp: Optional[datetime] = None
    properties: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "eventName": "order.paid",
                "timestamp": "2024-01-01T00:00:00Z",
                "properties": {"userId": "u1", "amount": 500},
            }
        }

    @validator("event_name")
    def validate_event_name(cls, v):
        if not v.strip():
            raise ValueError("eventName must not be blank")
        return v.strip()


class EventForward(BaseModel):
    """Optional restriction of a re-forward to specific destination names."""
    destinations: Optional[List[str]] = None
