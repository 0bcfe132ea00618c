from pydantic import BaseModel, UUID4, Field
from typing import Optional, Literal
from datetime import datetime

OfferStatus = Literal[
    "pending", "countered", "accepted", "declined", "cancelled", "ready_for_pickup", "completed",
]

class OfferSchedule(BaseModel):
    time_option: Optional[Literal["within_hour", "later_today", "tomorrow"]] = None
    preferred_location: str = Field(default="", max_length=200)

class OfferCreate(BaseModel):
    item_id: UUID4
    offer_price: float
    message: str = Field(default="", max_length=1000)
    schedule: Optional[OfferSchedule] = None

class OfferRespond(BaseModel):
    action: Literal["accept", "decline", "counter"]
    counter_price: Optional[float] = None

class OfferResponse(BaseModel):
    id: UUID4
    item_id: UUID4
    buyer_username: str
    seller_username: str
    offer_price: float
    counter_price: Optional[float] = None
    agreed_price: float
    message: str = ""
    status: OfferStatus
    time_option: Optional[str] = None
    preferred_location: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
