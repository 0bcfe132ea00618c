from pydantic import BaseModel, UUID4, Field
from typing import Optional
from datetime import datetime

class ConfirmRequest(BaseModel):
    rating: Optional[int] = Field(default=None, ge=1, le=5, description="Stars for the other party")

class ConfirmationResponse(BaseModel):
    id: UUID4
    item_id: UUID4
    offer_id: Optional[UUID4] = None
    transaction_id: Optional[UUID4] = None
    buyer_username: str
    seller_username: str
    buyer_confirmed: bool
    seller_confirmed: bool
    buyer_rating: Optional[int] = None
    seller_rating: Optional[int] = None
    completed: bool
    created_at: datetime

    class Config:
        from_attributes = True
