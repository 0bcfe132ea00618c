from pydantic import BaseModel, UUID4, Field
from typing import Optional
from datetime import datetime

class DirectMessageCreate(BaseModel):
    to: str = Field(..., min_length=1)
    content: str = Field(..., max_length=5000)
    item_id: Optional[UUID4] = None

class DirectMessageResponse(BaseModel):
    id: UUID4
    sender_username: str
    recipient_username: str
    content: str
    item_id: Optional[UUID4] = None
    item_name: Optional[str] = None
    item_image_url: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class ThreadSummary(BaseModel):
    peer: str
    item_id: Optional[UUID4] = None
    item_name: Optional[str] = None
    last_message: DirectMessageResponse
    message_count: int
