from pydantic import BaseModel, UUID4, Field
from typing import List, Optional, Literal
from datetime import datetime

from .items import GeoPoint

TransactionStatus = Literal["pending", "confirmed", "in_progress", "completed", "cancelled"]
MessageType = Literal["text", "location", "system"]

class TransactionStart(BaseModel):
    item_id: UUID4
    mode: Literal["direct", "handoff"] = "direct"

class PickupWindow(BaseModel):
    start: datetime
    end: datetime

class LiveLocation(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

class CompleteRequest(BaseModel):
    verification_code: str = Field(..., min_length=6, max_length=6)

class ParticipantResponse(BaseModel):
    username: str
    is_online: bool
    last_seen: Optional[datetime] = None

    class Config:
        from_attributes = True

class TransactionResponse(BaseModel):
    id: UUID4
    item_id: UUID4
    seller_username: str
    buyer_username: str
    mode: str
    status: TransactionStatus
    chat_room_id: Optional[UUID4] = None
    verification_code: Optional[str] = None
    meeting_location: Optional[GeoPoint] = None
    pickup_window: Optional[PickupWindow] = None
    seller_location: Optional[LiveLocation] = None
    buyer_location: Optional[LiveLocation] = None
    seller_confirmed: bool
    buyer_confirmed: bool
    participants: List[ParticipantResponse] = []
    created_at: datetime
    completed_at: Optional[datetime] = None

class ChatLocation(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    label: str = Field(default="", max_length=200)

class ChatMessageCreate(BaseModel):
    content: str = Field(default="", max_length=5000)
    type: Literal["text", "location"] = "text"
    location: Optional[ChatLocation] = None

class ChatMessageResponse(BaseModel):
    id: int
    transaction_id: UUID4
    sender_username: Optional[str] = None
    type: MessageType
    content: str
    location: Optional[ChatLocation] = None
    timestamp: datetime
