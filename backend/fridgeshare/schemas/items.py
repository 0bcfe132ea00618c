from pydantic import BaseModel, UUID4, Field
from typing import List, Optional, Literal
from datetime import datetime

Category = Literal[
    "Produce", "Dairy", "Baked", "Meat", "Seafood",
    "Frozen", "Fresh", "Drinks", "Snacks", "Canned", "Spices", "Sauces",
]
TransferMethod = Literal["Pickup", "Dropoff"]
ItemStatus = Literal["active", "reserved", "sold", "expired", "handed_off"]

class GeoPoint(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    name: str = Field(default="", max_length=200)

class ItemBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    category: Category = "Fresh"
    price: float = Field(0, ge=0)
    description: str = Field(default="", max_length=5000)
    quantity: int = Field(1, ge=1)
    purchase_date: Optional[datetime] = None
    expiration_date: Optional[datetime] = None
    listing_duration_days: int = Field(7, ge=1, le=7)
    transfer_methods: List[TransferMethod] = Field(default_factory=list)
    image_url: str = ""

class ItemCreate(ItemBase):
    location: Optional[GeoPoint] = None

class ItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    category: Optional[Category] = None
    price: Optional[float] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, max_length=5000)
    quantity: Optional[int] = Field(default=None, ge=1)
    expiration_date: Optional[datetime] = None
    transfer_methods: Optional[List[TransferMethod]] = None
    image_url: Optional[str] = None
    location: Optional[GeoPoint] = None

class ItemResponse(ItemBase):
    id: UUID4
    username: str
    status: ItemStatus
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_name: str = ""
    handoff_status: Optional[str] = None
    handoff_to_username: Optional[str] = None
    handoff_notes: Optional[str] = None
    handoff_date: Optional[datetime] = None
    created_at: datetime
    expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class NearbyItemResponse(ItemResponse):
    distance_m: float
