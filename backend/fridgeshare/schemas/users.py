from pydantic import BaseModel, UUID4, EmailStr, Field
from typing import Optional
from datetime import datetime

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]{3,32}$"

class RegisterRequest(BaseModel):
    username: str = Field(..., pattern=USERNAME_PATTERN)
    password: str = Field(..., min_length=6, max_length=128)
    email: Optional[EmailStr] = None
    name: Optional[str] = Field(default=None, max_length=120)
    affiliation: Optional[str] = Field(default=None, max_length=120)

class LoginRequest(BaseModel):
    username: str
    password: str

class TokenResponse(BaseModel):
    token: str
    username: str
    email_verified: bool = False

class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=120)
    affiliation: Optional[str] = Field(default=None, max_length=120)
    location: Optional[str] = Field(default=None, max_length=120)
    bio: Optional[str] = Field(default=None, max_length=1000)

class UserResponse(BaseModel):
    id: UUID4
    username: str
    email: Optional[str] = None
    email_verified: bool
    name: Optional[str] = None
    affiliation: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    rating: Optional[float] = None
    sales_count: int
    purchase_count: int
    created_at: datetime

    class Config:
        from_attributes = True

class UserStats(BaseModel):
    username: str
    name: Optional[str] = None
    affiliation: Optional[str] = None
    rating: Optional[float] = None
    rating_count: int
    sales_count: int
    purchase_count: int
    active_listings: int

class VerifyEmailRequest(BaseModel):
    token: str
