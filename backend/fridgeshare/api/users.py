from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.security import get_current_user
from ..db.base import get_db
from ..models.database import User
from ..schemas.users import (
    RegisterRequest, LoginRequest, TokenResponse, ProfileUpdate, UserResponse, UserStats,
    VerifyEmailRequest,
)
from ..services.accounts import AccountService

router = APIRouter()

@router.post("/register", response_model=TokenResponse)
async def register(body: RegisterRequest, db: Session = Depends(get_db)):
    """Create an account and return a bearer token."""
    return AccountService(db).register(
        body.username, body.password, email=body.email, name=body.name, affiliation=body.affiliation,
    )

@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: Session = Depends(get_db)):
    return AccountService(db).login(body.username, body.password)

@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    return user

@router.put("/me", response_model=UserResponse)
async def update_me(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return AccountService(db).update_profile(user, body.model_dump(exclude_unset=True))

@router.post("/verify", response_model=UserResponse)
async def verify_email(body: VerifyEmailRequest, db: Session = Depends(get_db)):
    """Consume the token from the verification email."""
    return AccountService(db).verify_email(body.token)

@router.post("/resend-verification")
async def resend_verification(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    sent = AccountService(db).resend_verification(user)
    return {"sent": sent}

@router.get("/{username}/stats", response_model=UserStats)
async def user_stats(username: str, db: Session = Depends(get_db)):
    """Public seller profile numbers."""
    return AccountService(db).stats(username)
