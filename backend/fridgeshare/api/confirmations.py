from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID

from ..core.security import get_current_user
from ..db.base import get_db
from ..models.database import User
from ..schemas.confirmations import ConfirmationResponse, ConfirmRequest
from ..services.confirmations import ConfirmationService

router = APIRouter()

@router.get("", response_model=List[ConfirmationResponse])
async def list_confirmations(
    pending: bool = Query(False),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ConfirmationService(db).list_for(user, pending_only=pending)

@router.post("/{confirmation_id}/confirm", response_model=ConfirmationResponse)
async def confirm_purchase(
    confirmation_id: UUID,
    body: ConfirmRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Buyer or seller signs off on the sale, optionally rating the other side."""
    return ConfirmationService(db).confirm(confirmation_id, user, body.rating)
