from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.security import get_current_user
from ..db.base import get_db
from ..models.database import User
from ..schemas.handoffs import HandoffAction, HandoffRequest, HandoffResponse
from ..services.handoffs import HandoffService

router = APIRouter()

@router.post("/handoff", response_model=HandoffResponse)
async def initiate_handoff(
    body: HandoffRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Owner hands an item to a named user outside the offer flow."""
    item = HandoffService(db).initiate(body.item_id, user, body.handoff_to, body.handoff_notes)
    return {"success": True, "item": item}

@router.post("/complete-handoff", response_model=HandoffResponse)
async def complete_handoff(
    body: HandoffAction,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    item = HandoffService(db).complete(body.item_id, user)
    return {"success": True, "item": item}

@router.post("/cancel-handoff", response_model=HandoffResponse)
async def cancel_handoff(
    body: HandoffAction,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    item = HandoffService(db).cancel(body.item_id, user)
    return {"success": True, "item": item}
