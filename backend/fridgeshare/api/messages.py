from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from ..core.security import get_current_user
from ..db.base import get_db
from ..models.database import User
from ..schemas.messages import DirectMessageCreate, DirectMessageResponse, ThreadSummary
from ..services.direct_messages import DirectMessageService

router = APIRouter()

@router.post("", response_model=DirectMessageResponse, status_code=201)
async def send_message(
    body: DirectMessageCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return DirectMessageService(db).send(user, body.to, body.content, body.item_id)

@router.get("", response_model=List[DirectMessageResponse])
async def list_messages(
    peer: Optional[str] = Query(None),
    item_id: Optional[UUID] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Messages the caller sent or received, oldest first."""
    return DirectMessageService(db).list(user, peer=peer, item_id=item_id, limit=limit)

@router.get("/threads", response_model=List[ThreadSummary])
async def list_threads(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return DirectMessageService(db).threads(user)
