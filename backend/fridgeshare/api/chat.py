from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from ..core.security import get_current_user
from ..db.base import get_db
from ..models.database import User
from ..schemas.transactions import ChatMessageCreate, ChatMessageResponse
from ..services.chat_relay import ConnectionRegistry
from ..services.transactions import TransactionService, message_to_dict
from .deps import get_chat_registry

router = APIRouter()

@router.get("/{transaction_id}/messages", response_model=List[ChatMessageResponse])
async def get_messages(
    transaction_id: UUID,
    after_id: Optional[int] = Query(None, ge=0),
    limit: int = Query(200, ge=1, le=500),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Room history in arrival order; pass after_id to fetch only newer messages."""
    messages = TransactionService(db).messages(transaction_id, user, after_id=after_id, limit=limit)
    return [message_to_dict(m, transaction_id) for m in messages]

@router.post("/{transaction_id}/messages", response_model=ChatMessageResponse, status_code=201)
async def post_message(
    transaction_id: UUID,
    body: ChatMessageCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_chat_registry),
):
    location = body.location.model_dump() if body.location else None
    message = TransactionService(db).send_message(transaction_id, user, body.content, body.type, location)
    payload = message_to_dict(message, transaction_id)
    await registry.broadcast(str(transaction_id), "new-message", payload)
    return payload
