from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID

from ..core.security import get_current_user
from ..db.base import get_db
from ..models.database import User
from ..schemas.items import GeoPoint
from ..schemas.transactions import (
    CompleteRequest, LiveLocation, PickupWindow, TransactionResponse, TransactionStart,
)
from ..services.chat_relay import ConnectionRegistry
from ..services.transactions import TransactionService, message_to_dict
from .deps import get_chat_registry

router = APIRouter()

async def _announce(registry: ConnectionRegistry, transaction_id, message) -> None:
    if message is not None:
        await registry.broadcast(str(transaction_id), "new-message", message_to_dict(message, transaction_id))

@router.post("/start", response_model=TransactionResponse)
async def start_transaction(
    body: TransactionStart,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Open a pickup session (and its chat room) with the item's owner."""
    service = TransactionService(db)
    txn = service.start(body.item_id, user, body.mode)
    return service.to_dict(txn, user)

@router.get("", response_model=List[TransactionResponse])
async def list_transactions(
    open_only: bool = Query(False, alias="open"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = TransactionService(db)
    return [service.to_dict(txn, user) for txn in service.list_for(user, open_only=open_only)]

@router.get("/{transaction_id}", response_model=TransactionResponse)
async def get_transaction(
    transaction_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = TransactionService(db)
    return service.to_dict(service.get_for_party(transaction_id, user), user)

@router.post("/{transaction_id}/location", response_model=TransactionResponse)
async def set_meeting_location(
    transaction_id: UUID,
    body: GeoPoint,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_chat_registry),
):
    service = TransactionService(db)
    message = service.set_meeting_location(transaction_id, user, body.latitude, body.longitude, body.name)
    await _announce(registry, transaction_id, message)
    return service.to_dict(service.get(transaction_id), user)

@router.post("/{transaction_id}/time", response_model=TransactionResponse)
async def set_pickup_window(
    transaction_id: UUID,
    body: PickupWindow,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_chat_registry),
):
    service = TransactionService(db)
    message = service.set_pickup_window(transaction_id, user, body.start, body.end)
    await _announce(registry, transaction_id, message)
    return service.to_dict(service.get(transaction_id), user)

@router.post("/{transaction_id}/live-location")
async def update_live_location(
    transaction_id: UUID,
    body: LiveLocation,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_chat_registry),
):
    """Share the caller's current position with the other party."""
    update = TransactionService(db).update_live_location(transaction_id, user, body.latitude, body.longitude)
    delivered = await registry.broadcast(str(transaction_id), "location-updated", update)
    return {**update, "delivered": delivered}

@router.post("/{transaction_id}/confirm", response_model=TransactionResponse)
async def confirm_transaction(
    transaction_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = TransactionService(db)
    return service.to_dict(service.confirm(transaction_id, user), user)

@router.post("/{transaction_id}/arrive", response_model=TransactionResponse)
async def arrive(
    transaction_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = TransactionService(db)
    return service.to_dict(service.arrive(transaction_id, user), user)

@router.post("/{transaction_id}/complete", response_model=TransactionResponse)
async def complete_transaction(
    transaction_id: UUID,
    body: CompleteRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Seller enters the code the buyer shows at pickup."""
    service = TransactionService(db)
    return service.to_dict(service.complete(transaction_id, user, body.verification_code), user)

@router.post("/{transaction_id}/cancel", response_model=TransactionResponse)
async def cancel_transaction(
    transaction_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = TransactionService(db)
    return service.to_dict(service.cancel(transaction_id, user), user)
