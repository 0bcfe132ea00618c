from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Literal, Optional
from uuid import UUID

from ..core.security import get_current_user
from ..db.base import get_db
from ..models.database import User
from ..schemas.offers import OfferCreate, OfferRespond, OfferResponse
from ..services.offers import OfferService

router = APIRouter()

@router.post("", response_model=OfferResponse, status_code=201)
async def create_offer(
    body: OfferCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    schedule = body.schedule.model_dump() if body.schedule else None
    return OfferService(db).create_offer(body.item_id, user, body.offer_price, body.message, schedule)

@router.get("", response_model=List[OfferResponse])
async def list_offers(
    role: Literal["buyer", "seller"] = Query("buyer"),
    item_id: Optional[UUID] = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Offers the caller made (buyer) or received (seller)."""
    return OfferService(db).list_offers(user, role=role, item_id=item_id)

@router.post("/{offer_id}/respond", response_model=OfferResponse)
async def respond_to_offer(
    offer_id: UUID,
    body: OfferRespond,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Seller accepts, declines or counters a pending offer."""
    return OfferService(db).respond(offer_id, user, body.action, body.counter_price)

@router.post("/{offer_id}/accept-counter", response_model=OfferResponse)
async def accept_counter(offer_id: UUID, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return OfferService(db).accept_counter(offer_id, user)

@router.post("/{offer_id}/cancel", response_model=OfferResponse)
async def cancel_offer(offer_id: UUID, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return OfferService(db).cancel(offer_id, user)

@router.post("/{offer_id}/ready", response_model=OfferResponse)
async def mark_ready(offer_id: UUID, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return OfferService(db).mark_ready(offer_id, user)

@router.post("/{offer_id}/release", response_model=OfferResponse)
async def release_offer(offer_id: UUID, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Back out of an accepted offer; the item goes back on the market."""
    return OfferService(db).release(offer_id, user)
