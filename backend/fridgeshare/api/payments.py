from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.security import get_current_user
from ..db.base import get_db
from ..models.database import User
from ..schemas.payments import PaymentIntentRequest, PaymentIntentResponse
from ..services.payments import PaymentService

router = APIRouter()

@router.post("/intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    body: PaymentIntentRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Stripe PaymentIntent for the item; the client confirms it with the secret."""
    return PaymentService(db).create_intent(body.item_id, user)
