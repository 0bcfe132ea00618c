import stripe
from typing import Any, Dict
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import Conflict, ExternalServiceError, NotFound, ValidationFailed
from ..core.logging import get_logger
from ..models.database import Item, Offer, User

logger = get_logger(__name__)


class PaymentService:
    def __init__(self, db: Session):
        self.db = db

    def create_intent(self, item_id, buyer: User) -> Dict[str, Any]:
        """Create a Stripe PaymentIntent for an item and remember its id."""
        if not settings.STRIPE_SECRET_KEY:
            raise ExternalServiceError("Payments are not configured")
        item = self.db.query(Item).filter(Item.id == item_id).first()
        if not item:
            raise NotFound("Item not found")
        if item.owner_id == buyer.id:
            raise ValidationFailed("You cannot pay for your own item")

        price = item.price
        if item.status == "reserved":
            # Only the buyer holding the accepted offer pays, at the agreed price
            offer = self.db.query(Offer).filter(
                Offer.item_id == item.id,
                Offer.buyer_id == buyer.id,
                Offer.status.in_(("accepted", "ready_for_pickup")),
            ).first()
            if not offer:
                raise Conflict("Item is reserved for another buyer")
            price = offer.agreed_price
        elif item.status != "active":
            raise Conflict(f"Item is {item.status}")

        amount_cents = int(round(float(price) * 100))
        if amount_cents <= 0:
            raise ValidationFailed("Free items do not need a payment")

        try:
            intent = stripe.PaymentIntent.create(
                api_key=settings.STRIPE_SECRET_KEY,
                amount=amount_cents,
                currency=settings.PAYMENT_CURRENCY,
                metadata={"item_id": str(item.id), "buyer": buyer.username},
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error("Stripe PaymentIntent failed for item %s: %s", item.id, e)
            raise ExternalServiceError("Payment provider error")

        item.payment_intent_id = intent.id
        self.db.commit()
        logger.info("PaymentIntent %s created for item %s", intent.id, item.id)
        return {
            "client_secret": intent.client_secret,
            "payment_intent_id": intent.id,
            "amount_cents": amount_cents,
            "currency": settings.PAYMENT_CURRENCY,
        }
