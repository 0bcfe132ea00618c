from typing import List, Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from ..core.logging import get_logger
from ..models.database import Item, Offer, PurchaseConfirmation, User
from .state import transition

logger = get_logger(__name__)


class ConfirmationService:
    """Mutual sign-off on a sale. Counters and ratings only move once both
    the buyer and the seller have confirmed."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, confirmation_id) -> PurchaseConfirmation:
        confirmation = (
            self.db.query(PurchaseConfirmation)
            .filter(PurchaseConfirmation.id == confirmation_id)
            .first()
        )
        if not confirmation:
            raise NotFound("Confirmation not found")
        return confirmation

    def list_for(self, user: User, pending_only: bool = False) -> List[PurchaseConfirmation]:
        query = self.db.query(PurchaseConfirmation).filter(
            or_(PurchaseConfirmation.buyer_id == user.id, PurchaseConfirmation.seller_id == user.id)
        )
        if pending_only:
            query = query.filter(PurchaseConfirmation.completed.is_(False))
        return query.order_by(PurchaseConfirmation.created_at.desc()).all()

    def get_or_open(self, item_id, buyer_id, seller_id, transaction_id=None) -> PurchaseConfirmation:
        """Find the open confirmation for this sale or add a new one. Does not commit."""
        confirmation = (
            self.db.query(PurchaseConfirmation)
            .filter(
                PurchaseConfirmation.item_id == item_id,
                PurchaseConfirmation.buyer_id == buyer_id,
                PurchaseConfirmation.seller_id == seller_id,
                PurchaseConfirmation.completed.is_(False),
            )
            .first()
        )
        if not confirmation:
            confirmation = PurchaseConfirmation(
                item_id=item_id, buyer_id=buyer_id, seller_id=seller_id,
                buyer_confirmed=False, seller_confirmed=False, completed=False,
            )
            self.db.add(confirmation)
        if transaction_id is not None:
            confirmation.transaction_id = transaction_id
        return confirmation

    def confirm(self, confirmation_id, user: User, rating: Optional[int] = None) -> PurchaseConfirmation:
        confirmation = self.get(confirmation_id)
        try:
            self.record(confirmation, user, rating)
            self.db.commit()
        except Conflict:
            self.db.rollback()
            raise
        self.db.refresh(confirmation)
        return confirmation

    def record(self, confirmation: PurchaseConfirmation, user: User, rating: Optional[int] = None) -> None:
        """Set the caller's flag and finalize when both sides are in. Does not commit."""
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationFailed("Rating must be between 1 and 5")

        if user.id == confirmation.buyer_id:
            if confirmation.buyer_confirmed:
                raise Conflict("Buyer already confirmed")
            confirmation.buyer_confirmed = True
            if rating is not None:
                confirmation.buyer_rating = rating
        elif user.id == confirmation.seller_id:
            if confirmation.seller_confirmed:
                raise Conflict("Seller already confirmed")
            confirmation.seller_confirmed = True
            if rating is not None:
                confirmation.seller_rating = rating
        else:
            raise Forbidden("Only the buyer or seller can confirm this purchase")

        if confirmation.buyer_confirmed and confirmation.seller_confirmed:
            self._finalize(confirmation)

    def _finalize(self, confirmation: PurchaseConfirmation) -> None:
        confirmation.completed = True

        # populate_existing: earlier bulk updates in this unit of work bypass the identity map
        item = self.db.query(Item).populate_existing().filter(Item.id == confirmation.item_id).first()
        if item and item.status != "sold":
            values = {"status": "sold"}
            if item.status == "handed_off":
                values["handoff_status"] = "completed"
            transition(self.db, Item, item.id, ("active", "reserved", "handed_off"), **values)

        if confirmation.offer_id is not None:
            offer = self.db.query(Offer).populate_existing().filter(Offer.id == confirmation.offer_id).first()
            if offer and offer.status != "completed":
                transition(self.db, Offer, offer.id, ("accepted", "ready_for_pickup"), status="completed")

        self.db.query(User).filter(User.id == confirmation.seller_id).update(
            {"sales_count": User.sales_count + 1}, synchronize_session=False
        )
        self.db.query(User).filter(User.id == confirmation.buyer_id).update(
            {"purchase_count": User.purchase_count + 1}, synchronize_session=False
        )
        if confirmation.buyer_rating is not None:
            self._add_rating(confirmation.seller_id, confirmation.buyer_rating)
        if confirmation.seller_rating is not None:
            self._add_rating(confirmation.buyer_id, confirmation.seller_rating)
        logger.info("Purchase of item %s confirmed by both parties", confirmation.item_id)

    def _add_rating(self, user_id, stars: int) -> None:
        self.db.query(User).filter(User.id == user_id).update(
            {"rating_total": User.rating_total + stars, "rating_count": User.rating_count + 1},
            synchronize_session=False,
        )
