from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from ..core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from ..core.logging import get_logger
from ..models.database import Item, Offer, PurchaseConfirmation, Transaction, User, utcnow
from .state import transition

logger = get_logger(__name__)

OPEN_STATUSES = ("pending", "countered")
HELD_STATUSES = ("accepted", "ready_for_pickup")


def decline_open_offers(db: Session, item_id, keep_offer_id=None) -> int:
    """Close every still-open offer on an item once it is promised elsewhere."""
    query = db.query(Offer).filter(Offer.item_id == item_id, Offer.status.in_(OPEN_STATUSES))
    if keep_offer_id is not None:
        query = query.filter(Offer.id != keep_offer_id)
    return query.update(
        {"status": "declined", "version": Offer.version + 1, "updated_at": utcnow()},
        synchronize_session=False,
    )


def release_reservation(db: Session, item_id, buyer_id) -> Optional[Offer]:
    """Put a reserved item back on the market: the buyer's held offer is
    cancelled and its unfinished purchase confirmation removed. Does not commit."""
    offer = db.query(Offer).filter(
        Offer.item_id == item_id,
        Offer.buyer_id == buyer_id,
        Offer.status.in_(HELD_STATUSES),
    ).first()
    if offer is None:
        return None
    transition(db, Offer, offer.id, HELD_STATUSES, status="cancelled")
    transition(db, Item, item_id, "reserved", status="active")
    db.query(PurchaseConfirmation).filter(
        PurchaseConfirmation.offer_id == offer.id,
        PurchaseConfirmation.completed.is_(False),
    ).delete(synchronize_session=False)
    return offer


class OfferService:
    def __init__(self, db: Session):
        self.db = db

    def get_offer(self, offer_id) -> Offer:
        offer = self.db.query(Offer).filter(Offer.id == offer_id).first()
        if not offer:
            raise NotFound("Offer not found")
        return offer

    def create_offer(self, item_id, buyer: User, price: float, note: str = "",
                     schedule: Optional[Dict[str, Any]] = None) -> Offer:
        item = self.db.query(Item).filter(Item.id == item_id).first()
        if not item:
            raise NotFound("Item not found")
        if price is None or price < 0:
            raise ValidationFailed("Offer price must be zero or more")
        if item.owner_id == buyer.id:
            raise ValidationFailed("You cannot make an offer on your own item")
        if item.status != "active":
            raise Conflict(f"Item is {item.status} and not accepting offers")

        schedule = schedule or {}
        offer = Offer(
            item_id=item.id,
            buyer_id=buyer.id,
            seller_id=item.owner_id,
            offer_price=round(price, 2),
            message=note or "",
            status="pending",
            time_option=schedule.get("time_option"),
            preferred_location=schedule.get("preferred_location") or "",
        )
        self.db.add(offer)
        self.db.commit()
        self.db.refresh(offer)
        logger.info("Offer %s: %s offered %.2f on item %s", offer.id, buyer.username, price, item.id)
        return offer

    def respond(self, offer_id, seller: User, action: str, counter_price: Optional[float] = None) -> Offer:
        offer = self.get_offer(offer_id)
        if offer.seller_id != seller.id:
            raise Forbidden("Only the seller can respond to this offer")
        if offer.status != "pending":
            raise Conflict(f"Offer is {offer.status}")

        if action == "accept":
            return self._accept(offer, expected="pending")
        if action == "decline":
            transition(self.db, Offer, offer.id, "pending", status="declined")
        elif action == "counter":
            if counter_price is None or counter_price < 0:
                raise ValidationFailed("Counter price must be zero or more")
            transition(self.db, Offer, offer.id, "pending",
                       status="countered", counter_price=round(counter_price, 2))
        else:
            raise ValidationFailed(f"Unknown action: {action}")

        self.db.commit()
        self.db.refresh(offer)
        logger.info("Offer %s %s by seller", offer.id, offer.status)
        return offer

    def accept_counter(self, offer_id, buyer: User) -> Offer:
        offer = self.get_offer(offer_id)
        if offer.buyer_id != buyer.id:
            raise Forbidden("Only the buyer can accept a counter-offer")
        if offer.status != "countered":
            raise Conflict(f"Offer is {offer.status}")
        return self._accept(offer, expected="countered")

    def cancel(self, offer_id, buyer: User) -> Offer:
        offer = self.get_offer(offer_id)
        if offer.buyer_id != buyer.id:
            raise Forbidden("Only the buyer can cancel this offer")
        if offer.status not in OPEN_STATUSES:
            raise Conflict(f"Offer is {offer.status}")
        transition(self.db, Offer, offer.id, OPEN_STATUSES, status="cancelled")
        self.db.commit()
        self.db.refresh(offer)
        logger.info("Offer %s cancelled by buyer", offer.id)
        return offer

    def mark_ready(self, offer_id, seller: User) -> Offer:
        offer = self.get_offer(offer_id)
        if offer.seller_id != seller.id:
            raise Forbidden("Only the seller can mark an offer ready")
        if offer.status != "accepted":
            raise Conflict(f"Offer is {offer.status}")
        transition(self.db, Offer, offer.id, "accepted", status="ready_for_pickup")
        self.db.commit()
        self.db.refresh(offer)
        return offer

    def release(self, offer_id, user: User) -> Offer:
        """Either party backs out of an accepted offer before pickup starts."""
        offer = self.get_offer(offer_id)
        if user.id not in (offer.buyer_id, offer.seller_id):
            raise Forbidden("Only the buyer or seller can release this offer")
        if offer.status not in HELD_STATUSES:
            raise Conflict(f"Offer is {offer.status}")
        pickup = self.db.query(Transaction).filter(
            Transaction.item_id == offer.item_id,
            Transaction.buyer_id == offer.buyer_id,
            Transaction.status.in_(("pending", "confirmed", "in_progress")),
        ).first()
        if pickup:
            raise Conflict("Cancel the open pickup first")
        try:
            release_reservation(self.db, offer.item_id, offer.buyer_id)
            self.db.commit()
        except Conflict:
            self.db.rollback()
            raise
        self.db.refresh(offer)
        logger.info("Offer %s released by %s; item %s is active again", offer.id, user.username, offer.item_id)
        return offer

    def list_offers(self, user: User, role: str = "buyer", item_id=None) -> List[Offer]:
        query = self.db.query(Offer)
        if role == "seller":
            query = query.filter(Offer.seller_id == user.id)
        elif role == "buyer":
            query = query.filter(Offer.buyer_id == user.id)
        else:
            raise ValidationFailed("role must be buyer or seller")
        if item_id is not None:
            query = query.filter(Offer.item_id == item_id)
        return query.order_by(Offer.created_at.desc()).all()

    def _accept(self, offer: Offer, expected: str) -> Offer:
        """Accept the offer, reserve the item, close sibling offers and open a
        purchase confirmation, all in one commit."""
        try:
            transition(self.db, Offer, offer.id, expected, status="accepted")
            transition(self.db, Item, offer.item_id, "active", status="reserved")
            declined = decline_open_offers(self.db, offer.item_id, keep_offer_id=offer.id)
            self.db.add(PurchaseConfirmation(
                item_id=offer.item_id,
                buyer_id=offer.buyer_id,
                seller_id=offer.seller_id,
                offer_id=offer.id,
            ))
            self.db.commit()
        except Conflict:
            self.db.rollback()
            raise
        self.db.refresh(offer)
        logger.info("Offer %s accepted at %.2f; %d sibling offers declined",
                    offer.id, offer.agreed_price, declined)
        return offer
