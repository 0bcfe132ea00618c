from sqlalchemy.orm import Session

from ..core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from ..core.logging import get_logger
from ..models.database import Item, PurchaseConfirmation, User, utcnow
from .offers import decline_open_offers
from .state import transition

logger = get_logger(__name__)


class HandoffService:
    """No-payment transfer of an item from its lister to a named recipient."""

    def __init__(self, db: Session):
        self.db = db

    def _get_item(self, item_id) -> Item:
        item = self.db.query(Item).filter(Item.id == item_id).first()
        if not item:
            raise NotFound("Item not found")
        return item

    def _require_party(self, item: Item, user: User) -> None:
        if user.id not in (item.owner_id, item.handoff_to_id):
            raise Forbidden("Only the lister or the recipient can change this handoff")

    def initiate(self, item_id, owner: User, recipient_username: str, notes: str = "") -> Item:
        item = self._get_item(item_id)
        if item.owner_id != owner.id:
            raise Forbidden("Only the lister can hand off this item")
        recipient_username = (recipient_username or "").strip()
        if not recipient_username:
            raise ValidationFailed("Recipient username required")
        recipient = self.db.query(User).filter(User.username == recipient_username).first()
        if not recipient:
            raise NotFound("Recipient not found")
        if recipient.id == owner.id:
            raise ValidationFailed("You cannot hand off an item to yourself")
        if item.status != "active":
            raise Conflict(f"Item is {item.status}")

        try:
            transition(
                self.db, Item, item.id, "active",
                status="handed_off",
                handoff_status="pending",
                handoff_to_id=recipient.id,
                handoff_notes=notes or "",
                handoff_date=utcnow(),
            )
            decline_open_offers(self.db, item.id)
            self.db.add(PurchaseConfirmation(
                item_id=item.id,
                buyer_id=recipient.id,
                seller_id=owner.id,
            ))
            self.db.commit()
        except Conflict:
            self.db.rollback()
            raise
        self.db.refresh(item)
        logger.info("Item %s handed off by %s to %s", item.id, owner.username, recipient.username)
        return item

    def complete(self, item_id, user: User) -> Item:
        item = self._get_item(item_id)
        self._require_party(item, user)
        if item.status != "handed_off" or item.handoff_status != "pending":
            raise Conflict("No pending handoff for this item")
        transition(self.db, Item, item.id, "handed_off",
                   status="sold", handoff_status="completed")
        self.db.commit()
        self.db.refresh(item)
        logger.info("Handoff of item %s completed by %s", item.id, user.username)
        return item

    def cancel(self, item_id, user: User) -> Item:
        item = self._get_item(item_id)
        self._require_party(item, user)
        if item.status != "handed_off" or item.handoff_status != "pending":
            raise Conflict("No pending handoff for this item")
        try:
            self.db.query(PurchaseConfirmation).filter(
                PurchaseConfirmation.item_id == item.id,
                PurchaseConfirmation.buyer_id == item.handoff_to_id,
                PurchaseConfirmation.offer_id.is_(None),
                PurchaseConfirmation.completed.is_(False),
            ).delete(synchronize_session=False)
            transition(
                self.db, Item, item.id, "handed_off",
                status="active",
                handoff_status=None,
                handoff_to_id=None,
                handoff_notes="",
                handoff_date=None,
            )
            self.db.commit()
        except Conflict:
            self.db.rollback()
            raise
        self.db.refresh(item)
        logger.info("Handoff of item %s cancelled by %s", item.id, user.username)
        return item
