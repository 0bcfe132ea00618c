from typing import Any, Dict, List, Optional
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..core.errors import NotFound, ValidationFailed
from ..core.logging import get_logger
from ..models.database import DirectMessage, Item, User

logger = get_logger(__name__)


class DirectMessageService:
    """Peer-to-peer inbox, optionally threaded by item."""

    def __init__(self, db: Session):
        self.db = db

    def send(self, sender: User, to: str, content: str, item_id=None) -> DirectMessage:
        content = (content or "").strip()
        if not to or not content:
            raise ValidationFailed("Recipient and content required")
        recipient = self.db.query(User).filter(User.username == to).first()
        if not recipient:
            raise NotFound("Recipient not found")
        if recipient.id == sender.id:
            raise ValidationFailed("You cannot message yourself")

        message = DirectMessage(sender_id=sender.id, recipient_id=recipient.id, content=content)
        if item_id is not None:
            item = self.db.query(Item).filter(Item.id == item_id).first()
            if not item:
                raise NotFound("Item not found")
            message.item_id = item.id
            message.item_name = item.name
            message.item_image_url = item.image_url or ""

        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        logger.debug("Direct message %s from %s to %s", message.id, sender.username, recipient.username)
        return message

    def list(self, user: User, peer: Optional[str] = None, item_id=None,
             limit: int = 200) -> List[DirectMessage]:
        query = self.db.query(DirectMessage)
        if peer:
            other = self.db.query(User).filter(User.username == peer).first()
            if not other:
                return []
            query = query.filter(or_(
                and_(DirectMessage.sender_id == user.id, DirectMessage.recipient_id == other.id),
                and_(DirectMessage.sender_id == other.id, DirectMessage.recipient_id == user.id),
            ))
        else:
            query = query.filter(or_(DirectMessage.sender_id == user.id, DirectMessage.recipient_id == user.id))
        if item_id is not None:
            query = query.filter(DirectMessage.item_id == item_id)
        return query.order_by(DirectMessage.created_at.asc()).limit(limit).all()

    def threads(self, user: User) -> List[Dict[str, Any]]:
        """One entry per (peer, item) conversation, most recent first."""
        threads: Dict[tuple, Dict[str, Any]] = {}
        for message in self.list(user, limit=5000):
            peer = message.recipient_username if message.sender_id == user.id else message.sender_username
            key = (peer, message.item_id)
            thread = threads.setdefault(key, {
                "peer": peer,
                "item_id": message.item_id,
                "item_name": message.item_name,
                "message_count": 0,
            })
            thread["message_count"] += 1
            thread["last_message"] = message
        return sorted(threads.values(), key=lambda t: t["last_message"].created_at, reverse=True)
