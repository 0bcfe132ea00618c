import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from ..core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from ..core.logging import get_logger
from ..models.database import (
    ChatMessage, ChatParticipant, ChatRoom, Item, Offer, Transaction, User, utcnow,
)
from .confirmations import ConfirmationService
from .offers import release_reservation
from .state import transition

logger = get_logger(__name__)

OPEN_STATUSES = ("pending", "confirmed", "in_progress")
UNAVAILABLE_ITEM_STATUSES = ("sold", "expired")


def generate_verification_code() -> str:
    return f"{secrets.randbelow(10**6):06d}"


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def message_to_dict(message: ChatMessage, transaction_id) -> Dict[str, Any]:
    location = None
    if message.latitude is not None and message.longitude is not None:
        location = {
            "latitude": message.latitude,
            "longitude": message.longitude,
            "label": message.location_label or "",
        }
    return {
        "id": message.id,
        "transaction_id": str(transaction_id),
        "sender_username": message.sender_username,
        "type": message.message_type,
        "content": message.content or "",
        "location": location,
        "timestamp": message.created_at.isoformat(),
    }


class TransactionService:
    """Pickup sessions between one buyer and one seller, with their chat room."""

    def __init__(self, db: Session):
        self.db = db

    # Lookup

    def get(self, transaction_id) -> Transaction:
        txn = self.db.query(Transaction).filter(Transaction.id == transaction_id).first()
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    def get_for_party(self, transaction_id, user: User) -> Transaction:
        txn = self.get(transaction_id)
        if txn.party_role(user.id) is None:
            raise Forbidden("You are not part of this transaction")
        return txn

    def list_for(self, user: User, open_only: bool = False) -> List[Transaction]:
        query = self.db.query(Transaction).filter(
            (Transaction.buyer_id == user.id) | (Transaction.seller_id == user.id)
        )
        if open_only:
            query = query.filter(Transaction.status.in_(OPEN_STATUSES))
        return query.order_by(Transaction.created_at.desc()).all()

    def to_dict(self, txn: Transaction, viewer: User) -> Dict[str, Any]:
        """Serialize for one party; only the buyer sees the verification code."""
        meeting = None
        if txn.meeting_latitude is not None and txn.meeting_longitude is not None:
            meeting = {"latitude": txn.meeting_latitude, "longitude": txn.meeting_longitude,
                       "name": txn.meeting_name or ""}
        window = None
        if txn.pickup_start and txn.pickup_end:
            window = {"start": txn.pickup_start, "end": txn.pickup_end}

        def live(lat, lng):
            if lat is None or lng is None:
                return None
            return {"latitude": lat, "longitude": lng}

        participants = txn.chat_room.participants if txn.chat_room else []
        return {
            "id": txn.id,
            "item_id": txn.item_id,
            "seller_username": txn.seller_username,
            "buyer_username": txn.buyer_username,
            "mode": txn.mode,
            "status": txn.status,
            "chat_room_id": txn.chat_room_id,
            "verification_code": txn.verification_code if viewer.id == txn.buyer_id else None,
            "meeting_location": meeting,
            "pickup_window": window,
            "seller_location": live(txn.seller_latitude, txn.seller_longitude),
            "buyer_location": live(txn.buyer_latitude, txn.buyer_longitude),
            "seller_confirmed": txn.seller_confirmed,
            "buyer_confirmed": txn.buyer_confirmed,
            "participants": [
                {"username": p.username, "is_online": p.is_online, "last_seen": p.last_seen}
                for p in participants
            ],
            "created_at": txn.created_at,
            "completed_at": txn.completed_at,
        }

    # Lifecycle

    def start(self, item_id, buyer: User, mode: str = "direct") -> Transaction:
        """Open a transaction and its chat room, or return the one already open
        for this buyer and item."""
        item = self.db.query(Item).filter(Item.id == item_id).first()
        if not item:
            raise NotFound("Item not found")
        if item.owner_id == buyer.id:
            raise ValidationFailed("You cannot start a transaction on your own item")
        if item.status in UNAVAILABLE_ITEM_STATUSES:
            raise Conflict(f"Item is {item.status}")
        if mode == "handoff":
            if item.status != "handed_off" or item.handoff_to_id != buyer.id:
                raise Conflict("Item is not being handed off to you")
        elif item.status == "handed_off":
            raise Conflict("Item is being handed off")
        elif item.status == "reserved":
            accepted = self.db.query(Offer).filter(
                Offer.item_id == item.id,
                Offer.buyer_id == buyer.id,
                Offer.status.in_(("accepted", "ready_for_pickup")),
            ).first()
            if not accepted:
                raise Conflict("Item is reserved for another buyer")

        existing = self.db.query(Transaction).filter(
            Transaction.item_id == item.id,
            Transaction.buyer_id == buyer.id,
            Transaction.status.in_(OPEN_STATUSES),
        ).first()
        if existing:
            return existing

        txn = Transaction(
            item_id=item.id,
            seller_id=item.owner_id,
            buyer_id=buyer.id,
            mode=mode,
            status="pending",
            verification_code=generate_verification_code(),
            seller_confirmed=False,
            buyer_confirmed=False,
        )
        room = ChatRoom(transaction=txn, is_active=True, last_message_at=utcnow())
        room.participants = [
            ChatParticipant(user_id=item.owner_id, is_online=False),
            ChatParticipant(user_id=buyer.id, is_online=False),
        ]
        self.db.add(txn)
        self.db.commit()
        self.db.refresh(txn)
        logger.info("Transaction %s started by %s for item %s", txn.id, buyer.username, item.id)
        return txn

    def confirm(self, transaction_id, user: User) -> Transaction:
        """Record one party's agreement; both plus a place and a time make it confirmed."""
        txn = self.get_for_party(transaction_id, user)
        if txn.status != "pending":
            raise Conflict(f"Transaction is {txn.status}")
        if txn.party_role(user.id) == "seller":
            txn.seller_confirmed = True
        else:
            txn.buyer_confirmed = True
        ready = (
            txn.seller_confirmed and txn.buyer_confirmed
            and txn.meeting_latitude is not None and txn.pickup_start is not None
        )
        if ready:
            transition(self.db, Transaction, txn.id, "pending", status="confirmed")
            self._system_message(txn, "Both parties confirmed the pickup")
        else:
            self.db.commit()
        self.db.refresh(txn)
        return txn

    def arrive(self, transaction_id, user: User) -> Transaction:
        txn = self.get_for_party(transaction_id, user)
        if txn.status not in ("confirmed", "in_progress"):
            raise Conflict(f"Transaction is {txn.status}")
        if txn.status == "confirmed":
            transition(self.db, Transaction, txn.id, "confirmed", status="in_progress")
        self._system_message(txn, f"{user.username} has arrived")
        self.db.refresh(txn)
        return txn

    def complete(self, transaction_id, seller: User, code: str) -> Transaction:
        """Seller enters the buyer's code at handover; the item is then sold."""
        txn = self.get_for_party(transaction_id, seller)
        if txn.party_role(seller.id) != "seller":
            raise Forbidden("Only the seller can complete the handover")
        if txn.status not in OPEN_STATUSES:
            raise Conflict(f"Transaction is {txn.status}")
        if not secrets.compare_digest(code or "", txn.verification_code):
            raise ValidationFailed("Verification code does not match")

        confirmations = ConfirmationService(self.db)
        try:
            now = utcnow()
            transition(self.db, Transaction, txn.id, OPEN_STATUSES, status="completed", completed_at=now)
            item = self.db.query(Item).filter(Item.id == txn.item_id).first()
            if item.status != "sold":
                values = {"status": "sold"}
                if item.status == "handed_off":
                    values["handoff_status"] = "completed"
                transition(self.db, Item, item.id, ("active", "reserved", "handed_off"), **values)
            confirmation = confirmations.get_or_open(txn.item_id, txn.buyer_id, txn.seller_id,
                                                     transaction_id=txn.id)
            if not confirmation.seller_confirmed:
                confirmations.record(confirmation, seller)
            if txn.chat_room:
                txn.chat_room.is_active = False
            self.db.commit()
        except Conflict:
            self.db.rollback()
            raise
        self.db.refresh(txn)
        logger.info("Transaction %s completed", txn.id)
        return txn

    def cancel(self, transaction_id, user: User) -> Transaction:
        """Cancel the pickup. A direct sale also gives up the buyer's accepted
        offer, so the item goes back to active."""
        txn = self.get_for_party(transaction_id, user)
        if txn.status not in OPEN_STATUSES:
            raise Conflict(f"Transaction is {txn.status}")
        try:
            transition(self.db, Transaction, txn.id, OPEN_STATUSES, status="cancelled", cancelled_at=utcnow())
            released = None
            if txn.mode == "direct":
                offer = release_reservation(self.db, txn.item_id, txn.buyer_id)
                released = offer.id if offer else None
        except Conflict:
            self.db.rollback()
            raise
        if txn.chat_room:
            txn.chat_room.is_active = False
        self._system_message(txn, f"{user.username} cancelled the pickup")
        self.db.refresh(txn)
        logger.info("Transaction %s cancelled by %s%s", txn.id, user.username,
                    f"; offer {released} released" if released else "")
        return txn

    # Meeting logistics

    def set_meeting_location(self, transaction_id, user: User, latitude: float, longitude: float,
                             name: str = "") -> ChatMessage:
        txn = self._open_for_party(transaction_id, user)
        txn.meeting_latitude = latitude
        txn.meeting_longitude = longitude
        txn.meeting_name = name or ""
        txn.meeting_updated_at = utcnow()
        label = name or f"{latitude:.5f}, {longitude:.5f}"
        return self._system_message(txn, f"{user.username} set the meeting location to {label}")

    def set_pickup_window(self, transaction_id, user: User, start: datetime, end: datetime) -> ChatMessage:
        start, end = to_naive_utc(start), to_naive_utc(end)
        if start >= end:
            raise ValidationFailed("Pickup window must end after it starts")
        txn = self._open_for_party(transaction_id, user)
        txn.pickup_start = start
        txn.pickup_end = end
        window = f"{start:%Y-%m-%d %H:%M} - {end:%H:%M} UTC"
        return self._system_message(txn, f"{user.username} set the pickup time to {window}")

    def update_live_location(self, transaction_id, user: User, latitude: float, longitude: float) -> Dict[str, Any]:
        txn = self._open_for_party(transaction_id, user)
        now = utcnow()
        role = txn.party_role(user.id)
        setattr(txn, f"{role}_latitude", latitude)
        setattr(txn, f"{role}_longitude", longitude)
        setattr(txn, f"{role}_location_at", now)
        self.db.commit()
        return {
            "transaction_id": str(txn.id),
            "username": user.username,
            "role": role,
            "latitude": latitude,
            "longitude": longitude,
            "updated_at": now.isoformat(),
        }

    # Chat

    def send_message(self, transaction_id, sender: User, content: str = "", message_type: str = "text",
                     location: Optional[Dict[str, Any]] = None) -> ChatMessage:
        txn = self.get_for_party(transaction_id, sender)
        room = self._active_room(txn)
        content = (content or "").strip()
        if message_type == "text":
            if not content:
                raise ValidationFailed("Message content required")
            location = None
        elif message_type == "location":
            if not location:
                raise ValidationFailed("Location messages need coordinates")
            content = content or "Shared a location"
        else:
            raise ValidationFailed(f"Unsupported message type: {message_type}")

        message = self._append(room, content, message_type, sender_id=sender.id, location=location)
        self.db.commit()
        self.db.refresh(message)
        return message

    def messages(self, transaction_id, user: User, after_id: Optional[int] = None,
                 limit: int = 200) -> List[ChatMessage]:
        txn = self.get_for_party(transaction_id, user)
        if not txn.chat_room:
            return []
        query = self.db.query(ChatMessage).filter(ChatMessage.room_id == txn.chat_room.id)
        if after_id is not None:
            query = query.filter(ChatMessage.id > after_id)
        return query.order_by(ChatMessage.id.asc()).limit(limit).all()

    def set_presence(self, transaction_id, user: User, online: bool) -> None:
        txn = self.get_for_party(transaction_id, user)
        if not txn.chat_room:
            return
        participant = self.db.query(ChatParticipant).filter(
            ChatParticipant.room_id == txn.chat_room.id,
            ChatParticipant.user_id == user.id,
        ).first()
        if participant is None:
            participant = ChatParticipant(room_id=txn.chat_room.id, user_id=user.id)
            self.db.add(participant)
        participant.is_online = online
        participant.last_seen = utcnow()
        self.db.commit()

    # Internals

    def _open_for_party(self, transaction_id, user: User) -> Transaction:
        txn = self.get_for_party(transaction_id, user)
        if txn.status not in OPEN_STATUSES:
            raise Conflict(f"Transaction is {txn.status}")
        return txn

    def _active_room(self, txn: Transaction) -> ChatRoom:
        room = txn.chat_room
        if room is None or not room.is_active:
            raise Conflict("Chat for this transaction is closed")
        return room

    def _append(self, room: ChatRoom, content: str, message_type: str, sender_id=None,
                location: Optional[Dict[str, Any]] = None) -> ChatMessage:
        now = utcnow()
        message = ChatMessage(
            room_id=room.id,
            sender_id=sender_id,
            message_type=message_type,
            content=content,
            created_at=now,
        )
        if location:
            message.latitude = location["latitude"]
            message.longitude = location["longitude"]
            message.location_label = location.get("label") or ""
        self.db.add(message)
        room.last_message_at = now
        return message

    def _system_message(self, txn: Transaction, content: str) -> ChatMessage:
        """Commit pending transaction changes together with a system chat line."""
        if txn.chat_room is None:
            self.db.commit()
            return None
        message = self._append(txn.chat_room, content, "system")
        self.db.commit()
        self.db.refresh(message)
        return message
