from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, JSON, ForeignKey, Float, Numeric, Uuid, Index,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timedelta, timezone
import uuid

from ..db.base import Base

ITEM_CATEGORIES = (
    "Produce", "Dairy", "Baked", "Meat", "Seafood",
    "Frozen", "Fresh", "Drinks", "Snacks", "Canned", "Spices", "Sauces",
)
TRANSFER_METHODS = ("Pickup", "Dropoff")


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so everything is stored naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String(32), unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    email = Column(String, unique=True, index=True)
    email_verified = Column(Boolean, default=False, nullable=False)

    # Profile
    name = Column(String)
    affiliation = Column(String)
    location = Column(String)
    bio = Column(Text)

    # Aggregates, bumped when a purchase confirmation completes
    rating_total = Column(Integer, default=0, nullable=False)
    rating_count = Column(Integer, default=0, nullable=False)
    sales_count = Column(Integer, default=0, nullable=False)
    purchase_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=utcnow)

    items = relationship("Item", back_populates="owner", foreign_keys="Item.owner_id")

    @property
    def rating(self):
        if not self.rating_count:
            return None
        return round(self.rating_total / self.rating_count, 2)


class Item(Base):
    __tablename__ = "items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid, ForeignKey("users.id"), index=True, nullable=False)

    # Listing details
    name = Column(String(120), nullable=False)
    category = Column(String, default="Fresh", index=True, nullable=False)
    price = Column(Numeric(10, 2, asdecimal=False), default=0, nullable=False)
    description = Column(Text, default="")
    quantity = Column(Integer, default=1, nullable=False)
    purchase_date = Column(DateTime)
    expiration_date = Column(DateTime)
    listing_duration_days = Column(Integer, default=7, nullable=False)
    transfer_methods = Column(JSON, default=list)
    image_url = Column(String, default="")

    # Pickup point
    latitude = Column(Float)
    longitude = Column(Float)
    location_name = Column(String, default="")

    # Status: active, reserved, sold, expired, handed_off
    status = Column(String, default="active", index=True, nullable=False)
    payment_intent_id = Column(String)

    # Handoff sub-state
    handoff_status = Column(String)  # pending, completed, cancelled
    handoff_to_id = Column(Uuid, ForeignKey("users.id"), index=True)
    handoff_notes = Column(Text, default="")
    handoff_date = Column(DateTime)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    expires_at = Column(DateTime, index=True)
    version = Column(Integer, default=1, nullable=False)

    owner = relationship("User", back_populates="items", foreign_keys=[owner_id])
    handoff_to = relationship("User", foreign_keys=[handoff_to_id])
    offers = relationship("Offer", back_populates="item", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_items_status_expires", "status", "expires_at"),
        Index("ix_items_lat_lng", "latitude", "longitude"),
    )

    @property
    def username(self):
        return self.owner.username if self.owner else None

    @property
    def handoff_to_username(self):
        return self.handoff_to.username if self.handoff_to else None

    def compute_expiry(self):
        created = self.created_at or utcnow()
        return created + timedelta(days=self.listing_duration_days or 7)


class Offer(Base):
    __tablename__ = "offers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    item_id = Column(Uuid, ForeignKey("items.id"), index=True, nullable=False)
    buyer_id = Column(Uuid, ForeignKey("users.id"), index=True, nullable=False)
    seller_id = Column(Uuid, ForeignKey("users.id"), index=True, nullable=False)

    offer_price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    counter_price = Column(Numeric(10, 2, asdecimal=False))
    message = Column(Text, default="")

    # pending, countered, accepted, declined, cancelled, ready_for_pickup, completed
    status = Column(String, default="pending", index=True, nullable=False)

    # Scheduling hint from the buyer
    time_option = Column(String)  # within_hour, later_today, tomorrow
    preferred_location = Column(String, default="")

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    version = Column(Integer, default=1, nullable=False)

    item = relationship("Item", back_populates="offers")
    buyer = relationship("User", foreign_keys=[buyer_id])
    seller = relationship("User", foreign_keys=[seller_id])

    @property
    def buyer_username(self):
        return self.buyer.username if self.buyer else None

    @property
    def seller_username(self):
        return self.seller.username if self.seller else None

    @property
    def agreed_price(self):
        if self.status in ("accepted", "ready_for_pickup", "completed") and self.counter_price is not None:
            return self.counter_price
        return self.offer_price


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    item_id = Column(Uuid, ForeignKey("items.id"), index=True, nullable=False)
    seller_id = Column(Uuid, ForeignKey("users.id"), index=True, nullable=False)
    buyer_id = Column(Uuid, ForeignKey("users.id"), index=True, nullable=False)

    mode = Column(String, default="direct", nullable=False)  # direct, handoff
    # pending, confirmed, in_progress, completed, cancelled
    status = Column(String, default="pending", index=True, nullable=False)
    verification_code = Column(String(6), nullable=False)

    # Agreed meeting point
    meeting_latitude = Column(Float)
    meeting_longitude = Column(Float)
    meeting_name = Column(String, default="")
    meeting_updated_at = Column(DateTime)

    pickup_start = Column(DateTime)
    pickup_end = Column(DateTime)

    # Live coordinates, overwritten on every update
    seller_latitude = Column(Float)
    seller_longitude = Column(Float)
    seller_location_at = Column(DateTime)
    buyer_latitude = Column(Float)
    buyer_longitude = Column(Float)
    buyer_location_at = Column(DateTime)

    seller_confirmed = Column(Boolean, default=False, nullable=False)
    buyer_confirmed = Column(Boolean, default=False, nullable=False)

    completed_at = Column(DateTime)
    cancelled_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    version = Column(Integer, default=1, nullable=False)

    item = relationship("Item")
    seller = relationship("User", foreign_keys=[seller_id])
    buyer = relationship("User", foreign_keys=[buyer_id])
    chat_room = relationship("ChatRoom", back_populates="transaction", uselist=False,
                             cascade="all, delete-orphan")

    @property
    def seller_username(self):
        return self.seller.username if self.seller else None

    @property
    def buyer_username(self):
        return self.buyer.username if self.buyer else None

    @property
    def chat_room_id(self):
        return self.chat_room.id if self.chat_room else None

    def party_role(self, user_id):
        if user_id == self.seller_id:
            return "seller"
        if user_id == self.buyer_id:
            return "buyer"
        return None


class ChatRoom(Base):
    __tablename__ = "chat_rooms"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    transaction_id = Column(Uuid, ForeignKey("transactions.id"), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_message_at = Column(DateTime, default=utcnow, index=True)
    created_at = Column(DateTime, default=utcnow)

    transaction = relationship("Transaction", back_populates="chat_room")
    participants = relationship("ChatParticipant", back_populates="room", cascade="all, delete-orphan")
    messages = relationship("ChatMessage", back_populates="room", cascade="all, delete-orphan",
                            order_by="ChatMessage.id")


class ChatParticipant(Base):
    __tablename__ = "chat_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Uuid, ForeignKey("chat_rooms.id"), index=True, nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id"), index=True, nullable=False)
    is_online = Column(Boolean, default=False, nullable=False)
    last_seen = Column(DateTime, default=utcnow)

    room = relationship("ChatRoom", back_populates="participants")
    user = relationship("User")

    @property
    def username(self):
        return self.user.username if self.user else None


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    # Integer key gives a stable arrival order within a room
    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(Uuid, ForeignKey("chat_rooms.id"), index=True, nullable=False)
    sender_id = Column(Uuid, ForeignKey("users.id"))  # null for system messages
    message_type = Column(String, default="text", nullable=False)  # text, location, system
    content = Column(Text, default="")
    latitude = Column(Float)
    longitude = Column(Float)
    location_label = Column(String)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    room = relationship("ChatRoom", back_populates="messages")
    sender = relationship("User")

    @property
    def sender_username(self):
        return self.sender.username if self.sender else None


class DirectMessage(Base):
    __tablename__ = "messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    sender_id = Column(Uuid, ForeignKey("users.id"), index=True, nullable=False)
    recipient_id = Column(Uuid, ForeignKey("users.id"), index=True, nullable=False)
    content = Column(Text, nullable=False)

    # Optional item thread; name and image are copied so threads survive deletion
    item_id = Column(Uuid, ForeignKey("items.id", ondelete="SET NULL"), index=True)
    item_name = Column(String, default="")
    item_image_url = Column(String, default="")

    created_at = Column(DateTime, default=utcnow, index=True)

    sender = relationship("User", foreign_keys=[sender_id])
    recipient = relationship("User", foreign_keys=[recipient_id])

    @property
    def sender_username(self):
        return self.sender.username if self.sender else None

    @property
    def recipient_username(self):
        return self.recipient.username if self.recipient else None


class PurchaseConfirmation(Base):
    __tablename__ = "purchase_confirmations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    item_id = Column(Uuid, ForeignKey("items.id"), index=True, nullable=False)
    buyer_id = Column(Uuid, ForeignKey("users.id"), index=True, nullable=False)
    seller_id = Column(Uuid, ForeignKey("users.id"), index=True, nullable=False)
    offer_id = Column(Uuid, ForeignKey("offers.id"))
    transaction_id = Column(Uuid, ForeignKey("transactions.id"))

    buyer_confirmed = Column(Boolean, default=False, nullable=False)
    seller_confirmed = Column(Boolean, default=False, nullable=False)
    buyer_rating = Column(Integer)  # stars the buyer gave the seller
    seller_rating = Column(Integer)  # stars the seller gave the buyer
    completed = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    item = relationship("Item")
    buyer = relationship("User", foreign_keys=[buyer_id])
    seller = relationship("User", foreign_keys=[seller_id])
    offer = relationship("Offer")

    @property
    def buyer_username(self):
        return self.buyer.username if self.buyer else None

    @property
    def seller_username(self):
        return self.seller.username if self.seller else None
