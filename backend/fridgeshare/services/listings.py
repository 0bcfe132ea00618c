import math
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from ..core.logging import get_logger
from ..models.database import (
    DirectMessage, Item, PurchaseConfirmation, Transaction, User, utcnow,
)

logger = get_logger(__name__)

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_DEGREE_LAT = 111_320.0

# Statuses that still block edits or deletion
LOCKED_STATUSES = ("reserved", "handed_off")


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters."""
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dp = p2 - p1
    dl = math.radians(lng2 - lng1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def bounding_box(lat: float, lng: float, radius_m: float) -> Tuple[float, float, float, float]:
    """Lat/lng box enclosing the search circle, used to pre-filter in SQL."""
    dlat = radius_m / METERS_PER_DEGREE_LAT
    cos_lat = max(math.cos(math.radians(lat)), 1e-6)
    dlng = min(radius_m / (METERS_PER_DEGREE_LAT * cos_lat), 180.0)
    return lat - dlat, lat + dlat, lng - dlng, lng + dlng


class ListingService:
    def __init__(self, db: Session):
        self.db = db

    def expire_stale_items(self) -> int:
        """Mark active listings past their listing window as expired."""
        now = utcnow()
        expired = (
            self.db.query(Item)
            .filter(Item.status == "active", Item.expires_at.isnot(None), Item.expires_at <= now)
            .update({"status": "expired", "version": Item.version + 1, "updated_at": now},
                    synchronize_session=False)
        )
        if expired:
            self.db.commit()
            logger.info("Expired %d stale listings", expired)
        return expired

    def create_item(self, owner: User, data: Dict[str, Any]) -> Item:
        location = data.pop("location", None)
        item = Item(owner_id=owner.id, status="active", **data)
        if location:
            item.latitude = location["latitude"]
            item.longitude = location["longitude"]
            item.location_name = location.get("name") or ""
        item.created_at = utcnow()
        item.expires_at = item.compute_expiry()
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        logger.info("User %s listed %s (%s)", owner.username, item.name, item.id)
        return item

    def get_item(self, item_id) -> Item:
        item = self.db.query(Item).filter(Item.id == item_id).first()
        if not item:
            raise NotFound("Item not found")
        return item

    def get_owned_item(self, item_id, owner: User) -> Item:
        item = self.get_item(item_id)
        if item.owner_id != owner.id:
            raise Forbidden("Only the owner can change this listing")
        return item

    def update_item(self, item_id, owner: User, changes: Dict[str, Any]) -> Item:
        item = self.get_owned_item(item_id, owner)
        if item.status != "active":
            raise Conflict(f"Cannot edit a listing that is {item.status}")
        location = changes.pop("location", None)
        for field, value in changes.items():
            setattr(item, field, value)
        if location:
            item.latitude = location["latitude"]
            item.longitude = location["longitude"]
            item.location_name = location.get("name") or ""
        item.version = (item.version or 1) + 1
        self.db.commit()
        self.db.refresh(item)
        return item

    def delete_item(self, item_id, owner: User) -> None:
        item = self.get_owned_item(item_id, owner)
        if item.status in LOCKED_STATUSES:
            raise Conflict(f"Cannot delete a listing that is {item.status}")

        self.db.query(DirectMessage).filter(DirectMessage.item_id == item.id).update(
            {"item_id": None}, synchronize_session=False
        )
        self.db.query(PurchaseConfirmation).filter(PurchaseConfirmation.item_id == item.id).delete(
            synchronize_session=False
        )
        for txn in self.db.query(Transaction).filter(Transaction.item_id == item.id).all():
            self.db.delete(txn)
        self.db.delete(item)
        self.db.commit()
        logger.info("User %s deleted listing %s", owner.username, item_id)

    def list_items(self, category: Optional[str] = None, q: Optional[str] = None,
                   status: Optional[str] = "active", username: Optional[str] = None,
                   skip: int = 0, limit: int = 20) -> List[Item]:
        self.expire_stale_items()
        query = self.db.query(Item)
        if username:
            query = query.join(User, Item.owner_id == User.id).filter(User.username == username)
        if status:
            query = query.filter(Item.status == status)
        if category:
            query = query.filter(Item.category == category)
        if q:
            query = query.filter(or_(Item.name.ilike(f"%{q}%"), Item.description.ilike(f"%{q}%")))
        return query.order_by(Item.created_at.desc()).offset(skip).limit(limit).all()

    def my_items(self, owner: User) -> List[Item]:
        self.expire_stale_items()
        return (
            self.db.query(Item)
            .filter(Item.owner_id == owner.id)
            .order_by(Item.created_at.desc())
            .all()
        )

    def nearby(self, lat: float, lng: float, radius_m: float,
               category: Optional[str] = None, limit: int = 100) -> List[Tuple[Item, float]]:
        """Active items within radius_m of (lat, lng), nearest first."""
        if radius_m <= 0:
            raise ValidationFailed("Radius must be positive")
        radius_m = min(radius_m, settings.NEARBY_MAX_RADIUS_M)
        self.expire_stale_items()

        min_lat, max_lat, min_lng, max_lng = bounding_box(lat, lng, radius_m)
        query = self.db.query(Item).filter(
            Item.status == "active",
            Item.latitude.isnot(None),
            Item.longitude.isnot(None),
            Item.latitude.between(min_lat, max_lat),
        )
        if min_lng >= -180 and max_lng <= 180:
            query = query.filter(Item.longitude.between(min_lng, max_lng))
        if category:
            query = query.filter(Item.category == category)

        hits = []
        for item in query.all():
            distance = haversine_m(lat, lng, item.latitude, item.longitude)
            if distance <= radius_m:
                hits.append((item, distance))
        hits.sort(key=lambda pair: pair[1])
        return hits[:limit]

