from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from ..core.security import get_current_user
from ..db.base import get_db
from ..models.database import ITEM_CATEGORIES, User
from ..schemas.items import Category, ItemCreate, ItemResponse, ItemStatus, ItemUpdate, NearbyItemResponse
from ..services.listings import ListingService

router = APIRouter()

@router.get("", response_model=List[ItemResponse])
async def get_items(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[Category] = Query(None),
    q: Optional[str] = Query(None),
    status: Optional[ItemStatus] = Query("active"),
    username: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Browse listings, newest first."""
    return ListingService(db).list_items(
        category=category, q=q, status=status, username=username, skip=skip, limit=limit,
    )

@router.post("", response_model=ItemResponse, status_code=201)
async def create_item(
    body: ItemCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ListingService(db).create_item(user, body.model_dump())

@router.get("/mine", response_model=List[ItemResponse])
async def my_items(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """All of the caller's listings, whatever their status."""
    return ListingService(db).my_items(user)

@router.get("/nearby", response_model=List[NearbyItemResponse])
async def nearby_items(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius_m: float = Query(5000),
    category: Optional[Category] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    """Active listings within radius_m meters, nearest first."""
    hits = ListingService(db).nearby(lat, lng, radius_m, category=category, limit=limit)
    return [
        {**ItemResponse.model_validate(item).model_dump(), "distance_m": round(distance, 1)}
        for item, distance in hits
    ]

@router.get("/categories")
async def get_categories():
    return list(ITEM_CATEGORIES)

@router.get("/{item_id}", response_model=ItemResponse)
async def get_item(item_id: UUID, db: Session = Depends(get_db)):
    return ListingService(db).get_item(item_id)

@router.put("/{item_id}", response_model=ItemResponse)
async def update_item(
    item_id: UUID,
    body: ItemUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Edit a listing; owner only, while it is still active."""
    return ListingService(db).update_item(item_id, user, body.model_dump(exclude_unset=True))

@router.delete("/{item_id}")
async def delete_item(
    item_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ListingService(db).delete_item(item_id, user)
    return {"success": True}
