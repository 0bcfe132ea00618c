from fastapi import APIRouter, Depends, File, Form, UploadFile
from typing import Optional

from ..core.security import get_current_user
from ..models.database import User
from ..schemas.assistant import (
    AnalysisResponse, DescriptionRequest, DescriptionResponse, PriceRequest, PriceSuggestion,
)
from ..services.ai_assistant import AIAssistant

router = APIRouter()

def get_assistant() -> AIAssistant:
    return AIAssistant()

@router.post("/analyze", response_model=AnalysisResponse)
async def analyze(
    image: Optional[UploadFile] = File(None, description="photo of the food item"),
    item_name: Optional[str] = Form(None),
    quantity: float = Form(1, gt=0),
    user: User = Depends(get_current_user),
    assistant: AIAssistant = Depends(get_assistant),
):
    """Draft a listing from a photo or a name."""
    contents = await image.read() if image else None
    content_type = (image.content_type if image else None) or "image/jpeg"
    return await assistant.analyze(contents, content_type, item_name=item_name, quantity=quantity)

@router.post("/generate-description", response_model=DescriptionResponse)
async def generate_description(
    body: DescriptionRequest,
    user: User = Depends(get_current_user),
    assistant: AIAssistant = Depends(get_assistant),
):
    return {"name": body.name, "description": await assistant.generate_description(body.name)}

@router.post("/suggest-price", response_model=PriceSuggestion)
async def suggest_price(
    body: PriceRequest,
    user: User = Depends(get_current_user),
    assistant: AIAssistant = Depends(get_assistant),
):
    return await assistant.suggest_price(body.name, body.quantity)
