from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field

from .items import Category


# Structured output from the vision model
class FoodRecognition(BaseModel):
    name: str = Field(description="Common name of the food item in the photo")
    category: Category = Field(description="Closest listing category")
    description: str = Field(description="One sentence written to sell the item")


class MarketPriceEstimate(BaseModel):
    unit_price: float = Field(ge=0, description="Typical US retail price for one unit, in dollars")


class DescriptionRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)


class DescriptionResponse(BaseModel):
    name: str
    description: str


class PriceRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    quantity: float = Field(1, gt=0)


class PriceSuggestion(BaseModel):
    name: str
    quantity: float
    market_price: float
    suggested_price: float


class AnalysisResponse(BaseModel):
    name: str
    category: Optional[Category] = None
    description: str
    quantity: float
    suggested_price: float
