import openai
import asyncio
import base64
import json
from typing import Any, Dict, Optional
from anthropic import Anthropic

from ..core.config import settings
from ..core.errors import ExternalServiceError, ValidationFailed
from ..core.logging import get_logger
from ..schemas.assistant import FoodRecognition, MarketPriceEstimate

logger = get_logger(__name__)

# Rough US retail unit prices used when no model is configured
MARKET_PRICES = {
    "banana": 0.5,
    "apple": 0.7,
    "bread": 2.5,
    "milk": 3.0,
    "egg": 0.2,
    "rice": 1.0,
    "chicken": 5.0,
    "beef": 7.0,
    "cheese": 4.0,
}
DEFAULT_MARKET_PRICE = 2.0
RESALE_FACTOR = 0.5


def table_market_price(name: str) -> float:
    words = name.lower().split()
    if not words:
        return DEFAULT_MARKET_PRICE
    key = words[0]
    if key in MARKET_PRICES:
        return MARKET_PRICES[key]
    # "Apples", "Eggs"
    return MARKET_PRICES.get(key.rstrip("s"), DEFAULT_MARKET_PRICE)


class AIAssistant:
    """Listing helpers backed by OpenAI, with Anthropic and static fallbacks."""

    def __init__(self):
        self.openai_client = openai.OpenAI(api_key=settings.OPENAI_API_KEY) if settings.OPENAI_API_KEY else None
        self.anthropic_client = Anthropic(api_key=settings.ANTHROPIC_API_KEY) if settings.ANTHROPIC_API_KEY else None
        self.rate_limit_delay = settings.LLM_RATE_LIMIT_DELAY
        self.max_retries = settings.MAX_RETRIES

    async def analyze(self, image: Optional[bytes] = None, content_type: str = "image/jpeg",
                      item_name: Optional[str] = None, quantity: float = 1) -> Dict[str, Any]:
        """Name the food (from the given name or the photo), describe it and price it."""
        category = None
        description = None
        if item_name and item_name.strip():
            name = item_name.strip()
        elif image:
            recognition = await self.recognize(image, content_type)
            name = recognition.name
            category = recognition.category
            description = recognition.description
        else:
            raise ValidationFailed("No image or item name provided")

        if not description:
            description = await self.generate_description(name)
        price = await self.suggest_price(name, quantity)
        return {
            "name": name,
            "category": category,
            "description": description,
            "quantity": quantity,
            "suggested_price": price["suggested_price"],
        }

    async def recognize(self, image: bytes, content_type: str = "image/jpeg") -> FoodRecognition:
        if not self.openai_client:
            raise ExternalServiceError("Image recognition is not configured")
        data_url = f"data:{content_type};base64,{base64.b64encode(image).decode('ascii')}"
        try:
            return await self._call_openai_structured(
                system="You identify food items in photos for a local surplus-food marketplace.",
                user=[
                    {"type": "text", "text": "What food item is this? Pick the closest category."},
                    {"type": "image_url", "image_url": {"url": data_url}},
                ],
                schema=FoodRecognition,
                max_tokens=200,
            )
        except Exception as e:
            logger.error("Recognition failed: %s: %s", type(e).__name__, e)
            raise ExternalServiceError("Recognition failed")

    async def generate_description(self, name: str) -> str:
        prompt = f"Write a 1-sentence description for selling this food item: {name}"
        if self.openai_client:
            try:
                return await self._call_openai_text(prompt, max_tokens=80)
            except Exception as e:
                logger.warning("OpenAI description failed: %s: %s", type(e).__name__, e)
        if self.anthropic_client:
            try:
                return await self._call_anthropic_text(prompt, max_tokens=80)
            except Exception as e:
                logger.warning("Anthropic description failed: %s: %s", type(e).__name__, e)
        return f"A fresh and delicious {name}."

    async def suggest_price(self, name: str, quantity: float = 1) -> Dict[str, Any]:
        """Half of the market price for the given quantity, in dollars."""
        if quantity <= 0:
            raise ValidationFailed("Quantity must be positive")
        market = await self.estimate_market_price(name)
        return {
            "name": name,
            "quantity": quantity,
            "market_price": market,
            "suggested_price": round(market * quantity * RESALE_FACTOR, 2),
        }

    async def estimate_market_price(self, name: str) -> float:
        if self.openai_client:
            try:
                estimate = await self._call_openai_structured(
                    system="You estimate typical US grocery prices.",
                    user=f"Typical retail price for one unit of: {name}",
                    schema=MarketPriceEstimate,
                    max_tokens=30,
                )
                return round(estimate.unit_price, 2)
            except Exception as e:
                logger.warning("Price estimate failed, using table: %s: %s", type(e).__name__, e)
        return table_market_price(name)

    async def _call_openai_structured(self, system: str, user: Any, schema: Any, max_tokens: int = 300):
        """Call OpenAI with response_format schema for structured outputs, then validate via Pydantic."""
        json_schema = schema.model_json_schema()
        for attempt in range(self.max_retries):
            try:
                completion = self.openai_client.chat.completions.create(
                    model=settings.OPENAI_MODEL,
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                    temperature=0.1,
                    max_tokens=max_tokens,
                    response_format={"type": "json_schema", "json_schema": {"name": schema.__name__, "schema": json_schema}},
                )
                content = completion.choices[0].message.content
                return schema.model_validate(json.loads(content))
            except Exception as e:
                if attempt == self.max_retries - 1:
                    raise e
                wait_time = (2 ** attempt) * self.rate_limit_delay
                await asyncio.sleep(wait_time)
        raise ExternalServiceError("Max retries exceeded")

    async def _call_openai_text(self, prompt: str, max_tokens: int = 100) -> str:
        completion = self.openai_client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.7,
            max_tokens=max_tokens,
        )
        return (completion.choices[0].message.content or "").strip()

    async def _call_anthropic_text(self, prompt: str, max_tokens: int = 100) -> str:
        response = self.anthropic_client.messages.create(
            model=settings.ANTHROPIC_MODEL,
            max_tokens=max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        parts = [block.text for block in response.content if getattr(block, "type", "") == "text"]
        return "".join(parts).strip()
