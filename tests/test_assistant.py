"""Tests for the AI listing helpers with no model keys configured."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from backend.fridgeshare.core.errors import ExternalServiceError
from backend.fridgeshare.services.ai_assistant import AIAssistant, table_market_price


def test_table_market_price():
    assert table_market_price("Bananas") == 0.5
    assert table_market_price("milk 2%") == 3.0
    assert table_market_price("eggs") == 0.2
    assert table_market_price("Dragonfruit") == 2.0
    assert table_market_price("") == 2.0


def test_suggest_price_uses_table(client, signup):
    headers = signup("alice")
    r = client.post("/api/suggest-price", json={"name": "Bananas", "quantity": 6}, headers=headers)
    assert r.status_code == 200
    assert r.json() == {"name": "Bananas", "quantity": 6.0, "market_price": 0.5, "suggested_price": 1.5}

    r = client.post("/api/suggest-price", json={"name": "Mystery jam", "quantity": 2}, headers=headers)
    assert r.json()["suggested_price"] == 2.0


def test_suggest_price_rejects_zero_quantity(client, signup):
    r = client.post("/api/suggest-price", json={"name": "Milk", "quantity": 0}, headers=signup("alice"))
    assert r.status_code == 422


def test_generate_description_template(client, signup):
    r = client.post("/api/generate-description", json={"name": "Sourdough"}, headers=signup("alice"))
    assert r.status_code == 200
    assert r.json()["description"] == "A fresh and delicious Sourdough."


def test_analyze_with_name(client, signup):
    r = client.post("/api/analyze", data={"item_name": "Cheese", "quantity": "2"}, headers=signup("alice"))
    assert r.status_code == 200
    data = r.json()
    assert data["name"] == "Cheese"
    assert data["suggested_price"] == 4.0
    assert data["category"] is None


def test_analyze_needs_input(client, signup):
    r = client.post("/api/analyze", data={}, headers=signup("alice"))
    assert r.status_code == 400


def test_analyze_image_without_vision_model(client, signup):
    r = client.post("/api/analyze", files={"image": ("fridge.jpg", b"\xff\xd8\xff", "image/jpeg")},
                    headers=signup("alice"))
    assert r.status_code == 502


def test_assistant_requires_login(client):
    assert client.post("/api/suggest-price", json={"name": "Milk"}).status_code == 401


def completion(content):
    return MagicMock(choices=[MagicMock(message=MagicMock(content=content))])


def test_structured_call_retries_then_succeeds():
    assistant = AIAssistant()
    assistant.rate_limit_delay = 0
    assistant.openai_client = MagicMock()
    assistant.openai_client.chat.completions.create.side_effect = [
        RuntimeError("rate limited"),
        completion('{"unit_price": 3.25}'),
    ]

    assert asyncio.run(assistant.estimate_market_price("milk")) == 3.25
    assert assistant.openai_client.chat.completions.create.call_count == 2


def test_market_price_falls_back_to_table_after_retries():
    assistant = AIAssistant()
    assistant.rate_limit_delay = 0
    assistant.openai_client = MagicMock()
    assistant.openai_client.chat.completions.create.side_effect = RuntimeError("down")

    assert asyncio.run(assistant.estimate_market_price("bread")) == 2.5
    assert assistant.openai_client.chat.completions.create.call_count == assistant.max_retries


def test_recognize_from_photo():
    assistant = AIAssistant()
    assistant.rate_limit_delay = 0
    assistant.openai_client = MagicMock()
    assistant.openai_client.chat.completions.create.return_value = completion(
        '{"name": "Apple", "category": "Produce", "description": "Crisp red apples."}'
    )

    result = asyncio.run(assistant.analyze(b"jpeg-bytes", quantity=4))
    assert result["name"] == "Apple"
    assert result["category"] == "Produce"
    assert result["description"] == "Crisp red apples."
    # The same mocked client answers the price call with the recognition JSON, which fails
    # validation, so the table price is used
    assert result["suggested_price"] == 1.4


def test_recognize_failure_is_external_error():
    assistant = AIAssistant()
    assistant.rate_limit_delay = 0
    assistant.openai_client = MagicMock()
    assistant.openai_client.chat.completions.create.side_effect = RuntimeError("down")

    with pytest.raises(ExternalServiceError):
        asyncio.run(assistant.recognize(b"jpeg-bytes"))


def test_description_falls_back_to_anthropic():
    assistant = AIAssistant()
    assistant.anthropic_client = MagicMock()
    block = MagicMock(type="text", text="Golden loaf, baked this morning.")
    assistant.anthropic_client.messages.create.return_value = MagicMock(content=[block])

    with patch.object(assistant, "openai_client", None):
        text = asyncio.run(assistant.generate_description("Bread"))
    assert text == "Golden loaf, baked this morning."
