from pydantic import BaseModel, UUID4

class PaymentIntentRequest(BaseModel):
    item_id: UUID4

class PaymentIntentResponse(BaseModel):
    client_secret: str
    payment_intent_id: str
    amount_cents: int
    currency: str
