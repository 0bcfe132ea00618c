from pydantic import BaseModel, UUID4, Field

from .items import ItemResponse

class HandoffRequest(BaseModel):
    item_id: UUID4
    handoff_to: str = Field(..., min_length=1)
    handoff_notes: str = Field(default="", max_length=1000)

class HandoffAction(BaseModel):
    item_id: UUID4

class HandoffResponse(BaseModel):
    success: bool = True
    item: ItemResponse
