from pydantic import BaseModel, Field
from uuid import UUID
from datetime import date, datetime
from typing import Optional


class ConversationResponse(BaseModel):
    id: UUID
    candidate_id: Optional[UUID] = None
    user_a: UUID
    user_b: UUID
    batch_week: date
    ai_present: bool
    status: str
    opened_at: datetime
    last_activity_at: datetime

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    sender_type: str
    sender_id: Optional[UUID] = None
    text: str
    created_at: datetime

    model_config = {"from_attributes": True}


class MessageCreate(BaseModel):
    sender_id: UUID
    text: str = Field(min_length=1, max_length=2000)
