from pydantic import BaseModel
from uuid import UUID
from datetime import date, datetime
from typing import Optional


class MatchReasons(BaseModel):
    overlaps: list[str] = []
    complement: str = ""


class CandidateResponse(BaseModel):
    id: UUID
    batch_week: date
    user_a: UUID
    user_b: UUID
    score: float
    reasons: MatchReasons
    status: str
    expires_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class BatchResponse(BaseModel):
    user_id: UUID
    batch_week: date
    created: list[CandidateResponse]
    skipped: list[UUID] = []
    failed: list[UUID] = []


class ConsentCreate(BaseModel):
    user_id: UUID
    response: bool


class ConsentResponse(BaseModel):
    candidate_id: UUID
    status: str
    mutual: bool
    conversation_id: Optional[UUID] = None


class CandidateStateResponse(BaseModel):
    candidate: CandidateResponse
    status: str
    responses: dict[str, bool]
    mutual: bool
    conversation_id: Optional[UUID] = None


class MutualConsentResponse(BaseModel):
    candidate_id: UUID
    mutual: bool


class ExpireResponse(BaseModel):
    expired: int
