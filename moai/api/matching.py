"""
Moai — Matching API

Endpoints for the weekly batch trigger, candidate reads, and consent
submission.
"""

from __future__ import annotations

import uuid
from datetime import date

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from moai.database import get_db
from moai.exceptions import CandidateExpired, MatchEngineError
from moai.schemas.match import (
    BatchResponse,
    CandidateResponse,
    CandidateStateResponse,
    ConsentCreate,
    ConsentResponse,
    ExpireResponse,
    MutualConsentResponse,
)
from moai.services import query_service
from moai.services.batch_service import BatchService
from moai.services.consent_service import ConsentService
from moai.services.conversation_service import ConversationService
from moai.services.opener_service import OpenerService

logger = structlog.get_logger("moai.api.matching")

router = APIRouter()

# ── Service singletons ────────────────────────────────────────────────────────

_batch_service: BatchService | None = None
_consent_service: ConsentService | None = None


def get_batch_service() -> BatchService:
    global _batch_service
    if _batch_service is None:
        _batch_service = BatchService()
    return _batch_service


def get_consent_service() -> ConsentService:
    global _consent_service
    if _consent_service is None:
        _consent_service = ConsentService(ConversationService(OpenerService()))
    return _consent_service


def _http_error(exc: MatchEngineError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


# ──────────────────────────────────────────────────────────────────────────────
# POST /generate/{user_id} — Weekly batch trigger (external scheduler)
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/generate/{user_id}",
    response_model=BatchResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate this week's match candidates for a user",
)
async def generate_weekly_matches(
    user_id: uuid.UUID,
    batch_week: date = Query(..., description="Normalised batch week key, e.g. the week's Sunday"),
    db: AsyncSession = Depends(get_db),
    batch_service: BatchService = Depends(get_batch_service),
) -> BatchResponse:
    """Score the pool for ``user_id`` and persist up to three candidates.

    Safe to call repeatedly for the same week: pairs already issued are
    reported under ``skipped``.
    """
    try:
        result = await batch_service.generate_weekly_matches(user_id, batch_week, db)
    except MatchEngineError as exc:
        raise _http_error(exc) from exc

    return BatchResponse(
        user_id=result.user_id,
        batch_week=result.batch_week,
        created=[CandidateResponse.model_validate(c) for c in result.created],
        skipped=result.skipped,
        failed=result.failed,
    )


# ──────────────────────────────────────────────────────────────────────────────
# GET /pending/{user_id} — Pending candidates for a user
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/pending/{user_id}",
    response_model=list[CandidateResponse],
    summary="List a user's pending, unexpired candidates",
)
async def list_pending_candidates(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> list[CandidateResponse]:
    candidates = await query_service.get_pending_candidates(user_id, db)
    return [CandidateResponse.model_validate(c) for c in candidates]


# ──────────────────────────────────────────────────────────────────────────────
# GET /candidates/{candidate_id} — Candidate state
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/candidates/{candidate_id}",
    response_model=CandidateStateResponse,
    summary="Get a candidate's effective status and consents",
)
async def get_candidate_state(
    candidate_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> CandidateStateResponse:
    try:
        state = await query_service.get_candidate_state(candidate_id, db)
    except MatchEngineError as exc:
        raise _http_error(exc) from exc

    return CandidateStateResponse(
        candidate=CandidateResponse.model_validate(state["candidate"]),
        status=state["status"].value,
        responses={str(uid): answer for uid, answer in state["responses"].items()},
        mutual=state["mutual"],
        conversation_id=state["conversation_id"],
    )


@router.get(
    "/candidates/{candidate_id}/mutual",
    response_model=MutualConsentResponse,
    summary="Has this candidate been accepted by both sides?",
)
async def get_mutual_consent(
    candidate_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> MutualConsentResponse:
    try:
        mutual = await query_service.has_mutual_consent(candidate_id, db)
    except MatchEngineError as exc:
        raise _http_error(exc) from exc
    return MutualConsentResponse(candidate_id=candidate_id, mutual=mutual)


# ──────────────────────────────────────────────────────────────────────────────
# POST /candidates/{candidate_id}/consent — Record a yes/no
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/candidates/{candidate_id}/consent",
    response_model=ConsentResponse,
    summary="Record a participant's consent for a candidate",
)
async def record_consent(
    candidate_id: uuid.UUID,
    payload: ConsentCreate,
    db: AsyncSession = Depends(get_db),
    consent_service: ConsentService = Depends(get_consent_service),
) -> ConsentResponse:
    """Upsert the participant's answer.  When this makes the consent mutual
    the conversation is opened in the same request."""
    log = logger.bind(candidate_id=str(candidate_id), user_id=str(payload.user_id))
    try:
        result = await consent_service.record_consent(
            candidate_id, payload.user_id, payload.response, db
        )
    except MatchEngineError as exc:
        if isinstance(exc, CandidateExpired):
            # keep the persisted expiry even though the request fails
            await db.commit()
        log.info("record_consent_rejected", reason=exc.message)
        raise _http_error(exc) from exc

    return ConsentResponse(
        candidate_id=result.candidate_id,
        status=result.status.value,
        mutual=result.mutual,
        conversation_id=result.conversation_id,
    )


# ──────────────────────────────────────────────────────────────────────────────
# POST /expire — Optional sweep
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/expire",
    response_model=ExpireResponse,
    summary="Persist 'expired' for pending candidates past their deadline",
)
async def expire_candidates(db: AsyncSession = Depends(get_db)) -> ExpireResponse:
    count = await query_service.expire_stale_candidates(db)
    return ExpireResponse(expired=count)
