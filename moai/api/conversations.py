"""
Moai — Conversations API

Conversation listing and the message stream once a match is mutual.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from moai.database import get_db
from moai.exceptions import MatchEngineError
from moai.schemas.conversation import ConversationResponse, MessageCreate, MessageResponse
from moai.services import query_service
from moai.services.conversation_service import ConversationService
from moai.services.opener_service import OpenerService

logger = structlog.get_logger("moai.api.conversations")

router = APIRouter()

_conversation_service: ConversationService | None = None


def get_conversation_service() -> ConversationService:
    global _conversation_service
    if _conversation_service is None:
        _conversation_service = ConversationService(OpenerService())
    return _conversation_service


@router.get(
    "/user/{user_id}",
    response_model=list[ConversationResponse],
    summary="List a user's conversations, most recent activity first",
)
async def list_conversations(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> list[ConversationResponse]:
    conversations = await query_service.list_conversations(user_id, db)
    return [ConversationResponse.model_validate(c) for c in conversations]


@router.get(
    "/{conversation_id}/messages",
    response_model=list[MessageResponse],
    summary="List messages in a conversation",
)
async def list_messages(
    conversation_id: uuid.UUID,
    viewer_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> list[MessageResponse]:
    try:
        messages = await query_service.list_messages(conversation_id, db, viewer_id=viewer_id)
    except MatchEngineError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return [MessageResponse.model_validate(m) for m in messages]


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Append a user message",
)
async def send_message(
    conversation_id: uuid.UUID,
    payload: MessageCreate,
    db: AsyncSession = Depends(get_db),
    conversation_service: ConversationService = Depends(get_conversation_service),
) -> MessageResponse:
    body = payload.text.strip()
    if not body:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message text required",
        )
    try:
        message = await conversation_service.append_message(
            conversation_id, payload.sender_id, body, db
        )
    except MatchEngineError as exc:
        logger.info(
            "send_message_rejected",
            conversation_id=str(conversation_id),
            reason=exc.message,
        )
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return MessageResponse.model_validate(message)
