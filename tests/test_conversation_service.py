"""Tests for ConversationService — opening conversations and user messages."""
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from moai import repository
from moai.exceptions import ConversationClosed, ConversationNotFound, NotAParticipant
from moai.services.conversation_service import ConversationService
from moai.services.opener_service import FALLBACK_OPENER, OpenerResult


@pytest.fixture
def conversation_service(fake_opener):
    return ConversationService(fake_opener)


@pytest.fixture
async def conversation(db, conversation_service, make_profile, make_candidate, now):
    alex = await make_profile("Alex")
    sam = await make_profile("Sam")
    candidate = await make_candidate(alex.id, sam.id, status="accepted")
    opened = await conversation_service.open_conversation(candidate, db, now=now)
    return opened, alex, sam


class TestOpenConversation:

    @pytest.mark.asyncio
    async def test_pair_columns_are_canonical(self, conversation):
        opened, alex, sam = conversation
        low, high = sorted((alex.id, sam.id))
        assert (opened.pair_low, opened.pair_high) == (low, high)
        assert (opened.user_a, opened.user_b) == (alex.id, sam.id)

    @pytest.mark.asyncio
    async def test_fallback_opener_is_recorded_as_such(self, db, make_profile, make_candidate, now):
        opener = AsyncMock()
        opener.generate_opener.return_value = OpenerResult(text=FALLBACK_OPENER, source="fallback")
        service = ConversationService(opener)
        alex = await make_profile("Alex")
        sam = await make_profile("Sam")
        candidate = await make_candidate(alex.id, sam.id, status="accepted")

        opened = await service.open_conversation(candidate, db, now=now)

        messages = await repository.list_messages(db, opened.id)
        assert messages[0].text == FALLBACK_OPENER
        assert messages[0].metadata_ == {"type": "opening", "source": "fallback"}

    @pytest.mark.asyncio
    async def test_new_week_opens_a_new_conversation(
        self, db, conversation_service, conversation, make_candidate, batch_week, now
    ):
        first, alex, sam = conversation
        later = await make_candidate(
            alex.id, sam.id,
            batch_week=batch_week + timedelta(weeks=9),
            created_at=now + timedelta(weeks=9),
            status="accepted",
        )

        second = await conversation_service.open_conversation(later, db, now=now + timedelta(weeks=9))

        assert second.id != first.id


class TestAppendMessage:

    @pytest.mark.asyncio
    async def test_participant_message_is_appended(
        self, db, conversation_service, conversation, now
    ):
        opened, alex, _ = conversation
        later = now + timedelta(minutes=10)

        message = await conversation_service.append_message(
            opened.id, alex.id, "Coffee on Saturday?", db, now=later
        )

        assert message.sender_type == "user"
        assert message.sender_id == alex.id
        assert message.text == "Coffee on Saturday?"

        messages = await repository.list_messages(db, opened.id)
        assert [m.sender_type for m in messages] == ["ai", "user"]

        refreshed = await repository.get_conversation(db, opened.id)
        assert refreshed.last_activity_at.replace(tzinfo=None) == later.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, db, conversation_service, conversation):
        _, alex, _ = conversation
        with pytest.raises(ConversationNotFound):
            await conversation_service.append_message(uuid.uuid4(), alex.id, "hi", db)

    @pytest.mark.asyncio
    async def test_outsider_cannot_post(self, db, conversation_service, conversation, make_profile):
        opened, _, _ = conversation
        outsider = await make_profile("Kai")
        with pytest.raises(NotAParticipant):
            await conversation_service.append_message(opened.id, outsider.id, "hi", db)

    @pytest.mark.asyncio
    async def test_archived_conversation_is_closed(self, db, conversation_service, conversation):
        opened, alex, _ = conversation
        opened.status = "archived"
        await db.flush()

        with pytest.raises(ConversationClosed):
            await conversation_service.append_message(opened.id, alex.id, "hi", db)
