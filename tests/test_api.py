"""HTTP-level tests for the matching and conversation routers.

The ASGI app is driven in-process with ``httpx.ASGITransport`` (no lifespan,
so no PostgreSQL connection); ``get_db`` and the service getters are
overridden to use the SQLite session and a stubbed opener.
"""
import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from moai.api.conversations import get_conversation_service
from moai.api.matching import get_batch_service, get_consent_service
from moai.database import get_db
from moai.main import app
from moai.services.batch_service import BatchService
from moai.services.consent_service import ConsentService
from moai.services.conversation_service import ConversationService


@pytest.fixture
async def client(db, fake_opener):
    async def _db_override():
        yield db

    conversation_service = ConversationService(fake_opener)
    app.dependency_overrides[get_db] = _db_override
    app.dependency_overrides[get_batch_service] = lambda: BatchService()
    app.dependency_overrides[get_consent_service] = lambda: ConsentService(conversation_service)
    app.dependency_overrides[get_conversation_service] = lambda: conversation_service

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()


class TestHealth:

    @pytest.mark.asyncio
    async def test_liveness(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestGenerate:

    @pytest.mark.asyncio
    async def test_generates_candidates(self, client, make_profile, batch_week):
        alex = await make_profile("Alex")
        sam = await make_profile("Sam")

        response = await client.post(
            f"/api/v1/matches/generate/{alex.id}",
            params={"batch_week": batch_week.isoformat()},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["batch_week"] == batch_week.isoformat()
        assert [c["user_b"] for c in body["created"]] == [str(sam.id)]
        assert body["created"][0]["status"] == "pending"
        assert body["created"][0]["reasons"]["complement"] == "complementary personalities"

    @pytest.mark.asyncio
    async def test_not_onboarded_is_conflict(self, client, make_profile, batch_week):
        alex = await make_profile("Alex", with_intake=False)

        response = await client.post(
            f"/api/v1/matches/generate/{alex.id}",
            params={"batch_week": batch_week.isoformat()},
        )

        assert response.status_code == 409
        assert "intake" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_batch_week_is_required(self, client):
        response = await client.post(f"/api/v1/matches/generate/{uuid.uuid4()}")
        assert response.status_code == 422


class TestConsentFlow:

    @pytest.mark.asyncio
    async def test_mutual_yes_opens_conversation(self, client, make_profile, make_candidate):
        alex = await make_profile("Alex")
        sam = await make_profile("Sam")
        candidate = await make_candidate(alex.id, sam.id, created_at=_fresh())
        url = f"/api/v1/matches/candidates/{candidate.id}/consent"

        first = await client.post(url, json={"user_id": str(alex.id), "response": True})
        assert first.status_code == 200
        assert first.json()["status"] == "pending"

        pending = await client.get(f"/api/v1/matches/pending/{sam.id}")
        assert [c["id"] for c in pending.json()] == [str(candidate.id)]

        second = await client.post(url, json={"user_id": str(sam.id), "response": True})
        body = second.json()
        assert body["status"] == "accepted"
        assert body["mutual"] is True
        conversation_id = body["conversation_id"]

        mutual = await client.get(f"/api/v1/matches/candidates/{candidate.id}/mutual")
        assert mutual.json() == {"candidate_id": str(candidate.id), "mutual": True}

        state = await client.get(f"/api/v1/matches/candidates/{candidate.id}")
        assert state.json()["responses"] == {str(alex.id): True, str(sam.id): True}
        assert state.json()["conversation_id"] == conversation_id

        conversations = await client.get(f"/api/v1/conversations/user/{alex.id}")
        assert [c["id"] for c in conversations.json()] == [conversation_id]

        messages = await client.get(
            f"/api/v1/conversations/{conversation_id}/messages",
            params={"viewer_id": str(sam.id)},
        )
        assert [m["sender_type"] for m in messages.json()] == ["ai"]

        reply = await client.post(
            f"/api/v1/conversations/{conversation_id}/messages",
            json={"sender_id": str(sam.id), "text": "Hi Alex!"},
        )
        assert reply.status_code == 201
        assert reply.json()["sender_type"] == "user"

    @pytest.mark.asyncio
    async def test_unknown_candidate_is_404(self, client, make_profile):
        alex = await make_profile("Alex")
        response = await client.post(
            f"/api/v1/matches/candidates/{uuid.uuid4()}/consent",
            json={"user_id": str(alex.id), "response": True},
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_outsider_is_403(self, client, make_profile, make_candidate):
        alex = await make_profile("Alex")
        sam = await make_profile("Sam")
        kai = await make_profile("Kai")
        candidate = await make_candidate(alex.id, sam.id, created_at=_fresh())

        response = await client.post(
            f"/api/v1/matches/candidates/{candidate.id}/consent",
            json={"user_id": str(kai.id), "response": True},
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_expired_is_410_and_persisted(self, client, make_profile, make_candidate):
        alex = await make_profile("Alex")
        sam = await make_profile("Sam")
        candidate = await make_candidate(
            alex.id, sam.id, created_at=_fresh() - timedelta(days=10)
        )

        response = await client.post(
            f"/api/v1/matches/candidates/{candidate.id}/consent",
            json={"user_id": str(alex.id), "response": True},
        )
        assert response.status_code == 410

        state = await client.get(f"/api/v1/matches/candidates/{candidate.id}")
        assert state.json()["status"] == "expired"
        assert state.json()["candidate"]["status"] == "expired"

    @pytest.mark.asyncio
    async def test_expire_sweep(self, client, make_profile, make_candidate):
        alex = await make_profile("Alex")
        sam = await make_profile("Sam")
        await make_candidate(alex.id, sam.id, created_at=_fresh() - timedelta(days=10))

        response = await client.post("/api/v1/matches/expire")
        assert response.json() == {"expired": 1}


class TestMessages:

    @pytest.mark.asyncio
    async def test_blank_text_is_400(self, client):
        response = await client.post(
            f"/api/v1/conversations/{uuid.uuid4()}/messages",
            json={"sender_id": str(uuid.uuid4()), "text": "   "},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_conversation_is_404(self, client):
        response = await client.get(f"/api/v1/conversations/{uuid.uuid4()}/messages")
        assert response.status_code == 404


def _fresh():
    """Creation time close to the real clock; the API uses wall-clock now."""
    return datetime.now(timezone.utc)
