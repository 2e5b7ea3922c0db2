"""
Moai — Main API Router

Aggregates all sub-routers under a single prefix so that ``moai.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from moai.api import conversations, matching

router = APIRouter()

router.include_router(matching.router, prefix="/matches", tags=["Matching"])
router.include_router(conversations.router, prefix="/conversations", tags=["Conversations"])
