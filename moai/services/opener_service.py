"""
Moai — OpenerService: drafts the first message of a new conversation.

Asks Gemini for a short, warm opener plus a few icebreakers, built from the
match score and reasons.  The call is a bounded request:

- model fallback chain (primary -> fallback), each with tenacity retry on
  transient 429/500/503 errors
- the whole request is capped by ``OPENER_TIMEOUT_SECONDS``
- any failure, timeout or empty answer yields ``FALLBACK_OPENER``

``generate_opener`` never raises; conversation creation must not depend on
the model being reachable.
"""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

import google.generativeai as genai
import structlog
from google.api_core import exceptions as google_exceptions
from json_repair import repair_json
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from moai.config import get_settings

logger = structlog.get_logger(__name__)

FALLBACK_OPENER = (
    "Hi! You two matched! 🎉 You have some things in common and could "
    "complement each other well. Why don't you start by sharing what "
    "you're up to this week?"
)


@dataclass(frozen=True)
class OpenerContext:
    score: float
    overlaps: list[str] = field(default_factory=list)
    complement: str = ""

    @classmethod
    def from_reasons(cls, score: float, reasons: dict[str, Any] | None) -> "OpenerContext":
        reasons = reasons or {}
        return cls(
            score=float(score),
            overlaps=list(reasons.get("overlaps") or []),
            complement=str(reasons.get("complement") or ""),
        )


@dataclass(frozen=True)
class OpenerResult:
    text: str
    source: str  # "gemini" | "fallback"
    model: str | None = None


class OpenerGenerator(Protocol):
    async def generate_opener(self, context: OpenerContext) -> OpenerResult: ...


# Failures a second attempt at the same prompt on the same model can get past.
_TRANSIENT_API_ERRORS = (
    google_exceptions.ResourceExhausted,
    google_exceptions.ServiceUnavailable,
    google_exceptions.InternalServerError,
    google_exceptions.DeadlineExceeded,
)
_TRANSIENT_MARKERS = ("429", "resource_exhausted", "500", "503", "unavailable")


def _is_retryable_api_error(exc: BaseException) -> bool:
    """Whether the opener request should be retried on the same model.

    Quota and server-side failures are retried.  A refused prompt or an
    empty answer is not; the next model in the chain gets a turn instead.
    Some SDK paths surface the HTTP status only in the message text.
    """
    if isinstance(exc, _TRANSIENT_API_ERRORS):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


class OpenerService:
    """Gemini-backed text-generation collaborator for conversation openers."""

    MAX_OPENER_CHARS: int = 1200

    def __init__(self) -> None:
        settings = get_settings()

        genai.configure(api_key=settings.GEMINI_API_KEY)

        self._model_chain: list[str] = [
            settings.GEMINI_MODEL_PRIMARY,
            settings.GEMINI_MODEL_FALLBACK,
        ]
        self._timeout_seconds: float = settings.OPENER_TIMEOUT_SECONDS
        self._max_attempts: int = settings.OPENER_MAX_ATTEMPTS
        self._generation_config = genai.GenerationConfig(
            max_output_tokens=400,
            temperature=0.8,
            response_mime_type="application/json",
        )

        logger.info(
            "opener_service_initialised",
            model_chain=self._model_chain,
            timeout_seconds=self._timeout_seconds,
        )

    # ══════════════════════════════════════════════════════════════════
    # Public API
    # ══════════════════════════════════════════════════════════════════

    async def generate_opener(self, context: OpenerContext) -> OpenerResult:
        """Return an opener for a freshly matched pair.

        Falls back to the fixed template on timeout or any model error.
        """
        prompt = self._build_prompt(context)

        try:
            text, model_name = await asyncio.wait_for(
                self._generate_with_fallback(prompt),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("opener_timeout", timeout_seconds=self._timeout_seconds)
            return OpenerResult(text=FALLBACK_OPENER, source="fallback")
        except Exception as exc:
            logger.warning("opener_generation_failed", error=str(exc))
            return OpenerResult(text=FALLBACK_OPENER, source="fallback")

        opener = self._extract_opener(text)
        if not opener:
            logger.warning("opener_empty_response", model=model_name)
            return OpenerResult(text=FALLBACK_OPENER, source="fallback")

        logger.info("opener_generated", model=model_name, length=len(opener))
        return OpenerResult(text=opener, source="gemini", model=model_name)

    # ══════════════════════════════════════════════════════════════════
    # Gemini transport
    # ══════════════════════════════════════════════════════════════════

    async def _generate_with_fallback(self, prompt: str) -> tuple[str, str]:
        last_exception: Exception | None = None

        for model_name in self._model_chain:
            try:
                text = await self._call_gemini_with_retry(model_name, prompt)
                return text, model_name
            except Exception as exc:
                last_exception = exc
                logger.warning(
                    "opener_model_failed",
                    failed_model=model_name,
                    error=str(exc),
                )
                continue

        raise RuntimeError(
            f"All models in chain exhausted for opener. Last error: {last_exception}"
        )

    async def _call_gemini_with_retry(self, model_name: str, prompt: str) -> str:
        """Call one Gemini model, retrying transient errors with
        exponential backoff."""
        model = genai.GenerativeModel(model_name)

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(_is_retryable_api_error),
                stop=stop_after_attempt(self._max_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
                reraise=True,
            ):
                with attempt:
                    response = await model.generate_content_async(
                        prompt,
                        generation_config=self._generation_config,
                    )

                    if not response.candidates:
                        raise ValueError(
                            f"Gemini returned no candidates for model {model_name}"
                        )

                    text = response.text
                    if not text or not text.strip():
                        raise ValueError(
                            f"Gemini returned empty text for model {model_name}"
                        )

                    return text

        except RetryError as retry_err:
            raise retry_err.last_attempt.exception() from retry_err

        # AsyncRetrying always returns or raises above
        raise RuntimeError(f"Gemini call for {model_name} produced no result")

    # ══════════════════════════════════════════════════════════════════
    # Prompt construction & parsing
    # ══════════════════════════════════════════════════════════════════

    @staticmethod
    def _build_prompt(context: OpenerContext) -> str:
        overlaps = ", ".join(context.overlaps) if context.overlaps else "none listed"
        complement = context.complement or "none listed"
        return (
            "Generate a friendly opening message for two people who just "
            "matched on a friend-finding app.\n\n"
            "Match details:\n"
            f"- Score: {context.score:.2f}\n"
            f"- Overlaps: {overlaps}\n"
            f"- Complement: {complement}\n\n"
            "Keep it warm, brief, and encourage them to start chatting. "
            "Include 2-3 icebreaker suggestions.\n\n"
            'Respond with JSON only: {"opener": "<message>", '
            '"icebreakers": ["<question>", "..."]}'
        )

    def _extract_opener(self, text: str) -> str:
        """Turn a model answer into message text.

        JSON answers are flattened into opener + bulleted icebreakers; a
        plain-text answer is used as-is.
        """
        if not text or not text.strip():
            return ""

        try:
            payload = self._parse_json_response(text)
        except ValueError:
            return text.strip()[: self.MAX_OPENER_CHARS]

        opener = str(payload.get("opener") or "").strip()
        icebreakers = [
            str(item).strip()
            for item in (payload.get("icebreakers") or [])
            if str(item).strip()
        ]
        if not opener:
            return ""

        lines = [opener]
        if icebreakers:
            lines.append("")
            lines.extend(f"• {item}" for item in icebreakers[:3])
        return "\n".join(lines)[: self.MAX_OPENER_CHARS]

    @staticmethod
    def _parse_json_response(text: str) -> dict:
        """Parse a JSON object from a model answer.

        Pipeline:
        1. Direct ``json.loads`` on the raw text
        2. Markdown code-fence extraction
        3. Brace extraction (first '{' to last '}')
        4. ``json_repair`` on the brace-extracted candidate

        Raises
        ------
        ValueError
            If no strategy yields a JSON object.
        """
        cleaned = text.strip()

        try:
            result = json.loads(cleaned)
            if isinstance(result, dict):
                return result
        except (json.JSONDecodeError, TypeError):
            pass

        md_match = re.search(r"```(?:json)?\s*\n?(.*?)\n?\s*```", cleaned, re.DOTALL)
        if md_match:
            try:
                result = json.loads(md_match.group(1).strip())
                if isinstance(result, dict):
                    return result
            except (json.JSONDecodeError, TypeError):
                pass

        first_brace = cleaned.find("{")
        last_brace = cleaned.rfind("}")
        if first_brace < 0 or last_brace <= first_brace:
            raise ValueError("No JSON object in response")

        candidate = cleaned[first_brace : last_brace + 1]
        try:
            result = json.loads(candidate)
            if isinstance(result, dict):
                return result
        except (json.JSONDecodeError, TypeError):
            pass

        try:
            result = json.loads(repair_json(candidate))
        except (json.JSONDecodeError, TypeError, ValueError) as exc:
            raise ValueError(f"Unparseable JSON response: {cleaned[:120]}") from exc
        if not isinstance(result, dict):
            raise ValueError("Repaired response is not a JSON object")
        return result
