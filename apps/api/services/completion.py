"""Adapter to the external generative text service.

Gemini is reached through its OpenAI-compatible endpoint, so the official
``openai`` SDK does the HTTP work. Provider failures are translated into the
three upstream errors the pipeline distinguishes:

* ``UpstreamUnavailableError``: missing key, rejected credentials, unknown
  model, network failures, timeouts and provider 5xx.
* ``UpstreamRateLimitedError``: provider quota / 429, with a retry hint.
* ``EmptyCompletionError``: a response arrived but carried no text.

Nothing here retries; the caller decides what to tell the client.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence

import openai
from openai import AsyncOpenAI

from config import settings
from services.errors import EmptyCompletionError, UpstreamRateLimitedError, UpstreamUnavailableError
from services.history import HistoryEntry

logger = logging.getLogger(__name__)

# Chat-completions wire vocabulary for the projected history roles.
WIRE_ROLES = {"user": "user", "model": "assistant"}


@dataclass
class GenerationConfig:
    """Sampling parameters forwarded to the provider untouched."""

    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    top_p: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_settings(cls) -> "GenerationConfig":
        return cls(
            temperature=settings.COMPLETION_TEMPERATURE,
            max_output_tokens=settings.COMPLETION_MAX_OUTPUT_TOKENS,
            top_p=settings.COMPLETION_TOP_P,
        )

    def as_request_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {}
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if self.max_output_tokens is not None:
            kwargs["max_tokens"] = self.max_output_tokens
        if self.top_p is not None:
            kwargs["top_p"] = self.top_p
        if self.extra:
            kwargs["extra_body"] = dict(self.extra)
        return kwargs


def get_openai_client(api_key: str, base_url: Optional[str] = None, timeout: Optional[float] = None) -> Optional[AsyncOpenAI]:
    """Get async OpenAI-compatible client, handling placeholders."""
    if not api_key or "your_" in api_key or api_key == "test-key":
        return None
    return AsyncOpenAI(api_key=api_key, base_url=base_url or None, timeout=timeout, max_retries=0)


def build_messages(history: Sequence[HistoryEntry], prompt: str) -> List[Dict[str, str]]:
    messages = [{"role": WIRE_ROLES[entry.role], "content": entry.text} for entry in history]
    messages.append({"role": "user", "content": prompt})
    return messages


class CompletionClient:
    def __init__(
        self,
        client: Optional[Any],
        *,
        model: str,
        timeout_seconds: float = 60.0,
        default_retry_after: int = 30,
    ):
        self.client = client
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.default_retry_after = int(default_retry_after)

    async def complete(
        self,
        history: Sequence[HistoryEntry],
        prompt: str,
        config: Optional[GenerationConfig] = None,
    ) -> str:
        if self.client is None:
            raise UpstreamUnavailableError(
                self.default_retry_after,
                message="AI service is not configured",
                detail="GEMINI_API_KEY is not configured",
            )

        request = {
            "model": self.model,
            "messages": build_messages(history, prompt),
            **(config or GenerationConfig()).as_request_kwargs(),
        }

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(**request),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("Completion timed out after %ss model=%s", self.timeout_seconds, self.model)
            raise UpstreamUnavailableError(
                self.default_retry_after,
                message="AI service timed out",
                detail=f"completion exceeded {self.timeout_seconds}s",
            ) from exc
        except openai.RateLimitError as exc:
            retry_after = self._retry_after(exc)
            logger.warning("Completion rate limited model=%s retry_after=%s", self.model, retry_after)
            raise UpstreamRateLimitedError(retry_after, detail=str(exc)) from exc
        except openai.APIStatusError as exc:
            logger.error("Completion rejected status=%s model=%s: %s", exc.status_code, self.model, exc)
            raise UpstreamUnavailableError(self._retry_after(exc), detail=str(exc)) from exc
        except openai.APIConnectionError as exc:
            logger.error("Completion connection failed model=%s: %s", self.model, exc)
            raise UpstreamUnavailableError(self.default_retry_after, detail=str(exc)) from exc

        text = self._extract_text(response)
        if not text.strip():
            raise EmptyCompletionError()
        return text

    def _retry_after(self, exc: openai.APIStatusError) -> int:
        response = getattr(exc, "response", None)
        raw = response.headers.get("retry-after") if response is not None else None
        try:
            seconds = int(float(raw))
        except (TypeError, ValueError):
            return self.default_retry_after
        return max(seconds, 1)

    @staticmethod
    def _extract_text(response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        message = getattr(choices[0], "message", None)
        return str(getattr(message, "content", None) or "")


@lru_cache(maxsize=1)
def get_completion_client() -> CompletionClient:
    """FastAPI dependency returning the process-wide completion client."""
    client = get_openai_client(
        (settings.GEMINI_API_KEY or "").strip(),
        base_url=settings.GEMINI_BASE_URL,
        timeout=settings.COMPLETION_TIMEOUT_SECONDS,
    )
    return CompletionClient(
        client,
        model=settings.GEMINI_MODEL_NAME,
        timeout_seconds=settings.COMPLETION_TIMEOUT_SECONDS,
        default_retry_after=settings.UPSTREAM_RETRY_AFTER_SECONDS,
    )
