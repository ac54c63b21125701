"""
Chat Completion Client

Async client for OpenAI-compatible chat completion endpoints
(Ollama's /v1 API, vLLM, OpenAI itself).
Every call runs under a hard deadline; there are no retries.
"""

import asyncio
import math
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from config import get_settings
from core.logging_config import llm_logger as logger


class LLMRequestError(RuntimeError):
    """The endpoint answered with an error or an unusable body."""


class LLMTimeoutError(LLMRequestError):
    """The call did not finish before its deadline."""


def estimate_tokens(text: str) -> int:
    """Rough token count for endpoints that report no usage."""
    return math.ceil(len(text) / 4)


@dataclass
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    estimated: bool = False

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class ChatCompletion:
    """Assistant content plus accounting for one call."""

    content: str
    model: str
    usage: TokenUsage
    duration_ms: float = 0.0
    raw: dict[str, Any] = field(default_factory=dict)


class ChatCompletionClient:
    """
    Async client for the chat completions API.

    Features:
    - Connection pooling
    - Bearer auth only when a key is configured
    - JSON response mode
    - Per-call deadline that cancels the in-flight request
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings().llm
        self.base_url = (base_url or settings.base_url).rstrip("/")
        self.model = model or settings.model
        self.api_key = settings.api_key if api_key is None else api_key
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key and self.api_key.strip():
            headers["Authorization"] = f"Bearer {self.api_key.strip()}"
        return headers

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                transport=self._transport,
                # Deadlines are enforced per call
                timeout=None,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def complete_json(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.3,
        timeout: float = 5.0,
        max_tokens: Optional[int] = None,
    ) -> ChatCompletion:
        """
        Request a JSON-object completion.

        Args:
            messages: List of {"role": "system"|"user"|"assistant", "content": "..."}
            temperature: Sampling temperature
            timeout: Deadline in seconds for the whole call
            max_tokens: Optional completion cap

        Returns:
            The completion with its (reported or estimated) token usage

        Raises:
            LLMTimeoutError: deadline exceeded, request cancelled
            LLMRequestError: non-2xx status, empty content or transport error
        """
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "response_format": {"type": "json_object"},
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        start = time.perf_counter()
        try:
            data = await asyncio.wait_for(self._post(payload), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise LLMTimeoutError(f"LLM call exceeded {timeout:.1f}s deadline") from e
        duration_ms = (time.perf_counter() - start) * 1000

        content = self._extract_content(data)
        usage = self._extract_usage(data, messages, content)

        logger.info(
            f"LLM call to {self.model} took {duration_ms:.0f}ms: "
            f"prompt_tokens={usage.prompt_tokens}, "
            f"completion_tokens={usage.completion_tokens}, "
            f"total_tokens={usage.total_tokens}"
            f"{' (estimated)' if usage.estimated else ''}"
        )

        return ChatCompletion(
            content=content,
            model=str(data.get("model") or self.model),
            usage=usage,
            duration_ms=duration_ms,
            raw=data,
        )

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        client = await self.get_client()

        try:
            response = await client.post("/chat/completions", json=payload)
        except httpx.HTTPError as e:
            raise LLMRequestError(f"LLM request failed: {e}") from e

        if not response.is_success:
            raise LLMRequestError(
                f"LLM endpoint returned {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise LLMRequestError("LLM endpoint returned a non-JSON body") from e

        if not isinstance(data, dict):
            raise LLMRequestError("LLM endpoint returned an unexpected body")
        return data

    def _extract_content(self, data: dict[str, Any]) -> str:
        choices = data.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            raise LLMRequestError("LLM response has no choices")

        message = choices[0].get("message") or {}
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise LLMRequestError("LLM response content is empty")
        return content

    def _extract_usage(
        self,
        data: dict[str, Any],
        messages: list[dict[str, str]],
        content: str,
    ) -> TokenUsage:
        usage = data.get("usage")
        if isinstance(usage, dict):
            prompt = usage.get("prompt_tokens")
            completion = usage.get("completion_tokens")
            if isinstance(prompt, int) and isinstance(completion, int):
                return TokenUsage(prompt_tokens=prompt, completion_tokens=completion)

        prompt_text = "".join(m.get("content", "") for m in messages)
        return TokenUsage(
            prompt_tokens=estimate_tokens(prompt_text),
            completion_tokens=estimate_tokens(content),
            estimated=True,
        )


# Global instance
chat_client = ChatCompletionClient()
