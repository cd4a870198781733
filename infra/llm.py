"""Language model capability: role-tagged messages in, text out."""
from __future__ import annotations

import time
from typing import Dict, List, Protocol

import structlog
from openai import AsyncOpenAI
from openai import APIConnectionError, APIStatusError, RateLimitError

from api.shared.exceptions import ModelUnavailableError

log = structlog.get_logger("chat_relay.llm")

ChatMessages = List[Dict[str, str]]


class ChatModel(Protocol):
    async def complete(
        self, messages: ChatMessages, *, max_tokens: int, temperature: float
    ) -> str:
        ...


class OpenAIChatModel:
    """Chat completions against any OpenAI-compatible endpoint.

    The client's built-in retries are disabled: a failed call surfaces once as
    ``ModelUnavailableError`` and callers decide what to do with it.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        model: str = "gpt-4o-mini",
        timeout: float = 60.0,
    ):
        self.model = model
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    async def complete(
        self, messages: ChatMessages, *, max_tokens: int, temperature: float
    ) -> str:
        start = time.time()
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except (APIConnectionError, APIStatusError, RateLimitError) as e:
            log.error(
                "llm.complete_failed",
                model=self.model,
                latency_ms=int((time.time() - start) * 1000),
                error=str(e),
            )
            raise ModelUnavailableError(str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        usage = response.usage
        log.info(
            "llm.complete",
            model=self.model,
            latency_ms=int((time.time() - start) * 1000),
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
        )
        return (content or "").strip()
