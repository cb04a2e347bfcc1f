from __future__ import annotations

import logging
from typing import Any

import httpx

from ..types import TokenUsage
from .base import Completion, CompletionBackend

logger = logging.getLogger(__name__)


class OpenAIBackend(CompletionBackend):
    """OpenAI Chat Completions backend using strict JSON schema output."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        *,
        base_url: str = "https://api.openai.com/v1",
        timeout_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            model,
            base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout_s=timeout_s,
            transport=transport,
        )

    async def complete(self, system_prompt: str, user_content: str, output_schema: dict[str, Any]) -> Completion:
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": "HealPlan", "strict": True, "schema": output_schema},
            },
        }
        data = await self._post("/chat/completions", payload)

        usage = data.get("usage")
        token_usage = None
        if usage:
            token_usage = TokenUsage.from_counts(
                usage.get("prompt_tokens"),
                usage.get("completion_tokens"),
                usage.get("total_tokens"),
            )

        choices = data.get("choices") or []
        if not choices:
            return Completion(text=None, token_usage=token_usage)
        message = choices[0].get("message") or {}
        content = message.get("content")
        if isinstance(content, list):
            content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
        if not content and message.get("refusal"):
            logger.warning("OpenAI refused the heal request: %s", message["refusal"])
        return Completion(text=content or None, token_usage=token_usage)
