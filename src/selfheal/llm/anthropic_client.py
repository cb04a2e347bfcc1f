from __future__ import annotations

from typing import Any

import httpx

from ..types import TokenUsage
from .base import Completion, CompletionBackend
from .prompts import schema_instructions


class AnthropicBackend(CompletionBackend):
    """Anthropic Messages API backend; the schema travels in the system prompt."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        *,
        base_url: str = "https://api.anthropic.com/v1",
        max_tokens: int = 4096,
        timeout_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            model,
            base_url,
            headers={
                "x-api-key": api_key,
                "anthropic-version": "2023-06-01",
            },
            timeout_s=timeout_s,
            transport=transport,
        )
        self._max_tokens = max_tokens

    async def complete(self, system_prompt: str, user_content: str, output_schema: dict[str, Any]) -> Completion:
        payload = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "temperature": 0,
            "system": f"{system_prompt}\n\n{schema_instructions(output_schema)}",
            "messages": [{"role": "user", "content": user_content}],
        }
        data = await self._post("/messages", payload)

        usage = data.get("usage")
        token_usage = None
        if usage:
            token_usage = TokenUsage.from_counts(usage.get("input_tokens"), usage.get("output_tokens"))

        blocks = data.get("content") or []
        text = "".join(
            block.get("text", "") for block in blocks if isinstance(block, dict) and block.get("type") == "text"
        )
        return Completion(text=text or None, token_usage=token_usage)
