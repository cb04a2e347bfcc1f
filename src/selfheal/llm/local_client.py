from __future__ import annotations

from typing import Any

import httpx

from ..types import TokenUsage
from .base import Completion, CompletionBackend
from .prompts import LOCAL_FORMAT_HINT


class LocalBackend(CompletionBackend):
    """Ollama chat backend for offline healing; no API key involved."""

    name = "local"

    def __init__(
        self,
        model: str = "qwen3:4b",
        *,
        host: str = "http://127.0.0.1:11434",
        timeout_s: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(model, host, timeout_s=timeout_s, transport=transport)

    async def complete(self, system_prompt: str, user_content: str, output_schema: dict[str, Any]) -> Completion:
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": f"{system_prompt}\n\n{LOCAL_FORMAT_HINT}"},
                {"role": "user", "content": user_content},
            ],
            "format": output_schema or "json",
            "stream": False,
            "options": {"temperature": 0},
        }
        data = await self._post("/api/chat", payload)

        token_usage = None
        if data.get("prompt_eval_count") is not None:
            token_usage = TokenUsage.from_counts(data.get("prompt_eval_count"), data.get("eval_count"))

        content = (data.get("message") or {}).get("content")
        return Completion(text=content or None, token_usage=token_usage)
