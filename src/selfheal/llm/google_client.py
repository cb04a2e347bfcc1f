from __future__ import annotations

from typing import Any

import httpx

from ..types import TokenUsage
from .base import Completion, CompletionBackend
from .prompts import schema_instructions


class GoogleBackend(CompletionBackend):
    """Gemini ``generateContent`` backend forcing a JSON response."""

    name = "google"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        *,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            model,
            base_url,
            headers={"x-goog-api-key": api_key},
            timeout_s=timeout_s,
            transport=transport,
        )

    async def complete(self, system_prompt: str, user_content: str, output_schema: dict[str, Any]) -> Completion:
        combined = f"{system_prompt}\n\n---\n\n{user_content}\n\n{schema_instructions(output_schema)}"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": combined}]}],
            "generationConfig": {
                "temperature": 0,
                "responseMimeType": "application/json",
            },
        }
        data = await self._post(f"/models/{self._model}:generateContent", payload)

        usage = data.get("usageMetadata")
        token_usage = None
        if usage:
            token_usage = TokenUsage.from_counts(
                usage.get("promptTokenCount"),
                usage.get("candidatesTokenCount"),
                usage.get("totalTokenCount"),
            )

        candidates = data.get("candidates") or []
        if not candidates:
            return Completion(text=None, token_usage=token_usage)
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict)).strip()
        return Completion(text=text or None, token_usage=token_usage)
