from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import Any, ClassVar

import httpx

from ..errors import ParsingError, ProviderError
from ..repair import decode_plan
from ..types import PlanResult, TokenUsage

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Completion:
    """Raw text returned by a provider together with its token accounting."""

    text: str | None
    token_usage: TokenUsage | None = None


class CompletionBackend(abc.ABC):
    """A language model provider able to answer with a heal plan."""

    name: ClassVar[str] = "unknown"

    def __init__(
        self,
        model: str,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        timeout_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(30.0, read=timeout_s),
            transport=transport,
        )

    @property
    def model(self) -> str:
        return self._model

    @abc.abstractmethod
    async def complete(self, system_prompt: str, user_content: str, output_schema: dict[str, Any]) -> Completion:
        """Send one request in the provider's native shape and return its text."""

    async def generate_plan(
        self,
        system_prompt: str,
        user_content: str,
        output_schema: dict[str, Any],
    ) -> PlanResult:
        completion = await self.complete(system_prompt, user_content, output_schema)
        text = completion.text
        logger.debug(
            "%s responded with %d chars",
            self.name,
            len(text or ""),
            extra={"provider": self.name, "model": self._model},
        )
        if not text or not text.strip():
            return PlanResult(plan=None, token_usage=completion.token_usage)
        try:
            plan = decode_plan(text)
        except ParsingError:
            logger.warning("%s returned an unparseable heal plan: %.200s", self.name, text)
            raise
        return PlanResult(plan=plan, token_usage=completion.token_usage)

    async def _post(self, path: str, payload: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            detail = exc.response.text[:500]
            logger.error("%s request failed with status %s: %s", self.name, status, detail)
            raise ProviderError(
                f"{self.name} request failed with status {status}: {detail}",
                status_code=status,
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("%s request could not be completed: %s", self.name, exc)
            raise ProviderError(f"{self.name} request could not be completed: {exc!r}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"{self.name} returned a non-JSON body", status_code=response.status_code) from exc

    async def close(self) -> None:
        await self._client.aclose()
