from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from ..errors import ConfigurationError
from .anthropic_client import AnthropicBackend
from .base import Completion, CompletionBackend
from .google_client import GoogleBackend
from .local_client import LocalBackend
from .openai_client import OpenAIBackend
from .retry import is_retryable_error, with_retry

if TYPE_CHECKING:  # pragma: no cover
    from ..config import Settings


def create_backend(settings: "Settings", transport: httpx.AsyncBaseTransport | None = None) -> CompletionBackend:
    """Build the backend named by ``settings.provider``."""

    model = settings.resolved_model
    timeout_s = settings.request_timeout_s
    if settings.provider == "local":
        return LocalBackend(model, host=settings.local_host, timeout_s=timeout_s, transport=transport)
    if not settings.api_key:
        raise ConfigurationError(f"AI_API_KEY is required when AI_PROVIDER={settings.provider}")
    if settings.provider == "openai":
        return OpenAIBackend(settings.api_key, model, timeout_s=timeout_s, transport=transport)
    if settings.provider == "anthropic":
        return AnthropicBackend(settings.api_key, model, timeout_s=timeout_s, transport=transport)
    if settings.provider == "google":
        return GoogleBackend(settings.api_key, model, timeout_s=timeout_s, transport=transport)
    raise ConfigurationError(f"Unsupported AI provider: {settings.provider}")


__all__ = [
    "AnthropicBackend",
    "Completion",
    "CompletionBackend",
    "GoogleBackend",
    "LocalBackend",
    "OpenAIBackend",
    "create_backend",
    "is_retryable_error",
    "with_retry",
]
