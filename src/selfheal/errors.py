from __future__ import annotations

from dataclasses import dataclass, field


class SelfHealError(Exception):
    """Base class for self-healing specific exceptions."""


class ConfigurationError(SelfHealError):
    """Raised when settings are missing or inconsistent."""


class StrategyValidationError(SelfHealError):
    """Raised when a strategy is unknown or missing its required field."""

    def __init__(self, message: str, *, problem: str | None = None) -> None:
        super().__init__(message)
        self.problem = problem or message


class ProviderError(SelfHealError):
    """Raised when a completion backend fails to produce a response."""

    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class ParsingError(ProviderError):
    """Raised when model output cannot be repaired into a heal plan."""


@dataclass(slots=True)
class RejectedStrategy:
    type: str
    reason: str


@dataclass(slots=True)
class HealContext:
    action: str
    description: str
    url: str
    candidates_analyzed: int = 0
    strategies_tried: list[RejectedStrategy] = field(default_factory=list)
    original_error: str | None = None


class HealingFailed(SelfHealError):
    """Raised when every fallback stage is exhausted for one resolution."""

    def __init__(self, message: str, context: HealContext) -> None:
        self.reason = message
        self.context = context
        super().__init__(self.format_message(message, context))

    @staticmethod
    def format_message(message: str, context: HealContext) -> str:
        lines = [
            f"Self-healing failed: {message}",
            f"  action: {context.action.upper()}",
            f"  looking for: {context.description!r}",
            f"  page url: {context.url}",
            f"  candidates analyzed: {context.candidates_analyzed}",
        ]
        if context.strategies_tried:
            lines.append("  strategies tried:")
            for index, rejected in enumerate(context.strategies_tried, start=1):
                lines.append(f"    {index}. [{rejected.type}] {rejected.reason}")
        else:
            lines.append("  no strategies were returned by the model")
        if context.original_error:
            first_line = context.original_error.strip().splitlines()[0] if context.original_error.strip() else ""
            lines.append(f"  original error: {first_line}")
        return "\n".join(lines)
