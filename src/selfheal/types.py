from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from .errors import StrategyValidationError

ActionKind = Literal["click", "fill", "dblclick", "check", "uncheck", "hover", "focus", "select_option"]
CandidateSource = Literal["click", "fill"]

# Actions without their own candidate set borrow another action's.
CANDIDATE_SOURCE: dict[str, CandidateSource] = {
    "click": "click",
    "dblclick": "click",
    "hover": "click",
    "focus": "click",
    "fill": "fill",
    "check": "fill",
    "uncheck": "fill",
    "select_option": "fill",
}

# Actions after which the page may navigate or re-render.
SETTLING_ACTIONS = frozenset({"click", "dblclick", "select_option"})

StrategyType = Literal["testid", "role", "label", "placeholder", "text", "altText", "title", "css"]

STRATEGY_TYPES: tuple[str, ...] = ("testid", "role", "label", "placeholder", "text", "altText", "title", "css")

REQUIRED_FIELD: dict[str, str] = {
    "testid": "value",
    "role": "role",
    "label": "text",
    "placeholder": "text",
    "text": "text",
    "altText": "text",
    "title": "text",
    "css": "selector",
}


class StrategyPayload(BaseModel):
    """Permissive wire form of a strategy as returned by a model."""

    type: str
    value: str | None = None
    selector: str | None = None
    role: str | None = None
    name: str | None = None
    text: str | None = None
    exact: bool | None = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for known in STRATEGY_TYPES:
                if known.lower() == lowered:
                    return known
        return value

    def to_strategy(self) -> "Strategy":
        """Validate and convert to the strict variant.

        Raises ``StrategyValidationError`` when the kind is unknown or its
        required field is empty.
        """

        problem = validate_strategy(self)
        if problem:
            raise StrategyValidationError(f"{self.type} strategy is unusable: {problem}", problem=problem)
        return STRATEGY_ADAPTER.validate_python(self.model_dump(exclude_none=True))


class _StrictStrategy(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class TestIdStrategy(_StrictStrategy):
    type: Literal["testid"] = "testid"
    value: str = Field(min_length=1)


class RoleStrategy(_StrictStrategy):
    type: Literal["role"] = "role"
    role: str = Field(min_length=1)
    name: str | None = None
    exact: bool | None = None


class LabelStrategy(_StrictStrategy):
    type: Literal["label"] = "label"
    text: str = Field(min_length=1)
    exact: bool | None = None


class PlaceholderStrategy(_StrictStrategy):
    type: Literal["placeholder"] = "placeholder"
    text: str = Field(min_length=1)
    exact: bool | None = None


class TextStrategy(_StrictStrategy):
    type: Literal["text"] = "text"
    text: str = Field(min_length=1)
    exact: bool | None = None


class AltTextStrategy(_StrictStrategy):
    type: Literal["altText"] = "altText"
    text: str = Field(min_length=1)
    exact: bool | None = None


class TitleStrategy(_StrictStrategy):
    type: Literal["title"] = "title"
    text: str = Field(min_length=1)
    exact: bool | None = None


class CssStrategy(_StrictStrategy):
    type: Literal["css"] = "css"
    selector: str = Field(min_length=1)


Strategy = Annotated[
    Union[
        TestIdStrategy,
        RoleStrategy,
        LabelStrategy,
        PlaceholderStrategy,
        TextStrategy,
        AltTextStrategy,
        TitleStrategy,
        CssStrategy,
    ],
    Field(discriminator="type"),
]

STRATEGY_ADAPTER: TypeAdapter[Strategy] = TypeAdapter(Strategy)


def validate_strategy(strategy: StrategyPayload | _StrictStrategy) -> str | None:
    """Return a human readable problem when the kind's required field is empty."""

    required = REQUIRED_FIELD.get(strategy.type)
    if required is None:
        return f"unknown strategy type '{strategy.type}'"
    value = getattr(strategy, required, None)
    if not isinstance(value, str) or not value.strip():
        return f"missing '{required}'"
    return None


class Candidate(BaseModel):
    """Sparse snapshot of one DOM element offered to the model."""

    tag: str
    role: str | None = None
    aria_label: str | None = Field(default=None, alias="aria")
    name: str | None = None
    placeholder: str | None = Field(default=None, alias="ph")
    input_type: str | None = Field(default=None, alias="type")
    href: str | None = None
    alt: str | None = None
    title: str | None = None
    html_for: str | None = Field(default=None, alias="for")
    id: str | None = None
    classes: str | None = Field(default=None, alias="cls")
    text: str | None = Field(default=None, alias="txt")
    test_id: str | None = Field(default=None, alias="tid")
    hidden: bool | None = Field(default=None, alias="hid")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def visible(self) -> bool:
        return not self.hidden

    def text_fields(self) -> list[str]:
        values = (
            self.text,
            self.aria_label,
            self.placeholder,
            self.name,
            self.title,
            self.alt,
            self.test_id,
            self.id,
            self.html_for,
        )
        return [value for value in values if value]

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PlanCandidate(BaseModel):
    strategy: StrategyPayload
    confidence: float = 0.0
    why: str = ""

    model_config = ConfigDict(extra="ignore")

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        if value is None:
            return 0.0
        return min(max(float(value), 0.0), 1.0)

    @field_validator("why", mode="before")
    @classmethod
    def _coerce_why(cls, value: Any) -> str:
        return "" if value is None else str(value)


class HealPlan(BaseModel):
    candidates: list[PlanCandidate]


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(cls, input_tokens: int | None, output_tokens: int | None, total_tokens: int | None = None) -> "TokenUsage":
        inputs = input_tokens or 0
        outputs = output_tokens or 0
        return cls(input_tokens=inputs, output_tokens=outputs, total_tokens=total_tokens or inputs + outputs)

    def to_wire(self) -> dict[str, int]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
        }


class PlanResult(BaseModel):
    plan: HealPlan | None = None
    token_usage: TokenUsage | None = None


class HealEvent(BaseModel):
    """One record of the append-only heal event log."""

    ts: str
    url: str
    key: str
    action: str
    context: str
    used: Literal["cache", "healed"]
    success: bool
    test_name: str | None = Field(default=None, alias="testName")
    confidence: float | None = None
    why: str | None = None
    strategy: dict[str, Any] | None = None
    token_usage: dict[str, int] | None = Field(default=None, alias="tokenUsage")
    error: str | None = None

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


HEAL_PLAN_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "candidates": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "strategy": {
                        "type": "object",
                        "properties": {
                            "type": {"type": "string", "enum": list(STRATEGY_TYPES)},
                            "value": {"type": ["string", "null"]},
                            "selector": {"type": ["string", "null"]},
                            "role": {"type": ["string", "null"]},
                            "name": {"type": ["string", "null"]},
                            "text": {"type": ["string", "null"]},
                            "exact": {"type": ["boolean", "null"]},
                        },
                        "required": ["type", "value", "selector", "role", "name", "text", "exact"],
                        "additionalProperties": False,
                    },
                    "confidence": {"type": "number"},
                    "why": {"type": "string"},
                },
                "required": ["strategy", "confidence", "why"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["candidates"],
    "additionalProperties": False,
}
