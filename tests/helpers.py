from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from selfheal.errors import ProviderError
from selfheal.llm.base import Completion, CompletionBackend
from selfheal.types import HealPlan, PlanResult, TokenUsage


@dataclass
class Element:
    count: int = 1
    visible: bool = True


@dataclass
class DummyLocator:
    page: "DummyPage"
    selector: str

    @property
    def first(self) -> "DummyLocator":
        return self

    @property
    def element(self) -> Element:
        return self.page.elements.get(self.selector, Element(count=0, visible=False))

    async def count(self) -> int:
        self.page.calls.append(("locator.count", (self.selector,), {}))
        return self.element.count

    async def is_visible(self) -> bool:
        self.page.calls.append(("locator.is_visible", (self.selector,), {}))
        return self.element.count > 0 and self.element.visible

    async def wait_for(self, state: str, timeout: int) -> None:
        self.page.calls.append(("locator.wait_for", (self.selector,), {"state": state, "timeout": timeout}))
        if self.element.count == 0 or not self.element.visible:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {self.selector}")

    async def _act(self, name: str, *args: Any, **kwargs: Any) -> None:
        self.page.calls.append((f"locator.{name}", (self.selector, *args), kwargs))
        if self.element.count == 0:
            raise PlaywrightTimeoutError(f"Timeout exceeded during {name} on {self.selector}")
        self.page.performed.append((name, self.selector))

    async def click(self, timeout: int) -> None:
        await self._act("click", timeout=timeout)

    async def dblclick(self, timeout: int) -> None:
        await self._act("dblclick", timeout=timeout)

    async def fill(self, value: str, timeout: int) -> None:
        await self._act("fill", value, timeout=timeout)

    async def select_option(self, value: Any, timeout: int) -> None:
        await self._act("select_option", value, timeout=timeout)

    async def check(self, timeout: int) -> None:
        await self._act("check", timeout=timeout)

    async def uncheck(self, timeout: int) -> None:
        await self._act("uncheck", timeout=timeout)

    async def hover(self, timeout: int) -> None:
        await self._act("hover", timeout=timeout)

    async def focus(self, timeout: int) -> None:
        await self._act("focus", timeout=timeout)

    async def dispatch_event(self, event_type: str) -> None:
        await self._act("dispatch_event", event_type)


class DummyPage:
    """Minimal stand-in for ``playwright.async_api.Page``.

    ``elements`` maps locator keys to what the page contains: plain selectors
    for ``locator``, ``role:<role>:<name>`` for roles and ``<kind>:<text>`` for
    the other ``get_by_*`` helpers.
    """

    def __init__(self, url: str = "https://shop.example.com/login?next=/cart#top") -> None:
        self.url = url
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self.performed: list[tuple[str, str]] = []
        self.elements: dict[str, Element] = {}
        self.candidates: list[dict[str, Any]] = []

    def _locator(self, key: str) -> DummyLocator:
        return DummyLocator(self, key)

    def locator(self, selector: str) -> DummyLocator:
        self.calls.append(("locator", (selector,), {}))
        return self._locator(selector)

    def get_by_role(self, role: str, name: str | None = None, exact: bool | None = None) -> DummyLocator:
        self.calls.append(("get_by_role", (role,), {"name": name, "exact": exact}))
        return self._locator(f"role:{role}:{name or ''}")

    def get_by_label(self, text: str, exact: bool | None = None) -> DummyLocator:
        self.calls.append(("get_by_label", (text,), {"exact": exact}))
        return self._locator(f"label:{text}")

    def get_by_placeholder(self, text: str, exact: bool | None = None) -> DummyLocator:
        self.calls.append(("get_by_placeholder", (text,), {"exact": exact}))
        return self._locator(f"placeholder:{text}")

    def get_by_text(self, text: str, exact: bool | None = None) -> DummyLocator:
        self.calls.append(("get_by_text", (text,), {"exact": exact}))
        return self._locator(f"text:{text}")

    def get_by_alt_text(self, text: str, exact: bool | None = None) -> DummyLocator:
        self.calls.append(("get_by_alt_text", (text,), {"exact": exact}))
        return self._locator(f"alt:{text}")

    def get_by_title(self, text: str, exact: bool | None = None) -> DummyLocator:
        self.calls.append(("get_by_title", (text,), {"exact": exact}))
        return self._locator(f"title:{text}")

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.calls.append(("evaluate", (arg,), {}))
        limit = (arg or {}).get("limit", len(self.candidates))
        return self.candidates[:limit]

    async def wait_for_load_state(self, state: str = "load") -> None:
        self.calls.append(("wait_for_load_state", (state,), {}))

    def call_names(self) -> list[str]:
        return [name for name, _, _ in self.calls]


@dataclass
class ScriptedBackend(CompletionBackend):
    """Backend returning queued plans or raising queued errors, one per call."""

    script: list[Any] = field(default_factory=list)
    calls: int = 0
    name = "scripted"

    def __post_init__(self) -> None:
        self._model = "scripted-model"

    async def complete(self, system_prompt: str, user_content: str, output_schema: dict[str, Any]) -> Completion:
        raise NotImplementedError

    async def generate_plan(self, system_prompt: str, user_content: str, output_schema: dict[str, Any]) -> PlanResult:
        self.calls += 1
        self.last_user_content = user_content
        item = self.script.pop(0) if self.script else None
        if isinstance(item, Exception):
            raise item
        if item is None:
            return PlanResult(plan=None)
        plan = item if isinstance(item, HealPlan) else HealPlan.model_validate(item)
        return PlanResult(plan=plan, token_usage=TokenUsage.from_counts(120, 30))

    async def close(self) -> None:
        return None


def plan(*strategies: dict[str, Any], confidence: float = 0.9) -> HealPlan:
    return HealPlan.model_validate(
        {"candidates": [{"strategy": strategy, "confidence": confidence, "why": "matches"} for strategy in strategies]}
    )


def rate_limited() -> ProviderError:
    return ProviderError("openai request failed with status 429: slow down", status_code=429)
