from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence, Union

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from ..browser.candidates import collect_candidates
from ..browser.locators import build_locator, format_strategy, wait_for_ready, wait_for_stable
from ..config import Settings
from ..errors import ConfigurationError, HealContext, HealingFailed, SelfHealError
from ..llm import CompletionBackend, create_backend, with_retry
from ..llm.prompts import SYSTEM_PROMPT, build_user_content
from ..logging import ensure_logging, set_heal_context
from ..types import HEAL_PLAN_JSON_SCHEMA, SETTLING_ACTIONS, HealEvent, PlanResult, Strategy, TokenUsage
from .cache import CacheManager, cache_key
from .events import EventLog
from .picker import pick_strategy
from .ranking import DEFAULT_WEIGHTS, RankingWeights, rank_candidates

logger = logging.getLogger(__name__)

Target = Union[Locator, str]
Perform = Callable[[Locator], Awaitable[Any]]

_NO_TEST = object()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Healer:
    """Resolves one described element per call, healing the declared locator when needed.

    The stages run in a fixed order: the declared locator, the strategy cache,
    then a fresh plan from the completion backend. Each ``resolve`` call either
    performs the action once or raises.
    """

    def __init__(
        self,
        page: Page,
        settings: Settings,
        backend: CompletionBackend | None = None,
        *,
        cache: CacheManager | None = None,
        events: EventLog | None = None,
        weights: RankingWeights = DEFAULT_WEIGHTS,
    ) -> None:
        self.page = page
        self.settings = settings
        self.backend = backend
        self.cache = cache or CacheManager(settings.cache_file)
        self.events = events or EventLog(settings.report_file)
        self.weights = weights
        self.test_name = settings.test_name
        self._backend_problem = "Healing disabled or API key not set"
        self._banner_shown_for: object = _NO_TEST

        if self.backend is None and settings.enabled:
            try:
                self.backend = create_backend(settings)
            except ConfigurationError as exc:
                logger.warning("Self-healing is enabled but no backend is available: %s", exc)
                self._backend_problem = str(exc)

    def set_test_name(self, name: str | None) -> None:
        self.test_name = name
        set_heal_context(test_name=name)

    async def resolve(
        self,
        action: str,
        target: Target,
        description: str,
        perform: Perform,
        *,
        force: bool = False,
    ) -> None:
        ts = _utc_now()
        key = cache_key(action, self.page.url, description)
        declared = self._declared_locator(target)
        original_error: Exception | None = None

        if declared is not None:
            try:
                await wait_for_ready(declared, self.settings.probe_timeout_ms)
                await perform(declared)
                return
            except PlaywrightError as exc:
                if not self.settings.enabled:
                    raise
                original_error = exc

        if declared is None and not self.settings.enabled:
            logger.info("Healing disabled; running native %s for %r", action, description)
            await perform(self.page.locator(target if isinstance(target, str) else ""))
            return

        self._show_banner_once()
        if declared is None:
            logger.info("AI detect %s %r", action.upper(), description)
        else:
            logger.info("%s %r failed: %s", action.upper(), description, _first_line(original_error))

        if await self._try_cached(ts, key, action, description, perform):
            return

        context = HealContext(
            action=action,
            description=description,
            url=self.page.url,
            original_error=str(original_error) if original_error is not None else None,
        )
        token_usage: TokenUsage | None = None
        try:
            result = await self._ask_backend(action, description, context)
            token_usage = result.token_usage
            if result.plan is None or not result.plan.candidates:
                raise HealingFailed("AI returned no suggestions", context)

            picked = await pick_strategy(
                self.page,
                result.plan,
                max_tries=self.settings.max_ai_tries,
                skip_visibility=force,
            )
            context.strategies_tried = picked.strategies_tried
            choice, strategy = picked.choice, picked.strategy
            if choice is None or strategy is None:
                raise HealingFailed("Could not find a matching element", context)

            await self.cache.put(key, strategy, description, self.test_name)
            locator = build_locator(self.page, strategy)
            if not force:
                await wait_for_ready(locator, self.settings.timeout_ms)
            await perform(locator)
            if action in SETTLING_ACTIONS:
                await wait_for_stable(self.page)
        except HealingFailed as exc:
            await self._record(ts, key, action, description, success=False, error=exc.reason, token_usage=token_usage)
            logger.error("Could not heal %r: %s", description, exc.reason)
            self._log_token_usage(token_usage)
            raise
        except Exception as exc:
            message = _first_line(exc) or exc.__class__.__name__
            await self._record(
                ts, key, action, description, success=False, error=f"Heal failed: {message}", token_usage=token_usage
            )
            logger.error("Could not heal %r: %s", description, message)
            self._log_token_usage(token_usage)
            raise HealingFailed(message, context) from exc

        await self._record(
            ts,
            key,
            action,
            description,
            success=True,
            confidence=choice.confidence,
            why=choice.why,
            strategy=strategy,
            token_usage=token_usage,
        )
        logger.info(
            "Healed %r -> %s",
            description,
            format_strategy(strategy),
            extra={"confidence": choice.confidence, "why": choice.why},
        )
        self._log_token_usage(token_usage)

    def _declared_locator(self, target: Target) -> Locator | None:
        if isinstance(target, str):
            return self.page.locator(target) if target else None
        return target

    def _show_banner_once(self) -> None:
        if self._banner_shown_for is not _NO_TEST and self._banner_shown_for == self.test_name:
            return
        self._banner_shown_for = self.test_name
        if self.test_name:
            logger.info("Self-healing engaged for test %r", self.test_name)
        else:
            logger.info("Self-healing engaged")

    async def _try_cached(self, ts: str, key: str, action: str, description: str, perform: Perform) -> bool:
        entry = await self.cache.get(key)
        if entry is None:
            return False

        try:
            strategy = entry.to_strategy()
            locator = build_locator(self.page, strategy)
            await wait_for_ready(locator, self.settings.timeout_ms)
            await perform(locator)
            if action in SETTLING_ACTIONS:
                await wait_for_stable(self.page)
        except (PlaywrightError, SelfHealError) as exc:
            logger.info("Cached locator for %r is stale, re-healing: %s", description, _first_line(exc))
            return False

        await self._record(ts, key, action, description, used="cache", success=True, strategy=strategy)
        logger.info("Used cached locator for %r: %s", description, format_strategy(strategy))
        return True

    async def _ask_backend(self, action: str, description: str, context: HealContext) -> PlanResult:
        backend = self.backend
        if backend is None:
            raise ConfigurationError(self._backend_problem)

        collected = await collect_candidates(self.page, action, self.settings.max_candidates)
        ranked = rank_candidates(collected, description, self.settings.rank_cap, self.weights)
        context.candidates_analyzed = len(ranked)
        logger.info("Analyzing %d of %d candidates for %r", len(ranked), len(collected), description)

        user_content = build_user_content(self.page.url, action, description, [item.to_wire() for item in ranked])
        return await with_retry(
            lambda: backend.generate_plan(SYSTEM_PROMPT, user_content, HEAL_PLAN_JSON_SCHEMA),
            max_retries=self.settings.max_retries,
            base_delay=self.settings.retry_base_delay_s,
        )

    async def _record(
        self,
        ts: str,
        key: str,
        action: str,
        description: str,
        *,
        success: bool,
        used: str = "healed",
        confidence: float | None = None,
        why: str | None = None,
        strategy: Strategy | None = None,
        token_usage: TokenUsage | None = None,
        error: str | None = None,
    ) -> None:
        event = HealEvent(
            ts=ts,
            url=self.page.url,
            key=key,
            action=action,
            context=description,
            used=used,  # type: ignore[arg-type]
            success=success,
            test_name=self.test_name,
            confidence=confidence,
            why=why,
            strategy=strategy.to_payload() if strategy is not None else None,
            token_usage=token_usage.to_wire() if token_usage is not None else None,
            error=error,
        )
        await self.events.append(event)

    @staticmethod
    def _log_token_usage(token_usage: TokenUsage | None) -> None:
        if token_usage is None:
            return
        logger.info(
            "Token usage: %d in / %d out / %d total",
            token_usage.input_tokens,
            token_usage.output_tokens,
            token_usage.total_tokens,
            extra={"token_usage": token_usage.to_wire()},
        )


def _first_line(exc: BaseException | None) -> str:
    if exc is None:
        return ""
    text = str(exc).strip()
    return text.splitlines()[0] if text else ""


class HealingPage:
    """Self-healing actions bound to one Playwright page.

    Unknown attributes are forwarded to the wrapped page, so ``goto`` and
    friends keep working on the wrapper.
    """

    def __init__(self, healer: Healer) -> None:
        self.healer = healer

    @property
    def page(self) -> Page:
        return self.healer.page

    @property
    def _timeout(self) -> int:
        return self.healer.settings.timeout_ms

    def __getattr__(self, name: str) -> Any:
        return getattr(self.healer.page, name)

    def set_test_name(self, name: str | None) -> None:
        self.healer.set_test_name(name)

    async def click(self, target: Target, description: str, force: bool = False) -> None:
        async def perform(locator: Locator) -> None:
            if force:
                await locator.dispatch_event("click")
            else:
                await locator.click(timeout=self._timeout)

        await self.healer.resolve("click", target, description, perform, force=force)

    async def fill(self, target: Target, description: str, value: str) -> None:
        async def perform(locator: Locator) -> None:
            await locator.fill(value, timeout=self._timeout)

        await self.healer.resolve("fill", target, description, perform)

    async def select_option(self, target: Target, description: str, value: str | Sequence[str]) -> None:
        async def perform(locator: Locator) -> None:
            await locator.select_option(value, timeout=self._timeout)

        await self.healer.resolve("select_option", target, description, perform)

    async def dblclick(self, target: Target, description: str) -> None:
        async def perform(locator: Locator) -> None:
            await locator.dblclick(timeout=self._timeout)

        await self.healer.resolve("dblclick", target, description, perform)

    async def check(self, target: Target, description: str) -> None:
        async def perform(locator: Locator) -> None:
            await locator.check(timeout=self._timeout)

        await self.healer.resolve("check", target, description, perform)

    async def uncheck(self, target: Target, description: str) -> None:
        async def perform(locator: Locator) -> None:
            await locator.uncheck(timeout=self._timeout)

        await self.healer.resolve("uncheck", target, description, perform)

    async def hover(self, target: Target, description: str) -> None:
        async def perform(locator: Locator) -> None:
            await locator.hover(timeout=self._timeout)

        await self.healer.resolve("hover", target, description, perform)

    async def focus(self, target: Target, description: str) -> None:
        async def perform(locator: Locator) -> None:
            await locator.focus(timeout=self._timeout)

        await self.healer.resolve("focus", target, description, perform)

    def locator(self, selector: str, description: str) -> "HealingLocator":
        return HealingLocator(self, self.page.locator(selector), description)

    async def aclose(self) -> None:
        if self.healer.backend is not None:
            await self.healer.backend.close()


class HealingLocator:
    """A selector paired with its human description, healed on every action."""

    def __init__(self, owner: HealingPage, locator: Locator, description: str) -> None:
        self._owner = owner
        self.locator = locator
        self.description = description

    async def click(self, force: bool = False) -> None:
        await self._owner.click(self.locator, self.description, force=force)

    async def fill(self, value: str) -> None:
        await self._owner.fill(self.locator, self.description, value)

    async def select_option(self, value: str | Sequence[str]) -> None:
        await self._owner.select_option(self.locator, self.description, value)

    async def dblclick(self) -> None:
        await self._owner.dblclick(self.locator, self.description)

    async def check(self) -> None:
        await self._owner.check(self.locator, self.description)

    async def uncheck(self) -> None:
        await self._owner.uncheck(self.locator, self.description)

    async def hover(self) -> None:
        await self._owner.hover(self.locator, self.description)

    async def focus(self) -> None:
        await self._owner.focus(self.locator, self.description)


def with_healing(
    page: Page,
    settings: Settings | None = None,
    backend: CompletionBackend | None = None,
) -> HealingPage:
    """Wrap ``page`` with self-healing actions.

    Create one wrapper per page and reuse it; the wrapper owns the in-memory
    cache. The page itself is left untouched.
    """

    settings = settings or Settings.from_env()
    ensure_logging(settings.log_level)
    healer = Healer(page, settings, backend)
    if settings.test_name:
        set_heal_context(test_name=settings.test_name)
    return HealingPage(healer)
