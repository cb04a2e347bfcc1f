from __future__ import annotations

import logging
from dataclasses import dataclass, field

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from ..browser.locators import build_locator
from ..errors import RejectedStrategy, StrategyValidationError
from ..types import HealPlan, PlanCandidate, Strategy

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PickResult:
    choice: PlanCandidate | None
    strategy: Strategy | None = None
    strategies_tried: list[RejectedStrategy] = field(default_factory=list)


async def pick_strategy(
    page: Page,
    plan: HealPlan,
    max_tries: int = 4,
    skip_visibility: bool = False,
) -> PickResult:
    """Return the first plan candidate that resolves to exactly one usable element.

    Each candidate's wire strategy is converted to its strict form here, once;
    the winner is returned in that form. Rejected candidates are collected with
    the reason they were dropped so the caller can report them when nothing
    survives.
    """

    tried: list[RejectedStrategy] = []
    for candidate in plan.candidates[:max_tries]:
        kind = candidate.strategy.type
        try:
            strategy = candidate.strategy.to_strategy()
        except StrategyValidationError as exc:
            tried.append(RejectedStrategy(kind, exc.problem))
            continue

        try:
            locator = build_locator(page, strategy)
            count = await locator.count()
            if count == 0:
                tried.append(RejectedStrategy(kind, "element not found"))
                continue
            if count > 1:
                tried.append(RejectedStrategy(kind, f"matched {count} elements (must be unique)"))
                continue
            if not skip_visibility and not await locator.first.is_visible():
                tried.append(RejectedStrategy(kind, "element exists but not visible"))
                continue
        except PlaywrightError as exc:
            tried.append(RejectedStrategy(kind, f"error: {exc}"))
            continue

        return PickResult(choice=candidate, strategy=strategy, strategies_tried=tried)

    for rejected in tried:
        logger.debug("Rejected %s strategy: %s", rejected.type, rejected.reason)
    return PickResult(choice=None, strategies_tried=tried)
