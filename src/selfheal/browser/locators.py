from __future__ import annotations

from playwright.async_api import Locator, Page

from ..types import (
    AltTextStrategy,
    CssStrategy,
    LabelStrategy,
    PlaceholderStrategy,
    RoleStrategy,
    Strategy,
    TestIdStrategy,
    TextStrategy,
    TitleStrategy,
)
from .candidates import TEST_ID_ATTRIBUTES


def css_string(value: str) -> str:
    """Quote ``value`` as a CSS string literal; non-ASCII text is kept as is."""

    escaped = []
    for char in value:
        if char in ('"', "\\"):
            escaped.append("\\" + char)
        elif char in "\n\r\f" or ord(char) < 0x20 or ord(char) == 0x7F:
            escaped.append(f"\\{ord(char):x} ")
        else:
            escaped.append(char)
    return '"' + "".join(escaped) + '"'


def build_testid_selector(value: str) -> str:
    quoted = css_string(value)
    return ",".join(f"[{attribute}={quoted}]" for attribute in TEST_ID_ATTRIBUTES)


def build_locator(page: Page, strategy: Strategy) -> Locator:
    """Translate a validated strategy into a Playwright locator on ``page``."""

    if isinstance(strategy, TestIdStrategy):
        return page.locator(build_testid_selector(strategy.value))
    if isinstance(strategy, RoleStrategy):
        return page.get_by_role(strategy.role, name=strategy.name, exact=strategy.exact)  # type: ignore[arg-type]
    if isinstance(strategy, LabelStrategy):
        return page.get_by_label(strategy.text, exact=strategy.exact)
    if isinstance(strategy, PlaceholderStrategy):
        return page.get_by_placeholder(strategy.text, exact=strategy.exact)
    if isinstance(strategy, TextStrategy):
        return page.get_by_text(strategy.text, exact=strategy.exact)
    if isinstance(strategy, AltTextStrategy):
        return page.get_by_alt_text(strategy.text, exact=strategy.exact)
    if isinstance(strategy, TitleStrategy):
        return page.get_by_title(strategy.text, exact=strategy.exact)
    if isinstance(strategy, CssStrategy):
        return page.locator(strategy.selector)
    raise TypeError(f"Unsupported strategy: {strategy!r}")


def format_strategy(strategy: Strategy) -> str:
    """Render a strategy the way it would be written in a Playwright test."""

    if isinstance(strategy, TestIdStrategy):
        return f'get_by_test_id("{strategy.value}")'
    if isinstance(strategy, RoleStrategy):
        if strategy.name:
            return f'get_by_role("{strategy.role}", name="{strategy.name}")'
        return f'get_by_role("{strategy.role}")'
    if isinstance(strategy, LabelStrategy):
        return f'get_by_label("{strategy.text}")'
    if isinstance(strategy, PlaceholderStrategy):
        return f'get_by_placeholder("{strategy.text}")'
    if isinstance(strategy, TextStrategy):
        return f'get_by_text("{strategy.text}")'
    if isinstance(strategy, AltTextStrategy):
        return f'get_by_alt_text("{strategy.text}")'
    if isinstance(strategy, TitleStrategy):
        return f'get_by_title("{strategy.text}")'
    if isinstance(strategy, CssStrategy):
        return f'locator("{strategy.selector}")'
    return repr(strategy)


async def wait_for_ready(locator: Locator, timeout_ms: int) -> None:
    await locator.wait_for(state="visible", timeout=timeout_ms)


async def wait_for_stable(page: Page) -> None:
    await page.wait_for_load_state("domcontentloaded")
