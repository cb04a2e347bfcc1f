from __future__ import annotations

from .candidates import CANDIDATE_SELECTORS, TEST_ID_ATTRIBUTES, collect_candidates
from .locators import build_locator, build_testid_selector, css_string, format_strategy, wait_for_ready, wait_for_stable

__all__ = [
    "CANDIDATE_SELECTORS",
    "TEST_ID_ATTRIBUTES",
    "build_locator",
    "build_testid_selector",
    "collect_candidates",
    "css_string",
    "format_strategy",
    "wait_for_ready",
    "wait_for_stable",
]
