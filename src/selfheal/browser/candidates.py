from __future__ import annotations

import logging

from playwright.async_api import Page

from ..types import CANDIDATE_SOURCE, Candidate

logger = logging.getLogger(__name__)

TEST_ID_ATTRIBUTES: tuple[str, ...] = ("data-testid", "data-test", "data-test-id", "data-qa", "data-cy")

_TEST_ID_SELECTORS = [f"[{attribute}]" for attribute in TEST_ID_ATTRIBUTES]

CANDIDATE_SELECTORS: dict[str, tuple[str, ...]] = {
    "click": (
        "button",
        "a",
        "summary",
        "select",
        "input[type='button']",
        "input[type='submit']",
        "input[type='reset']",
        "input[type='image']",
        "[onclick]",
        "[role='button']",
        "[role='link']",
        "[role='menuitem']",
        "[role='tab']",
        "[role='option']",
        "[role='switch']",
        "[role='checkbox']",
        "[role='combobox']",
        *_TEST_ID_SELECTORS,
    ),
    "fill": (
        "input",
        "textarea",
        "select",
        "label[for]",
        "[contenteditable='true']",
        "[role='textbox']",
        "[role='searchbox']",
        "[role='combobox']",
        "[role='checkbox']",
        "[role='radio']",
        "[role='switch']",
        "[role='spinbutton']",
    ),
}

COLLECT_CANDIDATES_SCRIPT = r"""
({ selector, limit, testAttributes }) => {
  const nodes = Array.from(document.querySelectorAll(selector)).slice(0, limit);

  const clip = (value, max) => {
    if (value === null || value === undefined) return null;
    const normalised = String(value).replace(/\s+/g, " ").trim();
    return normalised ? normalised.slice(0, max) : null;
  };

  const testId = (node) => {
    for (const attribute of testAttributes) {
      const value = node.getAttribute(attribute);
      if (value) return value;
    }
    return null;
  };

  const isHidden = (node) => {
    const style = window.getComputedStyle(node);
    if (style.display === "none" || style.visibility === "hidden") return true;
    const rect = node.getBoundingClientRect();
    return rect.width <= 0 || rect.height <= 0;
  };

  return nodes.map((node) => {
    const item = {
      tag: node.tagName.toLowerCase(),
      role: clip(node.getAttribute("role"), 40),
      aria: clip(node.getAttribute("aria-label"), 80),
      name: clip(node.getAttribute("name"), 80),
      ph: clip(node.getAttribute("placeholder"), 80),
      type: clip(node.getAttribute("type"), 20),
      href: clip(node.getAttribute("href"), 120),
      alt: clip(node.getAttribute("alt"), 80),
      title: clip(node.getAttribute("title"), 80),
      for: clip(node.getAttribute("for"), 80),
      id: clip(node.id, 80),
      cls: clip(Array.from(node.classList).slice(0, 3).join(" "), 80),
      txt: clip(node.innerText || node.textContent, 80),
      tid: clip(testId(node), 80),
      hid: isHidden(node) ? true : null,
    };
    for (const key of Object.keys(item)) {
      if (item[key] === null) delete item[key];
    }
    return item;
  });
}
"""


def selector_for(action: str) -> str:
    source = CANDIDATE_SOURCE.get(action, "click")
    return ",".join(CANDIDATE_SELECTORS[source])


async def collect_candidates(page: Page, action: str, max_candidates: int = 80) -> list[Candidate]:
    """Sample the page's interactive elements relevant to ``action``, in DOM order."""

    raw_items = await page.evaluate(
        COLLECT_CANDIDATES_SCRIPT,
        {
            "selector": selector_for(action),
            "limit": max_candidates,
            "testAttributes": list(TEST_ID_ATTRIBUTES),
        },
    )
    candidates: list[Candidate] = []
    for item in (raw_items or [])[:max_candidates]:
        if not isinstance(item, dict) or not item.get("tag"):
            continue
        candidates.append(Candidate.model_validate(item))
    logger.debug("Collected %d candidates for %s", len(candidates), action)
    return candidates
