from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from ..types import Candidate


@dataclass(frozen=True, slots=True)
class RankingWeights:
    """Relevance weights; only their relative ordering matters."""

    full_match: int = 15
    field_in_description: int = 8
    token: int = 3
    tag_hint: int = 5
    role: int = 5
    test_id: int = 2
    visible: int = 1


DEFAULT_WEIGHTS = RankingWeights()

STOPWORDS = frozenset(
    {
        "the",
        "and",
        "for",
        "with",
        "into",
        "from",
        "this",
        "that",
        "your",
        "field",
        "input",
        "button",
        "link",
        "box",
        "element",
        "click",
        "enter",
        "type",
        "area",
    }
)

# Description keyword -> tags it most likely refers to.
TAG_HINTS: dict[str, frozenset[str]] = {
    "button": frozenset({"button", "input", "summary"}),
    "submit": frozenset({"button", "input"}),
    "link": frozenset({"a"}),
    "input": frozenset({"input", "textarea"}),
    "field": frozenset({"input", "textarea", "select"}),
    "box": frozenset({"input", "textarea"}),
    "textarea": frozenset({"textarea"}),
    "dropdown": frozenset({"select"}),
    "select": frozenset({"select"}),
    "checkbox": frozenset({"input", "label"}),
    "radio": frozenset({"input", "label"}),
    "image": frozenset({"img", "input"}),
}

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def _tokens(description: str) -> list[str]:
    return [token for token in _TOKEN_RE.findall(description.lower()) if len(token) >= 3 and token not in STOPWORDS]


def _hinted_tags(description: str) -> set[str]:
    tags: set[str] = set()
    for word in _TOKEN_RE.findall(description.lower()):
        tags |= TAG_HINTS.get(word, frozenset())
    return tags


def score_candidate(candidate: Candidate, description: str, weights: RankingWeights = DEFAULT_WEIGHTS) -> int:
    desc = description.strip().lower()
    fields = [value.lower() for value in candidate.text_fields()]
    score = 0

    if desc and any(desc in value for value in fields):
        score += weights.full_match
    if any(len(value) >= 3 and value in desc for value in fields):
        score += weights.field_in_description

    haystack = " ".join(fields)
    score += weights.token * sum(1 for token in _tokens(desc) if token in haystack)

    if candidate.tag.lower() in _hinted_tags(desc):
        score += weights.tag_hint
    if candidate.role and candidate.role.lower() in desc:
        score += weights.role
    if candidate.test_id:
        score += weights.test_id
    if candidate.visible:
        score += weights.visible
    return score


def rank_candidates(
    candidates: Sequence[Candidate],
    description: str,
    limit: int,
    weights: RankingWeights = DEFAULT_WEIGHTS,
) -> list[Candidate]:
    """Keep the ``limit`` candidates most relevant to ``description``.

    Lists already within the limit are returned untouched, in DOM order.
    Otherwise candidates are sorted by descending score; ties keep their
    original relative order.
    """

    if len(candidates) <= limit:
        return list(candidates)
    scored = [(score_candidate(candidate, description, weights), candidate) for candidate in candidates]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [candidate for _, candidate in scored[:limit]]
