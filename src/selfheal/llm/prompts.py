from __future__ import annotations

import json
from typing import Any

import orjson

SYSTEM_PROMPT = "\n".join(
    [
        "You are a Playwright locator expert. Given candidate elements sampled from a page, "
        "identify the one matching the description in `contextName`.",
        "Return up to 3 strategy alternatives, best first. Prefer: testid > role+name > label > placeholder "
        "> text > altText > title > css.",
        "Candidate keys: tag=tagName, tid=test id, aria=aria-label, ph=placeholder, txt=visible text, "
        "alt=alt, title=title, for=htmlFor, cls=first classes, hid=hidden. id/name/role/type/href as named.",
        "Strategy types: testid(value), role(role, name, exact optional), label(text), placeholder(text), "
        "text(text, exact optional), altText(text), title(text), css(selector). Never use XPath.",
        "For label/placeholder/text/altText/title the 'text' field is REQUIRED and must be the literal "
        "label, placeholder or text. testid needs 'value', css needs 'selector', role needs 'role'.",
        "Elements with hid:true may be CSS-hidden inputs (opacity 0) or offscreen; they are still valid "
        "targets when they match the description.",
        "confidence is a number between 0 and 1; why briefly explains the match.",
    ]
)

LOCAL_FORMAT_HINT = "\n".join(
    [
        "You MUST respond with ONLY valid JSON. No markdown, no code fences.",
        "Use this exact structure:",
        '{"candidates":[{"strategy":{"type":"testid","value":"submit-btn","selector":null,"role":null,'
        '"name":null,"text":null,"exact":null},"confidence":0.95,"why":"matches data-testid"}]}',
    ]
)


def build_user_content(url: str, action: str, description: str, candidates: list[dict[str, Any]]) -> str:
    """Compact JSON payload describing the page and the sampled candidates."""

    payload = {"url": url, "action": action, "contextName": description, "candidates": candidates}
    return orjson.dumps(payload).decode()


def schema_instructions(output_schema: dict[str, Any]) -> str:
    return "Respond with valid JSON matching this schema:\n" + json.dumps(output_schema, indent=2)
