from __future__ import annotations

from pathlib import Path

import httpx
import orjson
import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from helpers import DummyPage, Element, ScriptedBackend, plan

from selfheal.browser.locators import build_testid_selector
from selfheal.config import Settings
from selfheal.core.cache import cache_key
from selfheal.core.healer import with_healing
from selfheal.errors import ConfigurationError, HealingFailed, ProviderError
from selfheal.llm import OpenAIBackend

PLAN_TEXT = '{"candidates":[{"strategy":{"type":"testid","value":"submit"},"confidence":0.92,"why":"data-testid"}]}'
KEY = "click::https://shop.example.com/login::Submit button"


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        enabled=True,
        cache_file=tmp_path / "healed.json",
        report_file=tmp_path / "events.jsonl",
        retry_base_delay_s=0,
    )


def _events(settings: Settings) -> list[dict]:
    if not settings.report_file.exists():
        return []
    return [orjson.loads(line) for line in settings.report_file.read_bytes().splitlines()]


def _cache(settings: Settings) -> dict:
    return orjson.loads(settings.cache_file.read_bytes())


@pytest.mark.asyncio
async def test_declared_locator_is_used_without_cache_or_backend(settings: Settings) -> None:
    page = DummyPage()
    page.elements["#submit"] = Element()
    backend = ScriptedBackend()
    healing = with_healing(page, settings, backend)

    await healing.click("#submit", "Submit button")

    assert page.performed == [("click", "#submit")]
    assert backend.calls == 0
    assert not settings.cache_file.exists()
    assert _events(settings) == []
    assert page.calls[1][2]["timeout"] == 1000


@pytest.mark.asyncio
async def test_disabled_healing_runs_native_action_for_empty_selector(settings: Settings) -> None:
    settings.enabled = False
    page = DummyPage()
    page.elements[""] = Element()
    backend = ScriptedBackend()
    healing = with_healing(page, settings, backend)

    await healing.fill("", "Email input", "a@b.c")

    assert page.performed == [("fill", "")]
    assert backend.calls == 0
    assert _events(settings) == []


@pytest.mark.asyncio
async def test_disabled_healing_reraises_original_error(settings: Settings) -> None:
    settings.enabled = False
    page = DummyPage()
    backend = ScriptedBackend()
    healing = with_healing(page, settings, backend)

    with pytest.raises(PlaywrightTimeoutError):
        await healing.click("#missing", "Submit button")

    assert backend.calls == 0
    assert page.calls[1][2]["timeout"] == settings.timeout_ms


@pytest.mark.asyncio
async def test_stale_cache_entry_is_replaced_after_one_round_trip(settings: Settings) -> None:
    settings.cache_file.write_bytes(
        orjson.dumps({KEY: {"type": "css", "selector": "#old-submit", "context": "Submit button"}})
    )
    page = DummyPage()
    page.elements[build_testid_selector("submit")] = Element()
    backend = ScriptedBackend(script=[plan({"type": "testid", "value": "submit"})])
    healing = with_healing(page, settings, backend)

    await healing.click("#renamed", "Submit button")

    assert backend.calls == 1
    assert page.performed == [("click", build_testid_selector("submit"))]
    assert _cache(settings)[KEY]["type"] == "testid"
    assert _cache(settings)[KEY]["value"] == "submit"
    assert "selector" not in _cache(settings)[KEY]
    assert "wait_for_load_state" in page.call_names()

    events = _events(settings)
    assert len(events) == 1
    assert events[0]["used"] == "healed" and events[0]["success"] is True
    assert events[0]["confidence"] == 0.9
    assert events[0]["strategy"] == {"type": "testid", "value": "submit"}
    assert events[0]["tokenUsage"] == {"inputTokens": 120, "outputTokens": 30, "totalTokens": 150}


@pytest.mark.asyncio
async def test_cache_hit_skips_backend(settings: Settings) -> None:
    page = DummyPage()
    page.elements["label:Email"] = Element()
    backend = ScriptedBackend(script=[plan({"type": "label", "text": "Email"})])
    healing = with_healing(page, settings, backend)

    await healing.fill("", "Email input", "first@example.com")
    await healing.fill("", "Email input", "second@example.com")

    assert backend.calls == 1
    assert page.performed == [("fill", "label:Email"), ("fill", "label:Email")]
    assert [event["used"] for event in _events(settings)] == ["healed", "cache"]


@pytest.mark.asyncio
async def test_cache_is_shared_through_the_file(settings: Settings) -> None:
    page = DummyPage()
    page.elements["label:Email"] = Element()
    await with_healing(page, settings, ScriptedBackend(script=[plan({"type": "label", "text": "Email"})])).fill(
        "", "Email input", "x"
    )

    other_backend = ScriptedBackend()
    await with_healing(page, settings, other_backend).fill("", "Email input", "y")

    assert other_backend.calls == 0


@pytest.mark.asyncio
async def test_rate_limited_backend_is_retried_until_plan_arrives(settings: Settings) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls <= 2:
            return httpx.Response(429, json={"error": {"message": "rate limited"}})
        return httpx.Response(200, json={"choices": [{"message": {"content": PLAN_TEXT}}]})

    page = DummyPage()
    page.elements[build_testid_selector("submit")] = Element()
    backend = OpenAIBackend("sk-test", transport=httpx.MockTransport(handler))
    healing = with_healing(page, settings, backend)

    await healing.click("", "Submit button")

    assert calls == 3
    assert page.performed == [("click", build_testid_selector("submit"))]


@pytest.mark.asyncio
async def test_unauthorized_backend_fails_immediately(settings: Settings) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(401, json={"error": {"message": "invalid api key"}})

    page = DummyPage()
    backend = OpenAIBackend("sk-bad", transport=httpx.MockTransport(handler))
    healing = with_healing(page, settings, backend)

    with pytest.raises(HealingFailed) as excinfo:
        await healing.click("#gone", "Submit button")

    assert calls == 1
    assert isinstance(excinfo.value.__cause__, ProviderError)
    assert excinfo.value.__cause__.status_code == 401
    assert excinfo.value.context.original_error is not None
    events = _events(settings)
    assert len(events) == 1 and events[0]["success"] is False
    assert events[0]["error"].startswith("Heal failed:")


@pytest.mark.asyncio
async def test_ranked_candidates_are_capped(settings: Settings) -> None:
    page = DummyPage()
    page.candidates = [{"tag": "button", "txt": f"Item {i}"} for i in range(45)] + [
        {"tag": "input", "ph": "Email address"} for _ in range(5)
    ]
    page.elements["placeholder:Email address"] = Element()
    backend = ScriptedBackend(script=[plan({"type": "placeholder", "text": "Email address"})])
    healing = with_healing(page, settings, backend)

    await healing.fill("", "Email input field", "a@b.c")

    sent = orjson.loads(backend.last_user_content)
    assert sent["contextName"] == "Email input field"
    assert len(sent["candidates"]) == 40
    assert sent["candidates"][:5] == [{"tag": "input", "ph": "Email address"}] * 5


@pytest.mark.asyncio
async def test_no_plan_reports_candidate_count(settings: Settings) -> None:
    page = DummyPage()
    page.candidates = [{"tag": "button", "txt": "Go"}, {"tag": "a", "txt": "Home"}]
    healing = with_healing(page, settings, ScriptedBackend(script=[None]))

    with pytest.raises(HealingFailed) as excinfo:
        await healing.click("", "Submit button")

    assert excinfo.value.reason == "AI returned no suggestions"
    assert excinfo.value.context.candidates_analyzed == 2
    assert excinfo.value.context.strategies_tried == []
    assert "no strategies were returned" in str(excinfo.value)
    assert _events(settings)[0]["error"] == "AI returned no suggestions"


@pytest.mark.asyncio
async def test_unmatched_plan_lists_every_rejected_strategy(settings: Settings) -> None:
    page = DummyPage()
    page.elements["text:Submit"] = Element(count=3)
    backend = ScriptedBackend(
        script=[plan({"type": "testid", "value": "submit"}, {"type": "text", "text": "Submit"}, {"type": "css"})]
    )
    healing = with_healing(page, settings, backend)

    with pytest.raises(HealingFailed) as excinfo:
        await healing.click("#old", "Submit button")

    message = str(excinfo.value)
    assert excinfo.value.reason == "Could not find a matching element"
    assert "1. [testid] element not found" in message
    assert "2. [text] matched 3 elements (must be unique)" in message
    assert "3. [css] missing 'selector'" in message
    assert "CLICK" in message and "'Submit button'" in message
    assert "original error: Timeout" in message
    assert not settings.cache_file.exists()


@pytest.mark.asyncio
async def test_missing_api_key_surfaces_as_healing_failure(settings: Settings, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AI_API_KEY", raising=False)
    page = DummyPage()
    healing = with_healing(page, settings)

    with pytest.raises(HealingFailed) as excinfo:
        await healing.click("", "Submit button")

    assert isinstance(excinfo.value.__cause__, ConfigurationError)


@pytest.mark.asyncio
async def test_force_click_dispatches_event_on_hidden_element(settings: Settings) -> None:
    page = DummyPage()
    page.elements["role:button:Delete"] = Element(count=1, visible=False)
    backend = ScriptedBackend(script=[plan({"type": "role", "role": "button", "name": "Delete"})])
    healing = with_healing(page, settings, backend)

    await healing.click("", "Delete button", force=True)

    assert page.performed == [("dispatch_event", "role:button:Delete")]


@pytest.mark.asyncio
async def test_check_uses_fill_candidates_and_does_not_settle(settings: Settings) -> None:
    page = DummyPage()
    page.elements["label:Remember me"] = Element()
    backend = ScriptedBackend(script=[plan({"type": "label", "text": "Remember me"})])
    healing = with_healing(page, settings, backend)

    await healing.check("", "Remember me checkbox")

    evaluate_arg = next(args[0] for name, args, _ in page.calls if name == "evaluate")
    assert evaluate_arg["selector"].startswith("input,textarea")
    assert "wait_for_load_state" not in page.call_names()
    assert page.performed == [("check", "label:Remember me")]


@pytest.mark.asyncio
async def test_healing_locator_binds_selector_and_description(settings: Settings) -> None:
    page = DummyPage()
    page.elements["#country"] = Element()
    healing = with_healing(page, settings, ScriptedBackend())

    country = healing.locator("#country", "Country dropdown")
    await country.select_option("NL")
    await country.hover()

    assert page.performed == [("select_option", "#country"), ("hover", "#country")]


@pytest.mark.asyncio
async def test_test_name_is_recorded_in_cache_and_events(settings: Settings) -> None:
    page = DummyPage()
    page.elements["text:Next"] = Element()
    healing = with_healing(page, settings, ScriptedBackend(script=[plan({"type": "text", "text": "Next"})]))
    healing.set_test_name("wizard advances")

    await healing.click("", "Next step")

    key = cache_key("click", page.url, "Next step")
    assert _cache(settings)[key]["testName"] == "wizard advances"
    assert _events(settings)[0]["testName"] == "wizard advances"


def test_wrapper_forwards_unknown_attributes_to_page(settings: Settings) -> None:
    page = DummyPage()
    healing = with_healing(page, settings, ScriptedBackend())

    assert healing.url == page.url
    assert healing.page is page


@pytest.mark.asyncio
async def test_unusable_cache_entry_is_treated_as_stale(settings: Settings) -> None:
    settings.cache_file.write_bytes(orjson.dumps({KEY: {"type": "css", "selector": "  ", "context": "Submit button"}}))
    page = DummyPage()
    page.elements[build_testid_selector("submit")] = Element()
    backend = ScriptedBackend(script=[plan({"type": "testid", "value": "submit"})])
    healing = with_healing(page, settings, backend)

    await healing.click("#renamed", "Submit button")

    assert backend.calls == 1
    assert page.performed == [("click", build_testid_selector("submit"))]
    assert _cache(settings)[KEY]["value"] == "submit"
    assert [event["used"] for event in _events(settings)] == ["healed"]
