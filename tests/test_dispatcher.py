import json
import time

import pytest
from playwright.sync_api import Error as PlaywrightError

from agent.dispatcher import ActionDispatcher
from agent.dom_sub_agent import DomSubAgent
from core.errors import BrowserCrashed
from core.models import ToolCallState
from infrastructure.resolvers import DirectResolver
from infrastructure.tools import ToolExecutor
from tests.conftest import PNG_BYTES, FakeCompletion

BROWSER_CALLS = ("goto", "go_back", "evaluate", "eval_on_selector_all", "click", "fill", "screenshot")


@pytest.mark.parametrize(
    "name, arguments",
    [
        ("wait", {"seconds": "two"}),
        ("wait", {"seconds": float("inf")}),
        ("navigate", {}),
        ("act", {"action": "Click sign in"}),
        ("teleport", {"to": "mars"}),
    ],
)
def test_invalid_parameters_have_no_side_effect(dispatcher, page, name, arguments):
    result = dispatcher.dispatch(name, arguments)
    assert not result.success
    assert result.error_type == "InvalidParameters"
    assert result.state == ToolCallState.FAILED
    assert page.calls == []


def test_wait_blocks_for_the_requested_time(dispatcher):
    start = time.monotonic()
    result = dispatcher.dispatch("wait", {"seconds": 2})
    elapsed = time.monotonic() - start
    assert result.success
    assert result.message == "Waited for 2 seconds"
    assert 2 <= elapsed < 2.5


def test_navigate_success(dispatcher, page):
    result = dispatcher.dispatch("navigate", {"url": "https://example.com"})
    assert result.success
    assert result.state == ToolCallState.DONE
    assert result.message == "Navigated to: https://example.com"
    assert page.url == "https://example.com"


def test_slow_navigation_times_out(dispatcher, page):
    page.goto_delay = 1.0
    start = time.monotonic()
    result = dispatcher.dispatch("navigate", {"url": "https://slow.example.com"})
    assert time.monotonic() - start < 0.9
    assert not result.success
    assert result.state == ToolCallState.TIMED_OUT
    assert result.error_type == "TimedOut"
    assert "timed out" in result.message


@pytest.mark.parametrize("has_iframe", [True, False])
def test_act_routes_to_exactly_one_resolver(dispatcher, page, action_llm, visual, has_iframe):
    page.elements = [{"agentId": "7-0", "tag": "button", "text": "Sign in", "location": "0x0"}]
    if not has_iframe:
        action_llm.replies.append('{"element_id": 0, "method": "click"}')

    result = dispatcher.dispatch("act", {"action": "Click sign in", "hasIframe": has_iframe})

    assert result.success
    assert result.message == "Action performed: Click sign in"
    clicks = [call for call in page.calls if call[0] == "click"]
    if has_iframe:
        assert len(visual.calls) == 1
        assert visual.calls[0][2] is None
        assert clicks == []
        assert action_llm.prompts == []
        assert result.data["resolver"] == "visual"
    else:
        assert visual.calls == []
        assert len(clicks) == 1
        assert result.data["resolver"] == "direct"


def test_act_failure_is_reported_not_raised(dispatcher, action_llm, page):
    action_llm.replies.append('{"element_id": null, "method": "none"}')
    result = dispatcher.dispatch("act", {"action": "Click the unicorn", "hasIframe": False})
    assert not result.success
    assert result.error_type == "ActionFailed"
    assert result.state == ToolCallState.FAILED


def test_calls_after_close_are_rejected(dispatcher, session, page):
    assert dispatcher.dispatch("close", {}).success
    assert session.closed
    assert session.context.close_calls == 1

    for name, arguments in [("navigate", {"url": "https://example.com"}), ("screenshot", {}), ("close", {})]:
        result = dispatcher.dispatch(name, arguments)
        assert not result.success
        assert result.error_type == "SessionClosed"
    assert [call for call in page.calls if call[0] in BROWSER_CALLS] == []
    assert session.context.close_calls == 1


def test_lost_page_raises_browser_crashed(dispatcher, page):
    page.closed = True
    page.goto_error = PlaywrightError("Target page, context or browser has been closed")
    with pytest.raises(BrowserCrashed):
        dispatcher.dispatch("navigate", {"url": "https://example.com"})


def test_detect_iframe(dispatcher, page):
    result = dispatcher.dispatch("detect_iframe", {})
    assert json.loads(result.message) is False

    page.iframes = [{"index": 0, "src": "https://checkout.example.com", "title": ""}]
    result = dispatcher.dispatch("detect_iframe", {})
    assert result.data is True
    assert result.content[0].text == "true"


def test_screenshot_returns_an_image_block(session, engine, visual, tmp_path):
    executor = ToolExecutor(session, engine, DirectResolver(engine), visual, screenshot_dir=tmp_path / "shots")
    result = ActionDispatcher(session, executor).dispatch("screenshot", {})
    assert result.success
    assert result.payload == PNG_BYTES
    assert result.content[0].type == "image"
    saved = list((tmp_path / "shots").iterdir())
    assert len(saved) == 1
    assert saved[0].read_bytes() == PNG_BYTES


def test_extract_returns_cleaned_text(dispatcher, page):
    page.body_text = "Example Domain\n.hero { color: red; }\n\nMore information..."
    result = dispatcher.dispatch("extract", {})
    assert result.payload == "Example Domain\nMore information..."
    assert result.content[0].text == "Extracted content:\nExample Domain\nMore information..."


def test_extract_with_instruction_uses_the_sub_agent(session, engine, visual, page):
    llm = FakeCompletion(["Example Domain"])
    executor = ToolExecutor(session, engine, DirectResolver(engine), visual, dom_agent=DomSubAgent(llm))
    page.body_text = "Example Domain\nMore information..."

    result = ActionDispatcher(session, executor).dispatch("extract", {"searchInstruction": "top headline"})

    assert result.payload == "Example Domain"
    assert "top headline" in llm.prompts[0]["prompt"]


def test_extract_with_instruction_but_no_sub_agent_fails(dispatcher, page):
    result = dispatcher.dispatch("extract", {"searchInstruction": "top headline"})
    assert not result.success
    assert result.error_type == "ActionFailed"


def test_back_without_history(dispatcher):
    result = dispatcher.dispatch("back", {})
    assert result.success
    assert result.message == "No history to go back"


def test_echo_masks_variable_values(session, executor, action_llm, page):
    lines = []
    page.elements = [{"agentId": "7-0", "tag": "input", "text": "", "location": "0x0"}]
    action_llm.replies.append('{"element_id": 0, "method": "fill", "argument": "%pw%"}')
    ActionDispatcher(session, executor, echo=lines.append).dispatch(
        "act", {"action": "Type %pw% in the password box", "variables": {"pw": "hunter2"}, "hasIframe": False}
    )
    assert lines[0].startswith("[ACT] ")
    assert "hunter2" not in "\n".join(lines)
    assert page.calls[-1][2] == ("hunter2",)


def test_call_state_transitions(session, executor):
    seen = []
    dispatcher = ActionDispatcher(session, executor, echo=lambda line: seen.append(dispatcher.last_call.state))

    result = dispatcher.dispatch("navigate", {"url": "https://example.com"}, call_id="toolu_1")

    assert seen[0] == ToolCallState.RUNNING
    assert dispatcher.last_call.id == "toolu_1"
    assert dispatcher.last_call.state == result.state == ToolCallState.DONE

    dispatcher.dispatch("wait", {})
    assert dispatcher.last_call.state == ToolCallState.FAILED


def test_unexpected_handler_error_is_a_failed_result(session, engine, visual, tmp_path):
    not_a_dir = tmp_path / "shots"
    not_a_dir.write_text("taken")
    executor = ToolExecutor(session, engine, DirectResolver(engine), visual, screenshot_dir=not_a_dir)

    result = ActionDispatcher(session, executor).dispatch("screenshot", {})

    assert not result.success
    assert result.error_type == "ActionFailed"
    assert result.state == ToolCallState.FAILED
    assert "FileExistsError" in result.message
    assert result.content[0].type == "text"


def test_any_tool_error_keeps_the_session_usable(dispatcher, engine, page, monkeypatch):
    def broken_page_text():
        raise KeyError("innerText")

    monkeypatch.setattr(engine, "page_text", broken_page_text)
    result = dispatcher.dispatch("extract", {})
    assert not result.success
    assert result.error_type == "ActionFailed"

    assert dispatcher.dispatch("navigate", {"url": "https://example.com"}).success
