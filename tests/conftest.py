import copy
import time
from pathlib import Path
from types import SimpleNamespace

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from core.models import AgentConfig
from infrastructure.automation import AutomationEngine
from infrastructure.browser_session import BrowserSession
from infrastructure.llm import CompletionClient
from infrastructure.resolvers import ActionResolver, DirectResolver
from infrastructure.tools import ToolExecutor
from agent.dispatcher import ActionDispatcher

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"


class FakeLocator:
    def __init__(self, page, selector):
        self.page = page
        self.selector = selector

    @property
    def first(self):
        return self

    def _record(self, method, *args, **kwargs):
        self.page.calls.append((method, self.selector, args, kwargs))

    def click(self, timeout=None):
        self._record("click", timeout=timeout)

    def fill(self, text, timeout=None):
        self._record("fill", text, timeout=timeout)

    def press(self, key, timeout=None):
        self._record("press", key, timeout=timeout)

    def select_option(self, value, timeout=None):
        self._record("select_option", value, timeout=timeout)


class FakeInput:
    def __init__(self, page, kind):
        self.page = page
        self.kind = kind

    def __getattr__(self, name):
        def record(*args, **kwargs):
            self.page.calls.append((f"{self.kind}.{name}", None, args, kwargs))

        return record


class FakePage:
    """Stand-in for a Playwright page that records every browser call."""

    def __init__(self, url="about:blank"):
        self.url = url
        self.calls = []
        self.body_text = ""
        self.elements = []
        self.iframes = []
        self.goto_delay = 0.0
        self.goto_error = None
        self.history = []
        self.closed = False
        self.mouse = FakeInput(self, "mouse")
        self.keyboard = FakeInput(self, "keyboard")

    def goto(self, url, timeout=None):
        self.calls.append(("goto", None, (url,), {"timeout": timeout}))
        if self.goto_error is not None:
            raise self.goto_error
        if timeout is not None and self.goto_delay * 1000 > timeout:
            time.sleep(timeout / 1000)
            raise PlaywrightTimeoutError(f"Timeout {timeout:.0f}ms exceeded.")
        time.sleep(self.goto_delay)
        self.history.append(self.url)
        self.url = url
        return SimpleNamespace(status=200)

    def go_back(self):
        self.calls.append(("go_back", None, (), {}))
        if not self.history:
            return None
        self.url = self.history.pop()
        return SimpleNamespace(status=200)

    def evaluate(self, script, arg=None):
        self.calls.append(("evaluate", None, (script, arg), {}))
        if "innerText" in script:
            return self.body_text
        return None

    def eval_on_selector_all(self, selector, script, *args):
        self.calls.append(("eval_on_selector_all", selector, args, {}))
        if selector == "iframe":
            return list(self.iframes)
        return list(self.elements)

    def locator(self, selector):
        return FakeLocator(self, selector)

    def screenshot(self, full_page=False, path=None):
        self.calls.append(("screenshot", None, (), {"full_page": full_page}))
        return PNG_BYTES

    def is_closed(self):
        return self.closed


class FakeContext:
    def __init__(self, page):
        self.pages = [page]
        self.close_calls = 0

    def close(self):
        self.close_calls += 1


class FakeCompletion(CompletionClient):
    provider = "fake"

    def __init__(self, replies=None):
        super().__init__("fake-model")
        self.replies = list(replies or [])
        self.prompts = []

    def complete(self, system, prompt, timeout=None, max_tokens=1024):
        self.prompts.append({"system": system, "prompt": prompt, "timeout": timeout})
        if not self.replies:
            raise AssertionError("unexpected completion call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class RecordingResolver(ActionResolver):
    def __init__(self, name, outcome="done"):
        self.name = name
        self.outcome = outcome
        self.calls = []

    def resolve(self, action, variables, deadline):
        self.calls.append((action, variables, deadline))
        return self.outcome


def text_block(text):
    return SimpleNamespace(type="text", text=text)


def tool_use(block_id, name, arguments):
    return SimpleNamespace(type="tool_use", id=block_id, name=name, input=arguments)


def model_message(*blocks, stop_reason="end_turn"):
    return SimpleNamespace(content=list(blocks), stop_reason=stop_reason)


class FakeStream:
    def __init__(self, message):
        self.message = message

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    @property
    def text_stream(self):
        for blk in self.message.content:
            if blk.type == "text":
                yield blk.text

    def get_final_message(self):
        return self.message


class FakeMessages:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def _next(self, kwargs):
        self.requests.append(copy.deepcopy(kwargs))
        if not self.responses:
            raise AssertionError("model called more times than scripted")
        return self.responses.pop(0)

    def stream(self, **kwargs):
        return FakeStream(self._next(kwargs))

    def create(self, **kwargs):
        return self._next(kwargs)


class FakeAnthropic:
    def __init__(self, responses):
        self.messages = FakeMessages(responses)


@pytest.fixture
def page():
    return FakePage()


@pytest.fixture
def session(page, tmp_path):
    session = BrowserSession(tmp_path / "profile", headless=True)
    session.context = FakeContext(page)
    session.page = page
    return session


@pytest.fixture
def action_llm():
    return FakeCompletion()


@pytest.fixture
def engine(session, action_llm):
    return AutomationEngine(session, action_llm)


@pytest.fixture
def visual():
    return RecordingResolver("visual", outcome="click at (10, 20)")


@pytest.fixture
def executor(session, engine, visual):
    return ToolExecutor(session, engine, DirectResolver(engine), visual, navigate_timeout=0.3, act_timeout=0.5)


@pytest.fixture
def dispatcher(session, executor):
    return ActionDispatcher(session, executor)


@pytest.fixture
def config(tmp_path):
    return AgentConfig(
        query="what is the top headline on example.com",
        trajectory_model="claude-test",
        action_model="action-test",
        session_path=Path(tmp_path / "profile"),
        headless=True,
        max_steps=10,
        start_url="https://google.com",
        system_prompt="You browse the web.",
        anthropic_api_key="sk-ant-test",
        openai_api_key="sk-openai-test",
    )
