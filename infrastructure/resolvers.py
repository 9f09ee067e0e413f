import base64
import logging
from typing import Any, Dict, List, Literal, Optional, Union

import anthropic
from playwright.sync_api import Page
from pydantic import BaseModel, ValidationError

from core.deadline import Deadline
from core.errors import ActionFailed, TimedOut
from core.prompts import build_cua_instructions
from infrastructure.automation import AutomationEngine, substitute_variables
from infrastructure.browser_session import BrowserSession

logger = logging.getLogger(__name__)

COMPUTER_ACTION_TOOL = {
    "name": "computer_action",
    "description": "Perform one mouse or keyboard action on the current viewport.",
    "input_schema": {
        "type": "object",
        "properties": {
            "type": {
                "type": "string",
                "enum": ["click", "double_click", "type", "keypress", "scroll", "done"],
            },
            "x": {"type": "integer", "description": "Viewport x coordinate in pixels"},
            "y": {"type": "integer", "description": "Viewport y coordinate in pixels"},
            "text": {"type": "string", "description": "Text to type"},
            "keys": {"type": "array", "items": {"type": "string"}, "description": "Keys to press"},
            "scroll_y": {"type": "integer", "description": "Vertical scroll offset in pixels"},
        },
        "required": ["type"],
    },
}


class ActionResolver:
    """Carries out one natural-language action on the current page."""

    name = ""

    def resolve(self, action: str, variables: Optional[Dict], deadline: Optional[Deadline]) -> str:
        raise NotImplementedError


class DirectResolver(ActionResolver):
    """DOM grounding through the automation engine, bounded by the deadline."""

    name = "direct"

    def __init__(self, engine: AutomationEngine) -> None:
        self.engine = engine

    def resolve(self, action: str, variables: Optional[Dict], deadline: Optional[Deadline]) -> str:
        if deadline is None:
            raise ValueError("DirectResolver needs a deadline")
        return self.engine.act(action, variables, deadline)


class VisualAgentResolver(ActionResolver):
    """Coordinate-based sub-agent for content DOM grounding cannot reach (iframes).

    Each step sends a viewport screenshot and forces a ``computer_action`` tool
    call, for at most ``max_steps`` steps.
    """

    name = "visual"

    def __init__(
        self,
        session: BrowserSession,
        client: anthropic.Anthropic,
        model: str,
        max_steps: int = 2,
        request_timeout: float = 60.0,
    ) -> None:
        self.session = session
        self.client = client
        self.model = model
        self.max_steps = max_steps
        self.request_timeout = request_timeout

    def resolve(self, action: str, variables: Optional[Dict], deadline: Optional[Deadline]) -> str:
        page = self.session.page
        instructions = build_cua_instructions(page.url)
        messages: List[Dict] = []
        performed: List[str] = []
        tool_results: List[Dict] = []

        for step in range(1, self.max_steps + 1):
            screenshot = base64.b64encode(page.screenshot(full_page=False)).decode("ascii")
            messages.append(
                {
                    "role": "user",
                    "content": tool_results
                    + [
                        {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": screenshot}},
                        {"type": "text", "text": action if step == 1 else "Continue. Use done if the action is complete."},
                    ],
                }
            )
            response = self._request(instructions, messages)
            tool_use = next((blk for blk in response.content if blk.type == "tool_use"), None)
            if tool_use is None:
                break
            messages.append(
                {
                    "role": "assistant",
                    "content": [{"type": "tool_use", "id": tool_use.id, "name": tool_use.name, "input": tool_use.input}],
                }
            )
            computer_action = parse_computer_action(tool_use.input)
            if computer_action.type == "done":
                break
            outcome = perform_computer_action(page, computer_action, variables)
            logger.info("[AGENT] step %s: %s", step, outcome)
            performed.append(outcome)
            tool_results = [{"type": "tool_result", "tool_use_id": tool_use.id, "content": outcome}]
            self.session.sync_active_page()
            page = self.session.page

        if not performed:
            raise ActionFailed(f"Visual agent did not perform '{action}'")
        return "; ".join(performed)

    def _request(self, instructions: str, messages: List[Dict]):
        try:
            return self.client.messages.create(
                model=self.model,
                system=instructions,
                max_tokens=1024,
                messages=messages,
                tools=[COMPUTER_ACTION_TOOL],
                tool_choice={"type": "tool", "name": "computer_action"},
                timeout=self.request_timeout,
            )
        except anthropic.APITimeoutError as exc:
            raise TimedOut("visual agent request", self.request_timeout) from exc
        except anthropic.APIError as exc:
            raise ActionFailed(f"Visual agent request failed: {exc}") from exc


class ComputerAction(BaseModel):
    type: Literal["click", "double_click", "type", "keypress", "scroll", "done"]
    x: Optional[int] = None
    y: Optional[int] = None
    text: Optional[str] = None
    keys: Optional[List[str]] = None
    scroll_y: Optional[int] = None


def parse_computer_action(raw: Any) -> ComputerAction:
    try:
        return ComputerAction.model_validate(raw)
    except ValidationError as exc:
        raise ActionFailed(f"Visual agent sent an invalid action: {exc}") from exc


def perform_computer_action(page: Page, action: Union[ComputerAction, Dict], variables: Optional[Dict] = None) -> str:
    if not isinstance(action, ComputerAction):
        action = parse_computer_action(action)
    kind, x, y = action.type, action.x, action.y
    if kind in ("click", "double_click"):
        if x is None or y is None:
            raise ActionFailed(f"{kind} needs coordinates")
        if kind == "click":
            page.mouse.click(x, y)
        else:
            page.mouse.dblclick(x, y)
        return f"{kind} at ({x}, {y})"
    if kind == "type":
        text = substitute_variables(action.text or "", variables)
        page.keyboard.type(text)
        return f"typed {len(text)} characters"
    if kind == "keypress":
        keys = action.keys or []
        for key in keys:
            page.keyboard.press("Enter" if key.lower() == "enter" else key)
        return f"pressed {', '.join(keys)}"
    if kind == "scroll":
        if x is not None and y is not None:
            page.mouse.move(x, y)
        offset = action.scroll_y or 0
        page.mouse.wheel(0, offset)
        return f"scrolled by {offset}px"
    raise ActionFailed(f"Unsupported computer action '{kind}'")


def select_resolver(has_iframe: bool, direct: ActionResolver, visual: ActionResolver) -> ActionResolver:
    return visual if has_iframe else direct
