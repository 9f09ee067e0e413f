"""Browser automation boundary: navigation, grounding of natural-language
actions, observation, page text and screenshots on top of Playwright.

Natural-language grounding works on a distilled list of visible interactive
elements. Each element is tagged with a ``data-agent-id`` attribute so the
model's pick can be addressed with a plain CSS selector.
"""

import json
import logging
import time
from typing import Dict, List, Literal, Optional

from playwright.sync_api import Page
from pydantic import BaseModel

from core.deadline import Deadline
from core.errors import ActionFailed
from core.models import DistilledElement, Observation
from core.prompts import (ACT_SYSTEM, OBSERVE_SYSTEM, build_act_prompt,
                          build_observe_prompt)
from infrastructure.browser_session import BrowserSession
from infrastructure.llm import CompletionClient, parse_json_reply

logger = logging.getLogger(__name__)

INTERACTIVE_SELECTOR = "button, input, textarea, select, option, a, [role=button], [role=link], [onclick]"
MAX_ELEMENTS = 200

_DISTILL_JS = """
(nodes, stamp) => {
  const isVisible = (el) => {
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    if (!rect || rect.width === 0 || rect.height === 0) return false;
    if (style.visibility === 'hidden' || style.display === 'none' || Number(style.opacity) === 0) return false;
    return true;
  };

  const dialogs = Array.from(document.querySelectorAll('[role=dialog], [aria-modal="true"]'));
  const dialogNodes = [];
  for (const dlg of dialogs) {
    dialogNodes.push(...Array.from(dlg.querySelectorAll(
      'button, input, textarea, select, option, a, [role=button], [role=link], [onclick]'
    )));
  }
  const allNodes = dialogs.length ? [...new Set([...dialogNodes, ...Array.from(nodes)])] : Array.from(nodes);

  let id = 0;
  const distilled = [];
  for (const el of allNodes) {
    if (!isVisible(el)) continue;
    const agentId = `${stamp}-${id++}`;
    el.setAttribute("data-agent-id", agentId);
    const rect = el.getBoundingClientRect();
    distilled.push({
      agentId,
      tag: (el.tagName || "").toLowerCase(),
      role: el.getAttribute("role"),
      inputType: el.type || null,
      text: (el.innerText || el.value || "").trim().slice(0, 120),
      placeholder: el.placeholder || null,
      ariaLabel: el.getAttribute("aria-label") || null,
      href: el.href || null,
      location: `${Math.round(rect.top)}x${Math.round(rect.left)}`,
    });
    if (distilled.length >= %d) break;
  }
  return distilled;
}
""" % MAX_ELEMENTS

_IFRAME_JS = """
(nodes) => nodes
  .filter((el) => {
    const rect = el.getBoundingClientRect();
    return rect && rect.width > 0 && rect.height > 0;
  })
  .map((el, idx) => ({
    index: idx,
    src: el.getAttribute("src") || "",
    title: el.getAttribute("title") || el.getAttribute("name") || "",
  }))
"""

_SCROLL_VIEWPORT_JS = "() => { window.scrollBy(0, window.innerHeight); }"
_SCROLL_PERCENT_JS = "(pct) => { window.scrollBy(0, document.documentElement.scrollHeight * pct / 100); }"


class ActStep(BaseModel):
    element_id: Optional[int] = None
    method: Literal["click", "fill", "press", "select", "scroll", "none"]
    argument: str = ""


class ObservedElement(BaseModel):
    element_id: int
    description: str = ""
    method: str = "click"
    arguments: List[str] = []


def distill_elements(page: Page) -> List[DistilledElement]:
    """Return visible interactive elements tagged with ``data-agent-id``."""
    stamp = str(int(time.time() * 1000))
    raw_elements = page.eval_on_selector_all(INTERACTIVE_SELECTOR, _DISTILL_JS, stamp)
    return [
        DistilledElement(
            id=idx,
            agent_id=raw.get("agentId", ""),
            tag=raw.get("tag", ""),
            role=raw.get("role"),
            input_type=raw.get("inputType"),
            text=raw.get("text", ""),
            placeholder=raw.get("placeholder"),
            aria_label=raw.get("ariaLabel"),
            href=raw.get("href"),
            location=raw.get("location", ""),
        )
        for idx, raw in enumerate(raw_elements)
    ]


def condense(elements: List[DistilledElement]) -> str:
    return json.dumps(
        [
            {
                "id": el.id,
                "type": el.input_type or el.tag,
                "role": el.role,
                "text": el.text or el.aria_label or el.placeholder,
                "href": el.href,
                "location": el.location,
            }
            for el in elements
        ],
        ensure_ascii=False,
    )


def probe_iframes(page: Page) -> List[Observation]:
    """Visible iframes; DOM grounding cannot reach their content."""
    frames = page.eval_on_selector_all("iframe", _IFRAME_JS)
    return [
        Observation(
            description=f"iframe {frame.get('title') or frame.get('src') or frame['index']}".strip(),
            selector=f"iframe >> nth={frame['index']}",
            method="not-supported",
        )
        for frame in frames
    ]


def substitute_variables(text: str, variables: Optional[Dict]) -> str:
    for key, value in (variables or {}).items():
        text = text.replace(f"%{key}%", str(value))
    return text


class AutomationEngine:
    def __init__(self, session: BrowserSession, llm: CompletionClient) -> None:
        self.session = session
        self.llm = llm

    @property
    def page(self) -> Page:
        return self.session.page

    def goto(self, url: str, deadline: Deadline) -> str:
        self.page.goto(url, timeout=max(deadline.remaining_ms(), 1))
        self.session.sync_active_page()
        return self.page.url

    def go_back(self) -> Optional[str]:
        response = self.page.go_back()
        self.session.sync_active_page()
        return self.page.url if response else None

    def scroll_viewport(self) -> None:
        self.page.evaluate(_SCROLL_VIEWPORT_JS)

    def page_text(self) -> str:
        return self.page.evaluate("() => document.body.innerText") or ""

    def screenshot(self) -> bytes:
        return self.page.screenshot(full_page=False)

    def iframes(self) -> List[Observation]:
        return probe_iframes(self.page)

    def observe(self, instruction: str, deadline: Optional[Deadline] = None) -> List[Observation]:
        elements = distill_elements(self.page)
        if not elements:
            return []
        reply = self.llm.complete(
            OBSERVE_SYSTEM,
            build_observe_prompt(instruction, condense(elements)),
            timeout=deadline.remaining() if deadline else None,
        )
        picks = parse_json_reply(reply, List[ObservedElement])
        by_id = {el.id: el for el in elements}
        observations = []
        for pick in picks:
            element = by_id.get(pick.element_id)
            if element is None:
                logger.debug("observe: model picked unknown element id %s", pick.element_id)
                continue
            observations.append(
                Observation(
                    description=pick.description or element.text,
                    selector=element.selector,
                    method=pick.method,
                    arguments=pick.arguments,
                )
            )
        return observations

    def act(self, action: str, variables: Optional[Dict], deadline: Deadline) -> str:
        """Ground ``action`` on the current page and perform it.

        Variable values are substituted after the model call, the model only
        sees ``%name%`` placeholders.
        """
        elements = distill_elements(self.page)
        deadline.check("act")
        reply = self.llm.complete(
            ACT_SYSTEM,
            build_act_prompt(action, condense(elements), list((variables or {}).keys())),
            timeout=max(deadline.remaining(), 0.001),
        )
        step = parse_json_reply(reply, ActStep)
        deadline.check("act")
        argument = substitute_variables(step.argument, variables)
        logger.debug("act: %s -> element=%s method=%s", action, step.element_id, step.method)

        if step.method == "none":
            raise ActionFailed(f"No element on the page matches '{action}'")
        if step.method == "scroll":
            try:
                percent = float(argument.strip().rstrip("%") or 100)
            except ValueError as exc:
                raise ActionFailed(f"Cannot scroll by '{argument}'") from exc
            self.page.evaluate(_SCROLL_PERCENT_JS, percent)
            return f"scrolled {percent:g}% of the page"

        element = next((el for el in elements if el.id == step.element_id), None)
        if element is None:
            raise ActionFailed(f"Model picked unknown element id {step.element_id}")
        locator = self.page.locator(element.selector).first
        timeout = max(deadline.remaining_ms(), 1)
        if step.method == "click":
            locator.click(timeout=timeout)
        elif step.method == "fill":
            locator.fill(argument, timeout=timeout)
        elif step.method == "press":
            locator.press(argument or "Enter", timeout=timeout)
        elif step.method == "select":
            locator.select_option(argument, timeout=timeout)
        self.session.sync_active_page()
        return f"{step.method} on element {element.id} ({element.text or element.tag})"
