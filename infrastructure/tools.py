import json
import logging
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional, Union

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from core.catalog import (ActParams, ExtractParams, NavigateParams, NoParams,
                          ObserveParams, WaitParams)
from core.config import ACT_TIMEOUT, NAVIGATE_TIMEOUT
from core.deadline import Deadline
from core.errors import ActionFailed, TimedOut
from core.models import ActionResult, ToolCallState
from core.text import clean_page_text
from infrastructure.automation import AutomationEngine
from infrastructure.browser_session import BrowserSession
from infrastructure.resolvers import ActionResolver, select_resolver

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Implements the tool surface exposed to the LLM.

    Every method returns an ``ActionResult``. Timeouts and engine failures are
    reported as failed results rather than raised.
    """

    def __init__(
        self,
        session: BrowserSession,
        engine: AutomationEngine,
        direct: ActionResolver,
        visual: ActionResolver,
        dom_agent=None,
        screenshot_dir: Optional[Path] = None,
        act_timeout: float = ACT_TIMEOUT,
        navigate_timeout: float = NAVIGATE_TIMEOUT,
    ) -> None:
        self.session = session
        self.engine = engine
        self.direct = direct
        self.visual = visual
        self.dom_agent = dom_agent
        self.screenshot_dir = screenshot_dir
        self.act_timeout = act_timeout
        self.navigate_timeout = navigate_timeout

    def _result(
        self,
        success: bool,
        action: str,
        payload: Union[str, bytes],
        error_type: Optional[str] = None,
        data: Any = None,
    ) -> ActionResult:
        if success:
            state = ToolCallState.DONE
        elif error_type == "TimedOut":
            state = ToolCallState.TIMED_OUT
        else:
            state = ToolCallState.FAILED
        return ActionResult(
            tool=action, success=success, payload=payload, state=state, error_type=error_type, data=data
        )

    def _timed_out(self, action: str, exc: Exception) -> ActionResult:
        return self._result(False, action, f"{action} timed out: {exc}", error_type="TimedOut")

    def _failed(self, action: str, message: str, exc: Exception) -> ActionResult:
        return self._result(False, action, f"{message}: {exc}", error_type="ActionFailed")

    def call(self, handler: str, params) -> ActionResult:
        """Run one handler; unexpected errors come back as a failed result."""
        try:
            return getattr(self, handler)(params)
        except Exception as exc:  # noqa: BLE001
            logger.info("Tool %s raised %s", handler, type(exc).__name__, exc_info=True)
            return self._failed(handler, f"Unexpected error in {handler} ({type(exc).__name__})", exc)

    def close(self, params: NoParams) -> ActionResult:
        self.session.close()
        return self._result(True, "close", "Closed the browser session")

    def wait(self, params: WaitParams) -> ActionResult:
        time.sleep(params.seconds)
        return self._result(True, "wait", f"Waited for {params.seconds:g} seconds")

    def back(self, params: NoParams) -> ActionResult:
        try:
            url = self.engine.go_back()
        except PlaywrightTimeoutError as exc:
            return self._timed_out("back", exc)
        except PlaywrightError as exc:
            return self._failed("back", "Failed to go back", exc)
        if url is None:
            return self._result(True, "back", "No history to go back")
        return self._result(True, "back", "Navigated back", data={"url": url})

    def navigate(self, params: NavigateParams) -> ActionResult:
        deadline = Deadline(self.navigate_timeout)
        try:
            url = self.engine.goto(params.url, deadline)
        except (PlaywrightTimeoutError, TimedOut) as exc:
            return self._result(
                False,
                "navigate",
                f"Navigation to {params.url} timed out after {self.navigate_timeout:g}s",
                error_type="TimedOut",
                data={"error": str(exc)},
            )
        except PlaywrightError as exc:
            return self._failed("navigate", f"Failed to navigate to {params.url}", exc)
        return self._result(True, "navigate", f"Navigated to: {params.url}", data={"url": url})

    def detect_iframe(self, params: NoParams) -> ActionResult:
        try:
            frames = self.engine.iframes()
        except PlaywrightError as exc:
            return self._failed("detect_iframe", "Failed to check for iframes", exc)
        unsupported = [f for f in frames if f.method == "not-supported"]
        has_iframe = bool(unsupported)
        return self._result(
            True,
            "detect_iframe",
            json.dumps(has_iframe),
            data=has_iframe,
        )

    def scroll(self, params: NoParams) -> ActionResult:
        try:
            self.engine.scroll_viewport()
        except PlaywrightError as exc:
            return self._failed("scroll", "Failed to scroll", exc)
        return self._result(True, "scroll", "Scrolled one viewport height down")

    def act(self, params: ActParams) -> ActionResult:
        resolver = select_resolver(params.has_iframe, self.direct, self.visual)
        deadline = None if resolver is self.visual else Deadline(self.act_timeout)
        logger.info("[ACT] Using %s resolver", resolver.name)
        try:
            outcome = resolver.resolve(params.action, params.variables, deadline)
        except (PlaywrightTimeoutError, TimedOut) as exc:
            return self._result(
                False,
                "act",
                f"Action timed out: {params.action}",
                error_type="TimedOut",
                data={"resolver": resolver.name, "error": str(exc)},
            )
        except (ActionFailed, PlaywrightError) as exc:
            return self._failed("act", f"Failed to perform '{params.action}'", exc)
        logger.info("[ACT] Execution complete: %s", outcome)
        return self._result(
            True,
            "act",
            f"Action performed: {params.action}",
            data={"resolver": resolver.name, "outcome": outcome},
        )

    def extract(self, params: ExtractParams) -> ActionResult:
        try:
            lines = clean_page_text(self.engine.page_text())
        except PlaywrightError as exc:
            return self._failed("extract", "Failed to read the page text", exc)
        if params.search_instruction:
            logger.info("[EXTRACT] Using search instruction: %s", params.search_instruction)
            if self.dom_agent is None:
                return self._result(False, "extract", "No extraction model configured", error_type="ActionFailed")
            try:
                lines = self.dom_agent.answer(params.search_instruction, lines).split("\n")
            except TimedOut as exc:
                return self._timed_out("extract", exc)
            except ActionFailed as exc:
                return self._failed("extract", "Failed to extract the requested data", exc)
        return self._result(True, "extract", "\n".join(lines), data={"lines": len(lines)})

    def observe(self, params: ObserveParams) -> ActionResult:
        try:
            observations = self.engine.observe(params.instruction)
        except (PlaywrightTimeoutError, TimedOut) as exc:
            return self._timed_out("observe", exc)
        except (ActionFailed, PlaywrightError) as exc:
            return self._failed("observe", "Failed to observe", exc)
        items = [asdict(obs) for obs in observations]
        return self._result(True, "observe", json.dumps(items, ensure_ascii=False), data=items)

    def screenshot(self, params: NoParams) -> ActionResult:
        try:
            raw = self.engine.screenshot()
        except PlaywrightError as exc:
            return self._failed("screenshot", "Failed to take screenshot", exc)
        data = {}
        if self.screenshot_dir:
            self.screenshot_dir.mkdir(parents=True, exist_ok=True)
            path = self.screenshot_dir / f"{int(time.time() * 1000)}_screenshot.png"
            path.write_bytes(raw)
            data["path"] = str(path)
        return self._result(True, "screenshot", raw, data=data)
