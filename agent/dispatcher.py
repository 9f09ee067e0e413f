import dataclasses
import logging
import threading
from typing import Dict, Optional

from core import catalog
from core.errors import BrowserCrashed, InvalidParameters
from core.models import ActionResult, ToolCall, ToolCallState
from infrastructure.browser_session import BrowserSession
from infrastructure.tools import ToolExecutor

logger = logging.getLogger(__name__)


class ActionDispatcher:
    """Runs one tool call at a time against a single browser session.

    A call goes PENDING -> RUNNING -> DONE, TIMED_OUT or FAILED. Bad arguments
    and calls after ``close`` are answered without touching the browser.
    """

    def __init__(self, session: BrowserSession, executor: ToolExecutor, echo=None) -> None:
        self.session = session
        self.executor = executor
        self.echo = echo or (lambda line: None)
        self._lock = threading.Lock()
        self.last_call: Optional[ToolCall] = None

    def dispatch(self, name: str, arguments: Optional[Dict] = None, call_id: Optional[str] = None) -> ActionResult:
        if not self._lock.acquire(blocking=False):
            raise RuntimeError("Another tool call is already running on this session")
        call = ToolCall(name=name, params=arguments or {}, id=call_id)
        self.last_call = call
        try:
            result = self._dispatch(call)
        finally:
            self._lock.release()
        call.state = result.state
        return result

    def _dispatch(self, call: ToolCall) -> ActionResult:
        name, arguments = call.name, call.params
        try:
            spec = catalog.get_tool(name)
            params = catalog.validate(name, arguments)
        except InvalidParameters as exc:
            self._log_failure(name, str(exc))
            return self._rejected(name, str(exc), "InvalidParameters")

        if self.session.closed:
            message = f"Cannot run '{name}': the browser session is closed"
            self._log_failure(name, message)
            return self._rejected(name, message, "SessionClosed")

        call.state = ToolCallState.RUNNING
        self._log_action(name, arguments)
        result = self.executor.call(spec.handler, params)

        if not result.success:
            self._log_failure(name, result.message, result.error_type)
            if name != "close" and not self.session.closed and not self.session.is_alive():
                call.state = ToolCallState.FAILED
                raise BrowserCrashed(f"Browser page was lost while running '{name}': {result.message}")
        else:
            self._log_result(result)

        return dataclasses.replace(result, content=tuple(spec.formatter(result)))

    def _rejected(self, name: str, message: str, error_type: str) -> ActionResult:
        result = ActionResult(
            tool=name, success=False, payload=message, state=ToolCallState.FAILED, error_type=error_type
        )
        return dataclasses.replace(result, content=tuple(catalog.text_content(result)))

    def _format_params(self, params: Dict, max_len: int = 160) -> str:
        """Compact one-line rendering of tool arguments for the console."""
        parts = []
        for k, v in params.items():
            if k == "variables" and isinstance(v, dict):
                v = {key: "***" for key in v}
            vs = repr(v)
            if len(vs) > 60:
                vs = vs[:57] + "…"
            parts.append(f"{k}={vs}")
        line = ", ".join(parts)
        if len(line) > max_len:
            line = line[: max_len - 1] + "…"
        return line

    def _log_action(self, name: str, arguments: Dict) -> None:
        line = f"[{name.upper()}] {self._format_params(arguments)}".rstrip()
        self.echo(line)
        logger.info(line)

    def _log_result(self, result: ActionResult) -> None:
        message = result.message
        if len(message) > 200:
            message = message[:197] + "…"
        line = f"✅ {result.tool}: {message}"
        self.echo(line)
        logger.info(line)

    def _log_failure(self, name: str, message: str, error_type: Optional[str] = None) -> None:
        tag = f" [{error_type}]" if error_type else ""
        line = f"⚠️  {name}{tag}: {message}"
        self.echo(line)
        logger.info(line)
