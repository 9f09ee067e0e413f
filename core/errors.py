"""Exception types shared by the harness.

Tool-level errors (``InvalidParameters``, ``TimedOut``, ``ActionFailed``,
``SessionClosed``) are turned into failed ``ActionResult`` values at the tool
boundary so the model can adapt. ``BrowserCrashed`` and ``TrajectoryError``
end the run.
"""

from typing import Optional


class BrowserAgentError(Exception):
    """Base exception for the agent harness."""


class InvalidParameters(BrowserAgentError):
    def __init__(self, tool: str, details: str) -> None:
        super().__init__(f"Invalid parameters for '{tool}': {details}")
        self.tool = tool
        self.details = details


class TimedOut(BrowserAgentError):
    def __init__(self, what: str, seconds: Optional[float] = None) -> None:
        suffix = f" after {seconds:g}s" if seconds is not None else ""
        super().__init__(f"{what} timed out{suffix}")
        self.what = what
        self.seconds = seconds


class ActionFailed(BrowserAgentError):
    """The automation engine or the action model could not carry out a step."""


class SessionClosed(BrowserAgentError):
    """The browser session was already closed."""


class BrowserCrashed(BrowserAgentError):
    """The browser went away without the agent closing it."""


class MissingCredentials(BrowserAgentError):
    pass


class TrajectoryError(BrowserAgentError):
    """The trajectory model call failed."""
