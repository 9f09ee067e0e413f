import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"
DEFAULT_ACTION_MODEL = "gpt-4o-mini"
DEFAULT_ACTION_PROVIDER = "openai"
ACTION_PROVIDERS = ("openai", "anthropic")

DEFAULT_START_URL = "https://google.com"
DEFAULT_MAX_STEPS = 50
DEFAULT_SESSION_PATH = ".playwright-profile"
VIEWPORT = {"width": 1300, "height": 900}

# Deadlines for navigate and act, in seconds.
ACT_TIMEOUT = 10.0
NAVIGATE_TIMEOUT = 10.0

# Iframe fallback sub-agent.
AGENT_MAX_STEPS = 2
AGENT_TIMEOUT = 60.0

LOG_FORMAT = "%(asctime)s %(message)s"


def setup_logging(log_file: Optional[Path] = Path("log.txt"), debug: bool = False) -> None:
    """File log for the whole run, warnings and errors mirrored to stderr."""
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    console_handler = RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
    console_handler.setLevel(logging.WARNING)
    root.addHandler(console_handler)

    # SDK request logs are noisy at INFO.
    for name in ("httpx", "anthropic", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)
