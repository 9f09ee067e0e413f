import logging
from pathlib import Path
from typing import Dict, Optional

from playwright.sync_api import BrowserContext, Page, Playwright, sync_playwright

from core.config import VIEWPORT
from core.errors import SessionClosed

logger = logging.getLogger(__name__)


class BrowserSession:
    """Owns a persistent Playwright context and a single page.

    The session is closed exactly once: by the ``close`` tool, or on exit of
    the ``with`` block, whichever comes first.
    """

    def __init__(self, session_path: Path, headless: bool, viewport: Optional[Dict] = None) -> None:
        self.session_path = session_path
        self.headless = headless
        self.viewport = viewport or VIEWPORT
        self.playwright: Optional[Playwright] = None
        self.context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._closed = False

    def __enter__(self) -> "BrowserSession":
        self.session_path.mkdir(parents=True, exist_ok=True)
        self.playwright = sync_playwright().start()
        try:
            self.context = self.playwright.chromium.launch_persistent_context(
                user_data_dir=str(self.session_path),
                headless=self.headless,
                viewport=self.viewport,
            )
        except Exception:
            self.playwright.stop()
            raise
        self._page = self.context.pages[0] if self.context.pages else self.context.new_page()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def page(self) -> Page:
        if self._closed:
            raise SessionClosed("Browser session is closed")
        if not self._page:
            raise RuntimeError("Browser page not initialized")
        return self._page

    @page.setter
    def page(self, value: Page) -> None:
        self._page = value

    @property
    def closed(self) -> bool:
        return self._closed

    def is_alive(self) -> bool:
        if self._closed or self._page is None:
            return False
        return not self._page.is_closed()

    def sync_active_page(self) -> None:
        """If an action opened a new tab, keep using the newest page."""
        if self._closed or not self.context:
            return
        pages = self.context.pages
        if pages and pages[-1] is not self._page:
            self._page = pages[-1]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info("Closing browser session")
        try:
            if self.context:
                self.context.close()
        finally:
            if self.playwright:
                self.playwright.stop()
