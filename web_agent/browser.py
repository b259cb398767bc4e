"""Playwright-backed actuator: pages, tabs and the primitive interactions."""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

from playwright.sync_api import Browser, BrowserContext, Page, Playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PWTimeoutError

from ._profile_launch import launch_ephemeral, launch_persistent, shutdown
from .dom_extractor import element_selector
from .errors import EnvironmentStateError, ToolExecutionError

LOGGER = logging.getLogger(__name__)

WAIT_UNTIL = "domcontentloaded"
ACTION_TIMEOUT_MS = 5000
NAVIGATION_SETTLE_MS = 1000
CLICK_SETTLE_MS = 1000
TYPE_SETTLE_MS = 500
ENTER_SETTLE_MS = 2000
SCROLL_SETTLE_MS = 500
SCROLL_AMOUNT = 500
MAX_WAIT_MS = 10000

SCROLL_COMMANDS: Dict[str, str] = {
    "down": f"window.scrollBy(0, {SCROLL_AMOUNT})",
    "up": f"window.scrollBy(0, -{SCROLL_AMOUNT})",
    "top": "window.scrollTo(0, 0)",
    "bottom": "window.scrollTo(0, document.body.scrollHeight)",
}


class BrowserManager:
    def __init__(
        self,
        *,
        headless: bool = False,
        timeout_ms: int = 30000,
        user_data_dir: str = "./browser-data",
    ):
        self.headless = headless
        self.timeout_ms = timeout_ms
        self.user_data_dir = user_data_dir
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._pages: Dict[str, Page] = {}
        self._current_page_id: Optional[str] = None
        self._tab_counter = 0

    # lifecycle

    def launch(self) -> None:
        LOGGER.info("browser.launch", extra={"headless": self.headless})
        self._playwright, self._browser, self._context, page = launch_ephemeral(headless=self.headless)
        self._register_page(page, make_current=True)

    def launch_persistent(self) -> None:
        LOGGER.info("browser.launch_persistent", extra={"profile_dir": self.user_data_dir})
        self._playwright, self._context, page = launch_persistent(self.user_data_dir, headless=self.headless)
        self._register_page(page, make_current=True)

    def close(self) -> None:
        try:
            shutdown(self._playwright, self._context, self._browser)
        finally:
            self._playwright = None
            self._browser = None
            self._context = None
            self._pages.clear()
            self._current_page_id = None
            LOGGER.info("browser.closed")

    # pages and tabs

    def current_page(self) -> Page:
        if not self._current_page_id or self._current_page_id not in self._pages:
            raise EnvironmentStateError("No active page")
        return self._pages[self._current_page_id]

    def current_url(self) -> str:
        return self.current_page().url

    def new_tab(self, url: Optional[str] = None) -> str:
        if not self._context:
            raise EnvironmentStateError("Browser context not initialized")
        page = self._context.new_page()
        tab_id = self._register_page(page, make_current=False)
        if url:
            self._goto(page, url)
        LOGGER.info("browser.tab_opened", extra={"tab_id": tab_id, "url": url})
        return tab_id

    def switch_tab(self, tab_id: str) -> None:
        page = self._pages.get(tab_id)
        if page is None:
            raise ToolExecutionError(f"Tab {tab_id} not found. Call list_tabs to see open tabs.")
        self._current_page_id = tab_id
        page.bring_to_front()

    def close_tab(self, tab_id: str) -> None:
        page = self._pages.get(tab_id)
        if page is None:
            raise ToolExecutionError(f"Tab {tab_id} not found. Call list_tabs to see open tabs.")
        page.close()
        del self._pages[tab_id]
        if self._current_page_id == tab_id:
            remaining = list(self._pages)
            self._current_page_id = remaining[0] if remaining else None

    def list_tabs(self) -> List[Dict[str, str]]:
        tabs = []
        for tab_id, page in self._pages.items():
            try:
                title = page.title()
            except PlaywrightError:
                title = ""
            tabs.append({"id": tab_id, "url": page.url, "title": title, "current": tab_id == self._current_page_id})
        return tabs

    # interactions

    def navigate(self, url: str) -> None:
        page = self.current_page()
        self._goto(page, url)
        page.wait_for_timeout(NAVIGATION_SETTLE_MS)

    def click(self, element_id: str) -> None:
        page = self.current_page()
        try:
            page.click(element_selector(element_id), timeout=ACTION_TIMEOUT_MS)
        except PlaywrightError as exc:
            raise ToolExecutionError(
                f"Failed to click {element_id}: {_first_line(exc)}. "
                "Try scrolling to the element or using a different element ID."
            ) from exc
        page.wait_for_timeout(CLICK_SETTLE_MS)

    def type_text(self, element_id: str, text: str, press_enter: bool = False) -> None:
        page = self.current_page()
        selector = element_selector(element_id)
        try:
            page.fill(selector, text, timeout=ACTION_TIMEOUT_MS)
            if press_enter:
                page.press(selector, "Enter", timeout=ACTION_TIMEOUT_MS)
        except PlaywrightError as exc:
            raise ToolExecutionError(
                f"Failed to type into {element_id}: {_first_line(exc)}. "
                "Make sure this is an input field or try a different element ID."
            ) from exc
        page.wait_for_timeout(ENTER_SETTLE_MS if press_enter else TYPE_SETTLE_MS)

    def scroll(self, direction: str) -> None:
        command = SCROLL_COMMANDS.get(direction)
        if command is None:
            raise ToolExecutionError(f"Unknown scroll direction: {direction}")
        page = self.current_page()
        page.evaluate(command)
        page.wait_for_timeout(SCROLL_SETTLE_MS)

    def wait(self, milliseconds: int) -> int:
        waited = max(0, min(int(milliseconds), MAX_WAIT_MS))
        self.current_page().wait_for_timeout(waited)
        return waited

    def go_back(self) -> None:
        page = self.current_page()
        try:
            page.go_back(wait_until=WAIT_UNTIL, timeout=self.timeout_ms)
        except PlaywrightError as exc:
            raise ToolExecutionError(f"Could not go back: {_first_line(exc)}") from exc
        page.wait_for_timeout(NAVIGATION_SETTLE_MS)

    def screenshot(self, filename: Optional[str] = None) -> str:
        path = filename or f"screenshot-{int(time.time() * 1000)}.png"
        try:
            self.current_page().screenshot(path=path, full_page=False)
        except PlaywrightError as exc:
            raise ToolExecutionError(f"Screenshot failed: {_first_line(exc)}") from exc
        return path

    def extract_text(self, element_id: str) -> str:
        page = self.current_page()
        try:
            text = page.text_content(element_selector(element_id), timeout=ACTION_TIMEOUT_MS)
        except PlaywrightError as exc:
            raise ToolExecutionError(
                f"Element {element_id} not found: {_first_line(exc)}. Refresh element IDs with get_page_content."
            ) from exc
        return (text or "").strip()

    # helpers

    def _goto(self, page: Page, url: str) -> None:
        try:
            page.goto(url, wait_until=WAIT_UNTIL, timeout=self.timeout_ms)
        except PWTimeoutError as exc:
            raise ToolExecutionError(f"Timed out loading {url}. Try wait() and get_page_content.") from exc
        except PlaywrightError as exc:
            raise ToolExecutionError(f"Navigation to {url} failed: {_first_line(exc)}") from exc

    def _register_page(self, page: Page, *, make_current: bool) -> str:
        tab_id = f"page-{self._tab_counter}"
        self._tab_counter += 1
        self._pages[tab_id] = page
        if make_current or self._current_page_id is None:
            self._current_page_id = tab_id
        return tab_id


def _first_line(exc: Exception) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__
