"""Launch helpers for the Chromium instance the agent drives.

Two flavours are offered: a throwaway browser context, and a persistent
context backed by a profile directory so cookies and logins survive between
sessions. Both return the Playwright controller alongside the objects needed
for ``shutdown`` so callers can always release resources.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from playwright.sync_api import Browser, BrowserContext, Page, Playwright, sync_playwright

DEFAULT_VIEWPORT = {"width": 1920, "height": 1080}
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
BROWSER_ARGS: List[str] = ["--start-maximized"]


def launch_ephemeral(
    *,
    headless: bool = False,
    args: Sequence[str] = BROWSER_ARGS,
    user_agent: str = DEFAULT_USER_AGENT,
) -> Tuple[Playwright, Browser, BrowserContext, Page]:
    """Start Chromium with a fresh context and a single blank page."""

    playwright = sync_playwright().start()
    try:
        browser = playwright.chromium.launch(headless=headless, args=list(args))
        context = browser.new_context(viewport=dict(DEFAULT_VIEWPORT), user_agent=user_agent)
        page = context.new_page()
    except Exception:
        playwright.stop()
        raise
    return playwright, browser, context, page


def launch_persistent(
    profile_dir: str,
    *,
    headless: bool = False,
    args: Sequence[str] = BROWSER_ARGS,
) -> Tuple[Playwright, BrowserContext, Page]:
    """Launch a persistent Chromium context backed by ``profile_dir``.

    Parameters
    ----------
    profile_dir:
        Directory that stores Chromium profile state (cookies, localStorage,
        session data). Created when missing so repeated runs reuse the same
        logins.
    headless:
        Whether to hide the browser window. Visible by default so the user can
        watch the agent and step in when it asks for help.
    args:
        Extra Chromium command line switches.
    """

    profile_path = Path(profile_dir)
    profile_path.mkdir(parents=True, exist_ok=True)

    playwright = sync_playwright().start()
    try:
        context = playwright.chromium.launch_persistent_context(
            str(profile_path),
            headless=headless,
            viewport=dict(DEFAULT_VIEWPORT),
            args=list(args),
        )
    except Exception:
        playwright.stop()
        raise

    # a restored profile may already have tabs open
    if context.pages:
        page = context.pages[0]
    else:
        page = context.new_page()
    return playwright, context, page


def shutdown(
    playwright: Optional[Playwright],
    context: Optional[BrowserContext],
    browser: Optional[Browser] = None,
) -> None:
    """Dispose of everything returned by the launch helpers."""

    try:
        if context:
            context.close()
        if browser:
            browser.close()
    finally:
        if playwright:
            playwright.stop()
