"""Shared headless-browser lifecycle for Playwright-based scraping.

One :class:`BrowserManager` owns one Chromium process and one browser
context.  Callers borrow pages from it (one page per request or crawl step)
and must hand them back with :meth:`BrowserManager.close_page`.  The manager
is an explicitly owned object: the API keeps it on ``app.state.browser`` and
the CLI holds it for the duration of a command.

Playwright is driven through its asyncio API, so navigation never blocks the
event loop and many pages can be open concurrently in the same context.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import re
import signal
import weakref
from typing import Any, Optional
from urllib.parse import urlparse

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from sitelens.config import settings
from sitelens.errors import BrowserInitError, NavigationError

logger = logging.getLogger(__name__)

WAIT_STRATEGIES = ("load", "domcontentloaded", "networkidle")

_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
]

# Seconds to wait for <body> after navigation completes.
_BODY_TIMEOUT = 5.0

_DISALLOW_ALL_RE = re.compile(r"^\s*Disallow\s*:\s*/\s*(?:#.*)?$", re.IGNORECASE | re.MULTILINE)


# ---------------------------------------------------------------------------
# robots.txt
# ---------------------------------------------------------------------------

def disallows_everything(robots_txt: str) -> bool:
    """Return ``True`` if *robots_txt* contains a blanket ``Disallow: /`` line.

    User-agent groups, ``Allow`` overrides and crawl-delay are not
    interpreted.
    """
    return bool(_DISALLOW_ALL_RE.search(robots_txt))


async def check_robots_txt(base_url: str, fail_open: Optional[bool] = None) -> bool:
    """Return ``True`` if ``{origin}/robots.txt`` allows scraping *base_url*.

    A missing file (404 or any other 4xx) always allows.  Server errors,
    network failures and unreadable responses are ambiguous: they allow when
    *fail_open* is true (the default, from ``settings.robots_fail_open``) and
    deny otherwise.
    """
    if fail_open is None:
        fail_open = settings.robots_fail_open

    parsed = urlparse(base_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return fail_open
    robots_url = f"{parsed.scheme}://{parsed.netloc}/robots.txt"

    try:
        async with httpx.AsyncClient(
            timeout=settings.robots_timeout, follow_redirects=True
        ) as client:
            response = await client.get(
                robots_url, headers={"User-Agent": settings.bot_user_agent}
            )
            if response.status_code == 200:
                allowed = not disallows_everything(response.text)
                if not allowed:
                    logger.info("[robots] %s disallows all crawling", robots_url)
                return allowed
    except Exception as exc:  # noqa: BLE001
        logger.info("[robots] could not read %s (%s); fail_open=%s", robots_url, exc, fail_open)
        return fail_open

    if response.status_code >= 500:
        logger.info(
            "[robots] %s returned HTTP %d; fail_open=%s",
            robots_url,
            response.status_code,
            fail_open,
        )
        return fail_open
    return True


# ---------------------------------------------------------------------------
# Browser manager
# ---------------------------------------------------------------------------

class BrowserManager:
    """Owns a single shared Chromium process and browser context."""

    def __init__(self) -> None:
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._initialized = False
        self._lock = asyncio.Lock()
        # Loop that launched Playwright; its objects are bound to it.
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def __aenter__(self) -> "BrowserManager":
        await self.init()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def is_initialized(self) -> bool:
        return self._initialized

    async def init(self) -> None:
        """Launch the browser and context once; later calls are no-ops.

        Raises:
            BrowserInitError: If Playwright or Chromium cannot be started.
        """
        if self._initialized:
            return

        async with self._lock:
            # Another caller may have finished launching while we waited.
            if self._initialized:
                return
            try:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=settings.browser_headless,
                    args=_LAUNCH_ARGS,
                )
                self._context = await self._browser.new_context(
                    user_agent=settings.browser_user_agent,
                    viewport={
                        "width": settings.browser_viewport_width,
                        "height": settings.browser_viewport_height,
                    },
                    locale=settings.browser_locale,
                )
            except Exception as exc:
                logger.error("[browser] failed to launch Chromium: %s", exc)
                await self._teardown()
                raise BrowserInitError("Browser initialization failed") from exc

            self._loop = asyncio.get_running_loop()
            self._initialized = True
            logger.info("[browser] Chromium launched (headless=%s)", settings.browser_headless)

    async def new_page(self) -> Any:
        """Open a fresh page with the default operation/navigation timeout."""
        if not self._initialized or self._context is None:
            await self.init()

        page = await self._context.new_page()
        timeout_ms = int(settings.page_timeout * 1000)
        page.set_default_timeout(timeout_ms)
        page.set_default_navigation_timeout(timeout_ms)
        return page

    async def goto(
        self,
        page: Any,
        url: str,
        wait_until: str = "networkidle",
        timeout: Optional[float] = None,
    ) -> Any:
        """Navigate *page* to *url* and wait until ``<body>`` is attached.

        No retry is attempted here; callers decide whether a failure is fatal.

        Raises:
            ValueError: If *wait_until* is not a known wait strategy.
            NavigationError: On timeout, network failure or an HTTP error status.
        """
        if wait_until not in WAIT_STRATEGIES:
            raise ValueError(
                f"wait_until must be one of {', '.join(WAIT_STRATEGIES)}; got {wait_until!r}"
            )
        timeout_ms = int((timeout or settings.page_timeout) * 1000)

        try:
            response = await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
            await page.wait_for_selector(
                "body", state="attached", timeout=int(_BODY_TIMEOUT * 1000)
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationError(f"Timed out loading {url}") from exc
        except PlaywrightError as exc:
            raise NavigationError(f"Failed to navigate to {url}: {exc}") from exc

        if response is not None and response.status >= 400:
            raise NavigationError(f"Failed to load {url}: HTTP {response.status}")
        return response

    async def wait_for_selector(
        self, page: Any, selector: str, timeout: float = 10.0
    ) -> None:
        try:
            await page.wait_for_selector(selector, timeout=int(timeout * 1000))
        except PlaywrightError as exc:
            raise NavigationError(f"Selector {selector!r} did not appear: {exc}") from exc

    async def screenshot(
        self, page: Any, path: Optional[str] = None, full_page: bool = False
    ) -> bytes:
        """Capture a PNG of *page*, optionally also writing it to *path*."""
        return await page.screenshot(path=path, full_page=full_page, type="png")

    async def check_robots_txt(self, base_url: str) -> bool:
        return await check_robots_txt(base_url)

    async def close_page(self, page: Any) -> None:
        """Close *page*; errors (e.g. an already-closed page) are logged only."""
        try:
            await page.close()
        except Exception as exc:  # noqa: BLE001
            logger.debug("[browser] error closing page: %s", exc)

    async def close(self) -> None:
        """Close context, browser and driver.  Safe to call repeatedly."""
        async with self._lock:
            await self._teardown()

    async def _teardown(self) -> None:
        if self._context is not None:
            try:
                await self._context.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning("[browser] error closing context: %s", exc)
            self._context = None

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning("[browser] error closing browser: %s", exc)
            self._browser = None
            logger.info("[browser] Chromium closed")

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as exc:  # noqa: BLE001
                logger.warning("[browser] error stopping Playwright: %s", exc)
            self._playwright = None

        self._initialized = False


# ---------------------------------------------------------------------------
# Process shutdown hooks
# ---------------------------------------------------------------------------

# Managers that already have an interpreter-exit hook.
_exit_hooked: "weakref.WeakSet[BrowserManager]" = weakref.WeakSet()


def _close_at_exit(manager_ref: "weakref.ReferenceType[BrowserManager]") -> None:
    manager = manager_ref()
    if manager is None or not manager.is_initialized():
        return

    logger.info("[browser] interpreter exiting with the browser open; closing it")
    loop = manager._loop
    fresh = loop is None or loop.is_closed()
    if fresh:
        # asyncio.run() and uvicorn have already closed the owning loop.
        loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(manager.close())
    except Exception as exc:  # noqa: BLE001
        logger.warning("[browser] could not close browser at exit: %s", exc)
    finally:
        if fresh:
            loop.close()


def install_shutdown_hooks(manager: BrowserManager, handle_signals: bool = True) -> None:
    """Close *manager*'s browser when the host process is asked to stop.

    Must be called from inside the running event loop that owns *manager*.
    SIGINT/SIGTERM close the browser and then re-deliver the signal with its
    default behaviour.  An ``atexit`` hook, registered once per manager and
    holding only a weak reference to it, covers interpreter shutdown.  Set
    *handle_signals* to ``False`` when a server (uvicorn) owns the signals and
    closes the manager from its own shutdown path.
    """
    loop = asyncio.get_running_loop()

    def _redeliver(sig: signal.Signals) -> None:
        loop.remove_signal_handler(sig)
        signal.raise_signal(sig)

    def _on_signal(sig: signal.Signals) -> None:
        logger.info("[browser] received %s; closing browser", sig.name)
        task = loop.create_task(manager.close())
        task.add_done_callback(lambda _task: _redeliver(sig))

    if handle_signals:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows event loops and non-main threads cannot install handlers.
                logger.debug("[browser] cannot install handler for %s", sig.name)

    if manager not in _exit_hooked:
        _exit_hooked.add(manager)
        atexit.register(_close_at_exit, weakref.ref(manager))
