"""Tests for the browser resource manager and robots.txt checks.

Mocking strategy:
- ``respx`` serves robots.txt responses; no network access.
- ``async_playwright`` is patched with a chain of ``AsyncMock`` objects, so no
  Chromium install is needed.
"""

from __future__ import annotations

import asyncio
import signal
import weakref
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import respx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from sitelens.config import settings
from sitelens.errors import BrowserInitError, NavigationError
from sitelens.scraper.browser import (
    BrowserManager,
    _close_at_exit,
    check_robots_txt,
    disallows_everything,
    install_shutdown_hooks,
)

_ROBOTS_URL = "https://shop.example/robots.txt"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

class FakePlaywright:
    """The object graph ``async_playwright().start()`` returns, all mocked."""

    def __init__(self) -> None:
        self.page = MagicMock()
        self.page.close = AsyncMock()
        self.page.goto = AsyncMock(return_value=MagicMock(status=200))
        self.page.wait_for_selector = AsyncMock()

        self.context = MagicMock()
        self.context.new_page = AsyncMock(return_value=self.page)
        self.context.close = AsyncMock()

        self.browser = MagicMock()
        self.browser.new_context = AsyncMock(return_value=self.context)
        self.browser.close = AsyncMock()

        self.driver = MagicMock()
        self.driver.chromium.launch = AsyncMock(return_value=self.browser)
        self.driver.stop = AsyncMock()

        starter = MagicMock()
        starter.start = AsyncMock(return_value=self.driver)
        self.factory = MagicMock(return_value=starter)


@pytest.fixture()
def fake_pw():
    fake = FakePlaywright()
    with patch("sitelens.scraper.browser.async_playwright", fake.factory):
        yield fake


# ---------------------------------------------------------------------------
# robots.txt
# ---------------------------------------------------------------------------

class TestDisallowsEverything:
    def test_blanket_disallow(self) -> None:
        assert disallows_everything("User-agent: *\nDisallow: /\n") is True

    def test_partial_disallow(self) -> None:
        assert disallows_everything("User-agent: *\nDisallow: /private\n") is False

    def test_empty_disallow_allows(self) -> None:
        assert disallows_everything("User-agent: *\nDisallow:\n") is False


class TestCheckRobotsTxt:
    async def test_missing_file_allows(self) -> None:
        with respx.mock:
            respx.get(_ROBOTS_URL).mock(return_value=httpx.Response(404))
            assert await check_robots_txt("https://shop.example/items/1") is True

    async def test_server_error_allows_by_default(self) -> None:
        with respx.mock:
            respx.get(_ROBOTS_URL).mock(return_value=httpx.Response(500))
            assert await check_robots_txt("https://shop.example/", fail_open=True) is True

    async def test_server_error_denies_when_fail_closed(self) -> None:
        with respx.mock:
            respx.get(_ROBOTS_URL).mock(return_value=httpx.Response(503))
            assert await check_robots_txt("https://shop.example/", fail_open=False) is False

    async def test_client_error_allows_even_when_fail_closed(self) -> None:
        with respx.mock:
            respx.get(_ROBOTS_URL).mock(return_value=httpx.Response(403))
            assert await check_robots_txt("https://shop.example/", fail_open=False) is True

    async def test_blanket_disallow_denies(self) -> None:
        with respx.mock:
            respx.get(_ROBOTS_URL).mock(
                return_value=httpx.Response(200, text="User-agent: *\nDisallow: /\n")
            )
            assert await check_robots_txt("https://shop.example/") is False

    async def test_partial_disallow_allows(self) -> None:
        with respx.mock:
            respx.get(_ROBOTS_URL).mock(
                return_value=httpx.Response(200, text="User-agent: *\nDisallow: /cart\n")
            )
            assert await check_robots_txt("https://shop.example/") is True

    async def test_network_error_follows_fail_open(self) -> None:
        with respx.mock:
            respx.get(_ROBOTS_URL).mock(side_effect=httpx.ConnectError("refused"))
            assert await check_robots_txt("https://shop.example/", fail_open=True) is True
            assert await check_robots_txt("https://shop.example/", fail_open=False) is False

    async def test_invalid_url_follows_fail_open(self) -> None:
        assert await check_robots_txt("not a url", fail_open=True) is True
        assert await check_robots_txt("not a url", fail_open=False) is False


# ---------------------------------------------------------------------------
# BrowserManager lifecycle
# ---------------------------------------------------------------------------

class TestBrowserManagerLifecycle:
    async def test_init_launches_once(self, fake_pw) -> None:
        manager = BrowserManager()
        await asyncio.gather(manager.init(), manager.init(), manager.init())
        await manager.init()

        assert manager.is_initialized() is True
        fake_pw.driver.chromium.launch.assert_awaited_once()
        fake_pw.browser.new_context.assert_awaited_once()

    async def test_context_uses_settings(self, fake_pw) -> None:
        await BrowserManager().init()

        kwargs = fake_pw.browser.new_context.await_args.kwargs
        assert kwargs["locale"] == settings.browser_locale
        assert kwargs["user_agent"] == settings.browser_user_agent
        assert kwargs["viewport"] == {
            "width": settings.browser_viewport_width,
            "height": settings.browser_viewport_height,
        }
        launch_kwargs = fake_pw.driver.chromium.launch.await_args.kwargs
        assert "--no-sandbox" in launch_kwargs["args"]

    async def test_init_failure_raises_and_cleans_up(self, fake_pw) -> None:
        fake_pw.driver.chromium.launch.side_effect = RuntimeError("chromium missing")
        manager = BrowserManager()

        with pytest.raises(BrowserInitError):
            await manager.init()

        assert manager.is_initialized() is False
        fake_pw.driver.stop.assert_awaited_once()

    async def test_close_twice_is_safe(self, fake_pw) -> None:
        manager = BrowserManager()
        await manager.init()

        await manager.close()
        await manager.close()

        assert manager.is_initialized() is False
        fake_pw.context.close.assert_awaited_once()
        fake_pw.browser.close.assert_awaited_once()
        fake_pw.driver.stop.assert_awaited_once()

    async def test_close_without_init(self) -> None:
        manager = BrowserManager()
        await manager.close()
        assert manager.is_initialized() is False

    async def test_async_context_manager(self, fake_pw) -> None:
        async with BrowserManager() as manager:
            assert manager.is_initialized() is True
        assert manager.is_initialized() is False

    async def test_reinit_after_close(self, fake_pw) -> None:
        manager = BrowserManager()
        await manager.init()
        await manager.close()
        await manager.init()

        assert manager.is_initialized() is True
        assert fake_pw.driver.chromium.launch.await_count == 2


# ---------------------------------------------------------------------------
# Pages and navigation
# ---------------------------------------------------------------------------

class TestPages:
    async def test_new_page_auto_inits_and_sets_timeouts(self, fake_pw) -> None:
        manager = BrowserManager()
        page = await manager.new_page()

        assert page is fake_pw.page
        assert manager.is_initialized() is True
        timeout_ms = int(settings.page_timeout * 1000)
        page.set_default_timeout.assert_called_once_with(timeout_ms)
        page.set_default_navigation_timeout.assert_called_once_with(timeout_ms)

    async def test_goto_waits_for_body(self, fake_pw) -> None:
        manager = BrowserManager()
        page = await manager.new_page()

        await manager.goto(page, "https://shop.example/", wait_until="load")

        page.goto.assert_awaited_once()
        assert page.goto.await_args.kwargs["wait_until"] == "load"
        assert page.wait_for_selector.await_args.args == ("body",)

    async def test_goto_rejects_unknown_wait_strategy(self, fake_pw) -> None:
        manager = BrowserManager()
        page = await manager.new_page()

        with pytest.raises(ValueError):
            await manager.goto(page, "https://shop.example/", wait_until="idle")
        page.goto.assert_not_awaited()

    async def test_goto_timeout_becomes_navigation_error(self, fake_pw) -> None:
        fake_pw.page.goto.side_effect = PlaywrightTimeoutError("Timeout 30000ms exceeded")
        manager = BrowserManager()
        page = await manager.new_page()

        with pytest.raises(NavigationError, match="Timed out"):
            await manager.goto(page, "https://shop.example/slow")

    async def test_goto_network_error_becomes_navigation_error(self, fake_pw) -> None:
        fake_pw.page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
        manager = BrowserManager()
        page = await manager.new_page()

        with pytest.raises(NavigationError, match="ERR_NAME_NOT_RESOLVED"):
            await manager.goto(page, "https://nowhere.example/")

    async def test_goto_http_error_status(self, fake_pw) -> None:
        fake_pw.page.goto.return_value = MagicMock(status=404)
        manager = BrowserManager()
        page = await manager.new_page()

        with pytest.raises(NavigationError, match="404"):
            await manager.goto(page, "https://shop.example/missing")

    async def test_close_page_swallows_errors(self, fake_pw) -> None:
        fake_pw.page.close.side_effect = PlaywrightError("Target closed")
        manager = BrowserManager()
        page = await manager.new_page()

        await manager.close_page(page)

        page.close.assert_awaited_once()

    async def test_manager_check_robots_delegates(self) -> None:
        with patch(
            "sitelens.scraper.browser.check_robots_txt", AsyncMock(return_value=False)
        ) as check:
            assert await BrowserManager().check_robots_txt("https://shop.example/") is False
        check.assert_awaited_once_with("https://shop.example/")


# ---------------------------------------------------------------------------
# Shutdown hooks
# ---------------------------------------------------------------------------

class TestShutdownHooks:
    async def test_signal_closes_browser_then_redelivers(self) -> None:
        manager = BrowserManager()
        manager.close = AsyncMock()
        loop = asyncio.get_running_loop()

        with patch.object(loop, "add_signal_handler") as add, patch.object(
            loop, "remove_signal_handler"
        ) as remove, patch("sitelens.scraper.browser.signal.raise_signal") as raise_signal, patch(
            "sitelens.scraper.browser.atexit.register"
        ):
            install_shutdown_hooks(manager)
            handlers = {c.args[0]: c.args[1:] for c in add.call_args_list}
            assert set(handlers) == {signal.SIGINT, signal.SIGTERM}

            callback, sig = handlers[signal.SIGTERM]
            callback(sig)
            for _ in range(5):
                await asyncio.sleep(0)

        manager.close.assert_awaited_once()
        remove.assert_called_once_with(signal.SIGTERM)
        raise_signal.assert_called_once_with(signal.SIGTERM)

    async def test_server_mode_leaves_signals_alone(self) -> None:
        loop = asyncio.get_running_loop()
        with patch.object(loop, "add_signal_handler") as add, patch(
            "sitelens.scraper.browser.atexit.register"
        ):
            install_shutdown_hooks(BrowserManager(), handle_signals=False)

        add.assert_not_called()

    async def test_exit_hook_registered_once_per_manager(self) -> None:
        manager = BrowserManager()
        with patch("sitelens.scraper.browser.atexit.register") as register:
            install_shutdown_hooks(manager, handle_signals=False)
            install_shutdown_hooks(manager, handle_signals=False)

        register.assert_called_once()
        func, ref = register.call_args.args
        assert func is _close_at_exit
        assert ref() is manager

    def test_exit_hook_closes_browser_after_loop_is_gone(self, fake_pw) -> None:
        manager = BrowserManager()
        asyncio.run(manager.init())
        assert manager.is_initialized() is True

        _close_at_exit(weakref.ref(manager))

        assert manager.is_initialized() is False
        fake_pw.context.close.assert_awaited_once()
        fake_pw.browser.close.assert_awaited_once()
        fake_pw.driver.stop.assert_awaited_once()

    def test_exit_hook_uses_owning_loop_when_open(self) -> None:
        class Recorder:
            def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
                self._loop = loop
                self.closed_in = None

            def is_initialized(self) -> bool:
                return True

            async def close(self) -> None:
                self.closed_in = asyncio.get_running_loop()

        owner = asyncio.new_event_loop()
        try:
            manager = Recorder(owner)
            _close_at_exit(weakref.ref(manager))
            assert manager.closed_in is owner
        finally:
            owner.close()

    def test_exit_hook_skips_idle_or_collected_manager(self) -> None:
        manager = BrowserManager()
        manager.close = AsyncMock()

        _close_at_exit(weakref.ref(manager))
        manager.close.assert_not_awaited()

        ref = weakref.ref(BrowserManager())
        _close_at_exit(ref)
