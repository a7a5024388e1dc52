from __future__ import annotations

import random
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from .anti_detection import (
    BLOCK_STATUS_CODES,
    STEALTH_SCRIPT,
    HumanBehavior,
    page_text,
    pick_user_agent,
    pick_viewport,
)
from .config_schema import BrowserConfig
from .errors import BlockedError, NavigationError, SessionSetupError
from .run_log import EventLogger, NullLogger
from .session import Deadline

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--disable-gpu",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-features=TranslateUI",
    "--disable-blink-features=AutomationControlled",
)

EXTRA_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Upgrade-Insecure-Requests": "1",
}

STUCK_LIMIT = 3

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")

PlaywrightFactory = Callable[[], Any]


def _default_playwright_factory() -> Any:
    from playwright.sync_api import sync_playwright

    return sync_playwright().start()


@dataclass(frozen=True)
class NavigationResult:
    url: str
    status: int | None
    final_url: str


class BrowserSession:
    """
    One Playwright instance, browser, context and page.

    Use as a context manager so teardown runs on every exit path:

        with BrowserSession(cfg) as session:
            session.navigate(url)
    """

    def __init__(
        self,
        config: BrowserConfig | None = None,
        *,
        rng: random.Random | None = None,
        sleep_fn: Callable[[float], None] | None = None,
        logger: EventLogger | None = None,
        playwright_factory: PlaywrightFactory | None = None,
    ) -> None:
        self.config = config or BrowserConfig()
        self._rng = rng or random.Random()
        self._sleep = sleep_fn or time.sleep
        self._logger = logger or NullLogger()
        self._factory = playwright_factory or _default_playwright_factory

        self._pw: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None
        self._human: HumanBehavior | None = None
        self._last_status: int | None = None

    # -------------- lifecycle -------------- #
    def start(self) -> "BrowserSession":
        if self._page is not None:
            return self

        cfg = self.config
        try:
            self._pw = self._factory()
            launch_kwargs: dict[str, Any] = {
                "headless": cfg.headless,
                "args": list(LAUNCH_ARGS),
                "ignore_default_args": ["--enable-automation"],
            }
            if cfg.proxy_server:
                launch_kwargs["proxy"] = {"server": cfg.proxy_server}
            self._browser = self._pw.chromium.launch(**launch_kwargs)

            if cfg.user_agent:
                user_agent = cfg.user_agent.strip()
            elif cfg.anti_detection:
                user_agent = pick_user_agent(self._rng)
            else:
                user_agent = DEFAULT_USER_AGENT
            viewport = pick_viewport(self._rng) if cfg.anti_detection else {"width": 1366, "height": 768}

            self._context = self._browser.new_context(
                user_agent=user_agent,
                viewport=viewport,
                locale="en-US",
                extra_http_headers=dict(EXTRA_HEADERS),
                ignore_https_errors=True,
            )
            self._context.set_default_timeout(cfg.timeout_ms)
            self._context.set_default_navigation_timeout(cfg.timeout_ms)
            if cfg.anti_detection:
                self._context.add_init_script(STEALTH_SCRIPT)

            self._page = self._context.new_page()
        except Exception as e:
            self.close()
            raise SessionSetupError(f"Failed to start browser session: {e}") from e

        self._human = HumanBehavior(self._page, rng=self._rng, sleep_fn=self._sleep, logger=self._logger)
        self._logger.info(
            "browser_started",
            headless=cfg.headless,
            anti_detection=cfg.anti_detection,
            viewport=viewport,
        )
        return self

    def close(self) -> None:
        """Release page, context, browser and driver. Safe to call repeatedly."""
        for attr in ("_page", "_context", "_browser"):
            obj = getattr(self, attr)
            setattr(self, attr, None)
            if obj is None:
                continue
            try:
                obj.close()
            except Exception as e:
                self._logger.debug("browser_close_failed", target=attr.strip("_"), error=str(e))

        pw = self._pw
        self._pw = None
        if pw is not None:
            try:
                pw.stop()
            except Exception as e:
                self._logger.debug("playwright_stop_failed", error=str(e))
        self._human = None

    def __enter__(self) -> "BrowserSession":
        return self.start()

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    # -------------- accessors -------------- #
    @property
    def page(self) -> Any:
        if self._page is None:
            raise SessionSetupError("Browser session is not started")
        return self._page

    @property
    def human(self) -> HumanBehavior:
        if self._human is None:
            raise SessionSetupError("Browser session is not started")
        return self._human

    @property
    def is_started(self) -> bool:
        return self._page is not None

    @property
    def last_status(self) -> int | None:
        return self._last_status

    @property
    def current_url(self) -> str:
        try:
            return str(self.page.url or "")
        except SessionSetupError:
            raise
        except Exception:
            return ""

    def page_text(self) -> str:
        return page_text(self.page)

    # -------------- navigation -------------- #
    def navigate(self, url: str, wait_until: str = "domcontentloaded") -> NavigationResult:
        """
        Load url and wait for the page to settle.

        Raises BlockedError for block status codes and NavigationError for
        timeouts, transport failures and any other non-2xx response.
        """
        page = self.page
        self._logger.info("navigate", url=url, wait_until=wait_until)

        try:
            response = page.goto(url, wait_until=wait_until, timeout=self.config.timeout_ms)
        except Exception as e:
            self._last_status = None
            raise NavigationError(f"Failed to load {url}: {e}", url=url) from e

        if response is None:
            self._last_status = None
            raise NavigationError(f"No response for {url}", url=url)

        status = int(response.status)
        self._last_status = status

        if status in BLOCK_STATUS_CODES:
            raise BlockedError(
                f"Blocked loading {url}: HTTP {status}",
                url=url,
                status=status,
                reason=f"http_{status}",
            )
        if not (200 <= status < 300):
            raise NavigationError(f"Failed to load {url}: HTTP {status}", url=url, status=status)

        idle_ms = int(self.config.navigation_idle_ms)
        if idle_ms > 0:
            try:
                page.wait_for_load_state("networkidle", timeout=idle_ms)
            except Exception:
                self._logger.debug("network_idle_timeout", url=url, timeout_ms=idle_ms)

        return NavigationResult(url=url, status=status, final_url=self.current_url or url)

    def wait_for_selector(self, selector: str, timeout_ms: int = 10000) -> Any:
        try:
            return self.page.wait_for_selector(selector, timeout=timeout_ms)
        except SessionSetupError:
            raise
        except Exception:
            self._logger.debug("selector_not_found", selector=selector, timeout_ms=timeout_ms)
            return None

    def _scroll_height(self) -> int:
        try:
            return int(self.page.evaluate("() => document.body.scrollHeight") or 0)
        except Exception:
            return 0

    def scroll_to_end(
        self,
        *,
        max_rounds: int = 40,
        deadline: Deadline | None = None,
        on_round: Callable[[int, int], bool] | None = None,
    ) -> int:
        """
        Scroll until the page height stops growing for STUCK_LIMIT rounds in a row.

        on_round(round, height) may return True to stop early (enough posts
        loaded). Returns the number of scroll rounds performed.
        """
        page = self.page
        height = self._scroll_height()
        stuck = 0
        rounds = 0

        while stuck < STUCK_LIMIT and rounds < max(1, int(max_rounds)):
            if deadline is not None and deadline.expired():
                self._logger.warning("scroll_deadline_expired", rounds=rounds)
                break

            previous = height
            self.human.incremental_scroll()
            try:
                page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")
            except Exception as e:
                self._logger.debug("scroll_failed", error=str(e))
                break
            self.human.pause(2.0, 4.0)
            rounds += 1

            height = self._scroll_height()
            stuck = stuck + 1 if height == previous else 0
            self._logger.debug("scroll_progress", height=height, stuck=stuck, round=rounds)

            if on_round is not None and on_round(rounds, height):
                break

        self._logger.info("scroll_finished", rounds=rounds, height=height)
        return rounds

    def screenshot(self, name: str) -> Path | None:
        safe = _UNSAFE_NAME_RE.sub("-", (name or "").strip()).strip("-") or "page"
        if not safe.endswith(".png"):
            safe += ".png"
        path = Path(self.config.screenshot_dir) / safe
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self.page.screenshot(path=str(path), full_page=True)
        except Exception as e:
            self._logger.warning("screenshot_failed", path=str(path), error=str(e))
            return None
        self._logger.info("screenshot_saved", path=str(path))
        return path
