from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence
from urllib.parse import urlsplit

from .run_log import EventLogger, NullLogger
from .selectors import SelectorSet, default_selector_set

STEALTH_SCRIPT = """
(() => {
  try { delete Object.getPrototypeOf(navigator).webdriver; } catch (e) {}
  Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
  Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
  Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
  if (window.navigator.permissions && window.navigator.permissions.query) {
    const originalQuery = window.navigator.permissions.query.bind(window.navigator.permissions);
    window.navigator.permissions.query = (parameters) => (
      parameters && parameters.name === 'notifications'
        ? Promise.resolve({ state: Notification.permission })
        : originalQuery(parameters)
    );
  }
  window.chrome = window.chrome || { runtime: {}, loadTimes: function () {}, csi: function () {}, app: {} };
  Object.defineProperty(window.screen, 'availWidth', { get: () => window.screen.width });
  Object.defineProperty(window.screen, 'availHeight', { get: () => window.screen.height - 40 });
})();
"""

VIEWPORTS: tuple[dict[str, int], ...] = (
    {"width": 1366, "height": 768},
    {"width": 1920, "height": 1080},
    {"width": 1440, "height": 900},
    {"width": 1536, "height": 864},
    {"width": 1600, "height": 900},
)

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

BLOCKING_PHRASES: tuple[str, ...] = (
    "blocked",
    "restricted",
    "suspended",
    "verify your identity",
    "unusual activity",
    "try again later",
    "rate limit",
)

BLOCK_STATUS_CODES = frozenset({403, 429, 999})

# Block and challenge pages state the reason up front; scanning only the head
# of the page keeps post captions from tripping the phrase check.
_PHRASE_SCAN_CHARS = 600

_AUTHWALL_PATH_MARKERS = ("/authwall", "/login", "/signup", "/uas/login", "/checkpoint")
_AUTHWALL_TEXT_MARKERS = ("sign in to view", "join now to see", "sign in to see", "join to view")


def pick_viewport(rng: random.Random | None = None) -> dict[str, int]:
    r = rng or random
    return dict(r.choice(VIEWPORTS))


def pick_user_agent(rng: random.Random | None = None) -> str:
    r = rng or random
    return r.choice(USER_AGENTS)


class HumanBehavior:
    """Paced mouse, scroll and keyboard activity on a single page."""

    def __init__(
        self,
        page: Any,
        *,
        rng: random.Random | None = None,
        sleep_fn: Callable[[float], None] | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        self.page = page
        self._rng = rng or random.Random()
        self._sleep = sleep_fn or time.sleep
        self._logger = logger or NullLogger()

    def pause(self, min_seconds: float = 0.5, max_seconds: float = 2.5) -> float:
        lo = max(0.0, float(min_seconds))
        hi = max(lo, float(max_seconds))
        seconds = self._rng.uniform(lo, hi)
        self._sleep(seconds)
        return seconds

    def mouse_wander(self, moves: int = 1) -> None:
        size = getattr(self.page, "viewport_size", None) or VIEWPORTS[0]
        width = int(size.get("width") or VIEWPORTS[0]["width"])
        height = int(size.get("height") or VIEWPORTS[0]["height"])
        for _ in range(max(1, moves)):
            x = self._rng.uniform(0, width)
            y = self._rng.uniform(0, height)
            try:
                self.page.mouse.move(x, y, steps=10)
            except Exception as e:
                self._logger.debug("mouse_move_failed", error=str(e))
                return
            self._sleep(self._rng.uniform(0.1, 0.3))

    def incremental_scroll(self, distance: int | None = None, *, steps: int = 4) -> None:
        total = int(distance) if distance is not None else int(self._rng.uniform(100, 600))
        n = max(1, int(steps))
        chunk = total / n
        for _ in range(n):
            try:
                self.page.mouse.wheel(0, chunk)
            except Exception as e:
                self._logger.debug("scroll_failed", error=str(e))
                return
            self._sleep(self._rng.uniform(0.1, 0.35))

    def type_like_human(
        self,
        selector: str,
        text: str,
        *,
        typo_probability: float = 0.01,
    ) -> None:
        """
        Type text into selector one key at a time with a random per-key delay.

        With probability typo_probability per character a wrong letter is
        typed first and erased with Backspace. Errors propagate: the caller
        decides whether a failed login form is fatal.
        """
        self.page.click(selector)
        self.page.fill(selector, "")
        keyboard = self.page.keyboard
        for ch in text:
            if ch.isalpha() and self._rng.random() < typo_probability:
                keyboard.type(self._wrong_key(ch), delay=self._key_delay_ms())
                keyboard.press("Backspace")
            keyboard.type(ch, delay=self._key_delay_ms())
            if self._rng.random() < 0.1:
                self._sleep(self._rng.uniform(0.3, 1.0))
        self._sleep(self._rng.uniform(0.2, 0.7))

    def _key_delay_ms(self) -> float:
        return 50 + self._rng.random() * 100

    def _wrong_key(self, ch: str) -> str:
        letters = "abcdefghijklmnopqrstuvwxyz"
        choice = self._rng.choice(letters)
        if choice == ch.lower():
            choice = letters[(letters.index(choice) + 1) % len(letters)]
        return choice.upper() if ch.isupper() else choice


@dataclass(frozen=True)
class Obstruction:
    blocked: bool = False
    captcha: bool = False
    authwall: bool = False
    reason: str | None = None

    @property
    def obstructed(self) -> bool:
        return self.blocked or self.captcha or self.authwall


class ObstructionDetector:
    """
    Reports block pages, CAPTCHAs and authentication walls.

    Detection only: callers decide whether to retry, wait or move on.
    """

    def __init__(
        self,
        selectors: SelectorSet | None = None,
        *,
        phrases: Sequence[str] = BLOCKING_PHRASES,
        logger: EventLogger | None = None,
    ) -> None:
        self.selectors = selectors or default_selector_set()
        self.phrases = tuple(p.casefold() for p in phrases)
        self._logger = logger or NullLogger()

    def blocking_phrase(self, text: str | None) -> str | None:
        lowered = (text or "").casefold()
        for phrase in self.phrases:
            if phrase in lowered:
                return phrase
        return None

    def is_blocked_status(self, status: int | None) -> bool:
        return status is not None and int(status) in BLOCK_STATUS_CODES

    def has_captcha(self, page: Any) -> bool:
        for selector in self.selectors["captcha"].selectors:
            try:
                el = page.query_selector(selector)
                if el is None:
                    continue
                box = el.bounding_box()
            except Exception:
                continue
            if box and box.get("width", 0) > 0 and box.get("height", 0) > 0:
                self._logger.warning("captcha_detected", selector=selector)
                return True
        return False

    def is_authwall(self, url: str | None, text: str | None = None, page: Any = None) -> bool:
        try:
            path = urlsplit(url or "").path.casefold()
        except ValueError:
            path = ""
        if any(path.startswith(m) for m in _AUTHWALL_PATH_MARKERS):
            return True

        lowered = (text or "").casefold()
        if any(m in lowered for m in _AUTHWALL_TEXT_MARKERS):
            return True

        if page is not None:
            for selector in self.selectors["authwall"].selectors:
                try:
                    if page.query_selector(selector) is not None:
                        return True
                except Exception:
                    continue
        return False

    def inspect(self, page: Any, status: int | None = None, *, text: str | None = None) -> Obstruction:
        if text is None:
            text = page_text(page)

        try:
            url = page.url
        except Exception:
            url = ""

        captcha = self.has_captcha(page)
        authwall = self.is_authwall(url, text, page)

        reason: str | None = None
        blocked = False
        if self.is_blocked_status(status):
            blocked = True
            reason = f"http_{status}"
        else:
            phrase = self.blocking_phrase((text or "")[:_PHRASE_SCAN_CHARS])
            if phrase is not None:
                blocked = True
                reason = f"phrase:{phrase}"
            elif "999" in (text or "")[:200]:
                blocked = True
                reason = "marker:999"

        if captcha and reason is None:
            reason = "captcha"
        if authwall and reason is None:
            reason = "authwall"

        result = Obstruction(blocked=blocked, captcha=captcha, authwall=authwall, reason=reason)
        if result.obstructed:
            self._logger.warning(
                "obstruction_detected",
                url=url or None,
                blocked=blocked,
                captcha=captcha,
                authwall=authwall,
                reason=reason,
            )
        return result


def page_text(page: Any) -> str:
    try:
        return str(page.evaluate("() => document.body ? document.body.innerText : ''") or "")
    except Exception:
        return ""
