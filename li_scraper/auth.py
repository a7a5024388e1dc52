from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from .anti_detection import ObstructionDetector
from .browser import BrowserSession
from .config import Credentials
from .config_schema import AuthConfig
from .errors import AuthenticationError, NavigationError
from .run_log import EventLogger, NullLogger
from .selectors import SelectorResolver, SelectorSet, default_selector_set
from .session import Deadline

_SUCCESS_MARKERS = ("/feed", "/in/")
_CHALLENGE_MARKERS = ("challenge", "captcha")
_VERIFICATION_MARKERS = ("/checkpoint", "verification", "add-phone", "remember-me")


@dataclass(frozen=True)
class AuthOutcome:
    success: bool
    reason: str


def is_logged_in_url(url: str) -> bool:
    u = (url or "").casefold()
    return any(m in u for m in _SUCCESS_MARKERS)


class Authenticator:
    """
    Signs in through the site's login form.

    Three post-submit outcomes are handled: a feed/profile URL (done), a
    security challenge (wait for a human to solve it) and a secondary
    verification page (skip when possible, otherwise wait). Exhausted wait
    budgets and rejected credentials raise AuthenticationError.
    """

    def __init__(
        self,
        browser: BrowserSession,
        config: AuthConfig | None = None,
        *,
        site_host: str = "linkedin.com",
        selectors: SelectorSet | None = None,
        detector: ObstructionDetector | None = None,
        clock: Callable[[], float] | None = None,
        sleep_fn: Callable[[float], None] | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        self.browser = browser
        self.config = config or AuthConfig()
        self.login_url = f"https://www.{site_host}/login"
        self.selectors = selectors or default_selector_set()
        self._resolver = SelectorResolver(self.selectors)
        self._detector = detector or ObstructionDetector(self.selectors)
        self._clock = clock or time.monotonic
        self._sleep = sleep_fn or time.sleep
        self._logger = logger or NullLogger()

    def login(self, credentials: Credentials, *, deadline: Deadline | None = None) -> AuthOutcome:
        if not credentials.email or not credentials.password:
            raise AuthenticationError("Email and password are required to sign in")

        try:
            self.browser.navigate(self.login_url)
        except NavigationError as e:
            raise AuthenticationError(f"Login page unavailable: {e}") from e

        page = self.browser.page
        if self.browser.wait_for_selector(self.selectors.joined("auth.email"), timeout_ms=10000) is None:
            raise AuthenticationError("Login form not found")

        human = self.browser.human
        human.type_like_human(self._field("auth.email"), credentials.email)
        human.pause(0.5, 1.5)
        human.type_like_human(self._field("auth.password"), credentials.password)
        human.pause(0.5, 1.5)
        page.click(self._field("auth.submit"))
        human.pause(3.0, 5.0)

        return self._resolve_outcome(deadline)

    def _field(self, name: str) -> str:
        found = self._resolver.first(self.browser.page, name)
        if found.found and found.selector:
            return found.selector
        return self.selectors[name].selectors[0]

    def _resolve_outcome(self, deadline: Deadline | None) -> AuthOutcome:
        url = self.browser.current_url
        page = self.browser.page

        if is_logged_in_url(url):
            self._logger.info("login_succeeded", url=url)
            return AuthOutcome(success=True, reason="logged_in")

        lowered = url.casefold()
        if any(m in lowered for m in _CHALLENGE_MARKERS) or self._detector.has_captcha(page):
            self._logger.warning("login_challenge", url=url, wait_seconds=self.config.captcha_wait_seconds)
            if self._poll(self.config.captcha_wait_seconds, deadline):
                return AuthOutcome(success=True, reason="challenge_solved")
            raise AuthenticationError(
                f"Security challenge not resolved within {self.config.captcha_wait_seconds:g}s"
            )

        # A rejected submit can land on /checkpoint/lg/login-submit; the form error wins.
        if self._resolver.exists(page, "auth.error"):
            raise AuthenticationError("Login rejected: check the configured credentials")

        if any(m in lowered for m in _VERIFICATION_MARKERS) or self._resolver.exists(page, "auth.verification_input"):
            self._logger.warning("login_verification", url=url)
            skip = self._resolver.first(page, "auth.skip")
            if skip.found:
                try:
                    skip.value.click()
                    self.browser.human.pause(2.0, 4.0)
                except Exception as e:
                    self._logger.debug("verification_skip_failed", error=str(e))
                if is_logged_in_url(self.browser.current_url):
                    return AuthOutcome(success=True, reason="verification_skipped")
            if self._poll(self.config.verification_wait_seconds, deadline):
                return AuthOutcome(success=True, reason="verification_completed")
            raise AuthenticationError(
                f"Verification not completed within {self.config.verification_wait_seconds:g}s"
            )

        if "login" in lowered:
            raise AuthenticationError("Login failed: still on the login page")

        self.browser.human.pause(5.0, 5.0)
        if is_logged_in_url(self.browser.current_url):
            return AuthOutcome(success=True, reason="logged_in_after_redirect")
        raise AuthenticationError(f"Login finished on an unexpected page: {url}")

    def _poll(self, budget_seconds: float, deadline: Deadline | None) -> bool:
        """Wait for a logged-in URL, checking every poll_seconds within budget."""
        start = self._clock()
        while self._clock() - start < budget_seconds:
            if deadline is not None and deadline.expired():
                self._logger.warning("login_wait_deadline_expired")
                return False
            if is_logged_in_url(self.browser.current_url):
                return True
            self._sleep(self.config.poll_seconds)
        return is_logged_in_url(self.browser.current_url)
