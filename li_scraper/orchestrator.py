from __future__ import annotations

import dataclasses
import random
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from .ai_fallback import AIFallbackAdapter
from .ai_scrape import PageScraper
from .anti_detection import ObstructionDetector
from .auth import Authenticator
from .browser import BrowserSession
from .config import Credentials
from .config_schema import AppConfig
from .errors import (
    AIScrapeError,
    AuthenticationError,
    BlockedError,
    FallbackExhaustedError,
    InvalidInputError,
    NavigationError,
    SessionSetupError,
)
from .extractor import ContentExtractor
from .normalize import display_name_from_slug, profile_slug
from .post import Post, ProfileMetadata
from .rate_limiter import RateLimiter
from .retry import RetryConfig, RetryEvent, call_with_retries, is_retryable_navigation_exception
from .run_log import EventLogger, NullLogger, child_logger
from .selectors import SelectorResolver, default_selector_set
from .session import Deadline, ScrapeResult, ScrapeSession, Stage, StageOutcome

ACTIVITY_SUFFIX = "recent-activity/all/"

# Tried in order after the primary activity page fails; "" is the bare profile.
ALTERNATIVE_SUFFIXES: tuple[str, ...] = (
    "recent-activity/shares/",
    "recent-activity/posts/",
    "detail/recent-activity/",
    "",
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def validate_profile_url(url: str, host: str = "linkedin.com") -> str:
    """Return the trimmed URL, or raise InvalidInputError unless it is a /in/<slug> profile URL."""
    candidate = (url or "").strip()
    bare = host.strip().lower()
    if bare.startswith("www."):
        bare = bare[4:]
    pattern = rf"^https?://(?:www\.)?{re.escape(bare)}/in/[A-Za-z0-9-]+/?$"
    if not re.fullmatch(pattern, candidate, flags=re.IGNORECASE):
        raise InvalidInputError(f"Invalid profile URL (expected https://{bare}/in/<slug>/): {url!r}")
    return candidate


@dataclass(frozen=True)
class CascadeOptions:
    has_credentials: bool = False
    ai_enabled: bool = False


def next_stage(
    current: Stage,
    outcome: StageOutcome | None,
    options: CascadeOptions,
    *,
    deadline_expired: bool = False,
) -> Stage:
    """
    Transition function of the fallback cascade.

    A stage succeeds when it produced posts without an error; the AI stage
    succeeds on any profile it recovered. Once the deadline has expired, any
    remaining stage other than DONE collapses to MINIMAL_FALLBACK.
    """
    if current is Stage.INIT:
        nxt = Stage.AUTHENTICATING if options.has_credentials else Stage.PRIMARY
    elif current is Stage.AUTHENTICATING:
        nxt = Stage.PRIMARY
    elif current is Stage.PRIMARY:
        nxt = Stage.DONE if outcome is not None and outcome.succeeded else Stage.ALTERNATIVE_URLS
    elif current is Stage.ALTERNATIVE_URLS:
        if outcome is not None and outcome.succeeded:
            nxt = Stage.DONE
        else:
            nxt = Stage.AI_FALLBACK if options.ai_enabled else Stage.MINIMAL_FALLBACK
    elif current is Stage.AI_FALLBACK:
        ok = outcome is not None and outcome.error is None and outcome.profile is not None
        nxt = Stage.DONE if ok else Stage.MINIMAL_FALLBACK
    else:
        nxt = Stage.DONE

    if deadline_expired and nxt not in (Stage.DONE, Stage.MINIMAL_FALLBACK):
        return Stage.MINIMAL_FALLBACK
    return nxt


def minimal_profile(profile_url: str, now: datetime) -> ProfileMetadata:
    return ProfileMetadata(
        url=profile_url,
        scraped_at=now,
        provenance="minimal-fallback",
        name=display_name_from_slug(profile_slug(profile_url)),
    )


BrowserFactory = Callable[[], BrowserSession]


class ProfileScraper:
    """
    Runs the fallback cascade for one profile URL per scrape() call.

    Only InvalidInputError and SessionSetupError escape scrape(); every other
    failure advances the cascade, which always ends with a result.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        credentials: Credentials | None = None,
        browser_factory: BrowserFactory | None = None,
        ai_scraper: PageScraper | None = None,
        extractor: ContentExtractor | None = None,
        clock: Callable[[], float] | None = None,
        now_fn: Callable[[], datetime] | None = None,
        sleep_fn: Callable[[float], None] | None = None,
        rng: random.Random | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.credentials = credentials
        self._clock = clock or time.monotonic
        self._now = now_fn or _utc_now
        self._sleep = sleep_fn or time.sleep
        self._rng = rng or random.Random()
        self._logger = logger or NullLogger()

        self.selectors = default_selector_set()
        resolver = SelectorResolver(self.selectors, adaptive=self.config.scrape.adaptive_selectors)
        self.extractor = extractor or ContentExtractor(
            self.selectors,
            resolver=resolver,
            clock=self._now,
            logger=child_logger(logger, "extractor"),
        )
        self.detector = ObstructionDetector(self.selectors, logger=child_logger(logger, "anti_detection"))
        self._browser_factory = browser_factory or self._default_browser
        self._ai = (
            AIFallbackAdapter(ai_scraper, clock=self._now, logger=child_logger(logger, "ai_fallback"))
            if ai_scraper is not None
            else None
        )

    def _default_browser(self) -> BrowserSession:
        return BrowserSession(
            self.config.browser,
            rng=self._rng,
            sleep_fn=self._sleep,
            logger=child_logger(self._logger, "browser"),
        )

    @property
    def cascade_options(self) -> CascadeOptions:
        return CascadeOptions(
            has_credentials=self.credentials is not None,
            ai_enabled=self.config.fallback.enabled and self._ai is not None,
        )

    # -------------- entry point -------------- #
    def scrape(self, profile_url: str, deadline: Deadline | float | None = None) -> ScrapeResult:
        url = validate_profile_url(profile_url, self.config.scrape.site_host)

        if isinstance(deadline, Deadline):
            dl = deadline
        else:
            dl = Deadline.after(deadline, clock=self._clock)

        session = ScrapeSession(
            profile_url=url,
            rate_limiter=RateLimiter(
                self.config.rate_limit,
                clock=self._clock,
                sleep_fn=self._sleep,
                rng=self._rng,
                logger=child_logger(self._logger, "rate_limiter"),
            ),
            deadline=dl,
        )

        browser = self._browser_factory()
        try:
            browser.start()
        except SessionSetupError:
            browser.close()
            raise
        except Exception as e:
            browser.close()
            raise SessionSetupError(f"Failed to start browser session: {e}") from e

        options = self.cascade_options
        self._logger.info("scrape_start", url=url, authenticated_mode=options.has_credentials)

        with browser:
            stage = next_stage(Stage.INIT, None, options, deadline_expired=dl.expired())
            while stage is not Stage.DONE:
                self._logger.info("stage_enter", url=url, stage=stage.value)
                outcome = self._run_stage(stage, browser, session)
                session.record_stage(stage, outcome)
                self._apply(stage, outcome, session)

                expired = dl.expired()
                nxt = next_stage(stage, outcome, options, deadline_expired=expired)
                self._logger.info(
                    "stage_exit",
                    url=url,
                    stage=stage.value,
                    next_stage=nxt.value,
                    posts=len(outcome.posts),
                    error_type=type(outcome.error).__name__ if outcome.error is not None else None,
                    deadline_expired=expired,
                )
                stage = nxt

        profile = session.profile or minimal_profile(url, self._now())
        result = ScrapeResult(
            posts=tuple(session.posts),
            profile=profile,
            scraped_at=self._now(),
            is_authenticated=session.is_authenticated,
            stages=tuple(session.stage_history),
        )
        self._logger.info(
            "scrape_done",
            url=url,
            posts=result.total_posts,
            provenance=profile.provenance,
            retries=dict(session.retry_counts),
            rate_limiter=session.rate_limiter.stats().to_dict(),
        )
        return result

    # -------------- stages -------------- #
    def _run_stage(self, stage: Stage, browser: BrowserSession, session: ScrapeSession) -> StageOutcome:
        handlers: dict[Stage, Callable[[BrowserSession, ScrapeSession], StageOutcome]] = {
            Stage.AUTHENTICATING: self._authenticate,
            Stage.PRIMARY: self._primary,
            Stage.ALTERNATIVE_URLS: self._alternatives,
            Stage.AI_FALLBACK: self._ai_fallback,
            Stage.MINIMAL_FALLBACK: self._minimal,
        }
        handler = handlers[stage]
        try:
            return handler(browser, session)
        except Exception as e:
            self._logger.exception("stage_failed", exc=e, url=session.profile_url, stage=stage.value)
            return StageOutcome(error=e)

    def _apply(self, stage: Stage, outcome: StageOutcome, session: ScrapeSession) -> None:
        if stage is Stage.PRIMARY:
            if outcome.profile is not None:
                session.profile = outcome.profile
            session.posts = list(outcome.posts)
        elif stage in (Stage.ALTERNATIVE_URLS, Stage.AI_FALLBACK):
            if outcome.error is None and outcome.profile is not None:
                session.profile = outcome.profile
                session.posts = list(outcome.posts)
        elif stage is Stage.MINIMAL_FALLBACK:
            session.profile = outcome.profile
            session.posts = []

    def _authenticate(self, browser: BrowserSession, session: ScrapeSession) -> StageOutcome:
        if self.credentials is None:
            return StageOutcome(error=AuthenticationError("No credentials configured"))
        auth = Authenticator(
            browser,
            self.config.auth,
            site_host=self.config.scrape.site_host,
            selectors=self.selectors,
            detector=self.detector,
            clock=self._clock,
            sleep_fn=self._sleep,
            logger=child_logger(self._logger, "auth"),
        )
        try:
            session.rate_limiter.wait()
            outcome = auth.login(self.credentials, deadline=session.deadline)
        except (AuthenticationError, NavigationError) as e:
            session.rate_limiter.record_failure(was_blocked=isinstance(e, BlockedError))
            self._logger.warning(
                "auth_degraded",
                url=session.profile_url,
                error_type=type(e).__name__,
                error_message=str(e),
                mode="anonymous",
            )
            return StageOutcome(error=e)

        session.rate_limiter.record_success()
        session.is_authenticated = outcome.success
        return StageOutcome()

    def _primary(self, browser: BrowserSession, session: ScrapeSession) -> StageOutcome:
        url = session.profile_url
        try:
            self._visit(browser, session, url, Stage.PRIMARY)
        except NavigationError as e:
            return StageOutcome(error=e)

        profile = self.extractor.extract_profile(browser.page, url)

        activity = url.rstrip("/") + "/" + ACTIVITY_SUFFIX
        try:
            self._visit(browser, session, activity, Stage.PRIMARY)
        except NavigationError as e:
            return StageOutcome(profile=profile, error=e)

        posts = self._load_posts(browser, session, self.config.scrape.max_posts)
        if not posts:
            self._logger.warning("primary_no_posts", url=activity)
        return StageOutcome(posts=tuple(posts), profile=profile)

    def _alternatives(self, browser: BrowserSession, session: ScrapeSession) -> StageOutcome:
        base = session.profile_url.rstrip("/") + "/"
        cap = self.config.scrape.alternative_max_posts
        last_error: BaseException | None = None

        for suffix in ALTERNATIVE_SUFFIXES:
            if session.deadline.expired():
                self._logger.warning("alternatives_deadline_expired", url=base)
                break
            target = base + suffix
            try:
                self._visit(browser, session, target, Stage.ALTERNATIVE_URLS, max_attempts=1)
            except NavigationError as e:
                last_error = e
                continue

            posts = self._load_posts(browser, session, cap)
            if posts:
                source = session.profile or minimal_profile(session.profile_url, self._now())
                profile = dataclasses.replace(source, provenance="alternative-url", scraped_at=self._now())
                self._logger.info("alternative_url_succeeded", url=target, posts=len(posts))
                return StageOutcome(posts=tuple(posts), profile=profile)

        return StageOutcome(error=last_error or FallbackExhaustedError("No alternative URL yielded posts"))

    def _ai_fallback(self, browser: BrowserSession, session: ScrapeSession) -> StageOutcome:
        if self._ai is None:
            return StageOutcome(error=FallbackExhaustedError("AI fallback is not configured"))

        session.rate_limiter.wait()
        result = self._ai.scrape_profile(session.profile_url)
        if not result.success or result.profile is None:
            session.rate_limiter.record_failure()
            return StageOutcome(error=AIScrapeError(result.error or "AI fallback failed"))

        session.rate_limiter.record_success()
        return StageOutcome(posts=tuple(result.posts), profile=result.profile)

    def _minimal(self, browser: BrowserSession, session: ScrapeSession) -> StageOutcome:
        profile = minimal_profile(session.profile_url, self._now())
        self._logger.warning("minimal_fallback", url=session.profile_url, name=profile.name)
        return StageOutcome(profile=profile)

    # -------------- helpers -------------- #
    def _visit(
        self,
        browser: BrowserSession,
        session: ScrapeSession,
        url: str,
        stage: Stage,
        *,
        max_attempts: int | None = None,
    ) -> None:
        """Navigate with rate limiting, obstruction checks and bounded retries."""
        policy = self.config.retry
        cfg = RetryConfig(
            max_attempts=max_attempts or policy.max_retries,
            base_delay_seconds=policy.backoff_base_seconds,
            max_delay_seconds=policy.backoff_max_seconds,
        )

        def attempt() -> None:
            session.rate_limiter.wait()
            result = browser.navigate(url)
            obstruction = self.detector.inspect(browser.page, result.status)
            if obstruction.obstructed:
                raise BlockedError(
                    f"Access obstructed at {url}: {obstruction.reason}",
                    url=url,
                    status=result.status,
                    reason=obstruction.reason,
                )

        def on_failure(exc: BaseException) -> None:
            blocked = isinstance(exc, BlockedError)
            session.count_retry(stage)
            session.rate_limiter.record_failure(was_blocked=blocked)
            if blocked and self.config.browser.screenshot_on_block:
                slug = profile_slug(session.profile_url) or "profile"
                browser.screenshot(f"blocked-{slug}-{stage.value}-{session.retry_counts[stage.value]}")

        def on_retry(ev: RetryEvent) -> None:
            self._logger.warning(
                "navigation_retry",
                url=ev.url,
                stage=stage.value,
                attempt=ev.failure_attempt,
                next_attempt=ev.next_attempt,
                max_attempts=ev.max_attempts,
                delay_seconds=ev.delay_seconds,
                reason=ev.reason,
                error_type=ev.error_type,
            )

        call_with_retries(
            attempt,
            cfg=cfg,
            is_retryable=is_retryable_navigation_exception,
            operation=f"navigate:{stage.value}",
            on_retry=on_retry,
            on_failure=on_failure,
            sleep_fn=self._sleep,
            should_stop=session.deadline.expired,
            url=url,
        )
        session.rate_limiter.record_success()
        if self.config.browser.anti_detection:
            browser.human.mouse_wander()

    def _load_posts(self, browser: BrowserSession, session: ScrapeSession, max_posts: int | None) -> list[Post]:
        page = browser.page

        def on_round(_round: int, _height: int) -> bool:
            session.rate_limiter.wait()
            if max_posts is None:
                return False
            return len(self.extractor.containers(page)) >= max_posts

        browser.scroll_to_end(
            max_rounds=self.config.scrape.scroll_max_rounds,
            deadline=session.deadline,
            on_round=on_round,
        )
        if self.config.scrape.expand_truncated:
            self.extractor.expand_truncated(page)
        return self.extractor.extract_posts(page, max_posts=max_posts)
