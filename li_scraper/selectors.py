from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Iterable, Mapping, Protocol, Sequence

from .normalize import clean_text, parse_count


class Scope(Protocol):
    """Anything that can be queried with CSS: a Playwright Page or ElementHandle."""

    def query_selector(self, selector: str) -> Any: ...

    def query_selector_all(self, selector: str) -> list[Any]: ...


@dataclass
class SelectorCandidate:
    selector: str
    successes: int = 0
    failures: int = 0

    @property
    def success_rate(self) -> float:
        # Laplace-smoothed: untried candidates sit at 0.5, failures push below it.
        return (self.successes + 1) / (self.successes + self.failures + 2)


ScoreFn = Callable[[SelectorCandidate], float]


def _default_score(candidate: SelectorCandidate) -> float:
    return candidate.success_rate


class RankedSelectors:
    """
    Ordered candidates for one logical field, with success/failure counters.

    Declaration order is the priority order; ranked() re-sorts by observed
    score with a stable sort, so ties keep declaration order.
    """

    def __init__(self, name: str, selectors: Iterable[str]) -> None:
        self.name = name
        self._candidates: list[SelectorCandidate] = []
        seen: set[str] = set()
        for raw in selectors:
            sel = (raw or "").strip()
            if not sel or sel in seen:
                continue
            seen.add(sel)
            self._candidates.append(SelectorCandidate(sel))
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._candidates)

    def __iter__(self):
        return iter(self._candidates)

    @property
    def selectors(self) -> tuple[str, ...]:
        return tuple(c.selector for c in self._candidates)

    def ranked(self, score: ScoreFn | None = None) -> list[SelectorCandidate]:
        fn = score or _default_score
        return sorted(self._candidates, key=lambda c: -fn(c))

    def prepend(self, selector: str) -> None:
        sel = (selector or "").strip()
        if not sel or sel in self.selectors:
            return
        self._candidates.insert(0, SelectorCandidate(sel))

    def record_success(self, selector: str) -> None:
        with self._lock:
            for c in self._candidates:
                if c.selector == selector:
                    c.successes += 1
                    return

    def record_failure(self, selector: str) -> None:
        with self._lock:
            for c in self._candidates:
                if c.selector == selector:
                    c.failures += 1
                    return

    def performance(self) -> dict[str, dict[str, int]]:
        return {
            c.selector: {"success": c.successes, "failure": c.failures}
            for c in self._candidates
        }


@dataclass(frozen=True)
class Resolved:
    found: bool
    value: Any = None
    selector: str | None = None


NOT_FOUND = Resolved(found=False)


class SelectorSet:
    """Named field -> RankedSelectors mapping for one site layout."""

    def __init__(self, fields: Mapping[str, Sequence[str]]) -> None:
        self._fields: dict[str, RankedSelectors] = {
            name: RankedSelectors(name, sels) for name, sels in fields.items()
        }

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __getitem__(self, name: str) -> RankedSelectors:
        try:
            return self._fields[name]
        except KeyError:
            raise KeyError(f"Unknown selector field: {name}") from None

    def names(self) -> list[str]:
        return list(self._fields)

    def joined(self, name: str) -> str:
        """All candidates of a field as one comma-joined CSS selector list."""
        return ", ".join(self[name].selectors)

    def performance_report(self) -> dict[str, dict[str, dict[str, int]]]:
        return {name: ranked.performance() for name, ranked in self._fields.items()}


class SelectorResolver:
    """
    Try each candidate of a field in priority order against a scope.

    Lookups never raise for a missing field: a candidate whose query errors
    (invalid selector, detached element) counts as a miss. With adaptive=True
    candidates are tried in observed-success order instead of declaration order.
    """

    def __init__(
        self,
        selectors: SelectorSet,
        *,
        adaptive: bool = False,
        score: ScoreFn | None = None,
    ) -> None:
        self.selectors = selectors
        self._adaptive = bool(adaptive)
        self._score = score

    def _order(self, name: str) -> list[SelectorCandidate]:
        ranked = self.selectors[name]
        if self._adaptive:
            return ranked.ranked(self._score)
        return list(ranked)

    def first(self, scope: Scope, name: str) -> Resolved:
        ranked = self.selectors[name]
        for cand in self._order(name):
            try:
                el = scope.query_selector(cand.selector)
            except Exception:
                el = None
            if el is not None:
                ranked.record_success(cand.selector)
                return Resolved(found=True, value=el, selector=cand.selector)
            ranked.record_failure(cand.selector)
        return NOT_FOUND

    def all(self, scope: Scope, name: str) -> Resolved:
        """Elements for the first candidate that matches anything."""
        ranked = self.selectors[name]
        for cand in self._order(name):
            try:
                els = list(scope.query_selector_all(cand.selector) or [])
            except Exception:
                els = []
            if els:
                ranked.record_success(cand.selector)
                return Resolved(found=True, value=els, selector=cand.selector)
            ranked.record_failure(cand.selector)
        return NOT_FOUND

    def union(self, scope: Scope, name: str) -> list[Any]:
        """Elements matched by every candidate, in candidate order, without duplicates."""
        out: list[Any] = []
        seen: set[int] = set()
        for cand in self.selectors[name]:
            try:
                els = list(scope.query_selector_all(cand.selector) or [])
            except Exception:
                continue
            for el in els:
                if id(el) in seen:
                    continue
                seen.add(id(el))
                out.append(el)
        return out

    def exists(self, scope: Scope, name: str) -> bool:
        return self.first(scope, name).found

    def text(self, scope: Scope, name: str) -> str:
        """Cleaned text of the first candidate with non-empty text, else ""."""
        ranked = self.selectors[name]
        for cand in self._order(name):
            try:
                el = scope.query_selector(cand.selector)
                raw = element_text(el) if el is not None else ""
            except Exception:
                raw = ""
            value = clean_text(raw)
            if value:
                ranked.record_success(cand.selector)
                return value
            ranked.record_failure(cand.selector)
        return ""

    def number(self, scope: Scope, name: str) -> int:
        return parse_count(self.text(scope, name))

    def attribute(self, scope: Scope, name: str, attr: str) -> Resolved:
        ranked = self.selectors[name]
        for cand in self._order(name):
            try:
                el = scope.query_selector(cand.selector)
                value = el.get_attribute(attr) if el is not None else None
            except Exception:
                value = None
            if value:
                ranked.record_success(cand.selector)
                return Resolved(found=True, value=value, selector=cand.selector)
            ranked.record_failure(cand.selector)
        return NOT_FOUND


def element_text(el: Any) -> str:
    if el is None:
        return ""
    try:
        text = el.inner_text()
    except Exception:
        text = None
    if not text:
        try:
            text = el.text_content()
        except Exception:
            text = None
    return text or ""


_DEFAULT_FIELDS: dict[str, list[str]] = {
    "posts.container": [
        ".feed-shared-update-v2",
        ".feed-shared-article",
        ".feed-shared-video",
        "article[data-urn]",
        ".occludable-update",
        '[data-id^="urn:li:activity"]',
    ],
    "posts.text": [
        ".feed-shared-text__text-view .attributed-text-segment-list__content",
        ".feed-shared-update-v2__commentary .attributed-text-segment-list__content",
        ".feed-shared-text .break-words",
        ".feed-shared-inline-show-more-text__text-view",
        ".attributed-text-segment-list__content",
        '.feed-shared-text span[dir="ltr"]',
        ".update-components-text span",
    ],
    "posts.author": [
        ".feed-shared-actor__name",
        ".update-components-actor__name",
        ".feed-shared-actor a[aria-label]",
        ".feed-shared-update-v2__actor-name",
        "a.app-aware-link .feed-shared-actor__name",
    ],
    "posts.author_link": [
        ".update-components-actor__meta-link",
        ".feed-shared-actor__container-link",
        "a.app-aware-link[href*='/in/']",
        "a[href*='/company/']",
    ],
    "posts.author_title": [
        ".feed-shared-actor__description",
        ".update-components-actor__description",
        ".feed-shared-actor__sub-description:not(:has(time))",
    ],
    "posts.timestamp": [
        ".feed-shared-actor__sub-description time",
        ".feed-shared-update-v2__content time",
        ".update-components-actor time",
        "time[datetime]",
        ".feed-shared-actor time",
        "time",
    ],
    "posts.timestamp_label": [
        ".update-components-actor__sub-description",
        ".feed-shared-actor__sub-description",
    ],
    "posts.reactions": [
        ".social-counts-reactions__count",
        '[data-test-id="social-action-count-reactions"]',
        ".feed-shared-social-action-bar__count-reactions",
        ".social-counts-reactions button span",
        ".reactions-count",
        ".social-counts__count--reactions",
    ],
    "posts.comments": [
        ".social-counts-comments a",
        '[data-test-id="social-action-count-comments"]',
        ".feed-shared-social-action-bar__count-comments",
        ".social-counts__count--comments span",
        ".comments-count",
    ],
    "posts.shares": [
        ".social-counts__count--reposts",
        '[data-test-id="social-action-count-reposts"]',
        ".feed-shared-social-action-bar__count-shares",
        ".shares-count span",
        ".social-counts-reposts",
    ],
    "posts.permalink": [
        "a:has(> time)",
        "time[datetime] a",
        ".feed-shared-actor__sub-description a",
    ],
    "posts.post_link": [
        'a[href*="/posts/"]',
        'a[href*="/activity-"]',
        'a[href*="urn:li:activity"]',
    ],
    "media.images": [
        ".feed-shared-image img[src]",
        '.feed-shared-update-v2__content img[src]:not([alt*="profile"])',
        ".update-components-image img",
        ".feed-shared-image__container img",
        ".feed-shared-mini-update-v2 img",
        'img[src*="media-exp"]',
        'img[src*="media.licdn.com"]',
    ],
    "media.videos": [
        ".feed-shared-video video source[src]",
        "[data-video-url]",
        ".feed-shared-linkedin-video video",
        "video source",
        ".video-player video",
        "video",
    ],
    "media.documents": [
        '.feed-shared-document a[href*="/document/"]',
        '.feed-shared-article a[href*="/pulse/"]',
        ".feed-shared-external-article a",
        ".feed-shared-document__content a",
        ".document-share a",
    ],
    "markers.video": ["video", "[data-video-url]"],
    "markers.image": ['img[src*="media"]'],
    "markers.document": ['a[href*="document"]', 'a[href*="pulse"]'],
    "markers.newsletter": ['[data-test-id*="newsletter"]', ".update-components-newsletter"],
    "markers.event": ['[data-test-id*="event"]', ".update-components-event"],
    "profile.name": [
        ".text-heading-xlarge",
        ".pv-text-details__left-panel h1",
        ".text-heading-large",
        ".profile-info__name",
        ".pv-top-card--list h1",
        ".pv-top-card__title",
        "h1",
    ],
    "profile.headline": [
        ".text-body-medium.break-words",
        ".pv-text-details__left-panel .text-body-medium",
        ".pv-top-card--list .text-body-medium",
        ".profile-info__headline",
        ".top-card-layout__headline",
    ],
    "profile.followers": [
        '[data-test-id="followers-count"]',
        ".pv-recent-activity-detail__follower-count",
        '.pvs-header__optional-link[href*="followers"] span',
        'a[href*="followers"] .t-bold',
        ".follower-count",
    ],
    "profile.connections": [
        '[data-test-id="connections-count"]',
        'a[href*="connections"] .t-bold',
        ".pv-top-card--list-bullet li .t-bold",
        ".connections-count",
    ],
    "profile.location": [
        ".pv-text-details__left-panel .text-body-small.inline.t-black--light.break-words",
        ".pv-top-card--list .text-body-small.inline",
        ".profile-info__location",
        ".top-card__subline-item",
        ".pv-text-details__left-panel .text-body-small:not(.break-words)",
    ],
    "profile.industry": [
        ".pv-top-card--experience-list li",
        ".pv-entity__company-summary-info h3",
        ".profile-info__industry",
        ".experience-item__subtitle",
    ],
    "navigation.show_more": [
        ".feed-shared-inline-show-more-text__see-more-less-toggle",
        ".show-more-less-text__button--more",
        ".feed-shared-text__see-more",
    ],
    "auth.email": ["#username", 'input[name="session_key"]'],
    "auth.password": ["#password", 'input[name="session_password"]'],
    "auth.submit": ['button[type="submit"]', ".login__form_action_container button"],
    "auth.error": ["#error-for-username", "#error-for-password", ".form__label--error"],
    "auth.skip": [
        'button[data-litms-control-urn*="skip"]',
        ".secondary-action",
        'button:has-text("Skip")',
        'a:has-text("Skip")',
    ],
    "auth.verification_input": [
        "#input__phone_number_challenge_answer",
        "#input__email_verification_pin",
        'input[name="pin"]',
    ],
    "captcha": [
        ".recaptcha-checkbox-border",
        "#captcha-form",
        ".challenge-form",
        '[data-testid="captcha"]',
        ".px-captcha",
        'iframe[src*="captcha"]',
    ],
    "authwall": [
        ".authwall-join-form",
        "#join-form",
        ".join-form",
        '[data-tracking-control-name*="authwall"]',
    ],
}


def default_selector_set() -> SelectorSet:
    """Selector candidates for the current profile/feed layout."""
    return SelectorSet(_DEFAULT_FIELDS)
