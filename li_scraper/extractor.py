from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Sequence
from urllib.parse import urljoin

from .dedupe import SeenKeys, canonicalize_url
from .errors import ExtractionWarning
from .normalize import (
    clean_text,
    derive_engagement,
    extract_hashtags,
    extract_mentions,
    filename_from_url,
    filter_media,
    infer_post_type,
    parse_count,
    resolve_publish_date,
)
from .post import Author, EngagementCounts, MediaFile, Post, PostType, ProfileMetadata
from .run_log import EventLogger, NullLogger
from .selectors import SelectorResolver, SelectorSet, default_selector_set, element_text

_IMAGE_SRC_ATTRS = ("src", "data-src", "data-delayed-url")
_VIDEO_SRC_ATTRS = ("src", "data-video-url", "data-src")
_ID_ATTRS = ("data-urn", "data-id")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RawPost:
    """Field values as read from one container, before normalization."""

    id: str
    type: PostType
    url: str
    caption: str
    author_name: str = ""
    author_ref: str = ""
    author_title: str = ""
    reactions: Any = 0
    comments: Any = 0
    shares: Any = 0
    media: Sequence[MediaFile] = ()
    timestamp: str = ""
    source: str = "dom"


@dataclass(frozen=True)
class ExtractionSummary:
    total_posts: int
    post_types: dict[str, int]
    total_reactions: int
    total_comments: int
    total_shares: int
    posts_with_media: int
    hashtags: tuple[str, ...]
    mentions: tuple[str, ...]
    earliest: datetime | None
    latest: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalPosts": self.total_posts,
            "postTypes": dict(self.post_types),
            "totalReactions": self.total_reactions,
            "totalComments": self.total_comments,
            "totalShares": self.total_shares,
            "postsWithMedia": self.posts_with_media,
            "hashtagsUsed": list(self.hashtags),
            "mentionsUsed": list(self.mentions),
            "dateRange": {
                "earliest": self.earliest.isoformat() if self.earliest else None,
                "latest": self.latest.isoformat() if self.latest else None,
            },
        }


def stable_post_id(url: str, caption: str) -> str:
    digest = hashlib.sha1(f"{canonicalize_url(url)}\n{caption}".encode("utf-8")).hexdigest()
    return f"post_{digest[:16]}"


def post_process(raw: RawPost, now: datetime) -> Post:
    """Apply the uniform normalization rules to one raw record."""
    caption = clean_text(raw.caption)
    counts = EngagementCounts(
        reactions=parse_count(raw.reactions),
        comments=parse_count(raw.comments),
        shares=parse_count(raw.shares),
    )
    return Post(
        id=raw.id,
        type=raw.type,
        url=raw.url,
        caption=caption,
        author=Author(
            name=clean_text(raw.author_name),
            profile_ref=raw.author_ref,
            title=clean_text(raw.author_title),
        ),
        engagement=counts,
        derived=derive_engagement(counts),
        media_files=filter_media(raw.media),
        hashtags=extract_hashtags(caption),
        mentions=extract_mentions(caption),
        publish_date=resolve_publish_date(raw.timestamp, now),
        source=raw.source,
    )


def summarize(posts: Sequence[Post]) -> ExtractionSummary:
    types: dict[str, int] = {}
    hashtags: dict[str, str] = {}
    mentions: dict[str, str] = {}
    dates: list[datetime] = []
    reactions = comments = shares = with_media = 0

    for p in posts:
        types[p.type] = types.get(p.type, 0) + 1
        reactions += p.engagement.reactions
        comments += p.engagement.comments
        shares += p.engagement.shares
        if p.media_files:
            with_media += 1
        for tag in p.hashtags:
            hashtags.setdefault(tag.casefold(), tag)
        for m in p.mentions:
            mentions.setdefault(m.casefold(), m)
        if p.publish_date is not None:
            dates.append(p.publish_date)

    return ExtractionSummary(
        total_posts=len(posts),
        post_types=types,
        total_reactions=reactions,
        total_comments=comments,
        total_shares=shares,
        posts_with_media=with_media,
        hashtags=tuple(hashtags.values()),
        mentions=tuple(mentions.values()),
        earliest=min(dates) if dates else None,
        latest=max(dates) if dates else None,
    )


class ContentExtractor:
    """
    Reads profile metadata and posts from a rendered page.

    Works on Playwright Page/ElementHandle objects through the selector
    resolver only; every lookup degrades to an empty value instead of raising.
    warnings holds the failures of the most recent extract_profile or
    extract_posts call.
    """

    def __init__(
        self,
        selectors: SelectorSet | None = None,
        *,
        resolver: SelectorResolver | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        self.selectors = selectors or (resolver.selectors if resolver is not None else default_selector_set())
        self.resolver = resolver or SelectorResolver(self.selectors)
        self._clock = clock or _utc_now
        self._logger = logger or NullLogger()
        self.warnings: list[ExtractionWarning] = []

    # -------------- profile -------------- #
    def extract_profile(self, page: Any, url: str) -> ProfileMetadata:
        self.warnings = []
        r = self.resolver
        now = self._clock()
        try:
            profile = ProfileMetadata(
                url=url,
                scraped_at=now,
                provenance="primary",
                name=r.text(page, "profile.name"),
                headline=r.text(page, "profile.headline"),
                location=r.text(page, "profile.location"),
                industry=r.text(page, "profile.industry"),
                followers=r.number(page, "profile.followers"),
                connections=r.number(page, "profile.connections"),
            )
        except Exception as e:
            self._warn("profile_extract_failed", e, url=url)
            return ProfileMetadata(url=url, scraped_at=now, provenance="primary")

        self._logger.info("profile_extracted", url=url, name=profile.name or None)
        return profile

    # -------------- posts -------------- #
    def containers(self, page: Any) -> list[Any]:
        try:
            return list(page.query_selector_all(self.selectors.joined("posts.container")) or [])
        except Exception as e:
            self._warn("post_containers_failed", e)
            return []

    def extract_posts(self, page: Any, max_posts: int | None = None) -> list[Post]:
        self.warnings = []
        page_url = _page_url(page)
        now = self._clock()

        posts: list[Post] = []
        seen = SeenKeys()
        elements = self.containers(page)

        for index, el in enumerate(elements):
            if max_posts is not None and len(posts) >= max_posts:
                break
            try:
                raw = self.read_container(el, page_url)
            except Exception as e:
                self._warn("post_extract_failed", e, url=page_url, index=index)
                continue

            if raw is None:
                continue
            post = post_process(raw, now)
            if seen.add_post(post):
                posts.append(post)

        self._logger.info(
            "posts_extracted",
            url=page_url or None,
            containers=len(elements),
            posts=len(posts),
        )
        return posts

    def read_container(self, el: Any, page_url: str) -> RawPost | None:
        """Read one post container; None when it has neither caption nor media."""
        r = self.resolver

        caption = r.text(el, "posts.text")
        media = self._media(el, page_url)
        if not caption and not media:
            return None

        url = self._post_url(el, page_url)
        post_id = _attr(el, _ID_ATTRS) or stable_post_id(url, clean_text(caption))

        post_type = infer_post_type(
            has_video=r.exists(el, "markers.video"),
            has_image=r.exists(el, "markers.image"),
            has_document=r.exists(el, "markers.document"),
            has_newsletter=r.exists(el, "markers.newsletter"),
            has_event=r.exists(el, "markers.event"),
            caption=caption,
        )

        author_link = r.attribute(el, "posts.author_link", "href")
        return RawPost(
            id=post_id,
            type=post_type,
            url=url,
            caption=caption,
            author_name=r.text(el, "posts.author"),
            author_ref=_absolute(page_url, author_link.value) if author_link.found else "",
            author_title=r.text(el, "posts.author_title"),
            reactions=r.text(el, "posts.reactions"),
            comments=r.text(el, "posts.comments"),
            shares=r.text(el, "posts.shares"),
            media=tuple(media),
            timestamp=self._timestamp(el),
        )

    def _post_url(self, el: Any, page_url: str) -> str:
        r = self.resolver
        for name in ("posts.permalink", "posts.post_link"):
            found = r.attribute(el, name, "href")
            if found.found:
                return canonicalize_url(_absolute(page_url, found.value))
        return page_url

    def _timestamp(self, el: Any) -> str:
        r = self.resolver
        dt = r.attribute(el, "posts.timestamp", "datetime")
        if dt.found:
            return str(dt.value)
        text = r.text(el, "posts.timestamp")
        if text:
            return text
        return r.text(el, "posts.timestamp_label")

    def _media(self, el: Any, page_url: str) -> list[MediaFile]:
        out: list[MediaFile] = []

        for img in self._query_all(el, "media.images"):
            src = _attr(img, _IMAGE_SRC_ATTRS)
            if not src or "data:image" in src or "profile" in src:
                continue
            src = _absolute(page_url, src)
            out.append(MediaFile(type="image", url=src, filename=filename_from_url(src, "image")))

        for video in self._query_all(el, "media.videos"):
            src = _attr(video, _VIDEO_SRC_ATTRS)
            if not src:
                continue
            src = _absolute(page_url, src)
            out.append(MediaFile(type="video", url=src, filename=filename_from_url(src, "video")))

        for doc in self._query_all(el, "media.documents"):
            href = _attr(doc, ("href",))
            if not href:
                continue
            name = clean_text(element_text(doc)) or "document"
            out.append(MediaFile(type="document", url=_absolute(page_url, href), filename=name))

        return out

    def _query_all(self, el: Any, name: str) -> list[Any]:
        try:
            return list(el.query_selector_all(self.selectors.joined(name)) or [])
        except Exception:
            return []

    # -------------- page helpers -------------- #
    def expand_truncated(self, page: Any, *, limit: int = 50) -> int:
        """Click "see more" toggles so captions are read in full. Best effort."""
        try:
            toggles = list(page.query_selector_all(self.selectors.joined("navigation.show_more")) or [])
        except Exception:
            return 0

        clicked = 0
        for toggle in toggles[: max(0, limit)]:
            try:
                toggle.click(timeout=2000)
                clicked += 1
            except Exception as e:
                self._logger.debug("show_more_click_failed", error=str(e))
        if clicked:
            self._logger.info("truncated_posts_expanded", clicked=clicked)
        return clicked

    def _warn(self, event: str, exc: BaseException, **data: Any) -> None:
        warning = ExtractionWarning(f"{event}: {type(exc).__name__}: {exc}")
        self.warnings.append(warning)
        self._logger.warning(event, error_type=type(exc).__name__, error_message=str(exc), **data)


def _attr(el: Any, names: Sequence[str]) -> str:
    for name in names:
        try:
            value = el.get_attribute(name)
        except Exception:
            value = None
        if value and str(value).strip():
            return str(value).strip()
    return ""


def _absolute(base: str, href: str) -> str:
    h = (href or "").strip()
    if not h or h.startswith(("http://", "https://")) or not base:
        return h
    return urljoin(base, h)


def _page_url(page: Any) -> str:
    try:
        return str(page.url or "")
    except Exception:
        return ""
