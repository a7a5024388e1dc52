from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence

from .ai_scrape import PageScraper
from .dedupe import dedupe_posts
from .extractor import RawPost, post_process, stable_post_id
from .normalize import (
    clean_text,
    coerce_tokens,
    coerce_urls,
    display_name_from_slug,
    filename_from_url,
    infer_post_type,
    parse_count,
    profile_slug,
)
from .post import MediaFile, Post, ProfileMetadata
from .run_log import EventLogger, NullLogger

PROFILE_PROMPTS: tuple[str, ...] = (
    "full name",
    "professional headline",
    "current company",
    "current job title",
    "location",
    "industry",
    "about section",
    "experience list",
    "education list",
    "skills list",
    "profile image url",
    "contact info",
    "follower count",
    "connection count",
)


POST_PROMPTS: tuple[str, ...] = (
    "post url",
    "post content text",
    "post date",
    "like count",
    "comment count",
    "share count",
    "post media urls",
    "hashtags",
    "mentions",
)

ACTIVITY_SUFFIX = "/recent-activity/all/"

_VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov", ".m3u8")
_DOCUMENT_EXTENSIONS = (".pdf", ".ppt", ".pptx", ".doc", ".docx")
_DATE_FORMATS = ("%b %d, %Y", "%B %d, %Y", "%d %b %Y", "%d %B %Y", "%Y-%m-%d", "%m/%d/%Y")
_LIST_SPLIT_RE = re.compile(r"[,;\u2022]")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FallbackOutcome:
    success: bool
    profile: ProfileMetadata | None = None
    posts: tuple[Post, ...] = ()
    error: str | None = None


def activity_url(profile_url: str) -> str:
    return profile_url.rstrip("/") + ACTIVITY_SUFFIX


def _lookup(record: Mapping[str, Any], *labels: str) -> Any:
    folded = {str(k).strip().casefold(): v for k, v in record.items()}
    for label in labels:
        value = folded.get(label.casefold())
        if value not in (None, "", []):
            return value
    return None


def _as_text(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return clean_text(" ".join(str(v) for v in value))
    if value is None:
        return ""
    return clean_text(str(value))


def _entry_text(value: Any) -> str:
    if isinstance(value, Mapping):
        return ", ".join(t for t in (_as_text(v) for v in value.values()) if t)
    return _as_text(value)


def _as_entries(value: Any, *, split_text: bool = False) -> tuple[str, ...]:
    """
    Normalize a list-shaped answer into non-empty text entries.

    Lists keep one entry per item (mappings flattened to "a, b"); a plain
    string is one entry, or is split on , ; and bullets when split_text.
    """
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        items = [_entry_text(v) for v in value]
    elif isinstance(value, str) and split_text:
        items = [clean_text(s) for s in _LIST_SPLIT_RE.split(value)]
    else:
        items = [_entry_text(value)]
    return tuple(s for s in items if s)


def _as_contact(value: Any) -> tuple[tuple[str, str], ...]:
    if isinstance(value, Mapping):
        pairs = ((clean_text(str(k)), _entry_text(v)) for k, v in value.items())
        return tuple((k, v) for k, v in pairs if k and v)
    text = "; ".join(_as_entries(value))
    return (("details", text),) if text else ()


def _media_type(url: str) -> str:
    path = url.split("?", 1)[0].casefold()
    if path.endswith(_VIDEO_EXTENSIONS):
        return "video"
    if path.endswith(_DOCUMENT_EXTENSIONS) or "/document/" in path:
        return "document"
    return "image"


def _calendar_date(raw: str) -> str:
    """Rewrite "Jan 5, 2025"-style answers as ISO dates; other strings pass through."""
    s = (raw or "").strip()
    for fmt in _DATE_FORMATS:
        try:
            parsed = datetime.strptime(s, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=timezone.utc).isoformat()
    return s


def _merge_tokens(*groups: Sequence[str]) -> tuple[str, ...]:
    out: list[str] = []
    seen: set[str] = set()
    for group in groups:
        for token in group:
            key = token.casefold()
            if key in seen:
                continue
            seen.add(key)
            out.append(token)
    return tuple(out)


class AIFallbackAdapter:
    """
    Recover profile and posts through a page-extraction service.

    Never raises past scrape_profile(): every failure is folded into a
    FallbackOutcome. A failed posts request degrades to a profile-only result.
    """

    def __init__(
        self,
        scraper: PageScraper,
        *,
        clock: Callable[[], datetime] | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        self._scraper = scraper
        self._clock = clock or _utc_now
        self._logger = logger or NullLogger()

    def scrape_profile(self, profile_url: str) -> FallbackOutcome:
        self._logger.info("ai_fallback_start", url=profile_url)

        try:
            records = self._scraper.scrape(profile_url, PROFILE_PROMPTS)
        except Exception as e:
            self._logger.exception("ai_fallback_profile_failed", exc=e, url=profile_url)
            return FallbackOutcome(success=False, error=f"{type(e).__name__}: {e}")

        if not records:
            self._logger.warning("ai_fallback_profile_empty", url=profile_url)
            return FallbackOutcome(success=False, error="page-extraction service returned no profile data")

        profile = self.parse_profile(records[0], profile_url)

        posts: tuple[Post, ...] = ()
        target = activity_url(profile_url)
        try:
            post_records = self._scraper.scrape(target, POST_PROMPTS)
        except Exception as e:
            self._logger.warning(
                "ai_fallback_posts_failed",
                url=target,
                error_type=type(e).__name__,
                error_message=str(e),
            )
        else:
            posts = self.parse_posts(post_records, page_url=target)

        self._logger.info("ai_fallback_done", url=profile_url, posts=len(posts))
        return FallbackOutcome(success=True, profile=profile, posts=posts)

    def parse_profile(self, record: Mapping[str, Any], profile_url: str) -> ProfileMetadata:
        name = _as_text(_lookup(record, "full name", "name"))
        if not name:
            name = display_name_from_slug(profile_slug(profile_url))

        title = _as_text(_lookup(record, "current job title", "job title"))
        company = _as_text(_lookup(record, "current company", "company"))
        headline = _as_text(_lookup(record, "professional headline", "headline"))
        if not headline:
            headline = " at ".join(p for p in (title, company) if p)

        return ProfileMetadata(
            url=profile_url,
            scraped_at=self._clock(),
            provenance="ai-fallback",
            name=name,
            headline=headline,
            location=_as_text(_lookup(record, "location")),
            industry=_as_text(_lookup(record, "industry")),
            followers=parse_count(_as_text(_lookup(record, "follower count", "followers"))),
            connections=parse_count(_as_text(_lookup(record, "connection count", "connections"))),
            company=company,
            job_title=title,
            about=_as_text(_lookup(record, "about section", "about")),
            experience=_as_entries(_lookup(record, "experience list", "experience")),
            education=_as_entries(_lookup(record, "education list", "education")),
            skills=_as_entries(_lookup(record, "skills list", "skills"), split_text=True),
            profile_image=_as_text(_lookup(record, "profile image url", "profile image")),
            contact_info=_as_contact(_lookup(record, "contact info")),
        )

    def parse_posts(self, records: Sequence[Mapping[str, Any]], *, page_url: str) -> tuple[Post, ...]:
        now = self._clock()
        out: list[Post] = []

        for record in records:
            caption = _as_text(_lookup(record, "post content text", "content"))
            media_urls = coerce_urls(_lookup(record, "post media urls", "media"))
            if not caption and not media_urls:
                continue

            media = tuple(
                MediaFile(type=_media_type(u), url=u, filename=filename_from_url(u, _media_type(u)))
                for u in media_urls
            )
            urls = coerce_urls(_lookup(record, "post url", "url"))
            url = urls[0] if urls else page_url
            raw = RawPost(
                id=stable_post_id(url, caption),
                type=infer_post_type(
                    has_video=any(m.type == "video" for m in media),
                    has_image=any(m.type == "image" for m in media),
                    has_document=any(m.type == "document" for m in media),
                    has_newsletter=False,
                    has_event=False,
                    caption=caption,
                ),
                url=url,
                caption=caption,
                reactions=_as_text(_lookup(record, "like count", "likes")),
                comments=_as_text(_lookup(record, "comment count", "comments")),
                shares=_as_text(_lookup(record, "share count", "shares")),
                media=media,
                timestamp=_calendar_date(_as_text(_lookup(record, "post date", "date"))),
                source="ai-fallback",
            )
            post = post_process(raw, now)
            post = dataclasses.replace(
                post,
                hashtags=_merge_tokens(post.hashtags, coerce_tokens(_lookup(record, "hashtags"), sigil="#")),
                mentions=_merge_tokens(post.mentions, coerce_tokens(_lookup(record, "mentions"), sigil="@")),
            )
            out.append(post)

        return tuple(dedupe_posts(out))
