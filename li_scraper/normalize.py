from __future__ import annotations

import calendar
import re
import unicodedata
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Sequence
from urllib.parse import unquote, urlsplit

from .post import EngagementCounts, EngagementDerived, MediaFile, PostType

_COUNT_RE = re.compile(r"(\d[\d,]*(?:\.\d+)?)(?:\s?([kKmM])(?![A-Za-z]))?")
_HASHTAG_RE = re.compile(r"#[\w-]+")
_MENTION_RE = re.compile(r"@[\w-]+")
_URL_RE = re.compile(r"https?://[^\s\"'<>]+")
_WS_RE = re.compile(r"\s+")
_RELATIVE_RE = re.compile(r"(\d+)\s*(mo|yr|[hdwmy])\b", re.IGNORECASE)
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")

_SUFFIX_MULTIPLIERS = {"k": 1_000, "m": 1_000_000}


def _coerce_str(value: Any) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s if s else None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def clean_text(text: str | None) -> str:
    """Collapse whitespace, drop control characters and a trailing ellipsis."""
    if not text:
        return ""

    chars: list[str] = []
    for ch in text:
        if ch in "\t\n\r\f\v":
            chars.append(" ")
            continue
        if unicodedata.category(ch) == "Cc":
            continue
        chars.append(ch)

    s = _WS_RE.sub(" ", "".join(chars)).strip()
    if s.endswith("…"):
        s = s[:-1].rstrip()
    return s


def parse_count(value: Any) -> int:
    """
    Parse a display count such as "1,234", "1.2K" or "3M followers".

    The first digit group wins; a k/m suffix attached to it multiplies by
    1,000 or 1,000,000. Anything unparsable is 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float):
        return max(0, int(value))

    text = _coerce_str(value)
    if text is None:
        return 0

    match = _COUNT_RE.search(text)
    if match is None:
        return 0

    digits = match.group(1).replace(",", "")
    try:
        number = float(digits)
    except ValueError:
        return 0

    suffix = (match.group(2) or "").lower()
    number *= _SUFFIX_MULTIPLIERS.get(suffix, 1)
    return max(0, int(number))


def _dedupe_tokens(values: Iterable[str]) -> tuple[str, ...]:
    out: list[str] = []
    seen: set[str] = set()
    for item in values:
        token = (item or "").strip()
        if not token:
            continue
        key = token.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(token)
    return tuple(out)


def extract_hashtags(text: str | None) -> tuple[str, ...]:
    return _dedupe_tokens(m[1:] for m in _HASHTAG_RE.findall(text or ""))


def extract_mentions(text: str | None) -> tuple[str, ...]:
    return _dedupe_tokens(m[1:] for m in _MENTION_RE.findall(text or ""))


def extract_urls(text: str | None) -> tuple[str, ...]:
    return _dedupe_tokens(u.rstrip(".,;)") for u in _URL_RE.findall(text or ""))


def coerce_tokens(value: Any, *, sigil: str) -> tuple[str, ...]:
    """
    Normalize a loosely-typed hashtag/mention answer.

    Lists keep their items (sigil stripped); free text is scanned for
    sigil-prefixed tokens.
    """
    if value is None:
        return ()

    pattern = _HASHTAG_RE if sigil == "#" else _MENTION_RE

    if isinstance(value, str):
        return _dedupe_tokens(m[1:] for m in pattern.findall(value))

    if isinstance(value, (list, tuple)):
        out: list[str] = []
        for item in value:
            s = _coerce_str(item)
            if s is None:
                continue
            found = pattern.findall(s)
            if found:
                out.extend(m[1:] for m in found)
            elif " " not in s:
                out.append(s.lstrip(sigil))
        return _dedupe_tokens(out)

    return ()


def coerce_urls(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return extract_urls(value)
    if isinstance(value, (list, tuple)):
        out: list[str] = []
        for item in value:
            if isinstance(item, Mapping):
                item = item.get("url") or item.get("src")
            s = _coerce_str(item)
            if s is None:
                continue
            out.extend(extract_urls(s))
        return _dedupe_tokens(out)
    return ()


def _ensure_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _subtract_months(moment: datetime, months: int) -> datetime:
    total = moment.year * 12 + (moment.month - 1) - months
    year, month_index = divmod(total, 12)
    month = month_index + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def parse_iso_timestamp(raw: str) -> datetime | None:
    s = (raw or "").strip()
    if not s or not _ISO_DATE_RE.match(s):
        return None
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        return _ensure_aware(datetime.fromisoformat(s))
    except ValueError:
        return None


def resolve_relative_date(label: str, now: datetime) -> datetime | None:
    """
    Resolve labels such as "2h", "3d", "1w", "2m"/"2mo" and "1yr" against now.

    Months are calendar months; weeks are seven days.
    """
    match = _RELATIVE_RE.search(label or "")
    if match is None:
        return None

    value = int(match.group(1))
    unit = match.group(2).lower()
    anchor = _ensure_aware(now)

    if unit == "h":
        return anchor - timedelta(hours=value)
    if unit == "d":
        return anchor - timedelta(days=value)
    if unit == "w":
        return anchor - timedelta(weeks=value)
    if unit in ("m", "mo"):
        return _subtract_months(anchor, value)
    return _subtract_months(anchor, value * 12)


def resolve_publish_date(raw: str | None, now: datetime) -> datetime | None:
    s = (raw or "").strip()
    if not s:
        return None
    parsed = parse_iso_timestamp(s)
    if parsed is not None:
        return parsed
    return resolve_relative_date(s, now)


def derive_engagement(counts: EngagementCounts) -> EngagementDerived:
    # rate is total / reactions, not a conventional rate; see DESIGN.md.
    score = counts.reactions * 1 + counts.comments * 3 + counts.shares * 5
    total = counts.total
    rate = round(total / max(counts.reactions, 1), 2) if total > 0 else 0.0
    return EngagementDerived(score=score, rate=rate)


def filename_from_url(url: str, default: str) -> str:
    try:
        path = urlsplit(url).path
    except ValueError:
        return default
    name = unquote(path.rstrip("/").rsplit("/", 1)[-1]) if path else ""
    return name or default


def filter_media(media: Sequence[MediaFile]) -> tuple[MediaFile, ...]:
    out: list[MediaFile] = []
    seen: set[str] = set()
    for item in media:
        url = (item.url or "").strip()
        if not url.startswith("http"):
            continue
        if url in seen:
            continue
        seen.add(url)
        out.append(item)
    return tuple(out)


def infer_post_type(
    *,
    has_video: bool,
    has_image: bool,
    has_document: bool,
    has_newsletter: bool,
    has_event: bool,
    caption: str,
) -> PostType:
    if has_video:
        return "video"
    if has_image:
        return "image"
    if has_document:
        return "document"
    if has_newsletter:
        return "newsletter"
    if has_event:
        return "event"
    if "poll" in (caption or "").casefold():
        return "poll"
    return "post"


def profile_slug(url: str) -> str:
    try:
        path = urlsplit(url).path
    except ValueError:
        return ""
    segs = [s for s in path.split("/") if s]
    for i, seg in enumerate(segs[:-1]):
        if seg == "in":
            return unquote(segs[i + 1])
    return ""


def display_name_from_slug(slug: str) -> str:
    """Turn "satya-nadella-1a2b3c" into "Satya Nadella"."""
    parts = [p for p in re.split(r"[-_]+", slug or "") if p]
    words = [p for p in parts if not any(ch.isdigit() for ch in p)]
    if not words:
        words = parts
    return " ".join(w[:1].upper() + w[1:] for w in words)
