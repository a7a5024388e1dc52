from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable
from urllib.parse import urlsplit, urlunsplit

from .post import Post


def canonicalize_url(url: str) -> str:
    """Lower-case scheme/host, drop "www.", query, fragment and trailing slash."""
    value = (url or "").strip()
    if not value:
        return ""

    try:
        parts = urlsplit(value)
    except ValueError:
        return value.rstrip("/")

    if not parts.scheme or not parts.netloc:
        return value.rstrip("/")

    netloc = parts.netloc.lower()
    if netloc.startswith("www."):
        netloc = netloc[4:]

    path = (parts.path or "").rstrip("/") or "/"
    return urlunsplit((parts.scheme.lower(), netloc, path, "", ""))


def dedupe_key(post: Post) -> str:
    if post.id:
        return f"id:{post.id}"
    return f"url:{canonicalize_url(post.url)}"


@dataclass
class SeenKeys:
    keys: set[str] = field(default_factory=set)

    def has(self, key: str) -> bool:
        return key in self.keys

    def add(self, key: str) -> None:
        self.keys.add(key)

    def add_post(self, post: Post) -> bool:
        """Record post; False when an equal key was already seen."""
        key = dedupe_key(post)
        if key in self.keys:
            return False
        self.keys.add(key)
        return True


def dedupe_posts(posts: Iterable[Post]) -> list[Post]:
    seen = SeenKeys()
    return [p for p in posts if seen.add_post(p)]
