from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .normalize import display_name_from_slug, profile_slug

Answers = dict[str, "str | list[str]"]


_OFFLINE_POST_1 = (
    "Shipped the new onboarding flow this week. Huge thanks to @dana-lee and the "
    "platform team for the late nights. #productdesign #shipping"
)
_OFFLINE_POST_2 = (
    "Three things I learned running a remote team for five years: write it down, "
    "default to async, and protect deep work. #remotework #leadership"
)
_OFFLINE_POST_3 = "Slides from my talk on resilient data pipelines are up. #dataengineering"

_DEFAULT_OFFLINE_POSTS: tuple[Answers, ...] = (
    {
        "post url": "https://example.com/posts/offline-1",
        "post content text": _OFFLINE_POST_1,
        "post date": "Jan 5, 2025",
        "like count": "1.2K",
        "comment count": "48",
        "share count": "12",
        "post media urls": ["https://media.example.com/img/onboarding.jpg"],
        "hashtags": ["productdesign", "shipping"],
        "mentions": ["dana-lee"],
    },
    {
        "post url": "https://example.com/posts/offline-2",
        "post content text": _OFFLINE_POST_2,
        "post date": "2w",
        "like count": "356",
        "comment count": "27",
        "share count": "5",
        "post media urls": [],
        "hashtags": ["remotework", "leadership"],
        "mentions": [],
    },
    {
        "post url": "https://example.com/posts/offline-3",
        "post content text": _OFFLINE_POST_3,
        "post date": "2025-01-20",
        "like count": "89",
        "comment count": "4",
        "share count": "0",
        "post media urls": ["https://media.example.com/docs/pipelines.pdf"],
        "hashtags": [],
        "mentions": [],
    },
    {
        "post url": "https://example.com/posts/offline-1",
        "post content text": _OFFLINE_POST_1,
        "post date": "Jan 5, 2025",
        "like count": "1.2K",
        "comment count": "48",
        "share count": "12",
        "post media urls": ["https://media.example.com/img/onboarding.jpg"],
        "hashtags": [],
        "mentions": [],
    },
)


@dataclass
class OfflinePageScraper:
    """
    Network-free page scraper for dry-run smoke checks.

    Answers profile prompts with a record derived from the URL slug and post
    prompts with a small deterministic set (one duplicate included so the
    dedupe path runs).
    """

    posts: Sequence[Answers] = _DEFAULT_OFFLINE_POSTS
    fail_posts: bool = False

    def scrape(self, url: str, prompts: Sequence[str]) -> list[Answers]:
        labels = {p.casefold() for p in prompts}
        if "full name" in labels:
            return [self._profile(url)]
        if self.fail_posts:
            raise RuntimeError("offline posts request disabled")
        return [dict(p) for p in self.posts]

    def _profile(self, url: str) -> Answers:
        return {
            "full name": display_name_from_slug(profile_slug(url)) or "Offline Profile",
            "professional headline": "",
            "current company": "Example Corp",
            "current job title": "Staff Engineer",
            "location": "Remote",
            "industry": "Software Development",
            "about section": "Builds developer tooling.",
            "experience list": ["Staff Engineer, Example Corp", "Engineer, Sample Labs"],
            "education list": ["BSc Computer Science, Example University"],
            "skills list": "Python, Distributed Systems; Testing",
            "profile image url": "",
            "contact info": "",
            "follower count": "12.5K",
            "connection count": "500+",
        }
