from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Sequence

PostType = Literal["post", "image", "video", "document", "newsletter", "event", "poll"]
MediaType = Literal["image", "video", "document"]
Provenance = Literal["primary", "alternative-url", "ai-fallback", "minimal-fallback"]

POST_TYPES: tuple[str, ...] = ("post", "image", "video", "document", "newsletter", "event", "poll")
PROVENANCES: tuple[str, ...] = ("primary", "alternative-url", "ai-fallback", "minimal-fallback")


@dataclass(frozen=True)
class Author:
    name: str = ""
    profile_ref: str = ""
    title: str = ""


@dataclass(frozen=True)
class EngagementCounts:
    reactions: int = 0
    comments: int = 0
    shares: int = 0

    @property
    def total(self) -> int:
        return self.reactions + self.comments + self.shares


@dataclass(frozen=True)
class EngagementDerived:
    score: int = 0
    rate: float = 0.0


@dataclass(frozen=True)
class MediaFile:
    type: MediaType
    url: str
    filename: str


@dataclass(frozen=True)
class Post:
    """A single profile update after post-processing."""

    id: str
    type: PostType = "post"
    url: str = ""
    caption: str = ""
    author: Author = field(default_factory=Author)
    engagement: EngagementCounts = field(default_factory=EngagementCounts)
    derived: EngagementDerived = field(default_factory=EngagementDerived)
    media_files: Sequence[MediaFile] = ()
    hashtags: Sequence[str] = ()
    mentions: Sequence[str] = ()
    publish_date: datetime | None = None
    source: str = "dom"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "url": self.url,
            "caption": self.caption,
            "author": {
                "name": self.author.name,
                "profileRef": self.author.profile_ref,
                "title": self.author.title,
            },
            "engagementCounts": {
                "reactions": self.engagement.reactions,
                "comments": self.engagement.comments,
                "shares": self.engagement.shares,
            },
            "engagementDerived": {
                "score": self.derived.score,
                "rate": self.derived.rate,
            },
            "mediaFiles": [
                {"type": m.type, "url": m.url, "filename": m.filename} for m in self.media_files
            ],
            "hashtags": list(self.hashtags),
            "mentions": list(self.mentions),
            "publishDate": self.publish_date.isoformat() if self.publish_date else None,
            "source": self.source,
        }


@dataclass(frozen=True)
class ProfileMetadata:
    """
    Snapshot of the profile owner; replaced wholesale between cascade stages.

    The DOM and minimal stages fill the core fields only. company through
    contact_info come from the page-extraction service and stay empty
    otherwise.
    """

    url: str
    scraped_at: datetime
    provenance: Provenance
    name: str = ""
    headline: str = ""
    location: str = ""
    industry: str = ""
    followers: int = 0
    connections: int = 0
    company: str = ""
    job_title: str = ""
    about: str = ""
    experience: tuple[str, ...] = ()
    education: tuple[str, ...] = ()
    skills: tuple[str, ...] = ()
    profile_image: str = ""
    contact_info: tuple[tuple[str, str], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "headline": self.headline,
            "company": self.company,
            "jobTitle": self.job_title,
            "location": self.location,
            "industry": self.industry,
            "about": self.about,
            "experience": list(self.experience),
            "education": list(self.education),
            "skills": list(self.skills),
            "profileImage": self.profile_image,
            "contactInfo": dict(self.contact_info),
            "followers": self.followers,
            "connections": self.connections,
            "url": self.url,
            "scrapedAt": self.scraped_at.isoformat(),
            "scrapedVia": self.provenance,
        }

