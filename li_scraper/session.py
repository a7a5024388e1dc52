from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Sequence

from .post import Post, ProfileMetadata
from .rate_limiter import RateLimiter


class Stage(str, Enum):
    INIT = "init"
    AUTHENTICATING = "authenticating"
    PRIMARY = "primary"
    ALTERNATIVE_URLS = "alternative_urls"
    AI_FALLBACK = "ai_fallback"
    MINIMAL_FALLBACK = "minimal_fallback"
    DONE = "done"


class Deadline:
    """Cooperative cancellation: checked at loop boundaries, never interrupts a call."""

    def __init__(self, expires_at: float | None, *, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self.expires_at = expires_at

    @classmethod
    def after(cls, seconds: float | None, *, clock: Callable[[], float] | None = None) -> "Deadline":
        clk = clock or time.monotonic
        if seconds is None:
            return cls(None, clock=clk)
        return cls(clk() + max(0.0, float(seconds)), clock=clk)

    @classmethod
    def never(cls) -> "Deadline":
        return cls(None)

    def remaining(self) -> float | None:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self._clock())

    def expired(self) -> bool:
        return self.expires_at is not None and self._clock() >= self.expires_at


@dataclass(frozen=True)
class StageOutcome:
    posts: tuple[Post, ...] = ()
    profile: ProfileMetadata | None = None
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and len(self.posts) > 0


@dataclass(frozen=True)
class StageRecord:
    stage: Stage
    posts: int
    error_type: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "posts": self.posts,
            "error_type": self.error_type,
            "error_message": self.error_message,
        }


@dataclass
class ScrapeSession:
    """Mutable state for one scrape; owned by the orchestrator only."""

    profile_url: str
    rate_limiter: RateLimiter
    deadline: Deadline
    is_authenticated: bool = False
    posts: list[Post] = field(default_factory=list)
    profile: ProfileMetadata | None = None
    retry_counts: dict[str, int] = field(default_factory=dict)
    stage_history: list[StageRecord] = field(default_factory=list)

    def count_retry(self, stage: Stage) -> None:
        self.retry_counts[stage.value] = self.retry_counts.get(stage.value, 0) + 1

    def record_stage(self, stage: Stage, outcome: StageOutcome) -> None:
        err = outcome.error
        self.stage_history.append(
            StageRecord(
                stage=stage,
                posts=len(outcome.posts),
                error_type=type(err).__name__ if err is not None else None,
                error_message=str(err) if err is not None else None,
            )
        )


@dataclass(frozen=True)
class ScrapeResult:
    posts: Sequence[Post]
    profile: ProfileMetadata
    scraped_at: datetime
    is_authenticated: bool
    stages: Sequence[StageRecord] = ()

    @property
    def total_posts(self) -> int:
        return len(self.posts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "posts": [p.to_dict() for p in self.posts],
            "profileMetadata": self.profile.to_dict(),
            "summary": {
                "totalPosts": self.total_posts,
                "scrapedAt": self.scraped_at.isoformat(),
                "isAuthenticated": self.is_authenticated,
            },
        }
