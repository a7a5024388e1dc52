from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .ai_fallback import AIFallbackAdapter
from .ai_scrape import OpenAIPageScraper, PageScraper
from .config import RuntimeSecrets
from .config_schema import AppConfig
from .errors import ConfigError
from .extractor import summarize
from .orchestrator import validate_profile_url
from .run_log import EventLogger, child_logger

_DRY_RUN_PROFILE_SLUG = "offline-profile"


@dataclass(frozen=True)
class DryRunResult:
    profile_url: str
    profile_name: str
    provenance: str
    posts_count: int
    post_types: dict[str, int]
    example_post: dict[str, Any] | None


def default_dry_run_url(config: AppConfig) -> str:
    return f"https://www.{config.scrape.site_host}/in/{_DRY_RUN_PROFILE_SLUG}/"


def run_dry_run(
    config: AppConfig,
    secrets: RuntimeSecrets,
    *,
    profile_url: str | None = None,
    scraper: PageScraper | None = None,
    logger: EventLogger | None = None,
) -> DryRunResult:
    """
    Verify the page-extraction fallback end to end without a browser.

    Runs one profile through the AI fallback adapter and reports what came
    back. Raises RuntimeError when the adapter recovers nothing.
    """
    url = validate_profile_url(profile_url or default_dry_run_url(config), config.scrape.site_host)

    if scraper is None:
        if not secrets.ai_api_key:
            raise ConfigError(
                f"Missing required environment variables: {config.fallback.api_key_env} "
                "(or pass --offline)"
            )
        scraper = OpenAIPageScraper(
            secrets.ai_api_key,
            fallback_cfg=config.fallback,
            logger=child_logger(logger, "ai_scrape"),
        )

    adapter = AIFallbackAdapter(scraper, logger=child_logger(logger, "ai_fallback"))
    outcome = adapter.scrape_profile(url)
    if not outcome.success or outcome.profile is None:
        raise RuntimeError(f"Dry-run did not recover a profile: {outcome.error}")

    posts = outcome.posts
    return DryRunResult(
        profile_url=url,
        profile_name=outcome.profile.name,
        provenance=outcome.profile.provenance,
        posts_count=len(posts),
        post_types=summarize(posts).post_types,
        example_post=posts[0].to_dict() if posts else None,
    )
