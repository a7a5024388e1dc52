# tests/test_dry_run.py
from __future__ import annotations

import unittest

from li_scraper.config import RuntimeSecrets
from li_scraper.config_schema import AppConfig
from li_scraper.dry_run import default_dry_run_url, run_dry_run
from li_scraper.errors import ConfigError, InvalidInputError
from li_scraper.offline import OfflinePageScraper


class TestDryRun(unittest.TestCase):
    def test_offline_dry_run_reports_profile_and_posts(self) -> None:
        cfg = AppConfig()
        result = run_dry_run(cfg, RuntimeSecrets(None, None), scraper=OfflinePageScraper())

        self.assertEqual(result.profile_url, default_dry_run_url(cfg))
        self.assertEqual(result.profile_name, "Offline Profile")
        self.assertEqual(result.provenance, "ai-fallback")
        self.assertEqual(result.posts_count, 3)
        self.assertEqual(result.post_types, {"image": 1, "post": 1, "document": 1})
        assert result.example_post is not None
        self.assertEqual(result.example_post["url"], "https://example.com/posts/offline-1")

    def test_custom_url_and_missing_posts(self) -> None:
        result = run_dry_run(
            AppConfig(),
            RuntimeSecrets(None, None),
            profile_url="https://www.linkedin.com/in/jane-doe/",
            scraper=OfflinePageScraper(fail_posts=True),
        )
        self.assertEqual(result.profile_name, "Jane Doe")
        self.assertEqual(result.posts_count, 0)
        self.assertIsNone(result.example_post)

    def test_rejects_bad_url(self) -> None:
        with self.assertRaises(InvalidInputError):
            run_dry_run(
                AppConfig(),
                RuntimeSecrets(None, None),
                profile_url="https://www.linkedin.com/company/acme/",
                scraper=OfflinePageScraper(),
            )

    def test_online_mode_needs_key(self) -> None:
        with self.assertRaises(ConfigError):
            run_dry_run(AppConfig(), RuntimeSecrets(None, None))


if __name__ == "__main__":
    unittest.main()
