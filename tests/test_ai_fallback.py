from __future__ import annotations

import unittest
from datetime import datetime, timezone
from typing import Any, Sequence

from li_scraper.ai_fallback import POST_PROMPTS, PROFILE_PROMPTS, AIFallbackAdapter, activity_url
from li_scraper.errors import AIScrapeError
from li_scraper.offline import OfflinePageScraper

_NOW = datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc)
_URL = "https://www.linkedin.com/in/satya-nadella/"


class _ScriptedScraper:
    def __init__(self, answers: dict[str, Any]) -> None:
        self.answers = answers
        self.calls: list[tuple[str, tuple[str, ...]]] = []

    def scrape(self, url: str, prompts: Sequence[str]) -> list[dict[str, Any]]:
        self.calls.append((url, tuple(prompts)))
        result = self.answers.get(url)
        if isinstance(result, BaseException):
            raise result
        return list(result or [])


def _adapter(scraper: Any) -> AIFallbackAdapter:
    return AIFallbackAdapter(scraper, clock=lambda: _NOW)


class TestScrapeProfile(unittest.TestCase):
    def test_profile_then_activity_requests(self) -> None:
        scraper = _ScriptedScraper(
            {
                _URL: [{"Full Name": "Satya Nadella", "follower count": "11M followers"}],
                activity_url(_URL): [{"post content text": "Hello #world", "like count": "1.5K"}],
            }
        )
        outcome = _adapter(scraper).scrape_profile(_URL)

        self.assertTrue(outcome.success)
        self.assertEqual([c[0] for c in scraper.calls], [_URL, _URL.rstrip("/") + "/recent-activity/all/"])
        self.assertEqual(scraper.calls[0][1], PROFILE_PROMPTS)
        self.assertEqual(scraper.calls[1][1], POST_PROMPTS)

        assert outcome.profile is not None
        self.assertEqual(outcome.profile.name, "Satya Nadella")
        self.assertEqual(outcome.profile.followers, 11_000_000)
        self.assertEqual(outcome.profile.provenance, "ai-fallback")

        self.assertEqual(len(outcome.posts), 1)
        post = outcome.posts[0]
        self.assertEqual(post.source, "ai-fallback")
        self.assertEqual(post.engagement.reactions, 1500)
        self.assertEqual(post.hashtags, ("world",))

    def test_profile_failure_is_reported_not_raised(self) -> None:
        scraper = _ScriptedScraper({_URL: AIScrapeError("service down")})
        outcome = _adapter(scraper).scrape_profile(_URL)

        self.assertFalse(outcome.success)
        self.assertIsNone(outcome.profile)
        self.assertIn("service down", outcome.error or "")

    def test_empty_profile_answer_fails(self) -> None:
        outcome = _adapter(_ScriptedScraper({_URL: []})).scrape_profile(_URL)
        self.assertFalse(outcome.success)

    def test_posts_failure_degrades_to_profile_only(self) -> None:
        scraper = _ScriptedScraper(
            {
                _URL: [{"full name": "Satya Nadella"}],
                activity_url(_URL): AIScrapeError("timeout"),
            }
        )
        outcome = _adapter(scraper).scrape_profile(_URL)

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.posts, ())
        self.assertIsNone(outcome.error)


class TestParsing(unittest.TestCase):
    def test_name_and_headline_fallbacks(self) -> None:
        profile = _adapter(None).parse_profile(
            {"current job title": "CEO", "current company": "Microsoft", "connection count": "500+"},
            _URL,
        )
        self.assertEqual(profile.name, "Satya Nadella")
        self.assertEqual(profile.headline, "CEO at Microsoft")
        self.assertEqual(profile.connections, 500)

    def test_extended_profile_fields(self) -> None:
        profile = _adapter(None).parse_profile(
            {
                "full name": "Satya Nadella",
                "current company": "Microsoft",
                "current job title": "Chairman and CEO",
                "about section": "  Leading   cloud and AI. ",
                "experience list": [{"title": "CEO", "company": "Microsoft"}, "EVP, Cloud"],
                "education list": "MBA, University of Chicago",
                "skills list": "Cloud; AI • Leadership, ",
                "profile image url": "https://media.example.com/p/satya.jpg",
                "contact info": {"website": "https://news.example.com", "email": ""},
            },
            _URL,
        )

        self.assertEqual(profile.company, "Microsoft")
        self.assertEqual(profile.job_title, "Chairman and CEO")
        self.assertEqual(profile.about, "Leading cloud and AI.")
        self.assertEqual(profile.experience, ("CEO, Microsoft", "EVP, Cloud"))
        self.assertEqual(profile.education, ("MBA, University of Chicago",))
        self.assertEqual(profile.skills, ("Cloud", "AI", "Leadership"))
        self.assertEqual(profile.profile_image, "https://media.example.com/p/satya.jpg")
        self.assertEqual(profile.contact_info, (("website", "https://news.example.com"),))

        payload = profile.to_dict()
        self.assertEqual(payload["jobTitle"], "Chairman and CEO")
        self.assertEqual(payload["skills"], ["Cloud", "AI", "Leadership"])
        self.assertEqual(payload["contactInfo"], {"website": "https://news.example.com"})

    def test_extended_fields_default_empty(self) -> None:
        profile = _adapter(None).parse_profile({"full name": "Satya Nadella", "contact info": "satya@example.com"}, _URL)
        self.assertEqual(profile.experience, ())
        self.assertEqual(profile.skills, ())
        self.assertEqual(profile.about, "")
        self.assertEqual(profile.contact_info, (("details", "satya@example.com"),))

    def test_post_fields_from_loose_answers(self) -> None:
        records = [
            {
                "post url": "https://www.linkedin.com/posts/satya_1",
                "post content text": "Big news with @jane #AI",
                "post date": "Jan 5, 2025",
                "comment count": "12",
                "share count": "3",
                "post media urls": "see https://media.example.com/v/clip.mp4 and https://media.example.com/d/deck.pdf",
                "hashtags": ["#AI", "cloud"],
                "mentions": "@jane @john",
            },
            {"post content text": "", "post media urls": []},
        ]
        posts = _adapter(None).parse_posts(records, page_url=activity_url(_URL))

        self.assertEqual(len(posts), 1)
        post = posts[0]
        self.assertEqual(post.url, "https://www.linkedin.com/posts/satya_1")
        self.assertEqual(post.type, "video")
        self.assertEqual([m.type for m in post.media_files], ["video", "document"])
        self.assertEqual(post.hashtags, ("AI", "cloud"))
        self.assertEqual(post.mentions, ("jane", "john"))
        self.assertEqual(post.publish_date, datetime(2025, 1, 5, tzinfo=timezone.utc))
        self.assertEqual(post.engagement.comments, 12)
        self.assertTrue(post.id.startswith("post_"))

    def test_duplicate_records_are_deduped(self) -> None:
        record = {"post url": "https://x.example/p/1", "post content text": "Same"}
        posts = _adapter(None).parse_posts([record, dict(record)], page_url=_URL)
        self.assertEqual(len(posts), 1)


class TestOfflineScraper(unittest.TestCase):
    def test_offline_answers_parse(self) -> None:
        outcome = _adapter(OfflinePageScraper()).scrape_profile(_URL)

        self.assertTrue(outcome.success)
        assert outcome.profile is not None
        self.assertEqual(outcome.profile.name, "Satya Nadella")
        self.assertEqual(outcome.profile.headline, "Staff Engineer at Example Corp")
        self.assertEqual(len(outcome.posts), 3)

    def test_offline_posts_failure(self) -> None:
        outcome = _adapter(OfflinePageScraper(fail_posts=True)).scrape_profile(_URL)
        self.assertTrue(outcome.success)
        self.assertEqual(outcome.posts, ())


if __name__ == "__main__":
    unittest.main()
