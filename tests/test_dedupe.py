# tests/test_dedupe.py
from __future__ import annotations

import unittest

from li_scraper.dedupe import SeenKeys, canonicalize_url, dedupe_key, dedupe_posts
from li_scraper.post import Post


class TestDedupe(unittest.TestCase):
    def test_canonicalize_strips_query_and_frag(self) -> None:
        url = "HTTPS://www.LinkedIn.com/feed/update/urn:li:activity:1/?utm_source=x#frag"
        self.assertEqual(canonicalize_url(url), "https://linkedin.com/feed/update/urn:li:activity:1")

    def test_canonicalize_passes_through_non_urls(self) -> None:
        self.assertEqual(canonicalize_url(""), "")
        self.assertEqual(canonicalize_url("not a url/"), "not a url")

    def test_dedupe_key_prefers_id(self) -> None:
        self.assertEqual(dedupe_key(Post(id="post_1", url="https://x.example/p")), "id:post_1")

    def test_dedupe_key_falls_back_to_url(self) -> None:
        post = Post(id="", url="https://www.x.example/p/?a=1")
        self.assertEqual(dedupe_key(post), "url:https://x.example/p")

    def test_dedupe_posts_keeps_first(self) -> None:
        a = Post(id="post_1", caption="first")
        b = Post(id="post_1", caption="second")
        c = Post(id="post_2")
        self.assertEqual(dedupe_posts([a, b, c]), [a, c])

    def test_seen_keys(self) -> None:
        seen = SeenKeys()
        self.assertTrue(seen.add_post(Post(id="x")))
        self.assertFalse(seen.add_post(Post(id="x")))
        self.assertTrue(seen.has("id:x"))


if __name__ == "__main__":
    unittest.main()
