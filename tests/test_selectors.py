from __future__ import annotations

import unittest

from fake_playwright import FakeElement

from li_scraper.selectors import (
    RankedSelectors,
    SelectorResolver,
    SelectorSet,
    default_selector_set,
    element_text,
)


class _ExplodingScope:
    def query_selector(self, selector: str) -> None:
        raise ValueError(f"invalid selector: {selector}")

    def query_selector_all(self, selector: str) -> list[object]:
        raise ValueError(f"invalid selector: {selector}")


class TestRankedSelectors(unittest.TestCase):
    def test_drops_blank_and_duplicate_candidates(self) -> None:
        ranked = RankedSelectors("f", [".a", "", " .b ", ".a"])
        self.assertEqual(ranked.selectors, (".a", ".b"))

    def test_ranked_is_stable_for_ties(self) -> None:
        ranked = RankedSelectors("f", [".a", ".b", ".c"])
        self.assertEqual([c.selector for c in ranked.ranked()], [".a", ".b", ".c"])

    def test_ranked_prefers_observed_successes(self) -> None:
        ranked = RankedSelectors("f", [".a", ".b", ".c"])
        ranked.record_failure(".a")
        ranked.record_success(".c")
        ranked.record_success(".c")

        order = [c.selector for c in ranked.ranked()]
        self.assertEqual(order[0], ".c")
        self.assertEqual(order[-1], ".a")

    def test_repeated_failures_rank_below_untried(self) -> None:
        ranked = RankedSelectors("f", [".a", ".b"])
        for _ in range(10):
            ranked.record_failure(".a")

        self.assertEqual([c.selector for c in ranked.ranked()], [".b", ".a"])
        self.assertAlmostEqual(ranked.ranked()[0].success_rate, 0.5)
        self.assertLess(ranked.ranked()[1].success_rate, 0.1)

    def test_prepend_adds_new_candidate_first(self) -> None:
        ranked = RankedSelectors("f", [".a"])
        ranked.prepend(".z")
        ranked.prepend(".a")
        self.assertEqual(ranked.selectors, (".z", ".a"))

    def test_performance_report_counts(self) -> None:
        ranked = RankedSelectors("f", [".a"])
        ranked.record_success(".a")
        ranked.record_failure(".a")
        ranked.record_failure(".missing")
        self.assertEqual(ranked.performance(), {".a": {"success": 1, "failure": 1}})


class TestSelectorSet(unittest.TestCase):
    def test_unknown_field_raises_key_error(self) -> None:
        sel = SelectorSet({"x": [".x"]})
        with self.assertRaises(KeyError):
            _ = sel["nope"]

    def test_joined_uses_declaration_order(self) -> None:
        sel = SelectorSet({"x": [".a", ".b"]})
        self.assertEqual(sel.joined("x"), ".a, .b")

    def test_default_set_covers_extraction_fields(self) -> None:
        sel = default_selector_set()
        for name in (
            "posts.container",
            "posts.text",
            "posts.reactions",
            "media.images",
            "profile.name",
            "auth.email",
            "captcha",
            "authwall",
        ):
            self.assertIn(name, sel)
            self.assertGreater(len(sel[name]), 0)


class TestSelectorResolver(unittest.TestCase):
    def _resolver(self, *, adaptive: bool = False) -> SelectorResolver:
        return SelectorResolver(SelectorSet({"title": [".primary", ".secondary", ".tertiary"]}), adaptive=adaptive)

    def test_first_falls_through_to_later_candidates(self) -> None:
        scope = FakeElement(children={".secondary": [FakeElement("Hello")]})
        r = self._resolver()

        found = r.first(scope, "title")
        self.assertTrue(found.found)
        self.assertEqual(found.selector, ".secondary")

        perf = r.selectors["title"].performance()
        self.assertEqual(perf[".primary"]["failure"], 1)
        self.assertEqual(perf[".secondary"]["success"], 1)
        self.assertEqual(perf[".tertiary"], {"success": 0, "failure": 0})

    def test_text_skips_candidates_with_empty_text(self) -> None:
        scope = FakeElement(
            children={
                ".primary": [FakeElement("   ")],
                ".tertiary": [FakeElement("  Real   title ")],
            }
        )
        self.assertEqual(self._resolver().text(scope, "title"), "Real title")

    def test_missing_everywhere_is_empty_not_error(self) -> None:
        r = self._resolver()
        scope = FakeElement()
        self.assertFalse(r.first(scope, "title").found)
        self.assertFalse(r.all(scope, "title").found)
        self.assertEqual(r.text(scope, "title"), "")
        self.assertEqual(r.number(scope, "title"), 0)
        self.assertFalse(r.attribute(scope, "title", "href").found)
        self.assertFalse(r.exists(scope, "title"))

    def test_query_errors_count_as_misses(self) -> None:
        r = self._resolver()
        self.assertEqual(r.text(_ExplodingScope(), "title"), "")
        self.assertEqual(r.union(_ExplodingScope(), "title"), [])
        perf = r.selectors["title"].performance()
        self.assertEqual(perf[".primary"]["failure"], 1)

    def test_number_parses_suffixed_counts(self) -> None:
        scope = FakeElement(children={".primary": [FakeElement("1.2K reactions")]})
        self.assertEqual(self._resolver().number(scope, "title"), 1200)

    def test_attribute_requires_non_empty_value(self) -> None:
        scope = FakeElement(
            children={
                ".primary": [FakeElement(attrs={"href": ""})],
                ".secondary": [FakeElement(attrs={"href": "/in/someone/"})],
            }
        )
        found = self._resolver().attribute(scope, "title", "href")
        self.assertEqual(found.value, "/in/someone/")
        self.assertEqual(found.selector, ".secondary")

    def test_union_merges_candidates_without_duplicates(self) -> None:
        shared = FakeElement("shared")
        scope = FakeElement(
            children={
                ".primary": [shared, FakeElement("a")],
                ".tertiary": [shared, FakeElement("b")],
            }
        )
        texts = [el.text for el in self._resolver().union(scope, "title")]
        self.assertEqual(texts, ["shared", "a", "b"])

    def test_adaptive_order_tries_best_candidate_first(self) -> None:
        r = self._resolver(adaptive=True)
        scope = FakeElement(children={".tertiary": [FakeElement("x")]})
        for _ in range(3):
            r.first(scope, "title")

        visited: list[str] = []

        class _Recorder:
            def query_selector(self, selector: str) -> FakeElement:
                visited.append(selector)
                return FakeElement("x")

            def query_selector_all(self, selector: str) -> list[FakeElement]:
                return []

        r.first(_Recorder(), "title")
        self.assertEqual(visited, [".tertiary"])

    def test_static_order_is_deterministic(self) -> None:
        scope = FakeElement(
            children={
                ".primary": [FakeElement("first")],
                ".secondary": [FakeElement("second")],
            }
        )
        r = self._resolver()
        results = {r.text(scope, "title") for _ in range(5)}
        self.assertEqual(results, {"first"})


class TestElementText(unittest.TestCase):
    def test_falls_back_to_text_content(self) -> None:
        class _NoInner:
            def inner_text(self) -> str:
                raise RuntimeError("detached")

            def text_content(self) -> str:
                return "content"

        self.assertEqual(element_text(_NoInner()), "content")
        self.assertEqual(element_text(None), "")


if __name__ == "__main__":
    unittest.main()
