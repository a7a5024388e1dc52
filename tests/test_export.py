from __future__ import annotations

import csv
import dataclasses
import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from li_scraper.config_schema import ExportConfig
from li_scraper.errors import ExportError
from li_scraper.export import export_basename, export_result, post_row
from li_scraper.post import EngagementCounts, EngagementDerived, MediaFile, Post, ProfileMetadata
from li_scraper.session import ScrapeResult, Stage, StageRecord

_NOW = datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc)


def _result() -> ScrapeResult:
    posts = (
        Post(
            id="post_a",
            type="image",
            url="https://www.linkedin.com/feed/update/urn:li:activity:1/",
            caption="Launch day #shipping",
            engagement=EngagementCounts(reactions=100, comments=10, shares=5),
            derived=EngagementDerived(score=135, rate=1.15),
            media_files=(MediaFile(type="image", url="https://media.example.com/a.jpg", filename="a.jpg"),),
            hashtags=("shipping",),
            publish_date=datetime(2025, 3, 1, tzinfo=timezone.utc),
        ),
        Post(
            id="post_b",
            caption="=HYPERLINK(\"http://evil.example\")",
            engagement=EngagementCounts(reactions=1),
            derived=EngagementDerived(score=1, rate=1.0),
            mentions=("jane",),
        ),
    )
    profile = ProfileMetadata(
        url="https://www.linkedin.com/in/satya-nadella/",
        scraped_at=_NOW,
        provenance="primary",
        name="Satya Nadella",
        headline="-CEO-",
    )
    return ScrapeResult(
        posts=posts,
        profile=profile,
        scraped_at=_NOW,
        is_authenticated=False,
        stages=(StageRecord(stage=Stage.PRIMARY, posts=2),),
    )


class TestPostRow(unittest.TestCase):
    def test_formula_prefixes_are_escaped(self) -> None:
        row = post_row(_result().posts[1], ExportConfig())
        self.assertEqual(row["caption"], "'=HYPERLINK(\"http://evil.example\")")
        self.assertEqual(row["mentions"], "'@jane")

    def test_optional_column_groups(self) -> None:
        post = _result().posts[0]
        full = post_row(post, ExportConfig())
        self.assertEqual(full["reactions"], 100)
        self.assertEqual(full["media_urls"], "https://media.example.com/a.jpg")
        self.assertEqual(full["hashtags"], "#shipping")

        bare = post_row(post, ExportConfig(include_media=False, include_engagement=False))
        self.assertNotIn("reactions", bare)
        self.assertNotIn("media_count", bare)

    def test_basename(self) -> None:
        self.assertEqual(export_basename(_result()), "satya-nadella_2025-03-31")


class TestExportResult(unittest.TestCase):
    def test_json_export(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            written = export_result(_result(), Path(td) / "out", "json")
            self.assertEqual(list(written), ["json"])

            payload = json.loads(written["json"].read_text(encoding="utf-8"))

        self.assertEqual(payload["summary"]["totalPosts"], 2)
        self.assertEqual(payload["profileMetadata"]["scrapedVia"], "primary")
        self.assertEqual(payload["posts"][0]["engagementDerived"]["score"], 135)
        self.assertEqual(payload["extractionSummary"]["totalReactions"], 101)

    def test_csv_export(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            written = export_result(_result(), td, "csv")
            with written["csv"].open(encoding="utf-8", newline="") as fp:
                rows = list(csv.DictReader(fp))

        self.assertEqual([r["id"] for r in rows], ["post_a", "post_b"])
        self.assertEqual(rows[0]["media_count"], "1")
        self.assertTrue(rows[1]["caption"].startswith("'="))

    def test_excel_export_sheets(self) -> None:
        try:
            from openpyxl import load_workbook  # type: ignore[import-not-found]
        except Exception as e:  # pragma: no cover
            raise AssertionError("openpyxl is required for this test") from e

        with tempfile.TemporaryDirectory() as td:
            written = export_result(_result(), td, "excel")
            path = written["excel"]
            self.assertEqual(path.suffix, ".xlsx")

            wb = load_workbook(path)
            self.assertEqual(wb.sheetnames, ["Posts", "Profile", "Summary", "Top Posts"])
            self.assertEqual(wb["Posts"].freeze_panes, "A2")

            rows = list(wb["Top Posts"].iter_rows(values_only=True))
            header = [str(v) for v in rows[0]]
            self.assertEqual(rows[1][header.index("id")], "post_a")

            profile = {r[0]: r[1] for r in wb["Profile"].iter_rows(min_row=2, values_only=True)}
            self.assertEqual(profile["headline"], "'-CEO-")

            summary = {r[0]: r[1] for r in wb["Summary"].iter_rows(min_row=2, values_only=True)}
            self.assertEqual(summary["total_posts"], 2)
            self.assertEqual(summary["stage.primary"], "ok")
            wb.close()

    def test_excel_profile_sheet_flattens_list_fields(self) -> None:
        from openpyxl import load_workbook  # type: ignore[import-not-found]

        base = _result()
        profile = dataclasses.replace(
            base.profile,
            provenance="ai-fallback",
            company="Microsoft",
            job_title="CEO",
            skills=("Cloud", "AI"),
            experience=("CEO, Microsoft",),
            contact_info=(("email", "satya@example.com"),),
        )
        result = dataclasses.replace(base, profile=profile)

        with tempfile.TemporaryDirectory() as td:
            path = export_result(result, td, "excel")["excel"]
            wb = load_workbook(path)
            rows = {r[0]: r[1] for r in wb["Profile"].iter_rows(min_row=2, values_only=True)}
            wb.close()

        self.assertEqual(rows["company"], "Microsoft")
        self.assertEqual(rows["jobTitle"], "CEO")
        self.assertEqual(rows["skills"], "Cloud; AI")
        self.assertEqual(rows["experience"], "CEO, Microsoft")
        self.assertEqual(rows["contactInfo"], "email: satya@example.com")

    def test_all_writes_every_format(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            written = export_result(_result(), td)
            self.assertEqual(sorted(written), ["csv", "excel", "json"])
            for path in written.values():
                self.assertTrue(path.exists())

    def test_invalid_format(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ExportError):
                export_result(_result(), td, "pdf")  # type: ignore[arg-type]

    def test_unwritable_directory(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            blocker = Path(td) / "file"
            blocker.write_text("x", encoding="utf-8")
            with self.assertRaises(ExportError):
                export_result(_result(), blocker / "out", "json")


if __name__ == "__main__":
    unittest.main()
