from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Iterable

from .config_schema import ExportConfig, ExportFormat
from .errors import ExportError
from .extractor import summarize
from .normalize import profile_slug
from .post import Post
from .session import ScrapeResult

_FORMULA_PREFIXES = ("=", "+", "-", "@")
_UNSAFE_FILENAME_RE = re.compile(r"[<>:\"/\\|?*\x00-\x1f\s]+")
_TOP_POSTS = 10

EXPORT_FORMATS: tuple[str, ...] = ("excel", "csv", "json", "all")


def _safe_text(value: Any) -> Any:
    """Prefix spreadsheet-formula lookalikes with a quote; other values pass through."""
    if not isinstance(value, str) or not value:
        return value
    if value.startswith(_FORMULA_PREFIXES):
        return "'" + value
    return value


def _join(values: Iterable[str], *, prefix: str = "", sep: str = " ") -> str:
    return sep.join(f"{prefix}{v}" for v in values if (v or "").strip())


def export_basename(result: ScrapeResult) -> str:
    slug = profile_slug(result.profile.url) or "profile"
    slug = _UNSAFE_FILENAME_RE.sub("_", slug).strip("_")[:120] or "profile"
    return f"{slug}_{result.scraped_at.date().isoformat()}"


def post_row(post: Post, cfg: ExportConfig) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": post.id,
        "type": post.type,
        "url": post.url,
        "author_name": _safe_text(post.author.name),
        "author_profile": post.author.profile_ref,
        "author_title": _safe_text(post.author.title),
        "caption": _safe_text(post.caption),
        "publish_date": post.publish_date.isoformat() if post.publish_date else None,
        "hashtags": _safe_text(_join(post.hashtags, prefix="#")),
        "mentions": _safe_text(_join(post.mentions, prefix="@")),
        "source": post.source,
    }
    if cfg.include_engagement:
        row.update(
            {
                "reactions": post.engagement.reactions,
                "comments": post.engagement.comments,
                "shares": post.engagement.shares,
                "engagement_score": post.derived.score,
                "engagement_rate": post.derived.rate,
            }
        )
    if cfg.include_media:
        row.update(
            {
                "media_count": len(post.media_files),
                "media_types": _join((m.type for m in post.media_files), sep=" | "),
                "media_urls": _join((m.url for m in post.media_files), sep=" | "),
            }
        )
    return row


def _profile_value(value: Any) -> Any:
    if isinstance(value, list):
        return _join(value, sep="; ")
    if isinstance(value, dict):
        return _join((f"{k}: {v}" for k, v in value.items()), sep="; ")
    return value


def _profile_rows(result: ScrapeResult) -> list[dict[str, Any]]:
    return [
        {"field": k, "value": _safe_text(_profile_value(v))} for k, v in result.profile.to_dict().items()
    ]


def _summary_rows(result: ScrapeResult) -> list[dict[str, Any]]:
    stats = summarize(result.posts).to_dict()
    rows: list[dict[str, Any]] = [
        {"metric": "total_posts", "value": result.total_posts},
        {"metric": "scraped_at", "value": result.scraped_at.isoformat()},
        {"metric": "is_authenticated", "value": result.is_authenticated},
        {"metric": "scraped_via", "value": result.profile.provenance},
        {"metric": "total_reactions", "value": stats["totalReactions"]},
        {"metric": "total_comments", "value": stats["totalComments"]},
        {"metric": "total_shares", "value": stats["totalShares"]},
        {"metric": "posts_with_media", "value": stats["postsWithMedia"]},
        {"metric": "earliest_post", "value": stats["dateRange"]["earliest"]},
        {"metric": "latest_post", "value": stats["dateRange"]["latest"]},
    ]
    for post_type, n in sorted(stats["postTypes"].items()):
        rows.append({"metric": f"posts.{post_type}", "value": n})
    for stage in result.stages:
        rows.append({"metric": f"stage.{stage.stage.value}", "value": _safe_text(stage.error_type or "ok")})
    return rows


def _top_post_rows(posts: Iterable[Post]) -> list[dict[str, Any]]:
    ranked = sorted(posts, key=lambda p: p.derived.score, reverse=True)[:_TOP_POSTS]
    return [
        {
            "rank": i,
            "id": p.id,
            "total_engagement": p.engagement.total,
            "engagement_score": p.derived.score,
            "caption_preview": _safe_text(p.caption[:100]),
        }
        for i, p in enumerate(ranked, start=1)
    ]


def write_json(result: ScrapeResult, path: Path) -> Path:
    payload = result.to_dict()
    payload["extractionSummary"] = summarize(result.posts).to_dict()
    try:
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write JSON export: {path}: {e}") from e
    return path


def write_csv(result: ScrapeResult, path: Path, cfg: ExportConfig) -> Path:
    try:
        import pandas as pd  # type: ignore[import-not-found]
    except Exception as e:
        raise ExportError("pandas is required for CSV export") from e

    df = pd.DataFrame([post_row(p, cfg) for p in result.posts])
    try:
        df.to_csv(path, index=False, encoding="utf-8")
    except Exception as e:
        raise ExportError(f"Failed to write CSV export: {path}: {e}") from e
    return path


def write_excel(result: ScrapeResult, path: Path, cfg: ExportConfig) -> Path:
    try:
        import pandas as pd  # type: ignore[import-not-found]
    except Exception as e:
        raise ExportError("pandas is required for Excel export") from e

    sheets = {
        "Posts": pd.DataFrame([post_row(p, cfg) for p in result.posts]),
        "Profile": pd.DataFrame(_profile_rows(result)),
        "Summary": pd.DataFrame(_summary_rows(result)),
        "Top Posts": pd.DataFrame(_top_post_rows(result.posts)),
    }

    try:
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            for name, df in sheets.items():
                df.to_excel(writer, sheet_name=name, index=False)
            wb = writer.book
            for name in sheets:
                if name in wb.sheetnames:
                    wb[name].freeze_panes = "A2"
    except Exception as e:
        raise ExportError(f"Failed to write workbook: {path}: {e}") from e
    return path


def export_result(
    result: ScrapeResult,
    out_dir: str | Path,
    fmt: ExportFormat = "all",
    *,
    cfg: ExportConfig | None = None,
) -> dict[str, Path]:
    """Write result in the requested format(s); returns {format: path}."""
    if fmt not in EXPORT_FORMATS:
        raise ExportError(f"Invalid export format: {fmt}. Valid formats: {', '.join(EXPORT_FORMATS)}")

    export_cfg = cfg or ExportConfig()
    out = Path(out_dir)
    try:
        out.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ExportError(f"Failed to create output directory: {out}: {e}") from e

    base = export_basename(result)
    wanted = ("json", "csv", "excel") if fmt == "all" else (fmt,)

    written: dict[str, Path] = {}
    if "json" in wanted:
        written["json"] = write_json(result, out / f"{base}.json")
    if "csv" in wanted:
        written["csv"] = write_csv(result, out / f"{base}.csv", export_cfg)
    if "excel" in wanted:
        written["excel"] = write_excel(result, out / f"{base}.xlsx", export_cfg)
    return written
