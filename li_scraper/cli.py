from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Sequence

from .ai_scrape import OpenAIPageScraper
from .config import config_sha256, load_config, resolve_runtime_secrets
from .dry_run import run_dry_run
from .errors import AIScrapeError, ConfigError, ExportError, InvalidInputError, SessionSetupError
from .export import EXPORT_FORMATS, export_result
from .orchestrator import ProfileScraper
from .run_log import RunLogger, child_logger


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="li_scraper")

    subparsers = parser.add_subparsers(dest="command", required=True)

    dry = subparsers.add_parser(
        "dry-run",
        help="Verify the page-extraction fallback on one profile.",
    )
    dry.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    dry.add_argument(
        "--url",
        default=None,
        help="Profile URL (defaults to a placeholder profile on the configured host).",
    )
    dry.add_argument(
        "--offline",
        action="store_true",
        help="Run without network calls using canned answers.",
    )
    dry.set_defaults(_handler=_cmd_dry_run)

    scrape = subparsers.add_parser(
        "scrape",
        help="Scrape one profile's activity and export the result.",
    )
    scrape.add_argument(
        "--config",
        required=True,
        help="Path to YAML config file.",
    )
    scrape.add_argument(
        "--url",
        required=True,
        help="Profile URL, e.g. https://www.linkedin.com/in/<slug>/",
    )
    scrape.add_argument(
        "--out",
        required=True,
        help="Output directory for exports and logs.",
    )
    scrape.add_argument(
        "--format",
        choices=EXPORT_FORMATS,
        default=None,
        help="Export format (defaults to export.format from the config).",
    )
    scrape.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Overall time budget in seconds; remaining stages fall back when it runs out.",
    )
    scrape.set_defaults(_handler=_cmd_scrape)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _cmd_dry_run(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)

    if bool(getattr(args, "offline", False)):
        from .config import RuntimeSecrets
        from .offline import OfflinePageScraper

        result = run_dry_run(
            cfg,
            RuntimeSecrets(credentials=None, ai_api_key=None),
            profile_url=args.url,
            scraper=OfflinePageScraper(),
        )
    else:
        result = run_dry_run(cfg, resolve_runtime_secrets(cfg), profile_url=args.url)

    print(f"profile_url={result.profile_url}")
    print(f"profile_name={result.profile_name}")
    print(f"provenance={result.provenance}")
    print(f"posts_count={result.posts_count}")
    print(f"post_types={json.dumps(result.post_types, sort_keys=True)}")
    print("example_post=")
    print(json.dumps(result.example_post, indent=2, ensure_ascii=False, sort_keys=True))

    return 0


def _cmd_scrape(args: argparse.Namespace) -> int:
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    log_path = out_dir / "run.log"
    with RunLogger.open(log_path, overwrite=True) as log:
        log.info(
            "scrape_command_started",
            config_path=str(args.config),
            out_dir=str(out_dir),
        )

        try:
            cfg = load_config(args.config)
            secrets = resolve_runtime_secrets(cfg)

            log.info(
                "config_loaded",
                config_path=str(args.config),
                config_sha256=config_sha256(cfg),
                authenticated_mode=secrets.credentials is not None,
                ai_fallback=cfg.fallback.enabled,
            )

            ai_scraper = None
            if cfg.fallback.enabled and secrets.ai_api_key:
                ai_scraper = OpenAIPageScraper(
                    secrets.ai_api_key,
                    fallback_cfg=cfg.fallback,
                    logger=child_logger(log, "ai_scrape"),
                )

            scraper = ProfileScraper(
                cfg,
                credentials=secrets.credentials,
                ai_scraper=ai_scraper,
                logger=log.child("orchestrator"),
            )
            result = scraper.scrape(args.url, deadline=args.deadline)

            fmt = args.format or cfg.export.format
            log.info("export_started", format=fmt, out_dir=str(out_dir))
            written = export_result(result, out_dir, fmt, cfg=cfg.export)
            log.info("export_completed", files={k: str(v) for k, v in written.items()})

            print(f"profile_url={result.profile.url}")
            print(f"scraped_via={result.profile.provenance}")
            print(f"total_posts={result.total_posts}")
            print(f"is_authenticated={str(result.is_authenticated).lower()}")
            for kind, path in sorted(written.items()):
                print(f"{kind}={path}")
            print(f"run_log={log_path}")

            return 4 if result.profile.provenance == "minimal-fallback" else 0
        except Exception as e:
            log.exception("scrape_command_failed", exc=e)
            raise


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except (ConfigError, InvalidInputError) as e:
        _eprint(str(e))
        return 2
    except (SessionSetupError, AIScrapeError, ExportError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
