from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

from .config import AppConfig, load_config
from .errors import ConfigError
from .pipeline import run_once
from .prompt_registry import LangSmithRegistry
from .prompt_resolver import PromptResolver
from .reporting import (
    build_markdown_digest,
    export_analytics_csv,
    format_run_summary,
    write_text_report,
)
from .storage import Storage


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="startup-radar",
        description="Score hot Reddit posts with an LLM and store the results.",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.toml")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Fetch, analyze and persist posts once")
    run_parser.add_argument("--subreddits", help="Comma-separated list overriding SUBREDDITS")
    run_parser.add_argument("--limit", type=int, help="Posts per subreddit, overrides POST_LIMIT")

    subparsers.add_parser("prompt", help="Show which prompt template a run would use")

    digest_parser = subparsers.add_parser("digest", help="Markdown digest of stored posts")
    digest_parser.add_argument("--subreddit", default=None)
    digest_parser.add_argument("--limit", type=int, default=100)
    digest_parser.add_argument("--top", type=int, default=10)
    digest_parser.add_argument("--output", type=Path, default=None)
    digest_parser.add_argument("--csv", type=Path, default=None)

    runs_parser = subparsers.add_parser("runs", help="List recent pipeline runs")
    runs_parser.add_argument("--limit", type=int, default=10)
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        level=logging.DEBUG if verbose else logging.INFO,
    )


def _apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    if args.subreddits:
        subreddits = [item.strip() for item in args.subreddits.split(",") if item.strip()]
        if subreddits:
            config = replace(config, subreddits=subreddits)
    if args.limit is not None:
        config = replace(config, post_limit=max(args.limit, 1))
    return config


def _cmd_run(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print("Missing required environment variables:", file=sys.stderr)
        for name in exc.missing:
            print(f"   {name}", file=sys.stderr)
        print("Set them in the environment before running the scraper.", file=sys.stderr)
        return 1

    config = _apply_overrides(config, args)
    result = run_once(config)
    print(format_run_summary(result))
    return result.exit_code


def _cmd_prompt(args: argparse.Namespace) -> int:
    config = load_config(args.config, require_credentials=False)
    registry = LangSmithRegistry(config.langsmith) if config.langsmith is not None else None
    if registry is None:
        print("LANGSMITH_API_KEY is not set; the bundled fallback prompt will be used.")
    template = PromptResolver(registry).get_active_template()
    print(f"Prompt: {template.id}")
    print(f"Version: {template.version}")
    print(f"Source: {template.source}")
    print(f"Inputs: {', '.join(template.input_variables) or '-'}")
    return 0


def _cmd_digest(args: argparse.Namespace) -> int:
    config = load_config(args.config, require_credentials=False)
    storage = Storage(config.db_path)
    rows = storage.get_posts_with_analytics(subreddit=args.subreddit, limit=args.limit)
    report = build_markdown_digest(rows, generated_at=datetime.now(tz=UTC), top_n=args.top)

    if args.csv is not None:
        export_analytics_csv(rows, args.csv)
        print(f"CSV written to {args.csv}")
    if args.output is not None:
        write_text_report(report, args.output)
        print(f"Digest written to {args.output}")
    else:
        print(report)
    return 0


def _cmd_runs(args: argparse.Namespace) -> int:
    config = load_config(args.config, require_credentials=False)
    logs = Storage(config.db_path).list_runs(limit=args.limit)
    if not logs:
        print("No runs recorded yet.")
        return 0
    for log in logs:
        started = datetime.fromtimestamp(log.run_started_utc, tz=UTC).strftime("%Y-%m-%d %H:%M:%S")
        print(
            f"#{log.run_id} {started} UTC {log.status}: fetched={log.fetched} "
            f"saved={log.saved} skipped={log.skipped} errors={log.errors} "
            f"warnings={log.warnings}"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    command = args.command or "run"
    if command == "run" and args.command is None:
        args.subreddits = None
        args.limit = None

    handlers = {
        "run": _cmd_run,
        "prompt": _cmd_prompt,
        "digest": _cmd_digest,
        "runs": _cmd_runs,
    }
    return handlers[command](args)


if __name__ == "__main__":
    raise SystemExit(main())
