from __future__ import annotations

import csv
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path

from .models import RunResult

CSV_COLUMNS = [
    "reddit_id",
    "subreddit",
    "title",
    "author",
    "upvotes",
    "comments",
    "url",
    "created_at",
    "sentiment_score",
    "relevance_score",
    "innovation_score",
    "market_viability",
    "trending_score",
    "ai_summary",
    "tags",
    "prompt_id",
    "prompt_version",
    "analyzed_at",
]


def format_run_summary(result: RunResult) -> str:
    return (
        f"Run {result.status} in {result.duration_seconds:.1f}s: "
        f"processed={result.fetched} saved={result.saved} skipped={result.skipped} "
        f"errors={result.errors} warnings={result.warnings}"
    )


def export_analytics_csv(rows: list[dict], destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    with destination.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(CSV_COLUMNS)
        for row in rows:
            writer.writerow(
                [
                    ",".join(row.get("tags") or []) if column == "tags" else _cell(row.get(column))
                    for column in CSV_COLUMNS
                ]
            )


def _cell(value: object) -> object:
    return "" if value is None else value


def build_markdown_digest(rows: list[dict], generated_at: datetime, top_n: int) -> str:
    analyzed = [row for row in rows if row.get("has_analytics")]
    ranked = sorted(analyzed, key=lambda row: row.get("trending_score") or 0, reverse=True)
    top_rows = ranked[: max(top_n, 1)]
    by_subreddit = Counter(row["subreddit"] for row in rows)
    by_tag = Counter(tag for row in analyzed for tag in row.get("tags") or [])

    lines: list[str] = []
    lines.append("# Startup Radar Digest")
    lines.append("")
    lines.append(f"Generated at: {generated_at.astimezone(UTC).isoformat()}")
    lines.append(f"Posts stored: {len(rows)} ({len(analyzed)} with analytics)")
    lines.append("")
    lines.append("## Trending Posts")
    lines.append("")

    if not top_rows:
        lines.append("No analyzed posts yet.")
    else:
        for index, row in enumerate(top_rows, start=1):
            lines.append(
                f"{index}. [{row['title']}]({row['url']}) "
                f"(r/{row['subreddit']}, trending={row['trending_score']}, "
                f"{row['upvotes']} upvotes, {row['comments']} comments)"
            )
            lines.append(f"Summary: {row['ai_summary']}")
            lines.append(
                f"Scores: sentiment={row['sentiment_score']:.2f} "
                f"relevance={row['relevance_score']:.2f} "
                f"innovation={row['innovation_score']:.2f} "
                f"market={row['market_viability']:.2f}"
            )
            if row.get("tags"):
                lines.append(f"Tags: {', '.join(row['tags'])}")
            lines.append(f"Prompt: {row['prompt_id']} ({row['prompt_version']})")
            lines.append("")

    lines.append("## Subreddit Distribution")
    lines.append("")
    if by_subreddit:
        for subreddit, count in by_subreddit.most_common():
            lines.append(f"- r/{subreddit}: {count}")
    else:
        lines.append("- None")
    lines.append("")

    lines.append("## Tag Distribution")
    lines.append("")
    if by_tag:
        for tag, count in by_tag.most_common():
            lines.append(f"- {tag}: {count}")
    else:
        lines.append("- None")
    lines.append("")

    return "\n".join(lines)


def write_text_report(report_content: str, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_text(report_content, encoding="utf-8")
