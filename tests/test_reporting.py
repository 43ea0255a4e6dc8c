from __future__ import annotations

import csv
import tempfile
from datetime import UTC, datetime
from pathlib import Path
import unittest

from startup_radar.models import RunResult
from startup_radar.reporting import build_markdown_digest, export_analytics_csv, format_run_summary


def row(reddit_id: str, subreddit: str, trending: int | None, tags: list[str]) -> dict:
    analyzed = trending is not None
    return {
        "post_id": 1,
        "reddit_id": reddit_id,
        "title": f"Post {reddit_id}",
        "subreddit": subreddit,
        "author": "founder",
        "upvotes": 10,
        "comments": 2,
        "url": f"https://reddit.com/r/{subreddit}/comments/{reddit_id}/",
        "created_at": "2026-10-18T10:00:00.000Z",
        "has_analytics": analyzed,
        "sentiment_score": 0.9 if analyzed else None,
        "relevance_score": 0.8 if analyzed else None,
        "innovation_score": 0.7 if analyzed else None,
        "market_viability": 0.6 if analyzed else None,
        "trending_score": trending,
        "ai_summary": "Summary" if analyzed else None,
        "tags": tags,
        "prompt_id": "fallback" if analyzed else None,
        "prompt_version": "fallback" if analyzed else None,
        "analyzed_at": "2026-10-18T10:00:01.000Z" if analyzed else None,
    }


class ReportingTests(unittest.TestCase):
    def test_digest_ranks_by_trending_score(self) -> None:
        rows = [
            row("a", "saas", 14, ["AI"]),
            row("b", "startupideas", 40, ["AI", "B2B"]),
            row("c", "saas", None, []),
        ]
        report = build_markdown_digest(
            rows, generated_at=datetime(2026, 10, 18, 12, 0, tzinfo=UTC), top_n=5
        )

        self.assertIn("# Startup Radar Digest", report)
        self.assertIn("Posts stored: 3 (2 with analytics)", report)
        self.assertLess(report.index("Post b"), report.index("Post a"))
        self.assertNotIn("Post c", report)
        self.assertIn("- r/saas: 2", report)
        self.assertIn("- AI: 2", report)

    def test_csv_export_joins_tags(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            destination = Path(tmpdir) / "out" / "analytics.csv"
            export_analytics_csv([row("a", "saas", 14, ["AI", "SaaS"])], destination)
            with destination.open(encoding="utf-8", newline="") as handle:
                records = list(csv.DictReader(handle))

        self.assertEqual(records[0]["reddit_id"], "a")
        self.assertEqual(records[0]["tags"], "AI,SaaS")
        self.assertEqual(records[0]["trending_score"], "14")

    def test_run_summary_line(self) -> None:
        result = RunResult("completed", 3, 3, 2, 1, 0, 0, 0, 5, 5.0, 0)
        self.assertEqual(
            format_run_summary(result),
            "Run completed in 5.0s: processed=3 saved=2 skipped=1 errors=0 warnings=0",
        )


if __name__ == "__main__":
    unittest.main()
