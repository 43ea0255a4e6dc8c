from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from .errors import PersistenceError
from .models import AnalysisResult, RedditPost, RunResult, SaveResult, trending_score

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunLog:
    run_id: int
    run_started_utc: int
    run_finished_utc: int | None
    status: str
    fetched: int
    analyzed: int
    saved: int
    skipped: int
    errors: int
    warnings: int
    message: str


class Storage:
    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self.db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _connection(self):
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot open database {self.db_path}: {exc}") from exc
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS posts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    reddit_id TEXT NOT NULL UNIQUE CHECK (reddit_id != ''),
                    subreddit TEXT NOT NULL CHECK (subreddit != ''),
                    title TEXT NOT NULL,
                    content TEXT NOT NULL DEFAULT '',
                    author TEXT NOT NULL,
                    upvotes INTEGER NOT NULL DEFAULT 0 CHECK (upvotes >= 0),
                    comments INTEGER NOT NULL DEFAULT 0 CHECK (comments >= 0),
                    url TEXT NOT NULL,
                    metadata TEXT NOT NULL DEFAULT '{}',
                    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
                );

                CREATE TABLE IF NOT EXISTS post_analytics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    post_id INTEGER NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
                    sentiment_score REAL NOT NULL
                        CHECK (sentiment_score >= 0 AND sentiment_score <= 1),
                    relevance_score REAL NOT NULL
                        CHECK (relevance_score >= 0 AND relevance_score <= 1),
                    innovation_score REAL NOT NULL
                        CHECK (innovation_score >= 0 AND innovation_score <= 1),
                    market_viability REAL NOT NULL
                        CHECK (market_viability >= 0 AND market_viability <= 1),
                    trending_score INTEGER NOT NULL DEFAULT 0 CHECK (trending_score >= 0),
                    ai_summary TEXT NOT NULL,
                    tags TEXT NOT NULL DEFAULT '[]',
                    prompt_id TEXT NOT NULL DEFAULT 'fallback',
                    prompt_version TEXT NOT NULL DEFAULT 'fallback',
                    analyzed_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
                    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
                );

                CREATE TABLE IF NOT EXISTS run_logs (
                    run_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_started_utc INTEGER NOT NULL,
                    run_finished_utc INTEGER,
                    status TEXT NOT NULL,
                    fetched INTEGER NOT NULL DEFAULT 0,
                    analyzed INTEGER NOT NULL DEFAULT 0,
                    saved INTEGER NOT NULL DEFAULT 0,
                    skipped INTEGER NOT NULL DEFAULT 0,
                    errors INTEGER NOT NULL DEFAULT 0,
                    warnings INTEGER NOT NULL DEFAULT 0,
                    message TEXT NOT NULL DEFAULT ''
                );

                CREATE INDEX IF NOT EXISTS idx_posts_subreddit ON posts(subreddit);
                CREATE INDEX IF NOT EXISTS idx_posts_created_at ON posts(created_at DESC);
                CREATE INDEX IF NOT EXISTS idx_post_analytics_post_id ON post_analytics(post_id);
                CREATE INDEX IF NOT EXISTS idx_run_logs_started ON run_logs(run_started_utc DESC);
                """
            )
            conn.commit()

    def get_post_id(self, reddit_id: str) -> int | None:
        with self._connection() as conn:
            try:
                row = conn.execute(
                    "SELECT id FROM posts WHERE reddit_id = ? LIMIT 1;", (reddit_id,)
                ).fetchone()
            except sqlite3.Error as exc:
                raise PersistenceError(f"Lookup of post {reddit_id} failed: {exc}") from exc
        return int(row["id"]) if row is not None else None

    def save(self, post: RedditPost, analysis: AnalysisResult) -> SaveResult:
        """Store a post and its analytics row.

        An existing ``reddit_id`` is skipped without writing. The post row is
        committed before the analytics row, so an analytics failure leaves the
        post in place and is reported as a warning.
        """
        try:
            existing = self.get_post_id(post.reddit_id)
        except PersistenceError as exc:
            return SaveResult(status="error", error=str(exc))
        if existing is not None:
            return SaveResult(status="skipped", post_row_id=existing)

        with self._connection() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO posts (
                        reddit_id, subreddit, title, content, author, upvotes, comments, url,
                        metadata
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        post.reddit_id,
                        post.subreddit,
                        post.title,
                        post.content,
                        post.author,
                        post.upvotes,
                        post.comments,
                        post.url,
                        json.dumps(post.metadata),
                    ),
                )
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                return SaveResult(status="error", error=f"Failed to save post: {exc}")

            post_row_id = int(cursor.lastrowid)
            try:
                self._insert_analytics(conn, post_row_id, post, analysis)
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                logger.error("Failed to save analytics for post %s: %s", post_row_id, exc)
                return SaveResult(
                    status="saved",
                    post_row_id=post_row_id,
                    warning=f"Post saved but analytics failed: {exc}",
                )
        return SaveResult(status="saved", post_row_id=post_row_id)

    def _insert_analytics(
        self,
        conn: sqlite3.Connection,
        post_row_id: int,
        post: RedditPost,
        analysis: AnalysisResult,
    ) -> None:
        conn.execute(
            """
            INSERT INTO post_analytics (
                post_id, sentiment_score, relevance_score, innovation_score, market_viability,
                trending_score, ai_summary, tags, prompt_id, prompt_version
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                post_row_id,
                analysis.sentiment_score,
                analysis.relevance_score,
                analysis.innovation_score,
                analysis.market_viability,
                trending_score(post),
                analysis.summary,
                json.dumps(analysis.tags),
                analysis.prompt_id or "fallback",
                analysis.prompt_version or "fallback",
            ),
        )

    def get_post_analytics(self, post_row_id: int) -> list[dict]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM post_analytics
                WHERE post_id = ?
                ORDER BY analyzed_at DESC, id DESC;
                """,
                (post_row_id,),
            ).fetchall()
        return [_analytics_row(row) for row in rows]

    def get_posts_with_analytics(
        self, subreddit: str | None = None, limit: int | None = None
    ) -> list[dict]:
        """Posts newest first, each flattened with its latest analytics row."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT p.id AS post_id, p.reddit_id, p.title, p.subreddit, p.author,
                       p.upvotes, p.comments, p.url, p.metadata, p.created_at,
                       a.id AS analytics_id, a.sentiment_score, a.relevance_score,
                       a.innovation_score, a.market_viability, a.trending_score, a.ai_summary,
                       a.tags, a.prompt_id, a.prompt_version, a.analyzed_at
                FROM posts p
                LEFT JOIN post_analytics a ON a.id = (
                    SELECT id FROM post_analytics
                    WHERE post_id = p.id
                    ORDER BY analyzed_at DESC, id DESC
                    LIMIT 1
                )
                WHERE (? IS NULL OR p.subreddit = ?)
                ORDER BY p.created_at DESC, p.id DESC
                LIMIT ?;
                """,
                (subreddit, subreddit, limit if limit is not None else -1),
            ).fetchall()

        flattened: list[dict] = []
        for row in rows:
            item = {
                "post_id": int(row["post_id"]),
                "reddit_id": row["reddit_id"],
                "title": row["title"],
                "subreddit": row["subreddit"],
                "author": row["author"],
                "upvotes": int(row["upvotes"]),
                "comments": int(row["comments"]),
                "url": row["url"],
                "metadata": json.loads(row["metadata"] or "{}"),
                "created_at": row["created_at"],
                "has_analytics": row["analytics_id"] is not None,
                "total_engagement": int(row["upvotes"]) + int(row["comments"]),
            }
            if row["analytics_id"] is not None:
                item.update(_analytics_row(row))
            else:
                item.update(
                    {
                        "sentiment_score": None,
                        "relevance_score": None,
                        "innovation_score": None,
                        "market_viability": None,
                        "trending_score": None,
                        "ai_summary": None,
                        "tags": [],
                        "prompt_id": None,
                        "prompt_version": None,
                        "analyzed_at": None,
                    }
                )
            flattened.append(item)
        return flattened

    def start_run(self, run_started_utc: int) -> int:
        with self._connection() as conn:
            cursor = conn.execute(
                "INSERT INTO run_logs (run_started_utc, status) VALUES (?, 'started');",
                (run_started_utc,),
            )
            conn.commit()
            run_id = cursor.lastrowid
            if run_id is None:
                raise PersistenceError("Failed to create run log record.")
            return int(run_id)

    def finish_run(self, run_id: int, result: RunResult) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                UPDATE run_logs
                SET run_finished_utc = ?,
                    status = ?,
                    fetched = ?,
                    analyzed = ?,
                    saved = ?,
                    skipped = ?,
                    errors = ?,
                    warnings = ?,
                    message = ?
                WHERE run_id = ?;
                """,
                (
                    result.finished_utc,
                    result.status,
                    result.fetched,
                    result.analyzed,
                    result.saved,
                    result.skipped,
                    result.errors,
                    result.warnings,
                    result.message,
                    run_id,
                ),
            )
            conn.commit()

    def list_runs(self, limit: int = 20) -> list[RunLog]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT run_id, run_started_utc, run_finished_utc, status, fetched, analyzed,
                       saved, skipped, errors, warnings, message
                FROM run_logs
                ORDER BY run_started_utc DESC, run_id DESC
                LIMIT ?;
                """,
                (max(limit, 1),),
            ).fetchall()

        return [
            RunLog(
                run_id=int(row["run_id"]),
                run_started_utc=int(row["run_started_utc"]),
                run_finished_utc=int(row["run_finished_utc"])
                if row["run_finished_utc"] is not None
                else None,
                status=row["status"],
                fetched=int(row["fetched"]),
                analyzed=int(row["analyzed"]),
                saved=int(row["saved"]),
                skipped=int(row["skipped"]),
                errors=int(row["errors"]),
                warnings=int(row["warnings"]),
                message=row["message"] or "",
            )
            for row in rows
        ]


def _analytics_row(row: sqlite3.Row) -> dict:
    return {
        "sentiment_score": float(row["sentiment_score"]),
        "relevance_score": float(row["relevance_score"]),
        "innovation_score": float(row["innovation_score"]),
        "market_viability": float(row["market_viability"]),
        "trending_score": int(row["trending_score"]),
        "ai_summary": row["ai_summary"],
        "tags": json.loads(row["tags"] or "[]"),
        "prompt_id": row["prompt_id"],
        "prompt_version": row["prompt_version"],
        "analyzed_at": row["analyzed_at"],
    }
