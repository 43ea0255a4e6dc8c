from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from .analyzer import ANALYZE_DELAY_SECONDS, PostAnalyzer
from .config import AppConfig
from .errors import AuthError, FetchError
from .llm_client import OpenAIChatClient
from .models import AnalysisResult, RedditPost, RunResult
from .prompt_registry import LangSmithRegistry
from .prompt_resolver import PromptResolver
from .reddit_client import FETCH_DELAY_SECONDS, RedditClient
from .storage import Storage

logger = logging.getLogger(__name__)

# A run fails when more than this share of fetched posts could not be saved.
MAX_ERROR_RATIO = 0.5


class PostSource(Protocol):
    def authenticate(self) -> str: ...

    def list_hot_posts(
        self, subreddit: str, token: str, limit: int, time_filter: str = "day"
    ) -> list[RedditPost]: ...


class Analyzer(Protocol):
    def analyze(self, post: RedditPost) -> AnalysisResult: ...


@dataclass(slots=True)
class PersistCounts:
    saved: int = 0
    skipped: int = 0
    errors: int = 0
    warnings: int = 0


def build_resolver(config: AppConfig) -> PromptResolver:
    registry = LangSmithRegistry(config.langsmith) if config.langsmith is not None else None
    return PromptResolver(registry)


def build_analyzer(config: AppConfig, resolver: PromptResolver | None = None) -> PostAnalyzer:
    return PostAnalyzer(
        resolver=resolver or build_resolver(config), model=OpenAIChatClient(config.openai)
    )


def fetch_posts(
    config: AppConfig, client: PostSource, sleep: Callable[[float], None]
) -> list[RedditPost]:
    logger.info("STEP 1: Fetching Reddit data")
    try:
        token = client.authenticate()
    except AuthError as exc:
        logger.error("Reddit authentication failed, no communities fetched: %s", exc)
        return []
    except Exception as exc:
        logger.exception("Unexpected error authenticating with Reddit: %s", exc)
        return []

    posts: list[RedditPost] = []
    for subreddit in config.subreddits:
        logger.info("Fetching posts from r/%s", subreddit)
        try:
            fetched = client.list_hot_posts(
                subreddit, token, config.post_limit, time_filter=config.time_filter
            )
        except FetchError as exc:
            logger.error("Failed to fetch from r/%s: %s", subreddit, exc)
        except Exception as exc:
            logger.exception("Unexpected error fetching r/%s: %s", subreddit, exc)
        else:
            posts.extend(fetched)
            logger.info("Fetched %s posts from r/%s", len(fetched), subreddit)
        sleep(FETCH_DELAY_SECONDS)

    logger.info("Total posts fetched: %s", len(posts))
    return posts


def analyze_posts(
    posts: list[RedditPost], analyzer: Analyzer, sleep: Callable[[float], None]
) -> list[tuple[RedditPost, AnalysisResult]]:
    logger.info("STEP 2: AI analysis and data extraction")
    analyzed: list[tuple[RedditPost, AnalysisResult]] = []
    for index, post in enumerate(posts, start=1):
        logger.info("Analyzing post %s/%s: %s", index, len(posts), post.title[:50])
        analyzed.append((post, analyzer.analyze(post)))
        sleep(ANALYZE_DELAY_SECONDS)
    logger.info("AI analysis complete: %s posts analyzed", len(analyzed))
    return analyzed


def persist_posts(
    analyzed: list[tuple[RedditPost, AnalysisResult]], storage: Storage
) -> PersistCounts:
    logger.info("STEP 3: Updating database")
    counts = PersistCounts()
    for post, analysis in analyzed:
        title = post.title[:50]
        try:
            result = storage.save(post, analysis)
        except Exception as exc:
            counts.errors += 1
            logger.error("Database error for post %s: %s", title, exc)
            continue

        if result.status == "saved":
            counts.saved += 1
            logger.info("Saved post: %s", title)
            if result.warning:
                counts.warnings += 1
                logger.warning(result.warning)
        elif result.status == "skipped":
            counts.skipped += 1
            logger.info("Skipped existing post: %s", title)
        else:
            counts.errors += 1
            logger.error("Failed to save post %s: %s", title, result.error)
    return counts


def _build_result(
    status: str,
    fetched: int,
    analyzed: int,
    counts: PersistCounts,
    started_utc: int,
    duration: float,
    message: str,
) -> RunResult:
    return RunResult(
        status=status,
        fetched=fetched,
        analyzed=analyzed,
        saved=counts.saved,
        skipped=counts.skipped,
        errors=counts.errors,
        warnings=counts.warnings,
        started_utc=started_utc,
        finished_utc=started_utc + int(duration),
        duration_seconds=duration,
        exit_code=0 if status == "completed" else 1,
        message=message,
    )


def run_once(
    config: AppConfig,
    reddit_client: PostSource | None = None,
    analyzer: Analyzer | None = None,
    storage: Storage | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    now: datetime | None = None,
    resolver: PromptResolver | None = None,
) -> RunResult:
    """Run FETCH, ANALYZE, PERSIST and REPORT once over every configured community.

    ``resolver`` is only used to log the active prompt up front. When no
    ``analyzer`` is given, one is built around it. An unexpected error in any
    phase ends the run as ``failed`` with its run log finalized.
    """
    runtime = now or datetime.now(tz=UTC)
    started_utc = int(runtime.timestamp())
    started = clock()

    client = reddit_client or RedditClient(config.reddit)
    if analyzer is None:
        resolver = resolver or build_resolver(config)
        analyzer = build_analyzer(config, resolver)
    effective_storage = storage or Storage(config.db_path)
    run_id = effective_storage.start_run(run_started_utc=started_utc)

    logger.info(
        "Starting Reddit scraper job: subreddits=%s post_limit=%s",
        ",".join(config.subreddits),
        config.post_limit,
    )
    posts: list[RedditPost] = []
    analyzed: list[tuple[RedditPost, AnalysisResult]] = []
    counts = PersistCounts()
    try:
        if resolver is not None:
            template = resolver.get_active_template()
            logger.info(
                "Active prompt: %s (version %s, %s)", template.id, template.version, template.source
            )
        posts = fetch_posts(config, client, sleep)
        analyzed = analyze_posts(posts, analyzer, sleep)
        counts = persist_posts(analyzed, effective_storage)
    except Exception as exc:
        duration = round(clock() - started, 3)
        logger.exception("Job aborted: %s", exc)
        result = _build_result(
            "failed",
            len(posts),
            len(analyzed),
            counts,
            started_utc,
            duration,
            f"aborted: {type(exc).__name__}: {exc}",
        )
        effective_storage.finish_run(run_id, result)
        return result

    duration = round(clock() - started, 3)
    fetched = len(posts)
    failed = counts.errors > fetched * MAX_ERROR_RATIO
    message = (
        f"processed={fetched} saved={counts.saved} skipped={counts.skipped} "
        f"errors={counts.errors} warnings={counts.warnings} duration={duration:.1f}s"
    )
    result = _build_result(
        "failed" if failed else "completed",
        fetched,
        len(analyzed),
        counts,
        started_utc,
        duration,
        message,
    )
    effective_storage.finish_run(run_id, result)

    if failed:
        logger.error("Too many errors, marking job as failed: %s", message)
    else:
        logger.info("Job completed: %s", message)
    return result
