from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class RedditPost:
    reddit_id: str
    subreddit: str
    title: str
    content: str
    author: str
    upvotes: int
    comments: int
    url: str
    metadata: dict = field(default_factory=dict)


@dataclass(slots=True)
class AnalysisResult:
    summary: str
    sentiment_score: float
    relevance_score: float
    innovation_score: float
    market_viability: float
    tags: list[str]
    prompt_id: str
    prompt_version: str


@dataclass(slots=True)
class PromptTemplate:
    id: str
    name: str
    version: str
    is_active: bool
    body: str
    input_variables: list[str] = field(default_factory=list)
    updated_at: str = ""
    source: str = "registry"


@dataclass(slots=True)
class SaveResult:
    status: str
    post_row_id: int | None = None
    warning: str | None = None
    error: str | None = None


@dataclass(slots=True)
class RunResult:
    status: str
    fetched: int
    analyzed: int
    saved: int
    skipped: int
    errors: int
    warnings: int
    started_utc: int
    finished_utc: int
    duration_seconds: float
    exit_code: int
    message: str = ""


def trending_score(post: RedditPost) -> int:
    return max(post.upvotes, 0) + 2 * max(post.comments, 0)
