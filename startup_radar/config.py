from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigError

REQUIRED_ENV_VARS = [
    "OPENAI_API_KEY",
    "REDDIT_CLIENT_ID",
    "REDDIT_CLIENT_SECRET",
]
DEFAULT_SUBREDDITS = ["saas", "startups", "sideprojects"]
DEFAULT_POST_LIMIT = 5
DEFAULT_USER_AGENT = "StartupRadar/1.0.0"
DEFAULT_OPENAI_MODEL = "gpt-4.1-nano"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_LANGSMITH_ENDPOINT = "https://api.smith.langchain.com"
DEFAULT_DB_PATH = "data/startup_radar.db"
# Hot posts from the last day.
TIME_FILTER = "day"


@dataclass(slots=True)
class RedditConfig:
    client_id: str
    client_secret: str
    user_agent: str


@dataclass(slots=True)
class OpenAIConfig:
    api_key: str
    model: str
    base_url: str
    timeout_seconds: int


@dataclass(slots=True)
class LangSmithConfig:
    api_key: str
    api_url: str
    timeout_seconds: int = 20


@dataclass(slots=True)
class AppConfig:
    subreddits: list[str]
    post_limit: int
    time_filter: str
    reddit: RedditConfig
    openai: OpenAIConfig
    langsmith: LangSmithConfig | None
    db_path: Path


def find_missing_env(env: Mapping[str, str]) -> list[str]:
    return [name for name in REQUIRED_ENV_VARS if not (env.get(name) or "").strip()]


def _csv_to_list(value: str | list[str] | None, default: list[str]) -> list[str]:
    if value is None:
        return default.copy()
    if isinstance(value, list):
        return [item.strip() for item in value if item and item.strip()]
    return [item.strip() for item in value.split(",") if item and item.strip()]


def _int_value(raw: object, fallback: int) -> int:
    if raw is None:
        return fallback
    try:
        return int(raw)
    except (TypeError, ValueError):
        return fallback


def _read_toml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
    require_credentials: bool = True,
) -> AppConfig:
    """Build the run configuration from ``config.toml`` plus the environment.

    Credentials come from the environment only. Raises ``ConfigError`` listing
    every missing required variable before anything else is read, unless
    ``require_credentials`` is false (read-only commands such as the digest).
    """
    environ = os.environ if env is None else env
    missing = find_missing_env(environ)
    if missing and require_credentials:
        raise ConfigError(missing)

    raw = _read_toml(config_path or Path("config.toml"))

    subreddits = _csv_to_list(environ.get("SUBREDDITS", raw.get("subreddits")), DEFAULT_SUBREDDITS)
    post_limit = _int_value(
        environ.get("POST_LIMIT"), _int_value(raw.get("post_limit"), DEFAULT_POST_LIMIT)
    )
    db_path = Path(environ.get("STARTUP_RADAR_DB_PATH", raw.get("db_path", DEFAULT_DB_PATH)))

    reddit = RedditConfig(
        client_id=(environ.get("REDDIT_CLIENT_ID") or "").strip(),
        client_secret=(environ.get("REDDIT_CLIENT_SECRET") or "").strip(),
        user_agent=environ.get("REDDIT_USER_AGENT") or raw.get("user_agent", DEFAULT_USER_AGENT),
    )

    openai_section = raw.get("openai", {})
    openai = OpenAIConfig(
        api_key=(environ.get("OPENAI_API_KEY") or "").strip(),
        model=environ.get("OPENAI_MODEL") or openai_section.get("model", DEFAULT_OPENAI_MODEL),
        base_url=(
            environ.get("OPENAI_BASE_URL")
            or openai_section.get("base_url", DEFAULT_OPENAI_BASE_URL)
        ).rstrip("/"),
        timeout_seconds=_int_value(
            environ.get("OPENAI_TIMEOUT_SECONDS"),
            _int_value(openai_section.get("timeout_seconds"), 30),
        ),
    )

    langsmith: LangSmithConfig | None = None
    langsmith_key = (environ.get("LANGSMITH_API_KEY") or "").strip()
    if langsmith_key:
        langsmith = LangSmithConfig(
            api_key=langsmith_key,
            api_url=(
                environ.get("LANGSMITH_ENDPOINT")
                or raw.get("langsmith", {}).get("endpoint", DEFAULT_LANGSMITH_ENDPOINT)
            ).rstrip("/"),
        )

    return AppConfig(
        subreddits=subreddits,
        post_limit=max(post_limit, 1),
        time_filter=TIME_FILTER,
        reddit=reddit,
        openai=openai,
        langsmith=langsmith,
        db_path=db_path,
    )
