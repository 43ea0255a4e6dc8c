from __future__ import annotations

import base64
import logging
import urllib.parse
import urllib.request

from .config import TIME_FILTER, RedditConfig
from .errors import AuthError, FetchError, HttpError
from .models import RedditPost
from .transport import send_json

logger = logging.getLogger(__name__)

TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
LISTING_URL = "https://oauth.reddit.com/r/{sub}/hot"
# Pause between communities, part of the run contract.
FETCH_DELAY_SECONDS = 1.0
MAX_PAGE_SIZE = 100


class RedditClient:
    def __init__(self, config: RedditConfig, timeout_seconds: int = 20, max_retries: int = 3) -> None:
        self.config = config
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries

    def authenticate(self) -> str:
        credentials = f"{self.config.client_id}:{self.config.client_secret}".encode("utf-8")
        request = urllib.request.Request(
            url=TOKEN_URL,
            data=b"grant_type=client_credentials",
            method="POST",
            headers={
                "Authorization": "Basic " + base64.b64encode(credentials).decode("ascii"),
                "User-Agent": self.config.user_agent,
                "Content-Type": "application/x-www-form-urlencoded",
            },
        )
        try:
            payload = send_json(request, self.timeout_seconds, self.max_retries)
        except HttpError as exc:
            detail = exc.reason or f"HTTP {exc.status}"
            if isinstance(exc.body, dict) and exc.body.get("error"):
                detail = str(exc.body["error"])
            raise AuthError(f"Reddit auth failed: {detail}") from exc

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            error = payload.get("error") if isinstance(payload, dict) else None
            raise AuthError(f"Reddit auth failed: {error or 'no access_token in response'}")
        return str(token)

    def list_hot_posts(
        self, subreddit: str, token: str, limit: int, time_filter: str = TIME_FILTER
    ) -> list[RedditPost]:
        endpoint = LISTING_URL.format(sub=urllib.parse.quote(subreddit))
        normalized_limit = max(limit, 1)
        posts: list[RedditPost] = []
        after: str | None = None

        while len(posts) < normalized_limit:
            query_params: dict[str, int | str] = {
                "limit": min(normalized_limit - len(posts), MAX_PAGE_SIZE),
                "t": time_filter,
                "raw_json": 1,
            }
            if after:
                query_params["after"] = after
            request = urllib.request.Request(
                url=f"{endpoint}?{urllib.parse.urlencode(query_params)}",
                headers={
                    "Authorization": f"Bearer {token}",
                    "User-Agent": self.config.user_agent,
                    "Accept": "application/json",
                },
            )
            try:
                payload = send_json(request, self.timeout_seconds, self.max_retries)
            except HttpError as exc:
                raise FetchError(
                    f"Failed to fetch r/{subreddit}: {exc.reason or f'HTTP {exc.status}'}"
                ) from exc

            data = payload.get("data", {}) if isinstance(payload, dict) else {}
            children = data.get("children") or []
            if not children:
                break

            for child in children:
                post = self._parse_post(child=child, fallback_subreddit=subreddit)
                if post is None:
                    continue
                posts.append(post)
                if len(posts) >= normalized_limit:
                    break

            after = data.get("after")
            if not after:
                break

        logger.debug("Listed %s hot posts from r/%s", len(posts), subreddit)
        return posts

    def _parse_post(self, child: dict, fallback_subreddit: str) -> RedditPost | None:
        data = child.get("data", {}) if isinstance(child, dict) else {}
        reddit_id = data.get("id")
        if not reddit_id:
            return None
        return RedditPost(
            reddit_id=str(reddit_id),
            subreddit=fallback_subreddit,
            title=(data.get("title") or "").strip(),
            content=(data.get("selftext") or "").strip(),
            author=data.get("author") or "[deleted]",
            upvotes=max(int(data.get("ups") or 0), 0),
            comments=max(int(data.get("num_comments") or 0), 0),
            url="https://reddit.com" + (data.get("permalink") or ""),
            metadata={
                "reddit_created_utc": data.get("created_utc"),
                "reddit_score": data.get("score"),
                "reddit_upvote_ratio": data.get("upvote_ratio"),
            },
        )
