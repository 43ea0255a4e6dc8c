from __future__ import annotations

import json
import logging
import math
import re

from .errors import AnalysisParseError
from .llm_client import CompletionModel
from .models import AnalysisResult, PromptTemplate, RedditPost
from .prompt_registry import render_template
from .prompt_resolver import PromptResolver, choose_input_variable

logger = logging.getLogger(__name__)

# Pause after every model call, part of the run contract.
ANALYZE_DELAY_SECONDS = 1.0
DEFAULT_SCORE = 0.5
SUMMARY_FALLBACK_LENGTH = 200
MAX_TAGS = 5
SCORE_FIELDS = ("sentiment_score", "relevance_score", "innovation_score", "market_viability")

_JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", flags=re.DOTALL)


def build_post_content(post: RedditPost) -> str:
    return f"Title: {post.title}\n\nContent: {post.content or 'No content'}"


def extract_json_object(text: str) -> dict:
    match = _JSON_OBJECT_PATTERN.search(text)
    if match is None:
        raise AnalysisParseError(f"No JSON found in response: {text[:200]}")
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise AnalysisParseError(f"Failed to parse extracted JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise AnalysisParseError("Extracted JSON is not an object")
    return parsed


def _score(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_SCORE
    try:
        number = float(value)
    except OverflowError:
        return 1.0 if value > 0 else 0.0
    if not math.isfinite(number):
        return DEFAULT_SCORE
    return max(min(number, 1.0), 0.0)


def _tags(value: object) -> list[str]:
    if not isinstance(value, list):
        return ["General"]
    tags = [str(item).strip() for item in value if item is not None and str(item).strip()]
    return tags[:MAX_TAGS]


def coerce_analysis(raw: dict, post: RedditPost, template: PromptTemplate) -> AnalysisResult:
    summary = raw.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        summary = post.title[:SUMMARY_FALLBACK_LENGTH]
    return AnalysisResult(
        summary=summary.strip(),
        sentiment_score=_score(raw.get("sentiment_score")),
        relevance_score=_score(raw.get("relevance_score")),
        innovation_score=_score(raw.get("innovation_score")),
        market_viability=_score(raw.get("market_viability")),
        tags=_tags(raw.get("tags")),
        prompt_id=template.id,
        prompt_version=template.version,
    )


def degraded_analysis(post: RedditPost) -> AnalysisResult:
    return AnalysisResult(
        summary=post.title[:SUMMARY_FALLBACK_LENGTH],
        sentiment_score=DEFAULT_SCORE,
        relevance_score=DEFAULT_SCORE,
        innovation_score=DEFAULT_SCORE,
        market_viability=DEFAULT_SCORE,
        tags=["Unanalyzed"],
        prompt_id="error",
        prompt_version="error",
    )


class PostAnalyzer:
    """Scores posts with the active prompt template.

    ``analyze`` is fail-open: whatever goes wrong, the caller receives a
    usable ``AnalysisResult`` so a batch keeps moving.
    """

    def __init__(self, resolver: PromptResolver, model: CompletionModel) -> None:
        self.resolver = resolver
        self.model = model

    def analyze(self, post: RedditPost) -> AnalysisResult:
        try:
            template = self.resolver.get_active_template()
            prompt = self.render_prompt(template, post)
            raw = self._invoke(prompt, post)
            return coerce_analysis(raw, post, template)
        except Exception as exc:
            logger.error(
                "AI analysis failed for post %s: %s: %s", post.reddit_id, type(exc).__name__, exc
            )
            return degraded_analysis(post)

    def render_prompt(self, template: PromptTemplate, post: RedditPost) -> str:
        variable = choose_input_variable(template.input_variables)
        return render_template(template.body, {variable: build_post_content(post)})

    def _invoke(self, prompt: str, post: RedditPost) -> dict:
        response = self.model.complete(prompt, json_mode=True)
        try:
            parsed = json.loads(response)
            if isinstance(parsed, dict):
                return parsed
            logger.warning("Model returned non-object JSON for post %s", post.reddit_id)
        except json.JSONDecodeError as exc:
            logger.warning("JSON parsing failed for post %s, retrying raw: %s", post.reddit_id, exc)

        raw_response = self.model.complete(prompt, json_mode=False)
        logger.debug("Raw AI response for post %s: %s", post.reddit_id, raw_response[:500])
        return extract_json_object(raw_response)
