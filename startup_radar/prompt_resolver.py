from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .errors import PromptRegistryError
from .models import PromptTemplate
from .prompt_registry import LangSmithRegistry, extract_placeholders

logger = logging.getLogger(__name__)

HUB_PROMPT_NAME = "startup-analysis-2"
RECOGNIZED_INPUT_VARIABLES = ("content", "post", "text")
MAX_SINGLE_VARIABLE_LENGTH = 50
FALLBACK_PROMPT_PATH = Path(__file__).parent / "prompts" / "fallback_prompt.txt"

# Used when the bundled prompt file cannot be read.
EMBEDDED_FALLBACK_PROMPT = """You are a startup analyst. Analyze this Reddit post and return ONLY a JSON object with the exact structure shown below. Do not include any explanatory text, greeting, or additional commentary.

REQUIRED JSON FORMAT:
{{
  "summary": "Brief 1-2 sentence summary of the post",
  "sentiment_score": 0.8,
  "relevance_score": 0.9,
  "innovation_score": 0.7,
  "market_viability": 0.6,
  "tags": ["AI", "SaaS", "B2B"]
}}

SCORING CRITERIA (0.0 to 1.0):
- sentiment_score: Overall positivity/excitement in the post
- relevance_score: How relevant this is to startups/business
- innovation_score: How novel/innovative the idea is
- market_viability: Commercial potential assessment

POST TO ANALYZE:
{content}

RESPOND WITH ONLY THE JSON OBJECT - NO OTHER TEXT:"""


@dataclass(slots=True)
class Resolution:
    """Outcome of one resolution strategy.

    ``halt`` stops the chain so the fallback template is used even when later
    strategies remain.
    """

    template: PromptTemplate | None
    reason: str = ""
    halt: bool = False


Strategy = Callable[[], Resolution]


def has_plausible_inputs(input_variables: list[str]) -> bool:
    if any(name in RECOGNIZED_INPUT_VARIABLES for name in input_variables):
        return True
    return len(input_variables) == 1 and len(input_variables[0]) < MAX_SINGLE_VARIABLE_LENGTH


def choose_input_variable(input_variables: list[str]) -> str:
    for name in RECOGNIZED_INPUT_VARIABLES:
        if name in input_variables:
            return name
    if input_variables:
        return input_variables[0]
    return "content"


def resolve_first(
    strategies: list[tuple[str, Strategy]], fallback: Callable[[], PromptTemplate]
) -> PromptTemplate:
    for name, strategy in strategies:
        try:
            outcome = strategy()
        except Exception as exc:
            outcome = Resolution(None, f"{type(exc).__name__}: {exc}")
        if outcome.template is not None:
            logger.info(
                "Using %s prompt %s (version %s)",
                name,
                outcome.template.id,
                outcome.template.version,
            )
            return outcome.template
        logger.warning("Prompt strategy %s unavailable: %s", name, outcome.reason)
        if outcome.halt:
            break
    template = fallback()
    logger.warning("No valid prompt found, using fallback prompt")
    return template


def load_fallback_template(path: Path | None = None) -> PromptTemplate:
    prompt_path = path or FALLBACK_PROMPT_PATH
    try:
        body = prompt_path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        logger.error("Failed to load fallback prompt %s, using embedded copy: %s", prompt_path, exc)
        body = EMBEDDED_FALLBACK_PROMPT
    if not body:
        body = EMBEDDED_FALLBACK_PROMPT
    return PromptTemplate(
        id="fallback",
        name="fallback",
        version="fallback",
        is_active=True,
        body=body,
        input_variables=extract_placeholders(body),
        source="fallback",
    )


def _recency(template: PromptTemplate) -> float:
    try:
        return datetime.fromisoformat(template.updated_at).timestamp()
    except ValueError:
        return float("-inf")


class PromptResolver:
    def __init__(
        self,
        registry: LangSmithRegistry | None,
        hub_name: str = HUB_PROMPT_NAME,
        fallback_path: Path | None = None,
    ) -> None:
        self.registry = registry
        self.hub_name = hub_name
        self.fallback_path = fallback_path
        self._active: PromptTemplate | None = None

    def get_active_template(self) -> PromptTemplate:
        """Return the template for this run, resolving it on first use only."""
        if self._active is None:
            self._active = resolve_first(
                self.strategies(), lambda: load_fallback_template(self.fallback_path)
            )
        return self._active

    def strategies(self) -> list[tuple[str, Strategy]]:
        if self.registry is None:
            return []
        return [("hub", self._from_hub), ("registry", self._from_listing)]

    def _from_hub(self) -> Resolution:
        try:
            template = self.registry.pull_latest(self.hub_name)
        except PromptRegistryError as exc:
            return Resolution(None, str(exc))
        if not has_plausible_inputs(template.input_variables):
            return Resolution(
                None,
                f"hub prompt {template.id} declares unsupported inputs {template.input_variables}",
                halt=True,
            )
        return Resolution(template)

    def _from_listing(self) -> Resolution:
        try:
            listed = self.registry.list_prompts()
        except PromptRegistryError as exc:
            return Resolution(None, str(exc))

        ordered = sorted(listed, key=_recency, reverse=True)
        active = next((item for item in ordered if item.is_active), None)
        if active is None:
            return Resolution(None, f"no active prompt among {len(listed)} listed")
        if active.body.strip():
            return Resolution(active)

        try:
            pulled = self.registry.pull_latest(active.name)
        except PromptRegistryError as exc:
            return Resolution(None, f"active prompt {active.id} could not be pulled: {exc}")
        pulled.id = active.id
        pulled.version = active.version
        pulled.source = "registry"
        return Resolution(pulled)
