from __future__ import annotations

import logging
import re
import urllib.parse
import urllib.request

from .config import LangSmithConfig
from .errors import HttpError, PromptRegistryError
from .models import PromptTemplate
from .transport import send_json

logger = logging.getLogger(__name__)

_FIELD_PATTERN = re.compile(r"\{\{|\}\}|\{([A-Za-z_][A-Za-z0-9_]*)\}")


def extract_placeholders(body: str) -> list[str]:
    names: list[str] = []
    for match in _FIELD_PATTERN.finditer(body):
        name = match.group(1)
        if name and name not in names:
            names.append(name)
    return names


def render_template(body: str, values: dict[str, str]) -> str:
    """Fill ``{name}`` fields f-string style; unknown fields are left untouched."""

    def _replace(match: re.Match) -> str:
        token = match.group(0)
        if token == "{{":
            return "{"
        if token == "}}":
            return "}"
        name = match.group(1)
        return values[name] if name in values else token

    return _FIELD_PATTERN.sub(_replace, body)


def _split_name(name: str) -> tuple[str, str]:
    owner, _, repo = name.rpartition("/")
    return owner or "-", repo


def _template_from_lc(node: object) -> tuple[str, list[str]]:
    """Flatten a serialized LangChain prompt into (body, input_variables)."""
    if not isinstance(node, dict):
        return "", []
    kwargs = node.get("kwargs") if isinstance(node.get("kwargs"), dict) else node
    raw_inputs = kwargs.get("input_variables")
    declared = [str(name) for name in raw_inputs] if isinstance(raw_inputs, list) else []

    if isinstance(kwargs.get("template"), str):
        return kwargs["template"], declared
    if isinstance(kwargs.get("prompt"), dict):
        body, inner = _template_from_lc(kwargs["prompt"])
        return body, declared or inner
    if isinstance(kwargs.get("messages"), list):
        parts: list[str] = []
        names: list[str] = list(declared)
        for message in kwargs["messages"]:
            body, inner = _template_from_lc(message)
            if body:
                parts.append(body)
            names.extend(name for name in inner if name not in names)
        return "\n\n".join(parts), names
    if isinstance(kwargs.get("first"), dict):
        return _template_from_lc(kwargs["first"])
    return "", declared


def manifest_to_template(
    manifest: object,
    prompt_id: str,
    name: str,
    version: str,
    is_active: bool,
    updated_at: str = "",
    source: str = "hub",
) -> PromptTemplate | None:
    body, declared = _template_from_lc(manifest)
    if not body.strip():
        return None
    return PromptTemplate(
        id=prompt_id,
        name=name,
        version=version,
        is_active=is_active,
        body=body,
        input_variables=declared or extract_placeholders(body),
        updated_at=updated_at,
        source=source,
    )


def _listing_entry(entry: dict) -> PromptTemplate | None:
    metadata = entry.get("metadata") if isinstance(entry.get("metadata"), dict) else {}
    name = str(entry.get("prompt_name") or entry.get("repo_handle") or entry.get("full_name") or "")
    prompt_id = str(entry.get("id") or name)
    if not prompt_id:
        return None
    if entry.get("owner") and name and "/" not in name:
        name = f"{entry['owner']}/{name}"

    body = ""
    declared: list[str] = []
    for key in ("template", "prompt"):
        if isinstance(entry.get(key), str):
            body = entry[key]
            break
    else:
        if isinstance(entry.get("manifest"), dict):
            body, declared = _template_from_lc(entry["manifest"])

    return PromptTemplate(
        id=prompt_id,
        name=name or prompt_id,
        version=str(metadata.get("version") or entry.get("last_commit_hash") or "unknown"),
        is_active=metadata.get("is_active") is True,
        body=body,
        input_variables=declared or extract_placeholders(body),
        updated_at=str(entry.get("updated_at") or entry.get("created_at") or ""),
        source="registry",
    )


def normalize_prompt_listing(payload: object) -> list[PromptTemplate]:
    """Translate any registry listing shape into a list of templates."""
    if payload is None:
        return []
    if isinstance(payload, dict):
        for key in ("repos", "prompts", "items", "data"):
            if isinstance(payload.get(key), list):
                payload = payload[key]
                break
        else:
            payload = [payload] if "id" in payload else []
    if not isinstance(payload, (list, tuple)):
        try:
            payload = list(payload)
        except TypeError:
            logger.warning("Unexpected prompt listing shape: %s", type(payload).__name__)
            return []

    templates: list[PromptTemplate] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        template = _listing_entry(entry)
        if template is not None:
            templates.append(template)
    return templates


class LangSmithRegistry:
    """Read-only access to the LangSmith prompt hub."""

    def __init__(self, config: LangSmithConfig, max_retries: int = 2) -> None:
        self.config = config
        self.max_retries = max_retries

    def pull_latest(self, name: str) -> PromptTemplate:
        owner, repo = _split_name(name)
        payload = self._get(
            f"/commits/{urllib.parse.quote(owner)}/{urllib.parse.quote(repo)}/latest"
        )
        manifest = payload.get("manifest") if isinstance(payload, dict) else None
        template = manifest_to_template(
            manifest,
            prompt_id=repo,
            name=repo,
            version="latest",
            is_active=True,
            source="hub",
        )
        if template is None:
            raise PromptRegistryError(f"Hub prompt {name!r} has no usable template")
        return template

    def list_prompts(self, limit: int = 10) -> list[PromptTemplate]:
        query = urllib.parse.urlencode(
            {
                "limit": limit,
                "offset": 0,
                "is_archived": "false",
                "sort_field": "updated_at",
                "sort_direction": "desc",
            }
        )
        return normalize_prompt_listing(self._get(f"/repos/?{query}"))[:limit]

    def _get(self, path: str) -> object:
        request = urllib.request.Request(
            url=self.config.api_url + path,
            headers={"x-api-key": self.config.api_key, "Accept": "application/json"},
        )
        try:
            return send_json(request, self.config.timeout_seconds, self.max_retries)
        except HttpError as exc:
            raise PromptRegistryError(f"LangSmith request {path} failed: {exc}") from exc
