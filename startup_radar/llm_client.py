from __future__ import annotations

import json
import urllib.request
from typing import Protocol

from .config import OpenAIConfig
from .errors import CompletionError, HttpError
from .transport import send_json

TEMPERATURE = 0.1
MAX_OUTPUT_TOKENS = 500


class CompletionModel(Protocol):
    def complete(self, prompt: str, json_mode: bool = True) -> str: ...


class OpenAIChatClient:
    def __init__(self, config: OpenAIConfig, max_retries: int = 3) -> None:
        self.config = config
        self.max_retries = max_retries

    def complete(self, prompt: str, json_mode: bool = True) -> str:
        payload: dict = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": TEMPERATURE,
            "max_tokens": MAX_OUTPUT_TOKENS,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        request = urllib.request.Request(
            url=f"{self.config.base_url}/chat/completions",
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.config.api_key}",
            },
        )
        try:
            response = send_json(request, self.config.timeout_seconds, self.max_retries, 1.2)
        except HttpError as exc:
            raise CompletionError(f"Completion request failed: {_error_detail(exc)}") from exc
        return _extract_response_text(response)


def _error_detail(exc: HttpError) -> str:
    if isinstance(exc.body, dict) and isinstance(exc.body.get("error"), dict):
        message = exc.body["error"].get("message")
        if message:
            return f"{exc} ({message})"
    return str(exc)


def _extract_response_text(response: object) -> str:
    choices = response.get("choices", []) if isinstance(response, dict) else []
    if not choices:
        raise CompletionError("Completion response has no choices")
    message = choices[0].get("message") or {}
    content = message.get("content")
    if not isinstance(content, str) or not content.strip():
        raise CompletionError("Completion response is empty")
    return content.strip()
