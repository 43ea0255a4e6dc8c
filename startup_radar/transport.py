from __future__ import annotations

import http.client
import json
import logging
import time
import urllib.error
import urllib.request

from .errors import HttpError

logger = logging.getLogger(__name__)


def _decode(raw: bytes) -> object:
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def send_json(
    request: urllib.request.Request,
    timeout_seconds: float,
    max_retries: int = 3,
    backoff_seconds: float = 1.5,
) -> object:
    """Send ``request`` and return the decoded JSON body.

    Connection errors, truncated reads, timeouts and 5xx responses are
    retried with linear backoff and end as ``HttpError(0, ...)``. Any other
    non-2xx status raises ``HttpError`` straight away.
    """
    last_error: Exception | None = None
    for attempt in range(1, max_retries + 1):
        try:
            with urllib.request.urlopen(request, timeout=timeout_seconds) as response:
                payload = _decode(response.read())
                if isinstance(payload, str):
                    raise HttpError(response.status, "Response is not JSON", payload)
                return payload
        except urllib.error.HTTPError as exc:
            body = _decode(exc.read() or b"")
            error = HttpError(exc.code, str(exc.reason or ""), body)
            if exc.code < 500:
                raise error from exc
            last_error = error
        except (http.client.HTTPException, OSError) as exc:
            last_error = exc
        if attempt < max_retries:
            logger.debug(
                "Retrying %s %s after attempt %s: %s",
                request.get_method(),
                request.full_url,
                attempt,
                last_error,
            )
            time.sleep(backoff_seconds * attempt)

    if isinstance(last_error, HttpError):
        raise last_error
    raise HttpError(0, str(last_error) if last_error else "unknown error") from last_error
