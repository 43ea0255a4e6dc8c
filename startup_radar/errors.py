from __future__ import annotations


class StartupRadarError(Exception):
    pass


class ConfigError(StartupRadarError):
    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__("Missing required environment variables: " + ", ".join(self.missing))


class HttpError(StartupRadarError):
    """Non-2xx response, with the decoded body when the provider sent one."""

    def __init__(self, status: int, reason: str, body: object = None) -> None:
        self.status = status
        self.reason = reason
        self.body = body
        super().__init__(f"HTTP {status} {reason}".strip())


class AuthError(StartupRadarError):
    pass


class FetchError(StartupRadarError):
    pass


class PromptRegistryError(StartupRadarError):
    pass


class CompletionError(StartupRadarError):
    pass


class AnalysisParseError(StartupRadarError):
    pass


class PersistenceError(StartupRadarError):
    pass
