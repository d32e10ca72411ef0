"""
Gateway error taxonomy.

Every failure that ends a request with an explicit response is a
`GatewayError`; route handlers turn it into `{"error": message}` with
`status_code`. Rate limiting is not an exception (see `Denied` in
`app.core.rate_limiter`), and per-line parse failures never leave
`app.stream.events`.
"""

from typing import Any, Optional

GENERIC_SEARCH_ERROR = "Failed to fetch movie recommendations"
GENERIC_PROVIDERS_ERROR = "Failed to fetch providers"


class GatewayError(Exception):
    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class InvalidQueryError(GatewayError):
    """Caller input is missing or blank; no backend call was made."""

    status_code = 400


class UpstreamError(GatewayError):
    """The backend answered with a non-success status; passed through as-is."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message, status_code=status_code)


class BackendUnavailableError(GatewayError):
    """The backend could not be reached before any response arrived."""

    status_code = 502


class StreamParseError(ValueError):
    """A single stream line could not be turned into an event."""

    def __init__(self, reason: str, line: str) -> None:
        self.reason = reason
        self.line = line
        super().__init__(f"{reason}: {line[:200]!r}")


class StreamInterruptedError(GatewayError):
    """The backend connection broke after the response had started."""

    status_code = 502


def error_detail(body: Any, fallback: str) -> str:
    """Pull the human-readable `detail` out of an error body, if there is one."""
    if isinstance(body, dict):
        detail = body.get("detail")
        if isinstance(detail, str) and detail:
            return detail
    return fallback
