"""Error taxonomy shared by the relay, the services, and the HTTP layer.

Each error knows the HTTP status it surfaces as and renders itself into the
``{"error": ..., "details": ...}`` body the browser client expects.
"""

from __future__ import annotations

from typing import Any


class ZoxaaError(Exception):
    """Base class for errors that map onto a structured JSON response."""

    status: int = 500
    error: str = "Internal error"

    def __init__(self, details: str = "", *, error: str | None = None) -> None:
        super().__init__(details or error or self.error)
        self.details = details
        if error is not None:
            self.error = error

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "details": self.details}


class ConfigurationError(ZoxaaError):
    """A required setting (the upstream credential) is missing."""

    status = 500
    error = "OpenAI API key not configured"

    def __init__(self, details: str = "Please set OPENAI_API_KEY environment variable") -> None:
        super().__init__(details)


class InvalidRequestError(ZoxaaError):
    """The client sent a body that fails validation."""

    status = 400
    error = "Invalid request format"


class NotFoundError(ZoxaaError):
    status = 404
    error = "Not found"


class UpstreamAuthError(ZoxaaError):
    """The upstream provider rejected the credential."""

    status = 401
    error = "Invalid API key"

    def __init__(self, details: str = "Please check your OpenAI API key") -> None:
        super().__init__(details)


class RateLimitedError(ZoxaaError):
    """The upstream provider is throttling us."""

    status = 429
    error = "Rate limit exceeded"

    def __init__(self, details: str = "Please try again later") -> None:
        super().__init__(details)


class UpstreamError(ZoxaaError):
    """Any other upstream failure; carries the upstream message."""

    status = 500
    error = "Failed to generate response"
