"""JXP client exceptions."""

from typing import Any

import httpx


class JxpError(Exception):
    """Base exception for JXP client errors."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigurationError(JxpError):
    """Client configuration is missing a required field."""

    pass


class TransportError(JxpError):
    """The request never produced a response (DNS, connect, timeout...)."""

    def __init__(self, message: str, original: Exception | None = None):
        super().__init__(message)
        self.original = original


class BackendError(JxpError):
    """The server answered, but not with success.

    ``body`` holds the decoded response body (JSON when possible, text
    otherwise, ``None`` when the response was empty).
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        reason: str = "",
        url: str = "",
        method: str = "",
        body: Any = None,
        code: str | None = None,
    ):
        super().__init__(message, code)
        self.status_code = status_code
        self.reason = reason
        self.url = url
        self.method = method
        self.body = body

    @classmethod
    def from_response(cls, response: httpx.Response) -> "BackendError":
        """Create BackendError from a completed response."""
        body = decode_body(response)
        message = f"{response.status_code} {response.reason_phrase}".strip()
        code = None
        if isinstance(body, dict):
            message = str(body.get("message", message))
            if body.get("code") is not None:
                code = str(body["code"])
        return cls(
            message,
            status_code=response.status_code,
            reason=response.reason_phrase,
            url=str(response.request.url),
            method=response.request.method,
            body=body,
            code=code,
        )


def decode_body(response: httpx.Response) -> Any:
    """Decode a response body: JSON if it parses, else text, else None."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
