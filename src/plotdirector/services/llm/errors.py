# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Error taxonomy shared by the LLM client and the director engine, plus user-facing classification.

"""Director error hierarchy.

Every failure the director can surface derives from ``DirectorError``:

- ``ConfigurationError``: settings are missing or invalid. Raised before any
  network call and never retried.
- ``TransportError``: non-2xx HTTP status or connection failure. Carries the
  status code (``None`` for connection failures) and the response body.
- ``MalformedResponseError``: success status, but the expected field is
  missing.
- ``GenerationAborted``: the call was cut short. ``GenerationCancelled`` is
  an expected supersede/stop and is not shown to the user;
  ``GenerationTimedOut`` is the ceiling timeout and is.
"""

from __future__ import annotations

from dataclasses import dataclass


class DirectorError(Exception):
    """Base class for director failures."""


class ConfigurationError(DirectorError):
    pass


class TransportError(DirectorError):
    def __init__(self, status_code: int | None, body: str = "", vendor: str = ""):
        self.status_code = status_code
        self.body = body or ""
        self.vendor = vendor
        label = f"{vendor} request" if vendor else "Request"
        if status_code is None:
            super().__init__(f"{label} failed: {self.body}")
        else:
            super().__init__(f"{label} failed ({status_code}): {self.body}")


class MalformedResponseError(DirectorError):
    pass


class GenerationAborted(DirectorError):
    reason = "aborted"


class GenerationCancelled(GenerationAborted):
    def __init__(self, reason: str = "cancelled"):
        super().__init__(f"Generation cancelled ({reason})")
        self.reason = reason


class GenerationTimedOut(GenerationAborted):
    reason = "timeout"

    def __init__(self, timeout_s: float | None = None):
        self.timeout_s = timeout_s
        if timeout_s is None:
            super().__init__("Generation timed out")
        else:
            super().__init__(f"Generation timed out after {timeout_s:g}s")


@dataclass(frozen=True)
class ErrorSummary:
    category: str
    message: str


_CATEGORY_MESSAGES = {
    "auth": "Authentication failed. Check the API key.",
    "rate_limit": "Rate limited by the provider. Wait a moment and try again.",
    "server": "The provider returned a server error.",
    "network": "Could not reach the API endpoint.",
    "timeout": "The request timed out.",
    "config": "Configuration problem.",
    "malformed": "The provider returned an unexpected response.",
    "unknown": "Unexpected error.",
}

# Checked in order; first match wins.
_SUBSTRING_HINTS = (
    ("timeout", ("timed out", "timeout")),
    ("rate_limit", ("rate limit", "too many requests", "quota")),
    (
        "auth",
        ("unauthorized", "invalid api key", "invalid x-api-key", "authentication", "forbidden"),
    ),
    ("network", ("connection", "network", "failed to fetch", "name resolution")),
    ("server", ("internal server error", "bad gateway", "overloaded")),
)


def _category_from_status(status_code: int | None) -> str | None:
    if status_code is None:
        return None
    if status_code in (401, 403):
        return "auth"
    if status_code == 429:
        return "rate_limit"
    if status_code in (408, 504):
        return "timeout"
    if status_code >= 500:
        return "server"
    return None


def classify_error(exc: BaseException) -> ErrorSummary:
    """Map an exception to a short user-facing category and message.

    Status code wins when present; substring heuristics on the error text are
    the fallback.
    """
    category: str | None = None
    if isinstance(exc, ConfigurationError):
        return ErrorSummary("config", f"{_CATEGORY_MESSAGES['config']} {exc}")
    if isinstance(exc, GenerationTimedOut):
        category = "timeout"
    elif isinstance(exc, MalformedResponseError):
        category = "malformed"
    elif isinstance(exc, TransportError):
        category = _category_from_status(exc.status_code)
        if category is None and exc.status_code is None:
            category = "network"

    if category is None:
        text = str(exc).lower()
        for name, needles in _SUBSTRING_HINTS:
            if any(n in text for n in needles):
                category = name
                break

    category = category or "unknown"
    message = _CATEGORY_MESSAGES[category]
    status = getattr(exc, "status_code", None)
    if status is not None:
        message = f"{message} (HTTP {status})"
    return ErrorSummary(category, message)
