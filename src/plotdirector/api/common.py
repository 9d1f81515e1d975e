# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Shared request parsing, JSON responses and error mapping for the API routers.

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from plotdirector.services.llm.errors import ConfigurationError, DirectorError, classify_error

if TYPE_CHECKING:
    from plotdirector.main import DirectorRuntime


class DirectorApiError(Exception):
    def __init__(self, detail: str, status_code: int = 400):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class DirectorBadRequestError(DirectorApiError):
    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=400)


class DirectorNotFoundError(DirectorApiError):
    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=404)


class DirectorConflictError(DirectorApiError):
    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=409)


def get_runtime(request: Request) -> "DirectorRuntime":
    return request.app.state.runtime


async def parse_json_body(request: Request) -> dict:
    try:
        payload = await request.json()
    except Exception as exc:
        raise DirectorBadRequestError("Invalid JSON body") from exc
    return payload if isinstance(payload, dict) else {}


def mask_key(key: str) -> str:
    if not key:
        return ""
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:3]}...{key[-4:]}"


def drop_masked_key(payload: dict, stored_key: str) -> dict:
    """A masked key coming back from the form means "unchanged"."""
    if "api_key" in payload and payload["api_key"] == mask_key(stored_key):
        payload.pop("api_key")
    return payload


def ok_json(content: dict | None = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content or {"ok": True})


def error_json(detail: str, status_code: int = 400, **extra: object) -> JSONResponse:
    body: dict[str, object] = {"ok": False, "detail": detail}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


def map_director_exception(exc: Exception) -> JSONResponse:
    if isinstance(exc, DirectorApiError):
        return error_json(exc.detail, exc.status_code)
    if isinstance(exc, HTTPException):
        return error_json(str(exc.detail), exc.status_code)
    if isinstance(exc, ConfigurationError):
        return error_json(str(exc), 400, category="config")
    if isinstance(exc, DirectorError):
        summary = classify_error(exc)
        return error_json(summary.message, 502, category=summary.category)
    return error_json(str(exc), 500)
