# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""In-memory log of LLM traffic for the debug endpoints."""

from __future__ import annotations

import datetime
import logging
import os
import uuid
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

MAX_LLM_LOGS = 100
_SECRET_HEADERS = {"authorization", "x-api-key", "proxy-authorization"}

# Global list to store LLM communication logs for the current session
llm_logs: List[Dict[str, Any]] = []


def llm_debug_enabled() -> bool:
    return os.getenv("PLOTDIR_LLM_DEBUG", "0") in ("1", "true", "TRUE", "yes", "on")


def add_llm_log(log_entry: Dict[str, Any]) -> None:
    """Add a log entry to the global list, keeping only the last entries."""
    llm_logs.append(log_entry)
    if len(llm_logs) > MAX_LLM_LOGS:
        llm_logs.pop(0)


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {k: ("***" if k.lower() in _SECRET_HEADERS else v) for k, v in headers.items()}


def create_log_entry(
    url: str, method: str, headers: Dict[str, str], body: Any, streaming: bool = False
) -> Dict[str, Any]:
    """Create a new log entry structure."""
    body_copy = body
    if isinstance(body, dict) and "proxy_password" in body:
        body_copy = {**body, "proxy_password": "***"}
    entry = {
        "id": str(uuid.uuid4()),
        "timestamp_start": datetime.datetime.now().isoformat(),
        "timestamp_end": None,
        "request": {
            "url": url,
            "method": method,
            "headers": mask_headers(headers),
            "body": body_copy,
        },
        "response": {
            "status_code": None,
            "streaming": streaming,
            "chunks": [] if streaming else None,
            "full_content": "" if streaming else None,
            "body": None,
            "error": None,
        },
    }
    if llm_debug_enabled():
        logger.debug("LLM REQUEST: %s %s %s", method, url, entry["request"]["body"])
    return entry


def finish_log_entry(
    log_entry: Dict[str, Any],
    *,
    status_code: int | None = None,
    body: Any = None,
    error: str | None = None,
) -> None:
    log_entry["timestamp_end"] = datetime.datetime.now().isoformat()
    if status_code is not None:
        log_entry["response"]["status_code"] = status_code
    if body is not None:
        log_entry["response"]["body"] = body
    if error is not None:
        log_entry["response"]["error"] = error
    if llm_debug_enabled():
        logger.debug(
            "LLM RESPONSE: %s %s",
            log_entry["response"]["status_code"],
            error or "",
        )
