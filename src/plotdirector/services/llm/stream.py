# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import inspect
import json as _json
from typing import Any, Awaitable, Callable, Dict

import httpx

TokenCallback = Callable[[str], "Awaitable[None] | None"]

DONE_SENTINEL = "[DONE]"


async def read_sse_text(
    resp: httpx.Response,
    extract_delta: Callable[[Dict[str, Any]], str | None],
    on_token: TokenCallback | None = None,
    log_entry: dict | None = None,
) -> str:
    """Accumulate the text deltas of an SSE response.

    Only ``data: `` lines are considered. Reading stops at the ``[DONE]``
    sentinel or when the stream closes. Frames that are not JSON are skipped.
    """
    full_text = ""
    async for line in resp.aiter_lines():
        if not line:
            continue
        if not line.startswith("data: "):
            continue
        data = line[len("data: ") :].strip()
        if data == DONE_SENTINEL:
            break

        try:
            obj = _json.loads(data)
        except ValueError:
            continue
        if not isinstance(obj, dict):
            continue
        if log_entry:
            log_entry["response"]["chunks"].append(obj)

        token = extract_delta(obj)
        if not token:
            continue
        full_text += token
        if log_entry:
            log_entry["response"]["full_content"] += token
        if on_token is not None:
            result = on_token(token)
            if inspect.isawaitable(result):
                await result
    return full_text
