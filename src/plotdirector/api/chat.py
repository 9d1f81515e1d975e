# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Lets the host mirror its conversation into the director's turn store.

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from plotdirector.api.common import (
    DirectorBadRequestError,
    get_runtime,
    map_director_exception,
    ok_json,
    parse_json_body,
)
from plotdirector.services.director.host import Turn

router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.get("/turns")
async def api_chat_turns(request: Request, limit: int = 0) -> dict:
    conversation = get_runtime(request).conversation
    turns = conversation.recent(limit) if limit > 0 else conversation.turns
    return {"turns": [t.to_dict() for t in turns]}


@router.post("/turns")
async def api_chat_turns_sync(request: Request) -> JSONResponse:
    """Append turns, or replace the whole history when `replace` is set."""
    try:
        payload = await parse_json_body(request)
        items = payload.get("turns")
        if items is None and ("text" in payload or "mes" in payload):
            items = [payload]
        if not isinstance(items, list):
            raise DirectorBadRequestError("Expected 'turns' to be a list")
    except Exception as exc:
        return map_director_exception(exc)

    conversation = get_runtime(request).conversation
    if payload.get("replace"):
        conversation.clear()
    added = 0
    for item in items:
        if isinstance(item, dict):
            conversation.append(Turn.from_dict(item))
            added += 1
    return ok_json({"ok": True, "added": added, "count": len(conversation.turns)})
