# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Run control, review, operator log and connection endpoints for the director.

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from plotdirector.api.common import (
    DirectorBadRequestError,
    DirectorConflictError,
    drop_masked_key,
    get_runtime,
    map_director_exception,
    ok_json,
    parse_json_body,
)
from plotdirector.core.config import DirectorSettings
from plotdirector.services.director.engine import check_start_preconditions
from plotdirector.services.llm.errors import DirectorError

router = APIRouter(prefix="/api/director", tags=["director"])


@router.get("/status")
async def api_director_status(request: Request) -> dict:
    rt = get_runtime(request)
    return {**rt.engine.status(), "notices": rt.notifier.notices[-10:]}


@router.post("/start")
async def api_director_start(request: Request, background: BackgroundTasks) -> JSONResponse:
    rt = get_runtime(request)
    try:
        check_start_preconditions(rt.store.get())
    except DirectorError as exc:
        return map_director_exception(exc)
    if not rt.engine.begin_run():
        return map_director_exception(DirectorBadRequestError("Director could not be started"))
    # Round 1 may wait on readiness and the LLM; answer first.
    background.add_task(rt.engine.run_round)
    return ok_json({"ok": True, "status": rt.engine.status()})


@router.post("/stop")
async def api_director_stop(request: Request) -> JSONResponse:
    rt = get_runtime(request)
    stopped = rt.engine.stop()
    return ok_json({"ok": True, "stopped": stopped, "status": rt.engine.status()})


@router.post("/turn-completed")
async def api_director_turn_completed(
    request: Request, background: BackgroundTasks
) -> JSONResponse:
    """Called by the host whenever its own assistant turn has finished."""
    rt = get_runtime(request)
    background.add_task(rt.engine.on_turn_completed)
    return ok_json({"ok": True, "accepted": rt.engine.state.running})


@router.post("/readiness")
async def api_director_readiness(request: Request) -> JSONResponse:
    try:
        payload = await parse_json_body(request)
    except DirectorBadRequestError as exc:
        return map_director_exception(exc)
    rt = get_runtime(request)
    if bool(payload.get("busy")):
        rt.readiness.mark_busy()
    else:
        rt.readiness.mark_idle()
    return ok_json({"ok": True, "busy": rt.readiness.busy})


@router.get("/review")
async def api_director_review(request: Request) -> dict:
    rt = get_runtime(request)
    return {"pending": rt.review.pending, "draft": rt.review.draft}


@router.post("/review")
async def api_director_review_resolve(request: Request) -> JSONResponse:
    try:
        payload = await parse_json_body(request)
        action = str(payload.get("action") or "")
        text = payload.get("text")
        rt = get_runtime(request)
        try:
            resolved = rt.review.resolve(action, None if text is None else str(text))
        except ValueError as exc:
            raise DirectorBadRequestError(str(exc)) from exc
        if not resolved:
            raise DirectorConflictError("No direction is waiting for review")
    except Exception as exc:
        return map_director_exception(exc)
    return ok_json({"ok": True, "action": action})


@router.get("/log")
async def api_director_log(request: Request) -> dict:
    return {"entries": list(get_runtime(request).log.entries)}


@router.delete("/log")
async def api_director_log_clear(request: Request) -> JSONResponse:
    get_runtime(request).log.clear()
    return ok_json()


@router.get("/log/export")
async def api_director_log_export(request: Request) -> PlainTextResponse:
    log = get_runtime(request).log
    return PlainTextResponse(
        log.export_text(),
        headers={"Content-Disposition": f'attachment; filename="{log.export_filename()}"'},
    )


@router.post("/test-connection")
async def api_director_test_connection(request: Request) -> JSONResponse:
    """Probe the connection, optionally with unsaved values from the form."""
    try:
        payload = await parse_json_body(request)
    except DirectorBadRequestError:
        payload = {}
    rt = get_runtime(request)
    stored = rt.store.get()
    drop_masked_key(payload, stored.api_key)
    candidate = DirectorSettings.from_dict({**stored.to_dict(), **payload})
    result = await rt.client.test_connection(candidate.llm_config())
    rt.log(result.message)
    return ok_json({"ok": result.success, "message": result.message})


@router.get("/models")
async def api_director_models(request: Request) -> JSONResponse:
    rt = get_runtime(request)
    try:
        models = await rt.client.fetch_models(rt.store.get().llm_config())
    except DirectorError as exc:
        return map_director_exception(exc)
    return ok_json({"ok": True, "models": models})
