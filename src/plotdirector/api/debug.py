# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from fastapi import APIRouter

from plotdirector.services.llm.llm_logging import MAX_LLM_LOGS, llm_debug_enabled, llm_logs

router = APIRouter(prefix="/api/debug", tags=["debug"])


@router.get("/llm_logs")
async def get_llm_logs(limit: int = MAX_LLM_LOGS) -> list:
    """Return the most recent director LLM requests, newest last."""
    if limit <= 0:
        return []
    return llm_logs[-limit:]


@router.get("/status")
async def get_debug_status() -> dict:
    return {"llm_debug": llm_debug_enabled(), "llm_logs": len(llm_logs), "max_llm_logs": MAX_LLM_LOGS}


@router.delete("/llm_logs")
async def clear_llm_logs() -> dict:
    cleared = len(llm_logs)
    llm_logs.clear()
    return {"ok": True, "cleared": cleared}
