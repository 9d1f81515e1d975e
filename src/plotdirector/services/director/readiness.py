# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import asyncio
from typing import Callable


class ReadinessIndicator:
    """Busy/idle flag owned by another extension (e.g. an image generator).

    The host flips it via ``mark_busy``/``mark_idle``; the director only
    waits on it.
    """

    def __init__(self) -> None:
        self._busy = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def busy(self) -> bool:
        return self._busy.is_set()

    def mark_busy(self) -> None:
        self._idle.clear()
        self._busy.set()

    def mark_idle(self) -> None:
        self._busy.clear()
        self._idle.set()

    async def wait_busy(self) -> None:
        await self._busy.wait()

    async def wait_idle(self) -> None:
        await self._idle.wait()


async def wait_for_readiness(
    indicator: ReadinessIndicator | None,
    start_timeout: float,
    finish_timeout: float,
    log: Callable[[str], None],
) -> bool:
    """Give the indicator a chance to start, then wait for it to finish.

    Returns True only when the indicator was seen finishing. Missing
    indicators and timeouts just let the round continue.
    """
    if indicator is None:
        log("Readiness indicator not found, skipping wait.")
        return False

    loop = asyncio.get_running_loop()
    started_at = loop.time()

    log("Waiting for external generation to start...")
    try:
        await asyncio.wait_for(indicator.wait_busy(), timeout=max(0.0, start_timeout))
    except asyncio.TimeoutError:
        log(f"External generation did not start within {start_timeout:g}s, continuing.")
        return False

    log("External generation running, waiting for it to finish...")
    remaining = finish_timeout - (loop.time() - started_at)
    try:
        await asyncio.wait_for(indicator.wait_idle(), timeout=max(0.0, remaining))
    except asyncio.TimeoutError:
        log("WARNING: readiness wait timed out, continuing anyway.")
        return False

    log(f"External generation finished ({loop.time() - started_at:.1f}s).")
    return True
