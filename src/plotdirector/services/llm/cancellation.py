# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Cancellation tokens and the timeout-or-cancel race every outbound LLM call runs under.

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from plotdirector.services.llm.errors import GenerationCancelled, GenerationTimedOut

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal shared between a round and its network call."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


async def run_cancellable(
    awaitable: Awaitable[T],
    token: CancellationToken | None = None,
    timeout_s: float | None = None,
) -> T:
    """Await ``awaitable`` until it finishes, ``token`` fires, or ``timeout_s`` elapses.

    Whichever comes first wins. On cancel or timeout the underlying task is
    cancelled and ``GenerationCancelled`` / ``GenerationTimedOut`` is raised.
    """
    if token is not None and token.cancelled:
        # Never started; close the coroutine so it does not warn.
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise GenerationCancelled(token.reason or "cancelled")

    task = asyncio.ensure_future(awaitable)
    waiters: set[asyncio.Future] = {task}
    cancel_waiter: asyncio.Future | None = None
    if token is not None:
        cancel_waiter = asyncio.ensure_future(token.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout_s, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.wait({task})
    if not task.cancelled():
        # Finished with its own error while being torn down; the abort wins.
        task.exception()

    if token is not None and token.cancelled:
        raise GenerationCancelled(token.reason or "cancelled")
    raise GenerationTimedOut(timeout_s)
