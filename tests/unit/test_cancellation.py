# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import asyncio
from unittest import IsolatedAsyncioTestCase

from plotdirector.services.llm.cancellation import CancellationToken, run_cancellable
from plotdirector.services.llm.errors import (
    GenerationAborted,
    GenerationCancelled,
    GenerationTimedOut,
)


class RunCancellableTest(IsolatedAsyncioTestCase):
    async def test_returns_result(self):
        async def work():
            return 42

        self.assertEqual(await run_cancellable(work(), CancellationToken(), 1.0), 42)

    async def test_propagates_own_error(self):
        async def work():
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            await run_cancellable(work(), CancellationToken())

    async def test_already_cancelled_token_never_starts(self):
        started = []

        async def work():
            started.append(True)

        token = CancellationToken()
        token.cancel("stopped")
        with self.assertRaises(GenerationCancelled):
            await run_cancellable(work(), token)
        self.assertEqual(started, [])

    async def test_token_cancels_inner_task(self):
        torn_down = asyncio.Event()

        async def work():
            try:
                await asyncio.sleep(10)
            finally:
                torn_down.set()

        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel, "superseded")
        with self.assertRaises(GenerationCancelled) as ctx:
            await run_cancellable(work(), token)
        self.assertEqual(ctx.exception.reason, "superseded")
        self.assertTrue(torn_down.is_set())

    async def test_timeout(self):
        async def work():
            await asyncio.sleep(10)

        with self.assertRaises(GenerationTimedOut) as ctx:
            await run_cancellable(work(), None, 0.01)
        self.assertIsInstance(ctx.exception, GenerationAborted)
        self.assertEqual(ctx.exception.timeout_s, 0.01)

    async def test_outer_cancellation_cancels_inner(self):
        torn_down = asyncio.Event()

        async def work():
            try:
                await asyncio.sleep(10)
            finally:
                torn_down.set()

        outer = asyncio.ensure_future(run_cancellable(work(), CancellationToken()))
        await asyncio.sleep(0.01)
        outer.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await outer
        await asyncio.sleep(0.01)
        self.assertTrue(torn_down.is_set())

    async def test_cancel_is_idempotent(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        self.assertTrue(token.cancelled)
        self.assertEqual(token.reason, "first")
