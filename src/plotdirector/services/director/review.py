# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Holds a generated direction until a person sends, edits or skips it.

from __future__ import annotations

import asyncio
from typing import Protocol

SEND = "send"
SKIP = "skip"


class Reviewer(Protocol):
    async def confirm(self, text: str) -> str | None: ...


class ReviewQueue:
    """Single-slot review: ``confirm`` parks a draft, ``resolve`` answers it."""

    def __init__(self) -> None:
        self.draft: str | None = None
        self._future: asyncio.Future | None = None

    @property
    def pending(self) -> bool:
        return self._future is not None and not self._future.done()

    async def confirm(self, text: str) -> str | None:
        if self.pending:
            self._future.cancel()
        self.draft = text
        self._future = asyncio.get_running_loop().create_future()
        future = self._future
        try:
            return await future
        finally:
            if self._future is future:
                self._future = None
                self.draft = None

    def resolve(self, action: str, text: str | None = None) -> bool:
        """Answer the pending draft. Returns False when nothing is waiting."""
        if not self.pending:
            return False
        if action == SEND:
            self._future.set_result(self.draft if text is None else text)
        elif action == SKIP:
            self._future.set_result(None)
        else:
            raise ValueError(f"Unknown review action: {action}")
        return True
