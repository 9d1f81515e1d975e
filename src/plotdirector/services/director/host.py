# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Interfaces to the host chat application plus the in-process implementations the HTTP service uses.

from __future__ import annotations

import datetime
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Dict, List, Protocol

import httpx

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_S = 30.0


@dataclass
class Turn:
    author: str
    text: str
    is_user: bool = False
    is_system: bool = False
    send_date: str = field(default_factory=lambda: datetime.datetime.now().isoformat())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Turn":
        return cls(
            author=str(data.get("author") or data.get("name") or ""),
            text=str(data.get("text") or data.get("mes") or ""),
            is_user=bool(data.get("is_user", False)),
            is_system=bool(data.get("is_system", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConversationStore(Protocol):
    def recent(self, n: int) -> List[Turn]: ...

    def append(self, turn: Turn) -> None: ...


class TurnTrigger(Protocol):
    def inject_user_turn_and_generate(self, text: str) -> Awaitable[None] | None: ...


class Notifier(Protocol):
    def notify(self, level: str, message: str) -> None: ...


class InMemoryConversation:
    def __init__(self, turns: List[Turn] | None = None):
        self.turns: List[Turn] = list(turns or [])

    def recent(self, n: int) -> List[Turn]:
        if n <= 0:
            return []
        return self.turns[-n:]

    def append(self, turn: Turn) -> None:
        self.turns.append(turn)

    def clear(self) -> None:
        self.turns.clear()


class LogNotifier:
    """Keep the latest user-facing notices for the front end and log them."""

    _LEVELS = {
        "info": logging.INFO,
        "success": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    def __init__(self, max_notices: int = 50):
        self.max_notices = max_notices
        self.notices: List[Dict[str, str]] = []

    def notify(self, level: str, message: str) -> None:
        self.notices.append({"level": level, "message": message})
        if len(self.notices) > self.max_notices:
            self.notices.pop(0)
        logger.log(self._LEVELS.get(level, logging.INFO), "%s", message)


class WebhookTurnTrigger:
    """Append the direction as a user turn and ask the host to generate.

    The host is told via an optional webhook; without one the turn only lands
    in the conversation store and the host is expected to poll it.
    """

    def __init__(
        self,
        conversation: ConversationStore,
        user_name: str = "User",
        generate_url: str = "",
        headers: Dict[str, str] | None = None,
    ):
        self.conversation = conversation
        self.user_name = user_name
        self.generate_url = generate_url
        self.headers = dict(headers or {})

    async def inject_user_turn_and_generate(self, text: str) -> None:
        self.conversation.append(Turn(author=self.user_name, text=text, is_user=True))
        if not self.generate_url:
            return
        async with httpx.AsyncClient(timeout=httpx.Timeout(WEBHOOK_TIMEOUT_S)) as client:
            r = await client.post(
                self.generate_url,
                headers=self.headers,
                json={"text": text, "automatic_trigger": True},
            )
            r.raise_for_status()
