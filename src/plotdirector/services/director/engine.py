# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Director round state machine.

A run is a fixed number of rounds. Round 1 fires as soon as the director is
started; every later round fires when the host reports that its own turn
finished. Each round:

    wait for readiness -> assemble + filter -> generate
        -> (review) -> inject as a user turn

Only one generation may be live. Every round owns a ``CancellationToken``;
starting a new round or stopping cancels the previous one, and a round that
no longer owns the current token never writes to the shared state again.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict

from plotdirector.core.config import DirectorSettings, SettingsStore
from plotdirector.core.director_log import DirectorLog
from plotdirector.services.director.blocks import (
    assemble_messages,
    outline_allowed_for_round,
    outline_send_allowed_for_round,
)
from plotdirector.services.director.filters import apply_filters
from plotdirector.services.director.host import (
    ConversationStore,
    LogNotifier,
    Notifier,
    TurnTrigger,
)
from plotdirector.services.director.presets import get_current_preset
from plotdirector.services.director.readiness import ReadinessIndicator, wait_for_readiness
from plotdirector.services.director.review import Reviewer
from plotdirector.services.llm.cancellation import CancellationToken, run_cancellable
from plotdirector.services.llm.client import VendorClient
from plotdirector.services.llm.errors import (
    ConfigurationError,
    GenerationCancelled,
    classify_error,
)

logger = logging.getLogger(__name__)

IDLE = "idle"
STARTING = "starting"
WAITING = "waiting"
GENERATING = "generating"
REVIEW_PENDING = "review_pending"
SENDING = "sending"


@dataclass
class RoundState:
    enabled: bool = False
    running: bool = False
    current_round: int = 0
    total_rounds: int = 0
    is_generating: bool = False


def check_start_preconditions(settings: DirectorSettings) -> None:
    if not settings.enabled:
        raise ConfigurationError("Please enable Plot Director first.")
    preset = get_current_preset(settings)
    if preset is None or not (preset.system_prompt or "").strip():
        raise ConfigurationError("Please select a preset with a system prompt.")
    if settings.rounds < 1:
        raise ConfigurationError("Rounds must be at least 1.")
    if settings.connection_mode == "direct":
        if not settings.api_url or not settings.model:
            raise ConfigurationError("Direct connection needs an API URL and a model.")
    elif not settings.model:
        raise ConfigurationError("Proxy connection needs a model.")


def prepend_outline(outline: str, text: str) -> str:
    return f"[Plot Outline]\n{outline.strip()}\n\n{text}"


class DirectorEngine:
    def __init__(
        self,
        store: SettingsStore,
        conversation: ConversationStore,
        turn_trigger: TurnTrigger,
        *,
        client: VendorClient | None = None,
        readiness: ReadinessIndicator | None = None,
        reviewer: Reviewer | None = None,
        notifier: Notifier | None = None,
        log: DirectorLog | None = None,
    ):
        self.store = store
        self.conversation = conversation
        self.turn_trigger = turn_trigger
        self.client = client or VendorClient()
        self.readiness = readiness
        self.reviewer = reviewer
        self.notifier = notifier or LogNotifier()
        self.log = log or DirectorLog()

        settings = store.get()
        self.state = RoundState(enabled=settings.enabled, total_rounds=settings.rounds)
        self.phase = IDLE
        self.last_output = ""
        self._token: CancellationToken | None = None
        self._injections: set[asyncio.Future] = set()

    @property
    def settings(self) -> DirectorSettings:
        return self.store.get()

    # ---- public operations ----

    async def start(self) -> bool:
        if not self.begin_run():
            return False
        await self.run_round()
        return True

    def begin_run(self) -> bool:
        """Validate and reset for a new run without firing round 1."""
        settings = self.settings
        try:
            check_start_preconditions(settings)
        except ConfigurationError as exc:
            self.log.warning(f"Start refused: {exc}")
            self.notifier.notify("warning", str(exc))
            return False

        self._cancel_inflight("superseded")
        self.phase = STARTING
        self.state.enabled = settings.enabled
        self.state.total_rounds = settings.rounds
        self.state.running = True
        self.state.current_round = 0
        self.state.is_generating = False
        self._persist()

        self.log(f"Director started. Will run for {self.state.total_rounds} rounds.")
        self.notifier.notify("info", "Plot Director started.")
        return True

    def stop(self) -> bool:
        """Stop the run. Returns False (and reports nothing) if it was not running."""
        was_running = self.state.running
        self._cancel_inflight("stopped")
        self.state.is_generating = False
        if not was_running:
            return False

        self.state.running = False
        self.phase = IDLE
        self._persist()
        self.log(
            f"Director stopped. Completed {self.state.current_round}/"
            f"{self.state.total_rounds} rounds."
        )
        self.notifier.notify("info", "Plot Director stopped.")
        return True

    async def on_turn_completed(self) -> None:
        """Host callback: the upstream assistant turn has finished."""
        if not self.settings.enabled or not self.state.running:
            return
        if self.state.is_generating:
            self.log("Skipped: already processing a direction.")
            return
        if self.state.current_round >= self.state.total_rounds:
            return
        await self.run_round()

    async def run_round(self) -> None:
        state = self.state
        if not state.running or state.is_generating:
            return
        if state.current_round >= state.total_rounds:
            self.stop()
            return

        self._cancel_inflight("superseded")
        token = CancellationToken()
        self._token = token
        state.is_generating = True
        round_no = state.current_round + 1

        try:
            await self._run_round(token)
        except GenerationCancelled as exc:
            self.log(f"Round {round_no} cancelled ({exc.reason}).")
        except Exception as exc:
            if self._owns(token):
                self._fail(exc)
            else:
                logger.info("Late failure from superseded round: %s", exc)
        finally:
            if self._token is token:
                self._token = None
                state.is_generating = False
                if state.running and self.phase != IDLE:
                    self.phase = WAITING

    def status(self) -> Dict[str, Any]:
        pending = getattr(self.reviewer, "draft", None) if self.reviewer else None
        return {
            **asdict(self.state),
            "phase": self.phase if self.state.running else IDLE,
            "last_output": self.last_output,
            "pending_review": pending,
        }

    # ---- round body ----

    async def _run_round(self, token: CancellationToken) -> None:
        state = self.state
        settings = self.settings

        state.current_round += 1
        round_no = state.current_round
        self._persist()
        self.log(f"Round {round_no}/{state.total_rounds} - Starting...")

        if settings.wait_for_readiness:
            self.phase = WAITING
            await run_cancellable(
                wait_for_readiness(
                    self.readiness,
                    settings.readiness_start_timeout,
                    settings.readiness_timeout,
                    self.log,
                ),
                token,
            )

        if not self._owns(token):
            self.log("Director stopped during wait; round not sent.")
            return

        preset = get_current_preset(settings)
        if preset is None:
            raise ConfigurationError("No preset selected.")
        messages = assemble_messages(
            preset,
            self.conversation.recent(settings.context_length),
            outline=settings.outline,
            outline_allowed=outline_allowed_for_round(settings, round_no),
        )
        messages = apply_filters(messages, settings.filter_rules, warn=self.log.warning)

        self.phase = GENERATING
        self.last_output = ""
        self.log("Calling director LLM...")
        direction = await self.client.generate(
            messages,
            settings.llm_config(),
            token,
            on_token=self._on_token if settings.streaming else None,
        )
        if not self._owns(token):
            return

        if not direction or not direction.strip():
            self.log.warning("WARNING: Director LLM returned empty response. Skipping this round.")
            self.notifier.notify("warning", "Director LLM returned empty response.")
            self._finish_if_last()
            return

        final_text = direction.strip()
        self.last_output = final_text
        self.log(f"Director LLM responded ({len(final_text)} chars).")

        if outline_send_allowed_for_round(settings, round_no):
            final_text = prepend_outline(settings.outline, final_text)

        if settings.review_mode and self.reviewer is not None:
            self.phase = REVIEW_PENDING
            self.log("Preview mode: waiting for user confirmation...")
            edited = await run_cancellable(self.reviewer.confirm(final_text), token)
            if not self._owns(token):
                return
            if edited is None:
                self.log("User skipped this round.")
                self._finish_if_last()
                return
            final_text = edited

        if not self._owns(token):
            self.log("Director stopped before sending; direction discarded.")
            return

        self.phase = SENDING
        self.log("Sending direction as user message...")
        is_last = state.current_round >= state.total_rounds
        state.is_generating = False
        if is_last:
            self.log(f"All {state.total_rounds} rounds completed.")
            self.stop()
        # Past this point the round may no longer own its token.
        try:
            self._hand_off(final_text)
        except Exception as exc:
            self._fail(exc)

    # ---- helpers ----

    def _owns(self, token: CancellationToken) -> bool:
        return self.state.running and self._token is token and not token.cancelled

    def _on_token(self, text: str) -> None:
        self.last_output += text

    def _finish_if_last(self) -> None:
        if self.state.current_round >= self.state.total_rounds:
            self.stop()

    def _cancel_inflight(self, reason: str) -> None:
        token, self._token = self._token, None
        if token is not None:
            token.cancel(reason)

    def _persist(self) -> None:
        settings = self.settings
        settings.running = self.state.running
        settings.current_round = self.state.current_round
        self.store.save()

    def _fail(self, exc: BaseException) -> None:
        summary = classify_error(exc)
        self.log.error(f"ERROR: {exc}")
        logger.exception("Director round failed", exc_info=exc)
        self.notifier.notify("error", f"Plot Director error: {summary.message}")
        self.stop()

    def _hand_off(self, text: str) -> None:
        result = self.turn_trigger.inject_user_turn_and_generate(text)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._injections.add(task)
            task.add_done_callback(self._injection_done)

    def _injection_done(self, task: asyncio.Future) -> None:
        self._injections.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._fail(exc)
