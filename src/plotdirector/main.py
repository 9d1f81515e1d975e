# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Application factory wiring the director runtime and the API routers.

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from fastapi import FastAPI

from plotdirector.api import chat, debug, director, presets, settings
from plotdirector.core.config import SettingsStore
from plotdirector.core.director_log import DirectorLog
from plotdirector.services.director.engine import DirectorEngine
from plotdirector.services.director.host import (
    InMemoryConversation,
    LogNotifier,
    WebhookTurnTrigger,
)
from plotdirector.services.director.readiness import ReadinessIndicator
from plotdirector.services.director.review import ReviewQueue
from plotdirector.services.llm.client import VendorClient

logger = logging.getLogger(__name__)


@dataclass
class DirectorRuntime:
    store: SettingsStore
    conversation: InMemoryConversation
    trigger: WebhookTurnTrigger
    readiness: ReadinessIndicator
    review: ReviewQueue
    notifier: LogNotifier
    log: DirectorLog
    client: VendorClient
    engine: DirectorEngine


def build_runtime(settings_path: Path | None = None, client: VendorClient | None = None) -> DirectorRuntime:
    store = SettingsStore(settings_path)
    current = store.load()

    conversation = InMemoryConversation()
    trigger = WebhookTurnTrigger(conversation, generate_url=current.host_generate_url)
    readiness = ReadinessIndicator()
    review = ReviewQueue()
    notifier = LogNotifier()
    log = DirectorLog()
    client = client or VendorClient()
    engine = DirectorEngine(
        store,
        conversation,
        trigger,
        client=client,
        readiness=readiness,
        reviewer=review,
        notifier=notifier,
        log=log,
    )
    return DirectorRuntime(
        store=store,
        conversation=conversation,
        trigger=trigger,
        readiness=readiness,
        review=review,
        notifier=notifier,
        log=log,
        client=client,
        engine=engine,
    )


def create_app(settings_path: Path | None = None, client: VendorClient | None = None) -> FastAPI:
    app = FastAPI(title="Plot Director")
    app.state.runtime = build_runtime(settings_path, client)

    app.include_router(director.router)
    app.include_router(settings.router)
    app.include_router(presets.router)
    app.include_router(chat.router)
    app.include_router(debug.router)

    @app.get("/healthz")
    def healthz() -> dict[str, bool]:
        return {"ok": True}

    return app


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=os.getenv("PLOTDIR_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = os.getenv("PLOTDIR_HOST", "127.0.0.1")
    port = int(os.getenv("PLOTDIR_PORT", "8765"))
    logger.info("Starting Plot Director on %s:%s", host, port)
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
