# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Operator-facing activity log.

Lines are kept in memory (bounded) so the front end can show, export and
clear them. Every line is also forwarded to the standard logging module.
"""

from __future__ import annotations

import datetime
import logging
from typing import List

logger = logging.getLogger("plotdirector.director")

MAX_LOG_ENTRIES = 500


class DirectorLog:
    def __init__(self, max_entries: int = MAX_LOG_ENTRIES):
        self.max_entries = max_entries
        self.entries: List[str] = []

    def __call__(self, message: str, level: int = logging.INFO) -> None:
        self.add(message, level)

    def add(self, message: str, level: int = logging.INFO) -> str:
        time = datetime.datetime.now().strftime("%H:%M:%S")
        entry = f"[{time}] {message}"
        self.entries.append(entry)
        if len(self.entries) > self.max_entries:
            del self.entries[: len(self.entries) - self.max_entries]
        logger.log(level, "%s", message)
        return entry

    def warning(self, message: str) -> str:
        return self.add(message, logging.WARNING)

    def error(self, message: str) -> str:
        return self.add(message, logging.ERROR)

    def clear(self) -> None:
        self.entries.clear()

    def export_text(self) -> str:
        return "\n".join(self.entries)

    def export_filename(self) -> str:
        stamp = datetime.datetime.now().isoformat(timespec="seconds").replace(":", "-")
        return f"plot-director-log-{stamp}.txt"
