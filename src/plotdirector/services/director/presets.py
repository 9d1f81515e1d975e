# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Director presets: the system prompt plus its ordered prompt blocks.

Presets are stored by name in the settings. Older saved presets without a
block list get the default blocks in plain-text history mode when loaded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List

from plotdirector.services.director.blocks import (
    HISTORY_MODE_ROLE,
    HISTORY_MODE_TEXT,
    HISTORY_MODES,
    ContentBlock,
    default_blocks,
)

if TYPE_CHECKING:
    from plotdirector.core.config import DirectorSettings

DEFAULT_PRESET_NAME = "Default Plot Director"
DEFAULT_SYSTEM_PROMPT = (
    "You are a plot director for an ongoing roleplay. Read the conversation and "
    "write a short direction, in the user's voice, that moves the story forward: "
    "introduce a development, a complication or a choice. Do not write dialogue "
    "for the other characters and do not summarize what already happened. "
    "Reply with the direction only."
)


class PresetFormatError(ValueError):
    pass


@dataclass
class Preset:
    name: str
    system_prompt: str = ""
    blocks: List[ContentBlock] = field(default_factory=default_blocks)
    chat_history_mode: str = HISTORY_MODE_ROLE
    temperature: float = 0.8
    max_tokens: int = 300
    model: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any], name: str | None = None) -> "Preset":
        pm = data.get("prompt_manager")
        if isinstance(pm, dict) and isinstance(pm.get("blocks"), list):
            blocks = [ContentBlock.from_dict(b) for b in pm["blocks"] if isinstance(b, dict)]
            mode = pm.get("chatHistoryMode") or HISTORY_MODE_ROLE
        else:
            # Presets saved before blocks existed keep the old flat history.
            blocks = default_blocks()
            mode = HISTORY_MODE_TEXT
        if mode not in HISTORY_MODES:
            mode = HISTORY_MODE_TEXT
        return cls(
            name=str(name or data.get("name") or DEFAULT_PRESET_NAME),
            system_prompt=str(data.get("system_prompt") or ""),
            blocks=blocks,
            chat_history_mode=mode,
            temperature=_as_float(data.get("temperature"), 0.8),
            max_tokens=_as_int(data.get("max_tokens"), 300),
            model=str(data.get("model") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "system_prompt": self.system_prompt,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "model": self.model,
            "prompt_manager": {
                "chatHistoryMode": self.chat_history_mode,
                "blocks": [b.to_dict() for b in self.blocks],
            },
        }


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def default_preset() -> Preset:
    return Preset(name=DEFAULT_PRESET_NAME, system_prompt=DEFAULT_SYSTEM_PROMPT)


def convert_imported_preset(data: Any) -> Preset:
    """Accept our own export format, a chat-completion preset, or bare content."""
    if not isinstance(data, dict):
        raise PresetFormatError("Unrecognized preset format")

    if "system_prompt" in data:
        return Preset.from_dict({**data, "name": data.get("name") or "Imported Preset"})

    if isinstance(data.get("prompts"), list):
        main = next(
            (p for p in data["prompts"] if isinstance(p, dict) and p.get("identifier") == "main"),
            None,
        )
        return Preset.from_dict(
            {
                "name": data.get("name") or "Imported ST Preset",
                "system_prompt": (main or {}).get("content") or "",
                "temperature": data.get("temperature", 0.8),
                "max_tokens": data.get("max_tokens", 300),
            }
        )

    if isinstance(data.get("content"), str):
        return Preset.from_dict(
            {"name": data.get("name") or "Imported Preset", "system_prompt": data["content"]}
        )

    raise PresetFormatError("Unrecognized preset format")


# ---- library operations on settings ----


def init_presets(settings: "DirectorSettings") -> None:
    """Seed the built-in preset when the library is empty."""
    if settings.presets:
        return
    preset = default_preset()
    settings.presets[preset.name] = preset
    settings.selected_preset = preset.name


def get_current_preset(settings: "DirectorSettings") -> Preset | None:
    if not settings.selected_preset:
        return None
    return settings.presets.get(settings.selected_preset)


def get_preset_names(settings: "DirectorSettings") -> List[str]:
    return list(settings.presets.keys())


def save_preset(settings: "DirectorSettings", name: str, preset: Preset) -> Preset:
    name = (name or "").strip()
    if not name:
        raise ValueError("Preset name is required")
    preset.name = name
    settings.presets[name] = preset
    return preset


def select_preset(settings: "DirectorSettings", name: str) -> Preset:
    if name not in settings.presets:
        raise KeyError(name)
    settings.selected_preset = name
    return settings.presets[name]


def delete_preset(settings: "DirectorSettings", name: str) -> bool:
    """Remove a preset; deleting the selected one leaves nothing selected."""
    if name not in settings.presets:
        return False
    del settings.presets[name]
    if settings.selected_preset == name:
        settings.selected_preset = ""
    return True
