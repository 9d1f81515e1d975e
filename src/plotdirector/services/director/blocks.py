# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""Prompt blocks and message assembly.

A preset owns an ordered list of ``ContentBlock``. Assembly walks that list,
resolves every enabled block to text, and merges the survivors into a single
user message. One merged user turn is accepted by every vendor without any
role-ordering fixups.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List

from plotdirector.services.director.host import Turn

if TYPE_CHECKING:
    from plotdirector.core.config import DirectorSettings
    from plotdirector.services.director.presets import Preset

SYSTEM_PROMPT = "system_prompt"
PLOT_OUTLINE = "plot_outline"
CHAT_HISTORY = "chat_history"
INSTRUCTION = "instruction"

FIXED = "fixed"
CUSTOM = "custom"

HISTORY_MODE_TEXT = "text"
HISTORY_MODE_ROLE = "role"
HISTORY_MODES = (HISTORY_MODE_TEXT, HISTORY_MODE_ROLE)

DEFAULT_INSTRUCTION = "Based on the conversation above, generate the next plot direction."

# Wrap tags older saved blocks get when they predate the field.
_LEGACY_WRAP_TAGS = {CHAT_HISTORY: "history log", PLOT_OUTLINE: "plot outline"}


@dataclass
class ContentBlock:
    id: str
    kind: str = CUSTOM
    role: str = "user"
    label: str = ""
    enabled: bool = True
    content: str | None = None
    wrap_tag: str | None = ""

    @property
    def is_fixed(self) -> bool:
        return self.kind == FIXED

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentBlock":
        block_id = str(data.get("id") or f"custom_{uuid.uuid4().hex[:8]}")
        wrap_tag = data.get("tagName", data.get("wrap_tag"))
        if wrap_tag is None:
            wrap_tag = _LEGACY_WRAP_TAGS.get(block_id, "")
        content = data.get("content")
        return cls(
            id=block_id,
            kind=str(data.get("type") or data.get("kind") or CUSTOM),
            role=str(data.get("role") or "user"),
            label=str(data.get("label") or ""),
            enabled=bool(data.get("enabled", True)),
            content=None if content is None else str(content),
            wrap_tag=str(wrap_tag),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "role": self.role,
            "label": self.label,
            "enabled": self.enabled,
            "content": self.content,
            "tagName": self.wrap_tag or "",
        }


_DEFAULT_BLOCKS = [
    ContentBlock(SYSTEM_PROMPT, FIXED, "system", "System Prompt", True, None, ""),
    ContentBlock(PLOT_OUTLINE, FIXED, "system", "Plot Outline", True, None, "plot outline"),
    ContentBlock(CHAT_HISTORY, FIXED, "special", "Chat History", True, None, "history log"),
    ContentBlock(INSTRUCTION, FIXED, "user", "Instruction", True, DEFAULT_INSTRUCTION, ""),
]


def default_blocks() -> List[ContentBlock]:
    return copy.deepcopy(_DEFAULT_BLOCKS)


def new_custom_block(
    label: str = "Custom Block", content: str = "", role: str = "user", wrap_tag: str = ""
) -> ContentBlock:
    return ContentBlock(
        id=f"custom_{uuid.uuid4().hex[:8]}",
        kind=CUSTOM,
        role=role,
        label=label,
        enabled=True,
        content=content,
        wrap_tag=wrap_tag,
    )


# ---- block list editing ----


def find_block(blocks: List[ContentBlock], block_id: str) -> int:
    for i, block in enumerate(blocks):
        if block.id == block_id:
            return i
    raise KeyError(block_id)


def move_block(blocks: List[ContentBlock], index: int, new_index: int) -> None:
    if not 0 <= index < len(blocks):
        raise IndexError(f"Block index out of range: {index}")
    if not 0 <= new_index < len(blocks):
        raise IndexError(f"Target index out of range: {new_index}")
    block = blocks.pop(index)
    blocks.insert(new_index, block)


def insert_block(
    blocks: List[ContentBlock], block: ContentBlock, index: int | None = None
) -> None:
    if any(b.id == block.id for b in blocks):
        raise ValueError(f"Duplicate block id: {block.id}")
    if index is None:
        blocks.append(block)
        return
    if not 0 <= index <= len(blocks):
        raise IndexError(f"Insert index out of range: {index}")
    blocks.insert(index, block)


def delete_block(blocks: List[ContentBlock], block_id: str) -> ContentBlock:
    idx = find_block(blocks, block_id)
    if blocks[idx].is_fixed:
        raise ValueError(f"Fixed block '{block_id}' cannot be deleted")
    return blocks.pop(idx)


def toggle_block(blocks: List[ContentBlock], block_id: str, enabled: bool | None = None) -> bool:
    block = blocks[find_block(blocks, block_id)]
    block.enabled = (not block.enabled) if enabled is None else bool(enabled)
    return block.enabled


# ---- rendering ----


def wrap_block(body: str, tag: str | None) -> str:
    if not tag or not tag.strip():
        return body
    tag = tag.strip()
    return f"<{tag}>\n{body}\n</{tag}>"


def _speaker(turn: Turn) -> str:
    return turn.author or ("User" if turn.is_user else "Character")


def render_chat_history(turns: Iterable[Turn], mode: str = HISTORY_MODE_TEXT) -> str:
    lines = []
    for turn in turns:
        if turn.is_system and not turn.is_user:
            continue
        if mode == HISTORY_MODE_ROLE:
            role = "user" if turn.is_user else "assistant"
            lines.append(f"[{role}] {_speaker(turn)}: {turn.text}")
        else:
            lines.append(f"{_speaker(turn)}: {turn.text}")
    return "\n\n".join(lines).strip()


def outline_allowed_for_round(settings: "DirectorSettings", round_number: int) -> bool:
    """Whether the outline goes into the LLM prompt for this round."""
    if not settings.outline_enabled or not (settings.outline or "").strip():
        return False
    cutoff = settings.outline_prompt_rounds
    return cutoff <= 0 or round_number <= cutoff


def outline_send_allowed_for_round(settings: "DirectorSettings", round_number: int) -> bool:
    """Whether the outline is prepended to the outgoing direction this round."""
    if not settings.outline_send_enabled or not (settings.outline or "").strip():
        return False
    cutoff = settings.outline_send_rounds
    return cutoff <= 0 or round_number <= cutoff


def _resolve_body(
    block: ContentBlock,
    preset: "Preset",
    turns: List[Turn],
    outline: str,
    outline_allowed: bool,
) -> str:
    if block.id == SYSTEM_PROMPT:
        return preset.system_prompt or ""
    if block.id == PLOT_OUTLINE and block.content is None:
        return outline if outline_allowed else ""
    if block.id == CHAT_HISTORY and block.content is None:
        return render_chat_history(turns, preset.chat_history_mode)
    return block.content or ""


def assemble_messages(
    preset: "Preset",
    turns: List[Turn],
    *,
    outline: str = "",
    outline_allowed: bool = False,
) -> List[Dict[str, str]]:
    """Render the preset's enabled blocks into a single user message."""
    parts: List[str] = []
    for block in preset.blocks:
        if not block.enabled:
            continue
        body = _resolve_body(block, preset, turns, (outline or "").strip(), outline_allowed)
        if not body.strip():
            continue
        parts.append(wrap_block(body.strip(), block.wrap_tag))

    if not parts:
        return []
    return [{"role": "user", "content": "\n\n".join(parts)}]
