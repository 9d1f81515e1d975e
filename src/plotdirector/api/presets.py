# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Preset library CRUD, import/export and block list editing endpoints.

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from plotdirector.api.common import (
    DirectorBadRequestError,
    get_runtime,
    map_director_exception,
    ok_json,
    parse_json_body,
)
from plotdirector.core.config import DirectorSettings
from plotdirector.services.director.blocks import (
    HISTORY_MODES,
    ContentBlock,
    delete_block,
    find_block,
    insert_block,
    move_block,
    new_custom_block,
    toggle_block,
)
from plotdirector.services.director.presets import (
    Preset,
    PresetFormatError,
    convert_imported_preset,
    delete_preset,
    save_preset,
    select_preset,
)

router = APIRouter(prefix="/api/presets", tags=["presets"])


class BlockModel(BaseModel):
    id: str
    kind: str = "custom"
    role: str = "user"
    label: str = ""
    enabled: bool = True
    content: Optional[str] = None
    wrap_tag: str = ""


class BlockCreate(BaseModel):
    label: str = "Custom Block"
    content: str = ""
    role: str = "user"
    wrap_tag: str = ""
    index: Optional[int] = None


class BlockUpdate(BaseModel):
    label: Optional[str] = None
    content: Optional[str] = None
    role: Optional[str] = None
    wrap_tag: Optional[str] = None
    enabled: Optional[bool] = None


class BlockMove(BaseModel):
    from_index: int
    to_index: int


class PresetPayload(BaseModel):
    name: str
    system_prompt: str = ""
    chat_history_mode: str = "role"
    temperature: float = 0.8
    max_tokens: int = 300
    model: str = ""
    blocks: Optional[List[BlockModel]] = None
    select: bool = False


class NamePayload(BaseModel):
    name: str


def _block_model(block: ContentBlock) -> BlockModel:
    return BlockModel(
        id=block.id,
        kind=block.kind,
        role=block.role,
        label=block.label,
        enabled=block.enabled,
        content=block.content,
        wrap_tag=block.wrap_tag or "",
    )


def _library(settings: DirectorSettings) -> dict:
    return {
        "current": settings.selected_preset,
        "presets": {name: p.to_dict() for name, p in settings.presets.items()},
    }


def _get_preset(settings: DirectorSettings, name: str) -> Preset:
    preset = settings.presets.get(name)
    if preset is None:
        raise HTTPException(status_code=404, detail=f"Preset not found: {name}")
    return preset


@router.get("")
async def api_presets_list(request: Request) -> dict:
    return _library(get_runtime(request).store.get())


@router.post("")
async def api_presets_save(request: Request, payload: PresetPayload) -> JSONResponse:
    rt = get_runtime(request)
    settings = rt.store.get()
    mode = payload.chat_history_mode
    if mode not in HISTORY_MODES:
        return map_director_exception(DirectorBadRequestError(f"Unknown history mode: {mode}"))

    existing = settings.presets.get(payload.name.strip())
    if payload.blocks is not None:
        blocks = [
            ContentBlock.from_dict({**b.model_dump(), "type": b.kind, "tagName": b.wrap_tag})
            for b in payload.blocks
        ]
    elif existing is not None:
        blocks = existing.blocks
    else:
        blocks = Preset(name=payload.name).blocks

    preset = Preset(
        name=payload.name,
        system_prompt=payload.system_prompt,
        blocks=blocks,
        chat_history_mode=mode,
        temperature=payload.temperature,
        max_tokens=payload.max_tokens,
        model=payload.model,
    )
    try:
        save_preset(settings, payload.name, preset)
    except ValueError as exc:
        return map_director_exception(DirectorBadRequestError(str(exc)))
    if payload.select or not settings.selected_preset:
        select_preset(settings, preset.name)
    rt.store.save()
    return ok_json({"ok": True, "preset": preset.to_dict(), **_library(settings)})


@router.post("/select")
async def api_presets_select(request: Request, payload: NamePayload) -> JSONResponse:
    rt = get_runtime(request)
    settings = rt.store.get()
    try:
        select_preset(settings, payload.name)
    except KeyError:
        return map_director_exception(
            HTTPException(status_code=404, detail=f"Preset not found: {payload.name}")
        )
    rt.store.save()
    return ok_json({"ok": True, **_library(settings)})


@router.post("/import")
async def api_presets_import(request: Request) -> JSONResponse:
    """Import a preset file (own export, chat-completion preset, or bare content)."""
    try:
        data = await parse_json_body(request)
        try:
            preset = convert_imported_preset(data)
        except PresetFormatError as exc:
            raise DirectorBadRequestError(f"Failed to parse preset: {exc}") from exc
    except Exception as exc:
        return map_director_exception(exc)
    rt = get_runtime(request)
    settings = rt.store.get()
    save_preset(settings, preset.name, preset)
    select_preset(settings, preset.name)
    rt.store.save()
    rt.log(f'Preset "{preset.name}" imported.')
    return ok_json({"ok": True, "preset": preset.to_dict(), **_library(settings)})


@router.get("/{name}/export")
async def api_presets_export(request: Request, name: str) -> JSONResponse:
    settings = get_runtime(request).store.get()
    try:
        preset = _get_preset(settings, name)
    except HTTPException as exc:
        return map_director_exception(exc)
    return JSONResponse(
        content=preset.to_dict(),
        headers={"Content-Disposition": f'attachment; filename="{preset.name or "preset"}.json"'},
    )


@router.delete("/{name}")
async def api_presets_delete(request: Request, name: str) -> JSONResponse:
    rt = get_runtime(request)
    settings = rt.store.get()
    if not delete_preset(settings, name):
        return map_director_exception(HTTPException(status_code=404, detail=f"Preset not found: {name}"))
    rt.store.save()
    return ok_json({"ok": True, **_library(settings)})


# ---- block list editing ----


@router.get("/{name}/blocks")
async def api_preset_blocks(request: Request, name: str) -> List[BlockModel]:
    preset = _get_preset(get_runtime(request).store.get(), name)
    return [_block_model(b) for b in preset.blocks]


@router.post("/{name}/blocks")
async def api_preset_blocks_add(request: Request, name: str, payload: BlockCreate) -> JSONResponse:
    rt = get_runtime(request)
    try:
        preset = _get_preset(rt.store.get(), name)
        block = new_custom_block(payload.label, payload.content, payload.role, payload.wrap_tag)
        try:
            insert_block(preset.blocks, block, payload.index)
        except IndexError as exc:
            raise DirectorBadRequestError(str(exc)) from exc
    except Exception as exc:
        return map_director_exception(exc)
    rt.store.save()
    return ok_json({"ok": True, "block": _block_model(block).model_dump()})


@router.put("/{name}/blocks/{block_id}")
async def api_preset_blocks_update(
    request: Request, name: str, block_id: str, payload: BlockUpdate
) -> JSONResponse:
    rt = get_runtime(request)
    try:
        preset = _get_preset(rt.store.get(), name)
        try:
            block = preset.blocks[find_block(preset.blocks, block_id)]
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Block not found: {block_id}") from exc
        updates = payload.model_dump(exclude_unset=True)
        if "content" in updates and block.is_fixed and block.content is None:
            raise DirectorBadRequestError(f"Block '{block_id}' content is derived and cannot be edited")
        for key, value in updates.items():
            if value is not None:
                setattr(block, key, value)
    except Exception as exc:
        return map_director_exception(exc)
    rt.store.save()
    return ok_json({"ok": True, "block": _block_model(block).model_dump()})


@router.post("/{name}/blocks/move")
async def api_preset_blocks_move(request: Request, name: str, payload: BlockMove) -> JSONResponse:
    rt = get_runtime(request)
    try:
        preset = _get_preset(rt.store.get(), name)
        try:
            move_block(preset.blocks, payload.from_index, payload.to_index)
        except IndexError as exc:
            raise DirectorBadRequestError(str(exc)) from exc
    except Exception as exc:
        return map_director_exception(exc)
    rt.store.save()
    return ok_json({"ok": True, "blocks": [b.id for b in preset.blocks]})


@router.post("/{name}/blocks/{block_id}/toggle")
async def api_preset_blocks_toggle(request: Request, name: str, block_id: str) -> JSONResponse:
    rt = get_runtime(request)
    try:
        preset = _get_preset(rt.store.get(), name)
        try:
            payload = await parse_json_body(request)
        except DirectorBadRequestError:
            payload = {}
        enabled = payload.get("enabled")
        try:
            state = toggle_block(preset.blocks, block_id, None if enabled is None else bool(enabled))
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Block not found: {block_id}") from exc
    except Exception as exc:
        return map_director_exception(exc)
    rt.store.save()
    return ok_json({"ok": True, "id": block_id, "enabled": state})


@router.delete("/{name}/blocks/{block_id}")
async def api_preset_blocks_delete(request: Request, name: str, block_id: str) -> JSONResponse:
    rt = get_runtime(request)
    try:
        preset = _get_preset(rt.store.get(), name)
        try:
            delete_block(preset.blocks, block_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Block not found: {block_id}") from exc
        except ValueError as exc:
            raise DirectorBadRequestError(str(exc)) from exc
    except Exception as exc:
        return map_director_exception(exc)
    rt.store.save()
    return ok_json({"ok": True, "blocks": [b.id for b in preset.blocks]})
