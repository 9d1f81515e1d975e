# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from plotdirector.api.common import (
    DirectorBadRequestError,
    DirectorNotFoundError,
    drop_masked_key,
    get_runtime,
    map_director_exception,
    mask_key,
    ok_json,
    parse_json_body,
)
from plotdirector.core.config import (
    DirectorSettings,
    apply_api_config,
    delete_api_config,
    save_api_config,
)

router = APIRouter(prefix="/api/settings", tags=["settings"])


def public_settings(settings: DirectorSettings) -> dict:
    """Settings as the front end sees them: keys masked, presets listed by name."""
    data = settings.to_dict()
    data["api_key"] = mask_key(settings.api_key)
    data["api_key_set"] = bool(settings.api_key)
    data["presets"] = list(settings.presets)
    data["api_configs"] = {
        name: {**cfg, "api_key": mask_key(str(cfg.get("api_key") or ""))}
        for name, cfg in settings.api_configs.items()
    }
    return data


def _sync_runtime(request: Request, settings: DirectorSettings) -> None:
    rt = get_runtime(request)
    rt.trigger.generate_url = settings.host_generate_url
    rt.engine.state.enabled = settings.enabled


@router.get("")
async def api_settings_get(request: Request) -> dict:
    return public_settings(get_runtime(request).store.get())


@router.put("")
async def api_settings_put(request: Request) -> JSONResponse:
    try:
        payload = await parse_json_body(request)
    except DirectorBadRequestError as exc:
        return map_director_exception(exc)
    rt = get_runtime(request)
    settings = rt.store.get()
    drop_masked_key(payload, settings.api_key)
    changed = settings.update_from(payload)
    _sync_runtime(request, settings)
    rt.store.save()
    return ok_json({"ok": True, "changed": changed, "settings": public_settings(settings)})


@router.post("/api-configs")
async def api_settings_save_api_config(request: Request) -> JSONResponse:
    try:
        payload = await parse_json_body(request)
        rt = get_runtime(request)
        settings = rt.store.get()
        try:
            save_api_config(settings, str(payload.get("name") or ""))
        except ValueError as exc:
            raise DirectorBadRequestError(str(exc)) from exc
    except Exception as exc:
        return map_director_exception(exc)
    rt.store.save()
    return ok_json({"ok": True, "settings": public_settings(settings)})


@router.post("/api-configs/select")
async def api_settings_select_api_config(request: Request) -> JSONResponse:
    try:
        payload = await parse_json_body(request)
        name = str(payload.get("name") or "")
        rt = get_runtime(request)
        settings = rt.store.get()
        try:
            apply_api_config(settings, name)
        except KeyError as exc:
            raise DirectorNotFoundError(f"API config not found: {name}") from exc
    except Exception as exc:
        return map_director_exception(exc)
    rt.store.save()
    return ok_json({"ok": True, "settings": public_settings(settings)})


@router.delete("/api-configs/{name}")
async def api_settings_delete_api_config(request: Request, name: str) -> JSONResponse:
    rt = get_runtime(request)
    settings = rt.store.get()
    if not delete_api_config(settings, name):
        return map_director_exception(DirectorNotFoundError(f"API config not found: {name}"))
    rt.store.save()
    return ok_json({"ok": True, "settings": public_settings(settings)})
