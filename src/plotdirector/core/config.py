# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Director settings structure, JSON persistence and environment overrides.

"""Settings for the director.

Precedence for connection details:
1. Environment variables PLOTDIR_API_URL / PLOTDIR_API_KEY
2. settings.json (path from PLOTDIR_SETTINGS_PATH, default config/settings.json)
3. Built-in defaults
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List

from plotdirector.services.director.filters import FilterRule
from plotdirector.services.director.presets import Preset, init_presets
from plotdirector.services.llm.vendors import DEFAULT_PROXY_URL, DEFAULT_TIMEOUT_S, LLMConfig

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent.parent.parent
CONFIG_DIR = BASE_DIR / "config"

MODES = ("auto", "preview")

# Fields a saved API configuration captures.
API_CONFIG_FIELDS = (
    "connection_mode",
    "api_type",
    "api_url",
    "api_key",
    "model",
    "temperature",
    "max_tokens",
    "context_length",
)


@dataclass
class DirectorSettings:
    enabled: bool = False
    mode: str = "auto"
    rounds: int = 5
    current_round: int = 0
    running: bool = False

    connection_mode: str = "proxy"
    api_type: str = "openai"
    api_url: str = ""
    api_key: str = ""
    model: str = ""
    temperature: float = 0.8
    max_tokens: int = 300
    context_length: int = 20
    timeout_s: float = DEFAULT_TIMEOUT_S
    streaming: bool = False
    proxy_url: str = DEFAULT_PROXY_URL
    proxy_headers: Dict[str, str] = field(default_factory=dict)

    outline_enabled: bool = False
    outline: str = ""
    outline_prompt_rounds: int = 0
    outline_send_enabled: bool = False
    outline_send_rounds: int = 0

    wait_for_readiness: bool = True
    readiness_start_timeout: float = 15.0
    readiness_timeout: float = 300.0

    filter_rules: List[FilterRule] = field(default_factory=list)
    presets: Dict[str, Preset] = field(default_factory=dict)
    selected_preset: str = ""
    api_configs: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    selected_api_config: str = ""

    host_generate_url: str = ""

    @property
    def review_mode(self) -> bool:
        return self.mode == "preview"

    def llm_config(self) -> LLMConfig:
        return LLMConfig(
            transport=self.connection_mode,
            vendor=self.api_type,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            endpoint=self.api_url,
            credential=self.api_key,
            timeout_s=self.timeout_s,
            streaming=self.streaming,
            proxy_url=self.proxy_url,
            proxy_headers=dict(self.proxy_headers),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "DirectorSettings":
        data = data or {}
        defaults = cls()
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name in ("filter_rules", "presets") or f.name not in data:
                continue
            kwargs[f.name] = _coerce(data[f.name], getattr(defaults, f.name))
        kwargs["filter_rules"] = [
            FilterRule.from_dict(r) for r in data.get("filter_rules") or [] if isinstance(r, dict)
        ]
        kwargs["presets"] = {
            name: Preset.from_dict(p, name=name)
            for name, p in (data.get("presets") or {}).items()
            if isinstance(p, dict)
        }
        settings = cls(**kwargs)
        if settings.mode not in MODES:
            settings.mode = "auto"
        return settings

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "filter_rules":
                value = [r.to_dict() for r in value]
            elif f.name == "presets":
                value = {name: p.to_dict() for name, p in value.items()}
            elif isinstance(value, dict):
                value = dict(value)
            out[f.name] = value
        return out

    def update_from(self, payload: Dict[str, Any]) -> List[str]:
        """Apply a partial update of scalar fields; return the names changed."""
        changed = []
        defaults = DirectorSettings()
        for f in fields(self):
            if f.name in ("filter_rules", "presets", "api_configs", "running", "current_round"):
                continue
            if f.name not in payload:
                continue
            setattr(self, f.name, _coerce(payload[f.name], getattr(defaults, f.name)))
            changed.append(f.name)
        if "filter_rules" in payload and isinstance(payload["filter_rules"], list):
            self.filter_rules = [
                FilterRule.from_dict(r) for r in payload["filter_rules"] if isinstance(r, dict)
            ]
            changed.append("filter_rules")
        if self.mode not in MODES:
            self.mode = "auto"
        return changed


def _coerce(value: Any, default: Any) -> Any:
    """Coerce a stored value to the type of its default; fall back on failure."""
    try:
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
        if isinstance(default, str):
            return "" if value is None else str(value)
        if isinstance(default, dict):
            return dict(value) if isinstance(value, dict) else default
    except (TypeError, ValueError):
        return default
    return value


# ---- saved API configurations ----


def extract_api_config(settings: DirectorSettings) -> Dict[str, Any]:
    return {key: getattr(settings, key) for key in API_CONFIG_FIELDS}


def save_api_config(settings: DirectorSettings, name: str) -> Dict[str, Any]:
    name = (name or "").strip()
    if not name:
        raise ValueError("API config name is required")
    settings.api_configs[name] = extract_api_config(settings)
    settings.selected_api_config = name
    return settings.api_configs[name]


def apply_api_config(settings: DirectorSettings, name: str) -> None:
    config = settings.api_configs.get(name)
    if config is None:
        raise KeyError(name)
    defaults = DirectorSettings()
    for key in API_CONFIG_FIELDS:
        if key in config:
            setattr(settings, key, _coerce(config[key], getattr(defaults, key)))
    settings.selected_api_config = name


def delete_api_config(settings: DirectorSettings, name: str) -> bool:
    if name not in settings.api_configs:
        return False
    del settings.api_configs[name]
    remaining = list(settings.api_configs)
    settings.selected_api_config = remaining[0] if remaining else ""
    if settings.selected_api_config:
        apply_api_config(settings, settings.selected_api_config)
    return True


# ---- persistence ----


def settings_path() -> Path:
    env = os.getenv("PLOTDIR_SETTINGS_PATH")
    return Path(env) if env else CONFIG_DIR / "settings.json"


def load_settings_config(path: Path | None) -> Dict[str, Any] | None:
    if not path or not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Could not read settings from %s: %s", path, exc)
        return None
    return data if isinstance(data, dict) else None


def save_settings_config(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=".settings-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def apply_env_overrides(settings: DirectorSettings) -> None:
    env_url = os.getenv("PLOTDIR_API_URL")
    env_key = os.getenv("PLOTDIR_API_KEY")
    if env_url:
        settings.api_url = env_url
    if env_key:
        settings.api_key = env_key


class SettingsStore:
    """Holds the live settings object and writes it back to disk."""

    def __init__(self, path: Path | None = None):
        self.path = path or settings_path()
        self.settings = DirectorSettings()

    def load(self) -> DirectorSettings:
        settings = DirectorSettings.from_dict(load_settings_config(self.path))
        # A run never resumes across restarts.
        settings.running = False
        settings.current_round = 0
        init_presets(settings)
        apply_env_overrides(settings)
        self.settings = settings
        return settings

    def get(self) -> DirectorSettings:
        return self.settings

    def save(self) -> None:
        try:
            save_settings_config(self.path, self.settings.to_dict())
        except OSError as exc:
            logger.error("Failed to write settings to %s: %s", self.path, exc)
