# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
# Purpose: Request shaping and response decoding for each transport/vendor pair.

"""Vendor adapters.

Each (transport, vendor) pair resolves to a ``PreparedRequest``: the URL,
headers and JSON body to send, plus how to pull text out of a full response
and out of a single streaming chunk. The client in ``client.py`` only moves
bytes; all shape knowledge lives here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from plotdirector.services.llm.errors import ConfigurationError, MalformedResponseError

TRANSPORTS = ("proxy", "direct")
VENDORS = ("openai", "claude")

ANTHROPIC_VERSION = "2023-06-01"
CONVERSATION_START = "[Conversation start]"
DEFAULT_TIMEOUT_S = 60.0
DEFAULT_PROXY_URL = "http://127.0.0.1:8000/api/backends/chat-completions/generate"


@dataclass
class LLMConfig:
    transport: str = "proxy"
    vendor: str = "openai"
    model: str = ""
    temperature: float = 0.8
    max_tokens: int = 300
    endpoint: str = ""
    credential: str = ""
    timeout_s: float = DEFAULT_TIMEOUT_S
    streaming: bool = False
    proxy_url: str = DEFAULT_PROXY_URL
    proxy_headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DecodedResponse:
    """Result of sniffing a proxy response; ``shape`` is string|openai|claude."""

    shape: str
    text: str


@dataclass
class PreparedRequest:
    url: str
    headers: Dict[str, str]
    body: Dict[str, Any]
    extract_text: Callable[[Any], str]
    extract_delta: Callable[[Dict[str, Any]], str | None]
    label: str


def validate_config(config: LLMConfig) -> None:
    """Raise ConfigurationError for anything that cannot be sent."""
    if config.transport not in TRANSPORTS:
        raise ConfigurationError(f"Unsupported transport: {config.transport}")
    if config.vendor not in VENDORS:
        raise ConfigurationError(f"Unsupported API type: {config.vendor}")
    if not config.model:
        raise ConfigurationError("No model configured")
    if config.transport == "direct" and not config.endpoint:
        raise ConfigurationError("API URL is required for direct connections")
    if config.transport == "proxy" and not config.proxy_url:
        raise ConfigurationError("No proxy endpoint configured")


def normalize_claude_messages(
    messages: List[Dict[str, Any]],
) -> tuple[str, List[Dict[str, str]]]:
    """Split out the system text and make the turn list acceptable to Claude.

    Claude rejects adjacent same-role turns and conversations that open with
    the assistant, so consecutive roles are merged and a placeholder user turn
    is prepended when needed.
    """
    system_parts = [m.get("content") or "" for m in messages if m.get("role") == "system"]
    system_text = "\n\n".join(p for p in system_parts if p)

    merged: List[Dict[str, str]] = []
    for msg in messages:
        role = msg.get("role")
        if role == "system":
            continue
        content = msg.get("content") or ""
        if merged and merged[-1]["role"] == role:
            merged[-1]["content"] += "\n\n" + content
        else:
            merged.append({"role": role, "content": content})

    if not merged or merged[0]["role"] == "assistant":
        merged.insert(0, {"role": "user", "content": CONVERSATION_START})
    return system_text, merged


def decode_proxy_response(data: Any) -> DecodedResponse:
    """Decode the proxy's reply: string, then OpenAI choices, then Claude content."""
    if isinstance(data, str):
        return DecodedResponse("string", data)

    if isinstance(data, dict):
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            choice = choices[0]
            message = choice.get("message")
            text = message.get("content") if isinstance(message, dict) else None
            return DecodedResponse("openai", text or choice.get("text") or "")

        content = data.get("content")
        if isinstance(content, list) and content and isinstance(content[0], dict):
            return DecodedResponse("claude", content[0].get("text") or "")

    raise MalformedResponseError("Unexpected proxy response format")


def _openai_text(data: Any) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = None
    if not content:
        raise MalformedResponseError("OpenAI response missing choices[0].message.content")
    return content


def _claude_text(data: Any) -> str:
    try:
        text = data["content"][0]["text"]
    except (KeyError, IndexError, TypeError):
        text = None
    if not text:
        raise MalformedResponseError("Claude response missing content[0].text")
    return text


def _proxy_text(data: Any) -> str:
    return decode_proxy_response(data).text


def openai_delta(chunk: Dict[str, Any]) -> str | None:
    try:
        return chunk["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None


def claude_delta(chunk: Dict[str, Any]) -> str | None:
    if chunk.get("type") != "content_block_delta":
        return None
    delta = chunk.get("delta") or {}
    if delta.get("type") != "text_delta":
        return None
    return delta.get("text")


def proxy_delta(chunk: Dict[str, Any]) -> str | None:
    return openai_delta(chunk) or claude_delta(chunk)


def _direct_url(endpoint: str, path: str) -> str:
    return str(endpoint).rstrip("/") + path


def prepare_request(
    messages: List[Dict[str, Any]], config: LLMConfig, streaming: bool = False
) -> PreparedRequest:
    validate_config(config)

    if config.transport == "proxy":
        headers = {"Content-Type": "application/json", **(config.proxy_headers or {})}
        body: Dict[str, Any] = {
            "chat_completion_source": config.vendor,
            "messages": messages,
            "model": config.model,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "stream": streaming,
        }
        if config.endpoint:
            body["reverse_proxy"] = config.endpoint
            body["proxy_password"] = config.credential
        return PreparedRequest(
            url=config.proxy_url,
            headers=headers,
            body=body,
            extract_text=_proxy_text,
            extract_delta=proxy_delta,
            label="Proxy",
        )

    if config.vendor == "openai":
        headers = {"Content-Type": "application/json"}
        if config.credential:
            headers["Authorization"] = f"Bearer {config.credential}"
        body = {
            "model": config.model,
            "messages": messages,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        if streaming:
            body["stream"] = True
        return PreparedRequest(
            url=_direct_url(config.endpoint, "/chat/completions"),
            headers=headers,
            body=body,
            extract_text=_openai_text,
            extract_delta=openai_delta,
            label="OpenAI",
        )

    system_text, chat_messages = normalize_claude_messages(messages)
    headers = {
        "Content-Type": "application/json",
        "x-api-key": config.credential,
        "anthropic-version": ANTHROPIC_VERSION,
    }
    body = {
        "model": config.model,
        "max_tokens": config.max_tokens,
        "messages": chat_messages,
        "temperature": config.temperature,
    }
    if system_text:
        body["system"] = system_text
    if streaming:
        body["stream"] = True
    return PreparedRequest(
        url=_direct_url(config.endpoint, "/messages"),
        headers=headers,
        body=body,
        extract_text=_claude_text,
        extract_delta=claude_delta,
        label="Claude",
    )


def models_request(config: LLMConfig) -> tuple[str, Dict[str, str]]:
    """URL and headers for listing models on the configured endpoint."""
    if config.vendor not in VENDORS:
        raise ConfigurationError(f"Unsupported API type: {config.vendor}")
    if not config.endpoint:
        raise ConfigurationError("API URL is required")
    if config.vendor == "openai":
        return _direct_url(config.endpoint, "/models"), {
            "Authorization": f"Bearer {config.credential}"
        }
    return _direct_url(config.endpoint, "/models?limit=1000"), {
        "x-api-key": config.credential,
        "anthropic-version": ANTHROPIC_VERSION,
    }
