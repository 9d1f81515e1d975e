# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

"""LLM client.

This module owns every network call the director makes to an LLM. It picks
the request shape for the configured transport and vendor, sends it with
httpx, decodes the answer into plain text and binds the call to a
cancellation token plus a ceiling timeout.

Design goals:
- One entry point (``VendorClient.generate``) regardless of vendor.
- Failures surface as the typed errors in ``errors.py``; nothing here touches
  director state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List

import httpx

from plotdirector.services.llm.cancellation import CancellationToken, run_cancellable
from plotdirector.services.llm.errors import (
    DirectorError,
    GenerationTimedOut,
    MalformedResponseError,
    TransportError,
)
from plotdirector.services.llm.llm_logging import (
    add_llm_log,
    create_log_entry,
    finish_log_entry,
)
from plotdirector.services.llm.stream import TokenCallback, read_sse_text
from plotdirector.services.llm.vendors import (
    LLMConfig,
    PreparedRequest,
    models_request,
    prepare_request,
)

logger = logging.getLogger(__name__)

TEST_PROMPT = 'Reply with "OK" and nothing else.'
MODELS_TIMEOUT_S = 15.0


@dataclass(frozen=True)
class ConnectionTestResult:
    success: bool
    message: str


def _timeout_obj(timeout_s: float | None) -> httpx.Timeout:
    try:
        return httpx.Timeout(float(timeout_s or 60))
    except (TypeError, ValueError):
        return httpx.Timeout(60.0)


def _decode_json_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        # The proxy may answer with plain text.
        return resp.text


class VendorClient:
    """Send a message list to the configured LLM and return its text."""

    async def generate(
        self,
        messages: List[Dict[str, Any]],
        config: LLMConfig,
        cancellation: CancellationToken | None = None,
        on_token: TokenCallback | None = None,
    ) -> str:
        streaming = bool(config.streaming and on_token is not None)
        # Raises ConfigurationError before anything leaves the process.
        request = prepare_request(messages, config, streaming=streaming)
        timeout_s = float(config.timeout_s or 60)

        if streaming:
            call = self._send_streaming(request, timeout_s, on_token)
        else:
            call = self._send(request, timeout_s)
        return await run_cancellable(call, cancellation, timeout_s)

    async def _send(self, request: PreparedRequest, timeout_s: float) -> str:
        log_entry = create_log_entry(request.url, "POST", request.headers, request.body)
        add_llm_log(log_entry)

        async with httpx.AsyncClient(timeout=_timeout_obj(timeout_s)) as client:
            try:
                r = await client.post(request.url, headers=request.headers, json=request.body)
            except httpx.TimeoutException as exc:
                finish_log_entry(log_entry, error=str(exc) or "timeout")
                raise GenerationTimedOut(timeout_s) from exc
            except httpx.RequestError as exc:
                finish_log_entry(log_entry, error=str(exc))
                raise TransportError(None, str(exc), vendor=request.label) from exc

            if r.status_code >= 400:
                finish_log_entry(log_entry, status_code=r.status_code, error=r.text)
                raise TransportError(r.status_code, r.text, vendor=request.label)

            data = _decode_json_body(r)
            finish_log_entry(log_entry, status_code=r.status_code, body=data)
            return request.extract_text(data)

    async def _send_streaming(
        self,
        request: PreparedRequest,
        timeout_s: float,
        on_token: TokenCallback | None,
    ) -> str:
        log_entry = create_log_entry(
            request.url, "POST", request.headers, request.body, streaming=True
        )
        add_llm_log(log_entry)

        async with httpx.AsyncClient(timeout=_timeout_obj(timeout_s)) as client:
            try:
                async with client.stream(
                    "POST", request.url, headers=request.headers, json=request.body
                ) as resp:
                    log_entry["response"]["status_code"] = resp.status_code
                    if resp.status_code >= 400:
                        error_content = await resp.aread()
                        err_text = error_content.decode("utf-8", errors="ignore")
                        finish_log_entry(log_entry, error=err_text)
                        raise TransportError(resp.status_code, err_text, vendor=request.label)

                    text = await read_sse_text(
                        resp, request.extract_delta, on_token, log_entry
                    )
            except httpx.TimeoutException as exc:
                finish_log_entry(log_entry, error=str(exc) or "timeout")
                raise GenerationTimedOut(timeout_s) from exc
            except httpx.RequestError as exc:
                finish_log_entry(log_entry, error=str(exc))
                raise TransportError(None, str(exc), vendor=request.label) from exc

        finish_log_entry(log_entry)
        return text

    async def test_connection(self, config: LLMConfig) -> ConnectionTestResult:
        """Send a trivial prompt over the configured path and summarize the outcome."""
        test_messages = [{"role": "user", "content": TEST_PROMPT}]
        probe = replace(config, streaming=False)
        try:
            result = await self.generate(test_messages, probe)
        except DirectorError as exc:
            logger.info("Connection test failed: %s", exc)
            return ConnectionTestResult(False, f"Connection failed: {exc}")
        return ConnectionTestResult(True, f"Connection OK. Response: {result[:50]}")

    async def fetch_models(self, config: LLMConfig) -> List[str]:
        """List model ids available on a direct endpoint."""
        url, headers = models_request(config)
        async with httpx.AsyncClient(timeout=_timeout_obj(MODELS_TIMEOUT_S)) as client:
            try:
                r = await client.get(url, headers=headers)
            except httpx.TimeoutException as exc:
                raise GenerationTimedOut(MODELS_TIMEOUT_S) from exc
            except httpx.RequestError as exc:
                raise TransportError(None, str(exc)) from exc
        if r.status_code >= 400:
            raise TransportError(r.status_code, r.text)
        try:
            data = r.json()
        except ValueError as exc:
            raise MalformedResponseError("Model list endpoint did not return JSON") from exc
        items = data.get("data") if isinstance(data, dict) else None
        return sorted(
            str(m["id"]) for m in (items or []) if isinstance(m, dict) and m.get("id")
        )
