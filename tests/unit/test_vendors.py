# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from unittest import TestCase

from plotdirector.services.llm.errors import ConfigurationError, MalformedResponseError
from plotdirector.services.llm.vendors import (
    ANTHROPIC_VERSION,
    CONVERSATION_START,
    LLMConfig,
    claude_delta,
    decode_proxy_response,
    models_request,
    normalize_claude_messages,
    openai_delta,
    prepare_request,
    proxy_delta,
)

MESSAGES = [{"role": "user", "content": "Direct the plot."}]


class NormalizeClaudeTest(TestCase):
    def test_system_extracted_and_roles_merged(self):
        messages = [
            {"role": "system", "content": "Rule one."},
            {"role": "system", "content": "Rule two."},
            {"role": "assistant", "content": "Once upon a time."},
            {"role": "assistant", "content": "The end?"},
            {"role": "user", "content": "Continue."},
            {"role": "user", "content": "Please."},
        ]
        system, merged = normalize_claude_messages(messages)
        self.assertEqual(system, "Rule one.\n\nRule two.")
        self.assertEqual(
            merged,
            [
                {"role": "user", "content": CONVERSATION_START},
                {"role": "assistant", "content": "Once upon a time.\n\nThe end?"},
                {"role": "user", "content": "Continue.\n\nPlease."},
            ],
        )

    def test_alternates_and_starts_with_user(self):
        messages = [
            {"role": "user", "content": "a"},
            {"role": "user", "content": "b"},
            {"role": "assistant", "content": "c"},
            {"role": "system", "content": "s"},
            {"role": "assistant", "content": "d"},
        ]
        _, merged = normalize_claude_messages(messages)
        self.assertEqual(merged[0]["role"], "user")
        for prev, cur in zip(merged, merged[1:]):
            self.assertNotEqual(prev["role"], cur["role"])

    def test_empty_input_still_opens_with_user(self):
        system, merged = normalize_claude_messages([])
        self.assertEqual(system, "")
        self.assertEqual(merged, [{"role": "user", "content": CONVERSATION_START}])

    def test_system_only_input_still_opens_with_user(self):
        system, merged = normalize_claude_messages([{"role": "system", "content": "S"}])
        self.assertEqual(system, "S")
        self.assertEqual(merged, [{"role": "user", "content": CONVERSATION_START}])

    def test_direct_claude_body_never_empty(self):
        config = LLMConfig(
            transport="direct",
            vendor="claude",
            model="claude-test",
            endpoint="https://api.example.test/v1",
            credential="k",
        )
        req = prepare_request([], config)
        self.assertEqual(req.body["messages"][0]["role"], "user")

    def test_input_not_mutated(self):
        messages = [{"role": "user", "content": "a"}, {"role": "user", "content": "b"}]
        normalize_claude_messages(messages)
        self.assertEqual(messages[0]["content"], "a")


class DecodeProxyResponseTest(TestCase):
    def test_bare_string(self):
        decoded = decode_proxy_response("plain text")
        self.assertEqual((decoded.shape, decoded.text), ("string", "plain text"))

    def test_openai_message_then_text(self):
        self.assertEqual(
            decode_proxy_response({"choices": [{"message": {"content": "hi"}}]}).text, "hi"
        )
        decoded = decode_proxy_response({"choices": [{"text": "legacy"}]})
        self.assertEqual((decoded.shape, decoded.text), ("openai", "legacy"))

    def test_claude_content(self):
        decoded = decode_proxy_response({"content": [{"type": "text", "text": "hey"}]})
        self.assertEqual((decoded.shape, decoded.text), ("claude", "hey"))

    def test_openai_preferred_over_claude(self):
        data = {"choices": [{"message": {"content": "A"}}], "content": [{"text": "B"}]}
        self.assertEqual(decode_proxy_response(data).text, "A")

    def test_recognized_shape_with_empty_text(self):
        self.assertEqual(decode_proxy_response({"choices": [{"message": {}}]}).text, "")

    def test_unknown_shape_raises(self):
        for data in ({"error": "x"}, [], None, {"choices": []}):
            with self.assertRaises(MalformedResponseError):
                decode_proxy_response(data)


class DeltaTest(TestCase):
    def test_openai_delta(self):
        self.assertEqual(openai_delta({"choices": [{"delta": {"content": "x"}}]}), "x")
        self.assertIsNone(openai_delta({"choices": [{"delta": {}}]}))
        self.assertIsNone(openai_delta({"type": "ping"}))

    def test_claude_delta_only_text(self):
        chunk = {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "y"}}
        self.assertEqual(claude_delta(chunk), "y")
        self.assertIsNone(
            claude_delta({"type": "content_block_delta", "delta": {"type": "input_json_delta"}})
        )
        self.assertIsNone(claude_delta({"type": "message_start"}))

    def test_proxy_accepts_either(self):
        self.assertEqual(proxy_delta({"choices": [{"delta": {"content": "a"}}]}), "a")
        chunk = {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "b"}}
        self.assertEqual(proxy_delta(chunk), "b")


class PrepareRequestTest(TestCase):
    def test_proxy_body(self):
        config = LLMConfig(transport="proxy", vendor="claude", model="m", proxy_headers={"X-CSRF-Token": "t"})
        req = prepare_request(MESSAGES, config)
        self.assertEqual(req.url, config.proxy_url)
        self.assertEqual(req.headers["X-CSRF-Token"], "t")
        self.assertEqual(req.body["chat_completion_source"], "claude")
        self.assertEqual(req.body["messages"], MESSAGES)
        self.assertFalse(req.body["stream"])
        self.assertNotIn("reverse_proxy", req.body)

    def test_proxy_reverse_proxy_override(self):
        config = LLMConfig(model="m", endpoint="https://api.example/v1", credential="pw")
        req = prepare_request(MESSAGES, config, streaming=True)
        self.assertEqual(req.body["reverse_proxy"], "https://api.example/v1")
        self.assertEqual(req.body["proxy_password"], "pw")
        self.assertTrue(req.body["stream"])

    def test_direct_openai(self):
        config = LLMConfig(transport="direct", vendor="openai", model="gpt", endpoint="https://api.example/v1/", credential="k")
        req = prepare_request(MESSAGES, config)
        self.assertEqual(req.url, "https://api.example/v1/chat/completions")
        self.assertEqual(req.headers["Authorization"], "Bearer k")
        self.assertNotIn("stream", req.body)
        self.assertEqual(req.extract_text({"choices": [{"message": {"content": "ok"}}]}), "ok")
        with self.assertRaises(MalformedResponseError):
            req.extract_text({"choices": []})

    def test_direct_claude(self):
        config = LLMConfig(transport="direct", vendor="claude", model="c", endpoint="https://api.anthropic.com/v1", credential="k")
        messages = [{"role": "system", "content": "sys"}, {"role": "assistant", "content": "hi"}]
        req = prepare_request(messages, config, streaming=True)
        self.assertEqual(req.url, "https://api.anthropic.com/v1/messages")
        self.assertEqual(req.headers["x-api-key"], "k")
        self.assertEqual(req.headers["anthropic-version"], ANTHROPIC_VERSION)
        self.assertEqual(req.body["system"], "sys")
        self.assertEqual(req.body["messages"][0], {"role": "user", "content": CONVERSATION_START})
        self.assertTrue(req.body["stream"])
        with self.assertRaises(MalformedResponseError):
            req.extract_text({"content": []})

    def test_configuration_errors(self):
        bad = [
            LLMConfig(transport="carrier-pigeon", model="m"),
            LLMConfig(vendor="gemini", model="m"),
            LLMConfig(model=""),
            LLMConfig(transport="direct", model="m", endpoint=""),
            LLMConfig(model="m", proxy_url=""),
        ]
        for config in bad:
            with self.assertRaises(ConfigurationError):
                prepare_request(MESSAGES, config)

    def test_models_request(self):
        url, headers = models_request(LLMConfig(vendor="claude", endpoint="https://a/v1", credential="k"))
        self.assertEqual(url, "https://a/v1/models?limit=1000")
        self.assertEqual(headers["anthropic-version"], ANTHROPIC_VERSION)
        url, headers = models_request(LLMConfig(vendor="openai", endpoint="https://a/v1", credential="k"))
        self.assertEqual(url, "https://a/v1/models")
        self.assertEqual(headers["Authorization"], "Bearer k")
