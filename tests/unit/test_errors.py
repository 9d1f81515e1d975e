# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from unittest import TestCase

from plotdirector.services.llm.errors import (
    ConfigurationError,
    GenerationTimedOut,
    MalformedResponseError,
    TransportError,
    classify_error,
)


class ClassifyErrorTest(TestCase):
    def test_status_codes(self):
        cases = {
            401: "auth",
            403: "auth",
            429: "rate_limit",
            408: "timeout",
            504: "timeout",
            500: "server",
            502: "server",
        }
        for status, category in cases.items():
            summary = classify_error(TransportError(status, "x"))
            self.assertEqual(summary.category, category, status)
            self.assertIn(f"(HTTP {status})", summary.message)

    def test_status_wins_over_text(self):
        summary = classify_error(TransportError(429, "internal server error"))
        self.assertEqual(summary.category, "rate_limit")

    def test_missing_status_is_network(self):
        self.assertEqual(classify_error(TransportError(None, "refused")).category, "network")

    def test_unmapped_status_falls_back_to_text(self):
        summary = classify_error(TransportError(400, "Invalid API key provided"))
        self.assertEqual(summary.category, "auth")
        self.assertEqual(classify_error(TransportError(400, "bad request")).category, "unknown")

    def test_typed_errors(self):
        self.assertEqual(classify_error(GenerationTimedOut(5)).category, "timeout")
        self.assertEqual(classify_error(MalformedResponseError("x")).category, "malformed")
        summary = classify_error(ConfigurationError("No model configured"))
        self.assertEqual(summary.category, "config")
        self.assertIn("No model configured", summary.message)

    def test_substring_hints_on_plain_exceptions(self):
        self.assertEqual(classify_error(RuntimeError("Too Many Requests")).category, "rate_limit")
        self.assertEqual(classify_error(RuntimeError("Failed to fetch")).category, "network")
        self.assertEqual(classify_error(RuntimeError("something odd")).category, "unknown")

    def test_transport_error_message(self):
        exc = TransportError(500, "upstream died", vendor="OpenAI")
        self.assertIn("OpenAI", str(exc))
        self.assertIn("500", str(exc))
        self.assertEqual(exc.body, "upstream died")
