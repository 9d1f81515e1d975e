# Copyright (C) 2026 StableLlama
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

import tempfile
from pathlib import Path
from unittest import TestCase

from fastapi.testclient import TestClient

from plotdirector.main import create_app
from plotdirector.services.llm.client import ConnectionTestResult
from plotdirector.services.llm.llm_logging import llm_logs


class StubClient:
    def __init__(self):
        self.calls = []
        self.tested = []

    async def generate(self, messages, config, cancellation=None, on_token=None):
        self.calls.append(messages)
        return f"Direction {len(self.calls)}."

    async def test_connection(self, config):
        self.tested.append(config)
        return ConnectionTestResult(True, f"Connection OK. Response: OK ({config.model})")

    async def fetch_models(self, config):
        return ["model-a", "model-b"]


class DirectorApiTest(TestCase):
    def setUp(self):
        self.td = tempfile.TemporaryDirectory()
        self.addCleanup(self.td.cleanup)
        self.settings_path = Path(self.td.name) / "settings.json"
        self.stub = StubClient()
        self.app = create_app(self.settings_path, client=self.stub)
        self.client = TestClient(self.app)
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def _enable(self, **extra):
        payload = {"enabled": True, "model": "gpt-fake", "wait_for_readiness": False, "rounds": 2}
        payload.update(extra)
        r = self.client.put("/api/settings", json=payload)
        self.assertEqual(r.status_code, 200, r.text)
        return r.json()

    def test_settings_mask_api_key(self):
        self._enable(api_key="sk-very-secret-key")
        data = self.client.get("/api/settings").json()
        self.assertEqual(data["api_key"], "sk-...-key")
        self.assertTrue(data["api_key_set"])
        self.assertNotIn("sk-very-secret-key", self.client.get("/api/settings").text)

        # Sending the masked value back leaves the real key alone.
        self.client.put("/api/settings", json={"api_key": "sk-...-key", "rounds": 4})
        settings = self.app.state.runtime.store.get()
        self.assertEqual(settings.api_key, "sk-very-secret-key")
        self.assertEqual(settings.rounds, 4)

    def test_settings_invalid_json(self):
        r = self.client.put(
            "/api/settings", content="{nope", headers={"Content-Type": "application/json"}
        )
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json(), {"ok": False, "detail": "Invalid JSON body"})

    def test_start_refused_until_enabled(self):
        r = self.client.post("/api/director/start")
        self.assertEqual(r.status_code, 400)
        body = r.json()
        self.assertFalse(body["ok"])
        self.assertEqual(body["category"], "config")
        self.assertIn("enable", body["detail"])

    def test_full_run_over_http(self):
        self._enable()
        self.client.post("/api/chat/turns", json={"turns": [{"name": "Bob", "mes": "The door is shut."}]})

        r = self.client.post("/api/director/start")
        self.assertEqual(r.status_code, 200, r.text)
        self.assertTrue(r.json()["status"]["running"])

        status = self.client.get("/api/director/status").json()
        self.assertEqual(status["current_round"], 1)
        self.assertIn("The door is shut.", self.stub.calls[0][0]["content"])

        turns = self.client.get("/api/chat/turns").json()["turns"]
        self.assertEqual(turns[-1]["text"], "Direction 1.")
        self.assertTrue(turns[-1]["is_user"])

        self.client.post("/api/director/turn-completed")
        status = self.client.get("/api/director/status").json()
        self.assertEqual(status["current_round"], 2)
        self.assertFalse(status["running"])

        r = self.client.post("/api/director/stop")
        self.assertFalse(r.json()["stopped"])

        log = self.client.get("/api/director/log").json()["entries"]
        self.assertTrue(any("Completed 2/2" in line for line in log))

    def test_stop_while_running(self):
        self._enable(rounds=3)
        self.client.post("/api/director/start")
        r = self.client.post("/api/director/stop")
        self.assertTrue(r.json()["stopped"])
        self.assertFalse(r.json()["status"]["running"])

    def test_review_without_pending_draft(self):
        r = self.client.post("/api/director/review", json={"action": "send"})
        self.assertEqual(r.status_code, 409)
        self.assertEqual(self.client.get("/api/director/review").json(), {"pending": False, "draft": None})

    def test_readiness_flag(self):
        r = self.client.post("/api/director/readiness", json={"busy": True})
        self.assertTrue(r.json()["busy"])
        r = self.client.post("/api/director/readiness", json={"busy": False})
        self.assertFalse(r.json()["busy"])

    def test_log_export_and_clear(self):
        self.app.state.runtime.log("hello")
        r = self.client.get("/api/director/log/export")
        self.assertEqual(r.status_code, 200)
        self.assertIn("attachment", r.headers["content-disposition"])
        self.assertIn("plot-director-log-", r.headers["content-disposition"])
        self.assertIn("hello", r.text)

        self.client.delete("/api/director/log")
        self.assertEqual(self.client.get("/api/director/log").json()["entries"], [])

    def test_connection_and_models(self):
        r = self.client.post("/api/director/test-connection", json={"model": "unsaved-model"})
        self.assertTrue(r.json()["ok"])
        self.assertIn("unsaved-model", r.json()["message"])

        r = self.client.get("/api/director/models")
        self.assertEqual(r.json()["models"], ["model-a", "model-b"])

    def test_connection_keeps_stored_key_when_form_sends_mask(self):
        self._enable(api_key="sk-realsecretkey1234")
        form = self.client.get("/api/settings").json()
        self.assertEqual(form["api_key"], "sk-...1234")

        r = self.client.post(
            "/api/director/test-connection",
            json={"api_key": form["api_key"], "model": form["model"]},
        )
        self.assertTrue(r.json()["ok"])
        self.assertEqual(self.stub.tested[-1].credential, "sk-realsecretkey1234")

        self.client.post("/api/director/test-connection", json={"api_key": "sk-brand-new-key"})
        self.assertEqual(self.stub.tested[-1].credential, "sk-brand-new-key")

    def test_api_configs(self):
        self._enable(api_url="http://one/v1")
        r = self.client.post("/api/settings/api-configs", json={"name": "one"})
        self.assertEqual(r.status_code, 200, r.text)
        self.client.put("/api/settings", json={"api_url": "http://two/v1"})
        self.client.post("/api/settings/api-configs/select", json={"name": "one"})
        self.assertEqual(self.app.state.runtime.store.get().api_url, "http://one/v1")

        r = self.client.post("/api/settings/api-configs/select", json={"name": "nope"})
        self.assertEqual(r.status_code, 404)
        r = self.client.delete("/api/settings/api-configs/one")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(self.client.delete("/api/settings/api-configs/one").status_code, 404)

    def test_debug_llm_logs(self):
        llm_logs.clear()
        llm_logs.append({"id": "x"})
        self.assertEqual(self.client.get("/api/debug/llm_logs").json(), [{"id": "x"}])
        self.assertEqual(self.client.delete("/api/debug/llm_logs").json()["cleared"], 1)
        self.assertEqual(llm_logs, [])


class PresetApiTest(TestCase):
    def setUp(self):
        self.td = tempfile.TemporaryDirectory()
        self.addCleanup(self.td.cleanup)
        self.app = create_app(Path(self.td.name) / "settings.json", client=StubClient())
        self.client = TestClient(self.app)

    def test_create_select_delete(self):
        r = self.client.post(
            "/api/presets", json={"name": "Noir", "system_prompt": "Grim.", "select": True}
        )
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["current"], "Noir")

        r = self.client.delete("/api/presets/Noir")
        self.assertEqual(r.json()["current"], "")
        self.assertEqual(self.client.delete("/api/presets/Noir").status_code, 404)

    def test_bad_history_mode(self):
        r = self.client.post("/api/presets", json={"name": "X", "chat_history_mode": "xml"})
        self.assertEqual(r.status_code, 400)

    def test_select_missing(self):
        r = self.client.post("/api/presets/select", json={"name": "missing"})
        self.assertEqual(r.status_code, 404)

    def test_import_and_export(self):
        r = self.client.post(
            "/api/presets/import",
            json={"prompts": [{"identifier": "main", "content": "Imported prompt."}]},
        )
        self.assertEqual(r.status_code, 200, r.text)
        self.assertEqual(r.json()["current"], "Imported ST Preset")

        r = self.client.get("/api/presets/Imported ST Preset/export")
        self.assertEqual(r.json()["system_prompt"], "Imported prompt.")
        self.assertIn("attachment", r.headers["content-disposition"])

        r = self.client.post("/api/presets/import", json={"unknown": True})
        self.assertEqual(r.status_code, 400)
        self.assertIn("Unrecognized", r.json()["detail"])

    def test_block_editing(self):
        self.client.post("/api/presets", json={"name": "P", "system_prompt": "S"})
        blocks = self.client.get("/api/presets/P/blocks").json()
        self.assertEqual([b["id"] for b in blocks], ["system_prompt", "plot_outline", "chat_history", "instruction"])

        r = self.client.post("/api/presets/P/blocks", json={"label": "Tone", "content": "Dark.", "index": 0})
        block_id = r.json()["block"]["id"]
        self.assertTrue(block_id.startswith("custom_"))

        r = self.client.post("/api/presets/P/blocks/move", json={"from_index": 0, "to_index": 4})
        self.assertEqual(r.json()["blocks"][-1], block_id)
        r = self.client.post("/api/presets/P/blocks/move", json={"from_index": 0, "to_index": 9})
        self.assertEqual(r.status_code, 400)

        r = self.client.post("/api/presets/P/blocks/chat_history/toggle")
        self.assertFalse(r.json()["enabled"])
        r = self.client.post("/api/presets/P/blocks/chat_history/toggle", json={"enabled": True})
        self.assertTrue(r.json()["enabled"])

        r = self.client.put(f"/api/presets/P/blocks/{block_id}", json={"content": "Darker."})
        self.assertEqual(r.json()["block"]["content"], "Darker.")
        r = self.client.put("/api/presets/P/blocks/chat_history", json={"content": "x"})
        self.assertEqual(r.status_code, 400)

        self.assertEqual(self.client.delete("/api/presets/P/blocks/system_prompt").status_code, 400)
        self.assertEqual(self.client.delete(f"/api/presets/P/blocks/{block_id}").status_code, 200)
        self.assertEqual(self.client.delete("/api/presets/P/blocks/gone").status_code, 404)
        self.assertEqual(self.client.get("/api/presets/nope/blocks").status_code, 404)
