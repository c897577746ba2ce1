"""Tests for cli/server.py: HTTP surface of the splitter."""

import sys
import unittest
from pathlib import Path

# Ensure src/ and cli/ are importable
_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_ROOT / "src"))
sys.path.insert(0, str(_ROOT / "cli"))

import yaml
from fastapi.testclient import TestClient

from server import app

SCENARIO = (
    'server.tool("alpha-foo", "desc", {}, async (args) => { return "a)b"; });\n'
    'server.prompt("ghe-bar", {});\n'
)

_CONFIG_YAML = yaml.dump({
    "rules": [
        {"destination": "alpha", "names": ["alpha-foo"]},
        {"destination": "github-enterprise", "prefix": "ghe-"},
    ],
    "destinations": {
        "alpha": {"service": "AlphaService"},
        "github-enterprise": {"service": "GitHubEnterpriseService"},
    },
})


class TestServer(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok", "service": "splitforge"})

    def test_split_scenario(self):
        resp = self.client.post("/split", json={"source_text": SCENARIO, "config_yaml": _CONFIG_YAML})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(sorted(data["modules"]), ["register-alpha.ts", "register-github-enterprise.ts"])
        self.assertEqual(data["modules"]["register-alpha.ts"].count("server.tool("), 1)
        self.assertEqual(data["report"]["total_units"], 2)
        self.assertEqual(data["report"]["unmapped"], [])
        self.assertEqual(data["exit_code"], 0)
        self.assertEqual(data["registrations"]["tools"]["alpha"][0]["name"], "alpha-foo")

    def test_split_with_skip(self):
        resp = self.client.post(
            "/split",
            json={"source_text": SCENARIO, "config_yaml": _CONFIG_YAML, "skip": ["alpha"]},
        )
        data = resp.json()
        self.assertEqual(list(data["modules"]), ["register-github-enterprise.ts"])

    def test_split_default_config(self):
        resp = self.client.post("/split", json={"source_text": 'server.tool("ghe-list-repos", {});\n'})
        self.assertEqual(resp.status_code, 200)
        module = resp.json()["modules"]["register-github-enterprise.ts"]
        self.assertIn("StdioServerTransport", module)

    def test_unmapped_and_fatal(self):
        resp = self.client.post("/split", json={"source_text": 'server.tool("zzz", {}) x\n'})
        data = resp.json()
        self.assertEqual(data["modules"], {})
        self.assertEqual(data["exit_code"], 3)
        self.assertEqual(data["report"]["fatal_keywords"], ["server.tool("])

    def test_invalid_config_is_400(self):
        resp = self.client.post("/split", json={"source_text": SCENARIO, "config_yaml": "rules: ["})
        self.assertEqual(resp.status_code, 400)
        self.assertIn("error", resp.json())

    def test_missing_source_text_is_422(self):
        resp = self.client.post("/split", json={})
        self.assertEqual(resp.status_code, 422)


if __name__ == "__main__":
    unittest.main()
