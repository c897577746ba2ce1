"""Tests for cli/splitforge.py: arguments, outputs and exit codes."""

import contextlib
import io
import json
import sys
import tempfile
import unittest
from pathlib import Path

# Ensure src/ and cli/ are importable
_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_ROOT / "src"))
sys.path.insert(0, str(_ROOT / "cli"))

import yaml
import splitforge

SCENARIO = (
    'server.tool("alpha-foo", "desc", {}, async (args) => { return "a)b"; });\n'
    'server.prompt("ghe-bar", {});\n'
)

_RULES = {
    "rules": [
        {"destination": "alpha", "names": ["alpha-foo"]},
        {"destination": "github-enterprise", "prefix": "ghe-"},
    ],
    "destinations": {
        "alpha": {"service": "AlphaService"},
        "github-enterprise": {"service": "GitHubEnterpriseService"},
    },
}


class TestCli(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.source = self.root / "index.ts"
        self.source.write_text(SCENARIO, encoding="utf-8")
        self.rules = self.root / "rules.yaml"
        self.rules.write_text(yaml.dump(_RULES), encoding="utf-8")
        self.out_dir = self.root / "out"

    def tearDown(self):
        self.tmp.cleanup()

    def _run(self, *extra):
        argv = ["--source", str(self.source), "--out-dir", str(self.out_dir), *extra]
        stdout, stderr = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            code = splitforge.main(argv)
        return code, stdout.getvalue(), stderr.getvalue()

    def test_success(self):
        code, stdout, stderr = self._run("--rules", str(self.rules))
        self.assertEqual(code, 0)
        self.assertEqual(stdout, "")
        self.assertIn("Extracted units: 2", stderr)
        self.assertTrue((self.out_dir / "register-alpha.ts").exists())
        self.assertTrue((self.out_dir / "register-github-enterprise.ts").exists())

    def test_unmapped_is_not_an_error(self):
        self.source.write_text(SCENARIO + 'server.tool("zzz-unknown", {});\n', encoding="utf-8")
        code, _, stderr = self._run("--rules", str(self.rules))
        self.assertEqual(code, 0)
        self.assertIn("UNMAPPED NAMES (1)", stderr)
        self.assertIn("zzz-unknown", stderr)

    def test_json_report_on_stdout(self):
        code, stdout, _ = self._run("--rules", str(self.rules), "--json", "--dry-run")
        self.assertEqual(code, 0)
        data = json.loads(stdout)
        self.assertEqual(data["total_units"], 2)
        self.assertEqual(data["unmapped"], [])
        self.assertFalse(self.out_dir.exists())

    def test_skip_and_extension(self):
        code, _, _ = self._run("--rules", str(self.rules), "--skip", "alpha", "--ext", "js")
        self.assertEqual(code, 0)
        self.assertFalse((self.out_dir / "register-alpha.js").exists())
        self.assertTrue((self.out_dir / "register-github-enterprise.js").exists())

    def test_default_rules(self):
        self.source.write_text('server.tool("ghe-list-repos", {}, async () => 1);\n', encoding="utf-8")
        code, _, _ = self._run()
        self.assertEqual(code, 0)
        text = (self.out_dir / "register-github-enterprise.ts").read_text()
        self.assertIn("registerGitHubEnterpriseTools", text)

    def test_missing_source_exits_1(self):
        self.source.unlink()
        code, _, stderr = self._run("--rules", str(self.rules))
        self.assertEqual(code, 1)
        self.assertIn("index.ts", stderr)

    def test_missing_rules_file_exits_1(self):
        code, _, stderr = self._run("--rules", str(self.root / "nope.yaml"))
        self.assertEqual(code, 1)
        self.assertIn("Split config not found", stderr)

    def test_invalid_rules_exit_1(self):
        self.rules.write_text("rules:\n  - destination: a\n", encoding="utf-8")
        code, _, _ = self._run("--rules", str(self.rules))
        self.assertEqual(code, 1)

    def test_every_occurrence_failed_exits_3(self):
        self.source.write_text('server.tool("alpha-foo", {}) oops\n', encoding="utf-8")
        code, _, stderr = self._run("--rules", str(self.rules))
        self.assertEqual(code, 3)
        self.assertIn("server.tool(", stderr)

    def test_usage_error_exits_2(self):
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                splitforge.main(["--source", str(self.source)])
        self.assertEqual(ctx.exception.code, 2)


if __name__ == "__main__":
    unittest.main()
