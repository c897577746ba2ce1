"""Tests for module_generator.py: destination module rendering."""

import sys
import unittest
from pathlib import Path

# Ensure src/ is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from bucket_aggregator import add
from module_generator import (
    GenerationError,
    build_manifest,
    default_register_function,
    generate,
    module_filename,
)
from split_ir import (
    ConfigField,
    DestinationProfile,
    ExtractedUnit,
    GenerationManifest,
    RegistrationBucket,
    SourceRange,
    UnitKind,
)

OP_TEXT = '  server.tool("alpha-op", "desc", {}, async () => {\n      return "x";\n  });'
PROMPT_TEXT = 'server.prompt("alpha-prompt", {}, async () => ({ messages: [] }));'

PROFILE = DestinationProfile(
    destination="alpha",
    service="AlphaService",
    config_type="AlphaConfig",
    register_function="registerAlphaTools",
    imports=("import { z } from 'zod';",),
    config=(
        ConfigField(name="url", env="ALPHA_URL"),
        ConfigField(name="projects", env="ALPHA_PROJECTS", kind="list"),
        ConfigField(name="apiVersion", env="ALPHA_API_VERSION", required=False, default="7.1"),
        ConfigField(name="enableWrite", env="ALPHA_ENABLE_WRITE", kind="flag"),
        ConfigField(name="enableCache", env="ALPHA_ENABLE_CACHE", kind="flag", default="true"),
        ConfigField(name="timeout", env="ALPHA_TIMEOUT", kind="int", required=False, default="30"),
        ConfigField(name="resources", env="ALPHA_RESOURCES", kind="json"),
    ),
)


def _unit(name, text, start, kind):
    return ExtractedUnit(
        name=name,
        kind=kind,
        raw_text=text,
        source_range=SourceRange(start, start + len(text)),
        keyword_offset=start,
    )


def _bucket(with_prompt=True):
    buckets = {}
    add(buckets, "alpha", _unit("alpha-op", OP_TEXT, 0, UnitKind.OPERATION))
    if with_prompt:
        add(buckets, "alpha", _unit("alpha-prompt", PROMPT_TEXT, 200, UnitKind.PROMPT_TEMPLATE))
    return buckets["alpha"]


class TestNaming(unittest.TestCase):

    def test_module_filename(self):
        self.assertEqual(module_filename("azure-sql"), "register-azure-sql.ts")
        self.assertEqual(module_filename("figma", ".js"), "register-figma.js")

    def test_default_register_function(self):
        self.assertEqual(default_register_function("azure-sql"), "registerAzureSqlTools")
        self.assertEqual(default_register_function("figma"), "registerFigmaTools")
        self.assertEqual(default_register_function("log_analytics"), "registerLogAnalyticsTools")


class TestBuildManifest(unittest.TestCase):

    def test_counts_come_from_bucket(self):
        manifest = build_manifest(PROFILE, _bucket())
        self.assertEqual((manifest.operation_count, manifest.prompt_count), (1, 1))
        self.assertEqual(manifest.service, "AlphaService")
        self.assertEqual(manifest.config, PROFILE.config)

    def test_defaults_filled_in(self):
        manifest = build_manifest(DestinationProfile("alpha", service="AlphaService"), _bucket())
        self.assertEqual(manifest.config_type, "AlphaConfig")
        self.assertEqual(manifest.register_function, "registerAlphaTools")

    def test_missing_service(self):
        with self.assertRaises(GenerationError) as ctx:
            build_manifest(DestinationProfile("alpha"), _bucket())
        self.assertEqual(ctx.exception.destination, "alpha")
        self.assertIsInstance(ctx.exception, ValueError)


class TestGenerate(unittest.TestCase):

    def setUp(self):
        self.bucket = _bucket()
        self.manifest = build_manifest(PROFILE, self.bucket)
        self.text = generate("alpha", self.bucket, self.manifest)

    def test_deterministic(self):
        again = generate("alpha", _bucket(), build_manifest(PROFILE, _bucket()))
        self.assertEqual(self.text, again)

    def test_units_verbatim(self):
        self.assertIn(OP_TEXT + "\n", self.text)
        self.assertIn(PROMPT_TEXT + "\n", self.text)

    def test_section_order(self):
        text = self.text
        header = text.index("alpha registrations")
        entry = text.index("export function registerAlphaTools(server: any, alphaService?: AlphaService) {")
        getter = text.index("function getAlphaService(): AlphaService {")
        prompts = text.index(PROMPT_TEXT)
        tools = text.index(OP_TEXT)
        summary = text.index('console.error("alpha tools registered: 1 tools, 1 prompts");')
        self.assertLess(header, entry)
        self.assertLess(entry, getter)
        self.assertLess(getter, prompts)
        self.assertLess(prompts, tools)
        self.assertLess(tools, summary)

    def test_imports(self):
        self.assertIn('import { AlphaService } from "./AlphaService.js";', self.text)
        self.assertIn('import type { AlphaConfig } from "./AlphaService.js";', self.text)
        self.assertIn("import { z } from 'zod';", self.text)
        self.assertTrue(self.text.endswith('export { AlphaService } from "./AlphaService.js";\n'))

    def test_collaborator_is_lazy(self):
        text = self.text
        self.assertIn("let service: AlphaService | null = alphaService || null;", text)
        self.assertEqual(text.count("new AlphaService("), 1)
        self.assertLess(text.index("function getAlphaService"), text.index("new AlphaService(config)"))
        self.assertLess(text.index("if (!service) {"), text.index("new AlphaService(config)"))

    def test_config_expressions(self):
        text = self.text
        self.assertIn('if (!process.env.ALPHA_URL) missingConfig.push("ALPHA_URL");', text)
        self.assertIn('if (!process.env.ALPHA_RESOURCES) missingConfig.push("ALPHA_RESOURCES");', text)
        self.assertNotIn('missingConfig.push("ALPHA_API_VERSION")', text)
        self.assertNotIn('missingConfig.push("ALPHA_ENABLE_WRITE")', text)
        self.assertIn("url: process.env.ALPHA_URL!,", text)
        self.assertIn('apiVersion: process.env.ALPHA_API_VERSION || "7.1",', text)
        self.assertIn('enableWrite: process.env.ALPHA_ENABLE_WRITE === "true",', text)
        self.assertIn('enableCache: process.env.ALPHA_ENABLE_CACHE !== "false",', text)
        self.assertIn("process.env.ALPHA_PROJECTS!.split(", text)
        self.assertIn('timeout: parseInt((process.env.ALPHA_TIMEOUT || "30")),', text)
        self.assertIn("resources = JSON.parse(process.env.ALPHA_RESOURCES!);", text)
        self.assertIn("resources: resources,", text)

    def test_no_config_constructs_without_arguments(self):
        bucket = _bucket()
        manifest = build_manifest(DestinationProfile("alpha", service="AlphaService"), bucket)
        text = generate("alpha", bucket, manifest)
        self.assertIn("service = new AlphaService();", text)
        self.assertNotIn("missingConfig", text)
        self.assertNotIn("import type", text)

    def test_empty_prompt_section_omitted(self):
        bucket = _bucket(with_prompt=False)
        text = generate("alpha", bucket, build_manifest(PROFILE, bucket))
        self.assertNotIn("// PROMPTS", text)
        self.assertIn("// TOOLS", text)
        self.assertIn("1 tools, 0 prompts", text)

    def test_no_standalone_without_server_name(self):
        self.assertNotIn("StdioServerTransport", self.text)

    def test_standalone_entry(self):
        profile = DestinationProfile(
            destination="alpha", service="AlphaService", server_name="@acme/alpha",
        )
        text = generate("alpha", self.bucket, build_manifest(profile, self.bucket))
        self.assertIn("StdioServerTransport", text)
        self.assertIn('name: "@acme/alpha",', text)
        self.assertIn("  registerAlphaTools(server);", text)
        self.assertTrue(text.rstrip().endswith("}"))


class TestGenerateFailures(unittest.TestCase):

    def test_empty_bucket_produces_nothing(self):
        empty = RegistrationBucket(destination="alpha")
        manifest = build_manifest(PROFILE, empty)
        self.assertIsNone(generate("alpha", empty, manifest))

    def test_count_mismatch(self):
        bucket = _bucket()
        stale = build_manifest(PROFILE, _bucket(with_prompt=False))
        with self.assertRaises(GenerationError):
            generate("alpha", bucket, stale)

    def test_manifest_for_other_destination(self):
        bucket = _bucket()
        manifest = build_manifest(PROFILE, bucket)
        with self.assertRaises(GenerationError):
            generate("beta", bucket, manifest)

    def test_manifest_missing_service(self):
        bucket = _bucket()
        manifest = GenerationManifest(
            destination="alpha", service="", config_type="AlphaConfig",
            register_function="registerAlphaTools", operation_count=1, prompt_count=1,
        )
        with self.assertRaises(GenerationError):
            generate("alpha", bucket, manifest)


if __name__ == "__main__":
    unittest.main()
