"""
Module Generator
================
Renders one destination module from its RegistrationBucket and
GenerationManifest. The output is the registration module of a split
package: header, imports, a registration entry point with a lazily created
collaborator service, the prompt units, the operation units and a trailing
summary statement.

Output is a pure function of (destination, bucket, manifest): no
timestamps, no set iteration, so repeated runs are byte-identical.

Usage:
    from module_generator import build_manifest, generate

    manifest = build_manifest(profile, bucket)
    text = generate("azure-devops", bucket, manifest)
"""

from __future__ import annotations

import json

from split_ir import (
    ConfigField,
    DestinationProfile,
    GenerationManifest,
    RegistrationBucket,
)

DEFAULT_EXTENSION = ".ts"

_BANNER = "  // ========================================"
_INDENT = "      "  # body of `if (!service) {` inside the getter


class GenerationError(ValueError):
    """A destination module cannot be generated from its manifest."""

    def __init__(self, destination: str, message: str):
        super().__init__(f"{destination}: {message}")
        self.destination = destination


# =============================================================================
# NAMING
# =============================================================================


def module_filename(destination: str, extension: str = DEFAULT_EXTENSION) -> str:
    """register-<destination><ext>"""
    return f"register-{destination}{extension}"


def default_register_function(destination: str) -> str:
    """register + PascalCase(destination) + Tools, e.g. registerAzureSqlTools."""
    words = [w for w in destination.replace("_", "-").split("-") if w]
    return "register" + "".join(w[:1].upper() + w[1:] for w in words) + "Tools"


def _instance_param(destination: str) -> str:
    return destination.replace("-", "").replace("_", "") + "Service"


def _js_string(value: str) -> str:
    return json.dumps(value)


# =============================================================================
# MANIFEST
# =============================================================================


def build_manifest(profile: DestinationProfile, bucket: RegistrationBucket) -> GenerationManifest:
    """Combine a destination's declared collaborator facts with its counts.

    Raises:
        GenerationError: If the profile declares no collaborator service.
    """
    if not profile.service:
        raise GenerationError(
            bucket.destination,
            "no collaborator service declared (add a 'service' entry under "
            f"destinations.{bucket.destination})",
        )
    return GenerationManifest(
        destination=bucket.destination,
        service=profile.service,
        config_type=profile.config_type or profile.service.replace("Service", "Config"),
        register_function=(
            profile.register_function or default_register_function(bucket.destination)
        ),
        operation_count=bucket.operation_count,
        prompt_count=bucket.prompt_count,
        imports=profile.imports,
        config=profile.config,
        server_name=profile.server_name,
    )


def _check_manifest(destination: str, bucket: RegistrationBucket, manifest: GenerationManifest) -> None:
    if manifest.destination != destination:
        raise GenerationError(
            destination, f"manifest belongs to {manifest.destination!r}"
        )
    for attr in ("service", "config_type", "register_function"):
        if not getattr(manifest, attr):
            raise GenerationError(destination, f"manifest is missing {attr!r}")
    if (manifest.operation_count, manifest.prompt_count) != (
        bucket.operation_count, bucket.prompt_count
    ):
        raise GenerationError(
            destination,
            f"manifest counts ({manifest.operation_count} tools, "
            f"{manifest.prompt_count} prompts) do not match the bucket "
            f"({bucket.operation_count} tools, {bucket.prompt_count} prompts)",
        )


# =============================================================================
# COLLABORATOR CONFIGURATION
# =============================================================================


def _is_checked(cf: ConfigField) -> bool:
    """Whether the getter refuses to start without this variable."""
    return cf.required and cf.default is None and cf.kind != "flag"


def _env(cf: ConfigField) -> str:
    return f"process.env.{cf.env}"


def _raw_value(cf: ConfigField, fallback: str) -> str:
    if _is_checked(cf):
        return f"{_env(cf)}!"
    default = cf.default if cf.default is not None else fallback
    return f"({_env(cf)} || {_js_string(default)})"


def _field_expression(cf: ConfigField) -> str:
    """TypeScript expression producing the field's value from the environment."""
    if cf.kind == "flag":
        if cf.default is not None and cf.default.lower() == "true":
            return f'{_env(cf)} !== "false"'
        return f'{_env(cf)} === "true"'
    if cf.kind == "list":
        return f"{_raw_value(cf, '')}.split(\",\").map(p => p.trim()).filter(p => p)"
    if cf.kind == "int":
        return f"parseInt({_raw_value(cf, '0')})"
    if cf.kind == "json":
        # Parsed into a local before the config object is built
        return cf.name
    if _is_checked(cf):
        return f"{_env(cf)}!"
    if cf.default is not None:
        return f"{_env(cf)} || {_js_string(cf.default)}"
    return _env(cf)


def _render_getter(manifest: GenerationManifest) -> list[str]:
    svc = manifest.service
    lines = [
        f"  function get{svc}(): {svc} {{",
        "    if (!service) {",
    ]

    checked = [cf for cf in manifest.config if _is_checked(cf)]
    if checked:
        lines.append(f"{_INDENT}const missingConfig: string[] = [];")
        for cf in checked:
            lines.append(
                f"{_INDENT}if (!{_env(cf)}) missingConfig.push({_js_string(cf.env)});"
            )
        lines += [
            "",
            f"{_INDENT}if (missingConfig.length > 0) {{",
            f"{_INDENT}  throw new Error(",
            f"{_INDENT}    `Missing required {manifest.destination} configuration: "
            "${missingConfig.join(\", \")}`",
            f"{_INDENT}  );",
            f"{_INDENT}}}",
            "",
        ]

    for cf in manifest.config:
        if cf.kind != "json":
            continue
        lines += [
            f"{_INDENT}let {cf.name}: any;",
            f"{_INDENT}try {{",
            f"{_INDENT}  {cf.name} = JSON.parse({_raw_value(cf, 'null')});",
            f"{_INDENT}}} catch (error) {{",
            f"{_INDENT}  throw new Error({_js_string(f'Failed to parse {cf.env} JSON')});",
            f"{_INDENT}}}",
            "",
        ]

    if manifest.config:
        lines.append(f"{_INDENT}const config: {manifest.config_type} = {{")
        for cf in manifest.config:
            lines.append(f"{_INDENT}  {cf.name}: {_field_expression(cf)},")
        lines += [
            f"{_INDENT}}};",
            "",
            f"{_INDENT}service = new {svc}(config);",
        ]
    else:
        lines.append(f"{_INDENT}service = new {svc}();")

    lines += [
        f"{_INDENT}console.error({_js_string(f'{svc} initialized')});",
        "    }",
        "",
        "    return service;",
        "  }",
    ]
    return lines


# =============================================================================
# MODULE
# =============================================================================


def _render_section(title: str, units: list) -> list[str]:
    if not units:
        return []
    lines = [_BANNER, f"  // {title}", _BANNER, ""]
    for unit in units:
        lines.append(unit.raw_text)
        lines.append("")
    return lines


def _render_standalone(manifest: GenerationManifest) -> list[str]:
    name = manifest.server_name
    return [
        "",
        "/**",
        " * Standalone CLI server (when run directly)",
        " */",
        "if (import.meta.url === `file://${process.argv[1]}`) {",
        "  const loadEnv = createEnvLoader();",
        "  loadEnv();",
        "",
        "  const server = createMcpServer({",
        f"    name: {_js_string(name)},",
        '    version: "1.0.0",',
        "    capabilities: {",
        "      tools: {},",
        "      prompts: {},",
        "    },",
        "  });",
        "",
        f"  {manifest.register_function}(server);",
        "",
        "  const transport = new StdioServerTransport();",
        "  server.connect(transport).catch((error: Error) => {",
        f"    console.error({_js_string(f'Failed to start {name} MCP server:')}, error);",
        "    process.exit(1);",
        "  });",
        "",
        f"  console.error({_js_string(f'{name} server running on stdio')});",
        "}",
    ]


def generate(destination: str, bucket: RegistrationBucket, manifest: GenerationManifest) -> str | None:
    """Render the module text for one destination.

    Returns:
        The module text, or None when the bucket is empty (no module is
        produced for an empty destination).

    Raises:
        GenerationError: If the manifest lacks collaborator facts or does not
            describe this bucket.
    """
    if bucket.is_empty():
        return None
    _check_manifest(destination, bucket, manifest)

    svc = manifest.service
    module_path = f"./{svc}.js"
    param = _instance_param(destination)

    lines = [
        "/**",
        f" * {destination} registrations",
        " *",
        f" * Collaborator: {svc} ({module_path})",
        f" * Prompts: {manifest.prompt_count}, tools: {manifest.operation_count}",
        " */",
        "",
    ]
    if manifest.server_name:
        lines += [
            'import { StdioServerTransport } from "@modelcontextprotocol/sdk/server/stdio.js";',
            'import { createMcpServer, createEnvLoader } from "@mcp-consultant-tools/core";',
        ]
    lines.append(f'import {{ {svc} }} from "{module_path}";')
    if manifest.config:
        lines.append(f'import type {{ {manifest.config_type} }} from "{module_path}";')
    lines += list(manifest.imports)
    lines += [
        "",
        "/**",
        f" * Register {destination} tools and prompts to an MCP server",
        " * @param server - The MCP server instance",
        f" * @param {param} - Optional pre-configured {svc} (for testing or custom configs)",
        " */",
        f"export function {manifest.register_function}(server: any, {param}?: {svc}) {{",
        f"  let service: {svc} | null = {param} || null;",
        "",
    ]
    lines += _render_getter(manifest)
    lines.append("")
    lines += _render_section("PROMPTS", bucket.prompts)
    lines += _render_section("TOOLS", bucket.operations)

    summary = (
        f"{destination} tools registered: {manifest.operation_count} tools, "
        f"{manifest.prompt_count} prompts"
    )
    lines += [
        f"  console.error({_js_string(summary)});",
        "}",
        "",
        f'export {{ {svc} }} from "{module_path}";',
    ]
    if manifest.server_name:
        lines += _render_standalone(manifest)

    return "\n".join(lines) + "\n"
