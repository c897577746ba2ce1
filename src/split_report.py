"""
Run Reporter: folds the driver's results into an immutable RunReport.

report() never re-classifies anything; it only counts what the driver
already decided. Unmapped names are deduplicated by (name, offset), so a
unit seen twice is listed once, while the same name registered at two
different offsets is listed twice.
"""

from __future__ import annotations

from dataclasses import asdict
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from split_ir import (
    AmbiguousName,
    DestinationCount,
    ExtractedUnit,
    GenerationFailure,
    RegistrationBucket,
    RunReport,
    ScanFailure,
    UnmappedName,
)


def _dedupe_unmapped(unmapped: Iterable[UnmappedName]) -> tuple[UnmappedName, ...]:
    seen: set[tuple[str, int]] = set()
    result: list[UnmappedName] = []
    for entry in unmapped:
        key = (entry.name, entry.offset)
        if key in seen:
            continue
        seen.add(key)
        result.append(entry)
    return tuple(result)


def report(
    units: Sequence[ExtractedUnit],
    buckets: Mapping[str, RegistrationBucket],
    unmapped: Iterable[UnmappedName],
    *,
    source: str = "",
    ambiguous: Iterable[AmbiguousName] = (),
    scan_failures: Iterable[ScanFailure] = (),
    generation_failures: Iterable[GenerationFailure] = (),
    missing_rule_names: Iterable[str] = (),
    fatal_keywords: Iterable[str] = (),
    output_files: Mapping[str, str] | None = None,
) -> RunReport:
    """Build the RunReport for one run.

    Args:
        units: Every unit extracted, in encounter order.
        buckets: Destination buckets in first-encounter order.
        unmapped: Units that matched no rule.
        output_files: Destination -> written file name, for destinations
            whose module was written.
    """
    output_files = output_files or {}
    destinations = tuple(
        DestinationCount(
            destination=name,
            operations=bucket.operation_count,
            prompts=bucket.prompt_count,
            output_file=output_files.get(name),
        )
        for name, bucket in buckets.items()
    )
    return RunReport(
        source=source,
        total_units=len(units),
        destinations=destinations,
        unmapped=_dedupe_unmapped(unmapped),
        ambiguous=tuple(ambiguous),
        scan_failures=tuple(scan_failures),
        generation_failures=tuple(generation_failures),
        missing_rule_names=tuple(missing_rule_names),
        fatal_keywords=tuple(fatal_keywords),
    )


# ============================================================
# Serialization
# ============================================================

def _plain(value: Any) -> Any:
    """Convert enums (and containers of them) to JSON-friendly values."""
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


def report_to_dict(run_report: RunReport) -> dict[str, Any]:
    """Machine-readable form of the report, as written to split-report.json."""
    data = _plain(asdict(run_report))
    data["classified_units"] = run_report.classified_units
    return data


def registrations_to_dict(buckets: Mapping[str, RegistrationBucket]) -> dict[str, Any]:
    """Extraction dump: every classified unit's name, offset and code."""

    def _entries(units: Sequence[ExtractedUnit]) -> list[dict[str, Any]]:
        return [
            {"name": u.name, "offset": u.keyword_offset, "code": u.raw_text.strip()}
            for u in units
        ]

    return {
        "prompts": {name: _entries(b.prompts) for name, b in buckets.items() if b.prompts},
        "tools": {name: _entries(b.operations) for name, b in buckets.items() if b.operations},
    }


def format_summary(run_report: RunReport) -> str:
    """Human-readable summary for the diagnostic channel."""
    lines = [
        "=== Extraction Summary ===",
        "",
        f"Source: {run_report.source}",
        f"Extracted units: {run_report.total_units}",
        "",
    ]
    total_tools = total_prompts = 0
    for d in run_report.destinations:
        total_tools += d.operations
        total_prompts += d.prompts
        written = f" -> {d.output_file}" if d.output_file else ""
        lines.append(f"  {d.destination}: {d.operations} tools, {d.prompts} prompts{written}")
    lines.append(f"\nGrand Total: {total_tools} tools, {total_prompts} prompts")

    if run_report.unmapped:
        lines.append(f"\nUNMAPPED NAMES ({len(run_report.unmapped)}) -- add classification rules and re-run:")
        for u in run_report.unmapped:
            lines.append(f"  - {u.name} ({u.kind.value}, line {u.line}, offset {u.offset})")

    if run_report.ambiguous:
        lines.append(f"\nAMBIGUOUS NAMES ({len(run_report.ambiguous)}):")
        for a in run_report.ambiguous:
            lines.append(
                f"  - {a.name} (line {a.line}): matched {', '.join(a.candidates)}; "
                f"assigned to {a.chosen}"
            )

    if run_report.scan_failures:
        lines.append(f"\nSCAN FAILURES ({len(run_report.scan_failures)}):")
        for f in run_report.scan_failures:
            lines.append(f"  - {f}")

    if run_report.generation_failures:
        lines.append(f"\nGENERATION FAILURES ({len(run_report.generation_failures)}):")
        for g in run_report.generation_failures:
            lines.append(f"  - {g.destination}: {g.message}")

    if run_report.missing_rule_names:
        lines.append(
            f"\nRule names not found in source ({len(run_report.missing_rule_names)}):"
        )
        for name in run_report.missing_rule_names:
            lines.append(f"  - {name}")

    return "\n".join(lines)
