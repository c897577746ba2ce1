"""
Source Splitter: drives one extraction run over a monolithic source file.

Pipeline:
  1. Find each registration keyword occurrence in order of appearance
  2. Scan it into an ExtractedUnit (or a ScanFailure, logged and skipped)
  3. Classify the unit's name against the injected rule table
  4. Aggregate classified units per destination
  5. Generate one module per non-empty, non-skipped destination
  6. Fold everything into a RunReport

split_source() is the pure part (steps 1-4) and never touches the file
system; run_split() owns the I/O: reading the source, writing modules,
registrations.json and split-report.json.
"""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from block_scanner import DEFAULT_KEYWORDS, iter_registrations
from bucket_aggregator import BucketMap, add
from module_generator import (
    DEFAULT_EXTENSION,
    GenerationError,
    build_manifest,
    generate,
    module_filename,
)
from name_classifier import classify, explicit_names, matching_destinations
from paths import REGISTRATIONS_FILENAME, REPORT_FILENAME
from split_config import SplitConfig
from split_ir import (
    AmbiguousName,
    ClassificationRule,
    ExtractedUnit,
    GenerationFailure,
    RunReport,
    ScanFailure,
    UnitKind,
    UnmappedName,
)
from split_report import format_summary, registrations_to_dict, report, report_to_dict

logger = logging.getLogger(__name__)


@dataclass
class SplitResult:
    """Everything one scan-classify-aggregate pass produced."""
    units: list[ExtractedUnit] = field(default_factory=list)
    buckets: BucketMap = field(default_factory=dict)
    unmapped: list[UnmappedName] = field(default_factory=list)
    ambiguous: list[AmbiguousName] = field(default_factory=list)
    failures: list[ScanFailure] = field(default_factory=list)
    occurrences: dict[str, int] = field(default_factory=dict)
    extracted: dict[str, int] = field(default_factory=dict)

    @property
    def fatal_keywords(self) -> list[str]:
        """Keywords that occurred but never scanned successfully."""
        return [
            kw for kw, count in self.occurrences.items()
            if count > 0 and self.extracted.get(kw, 0) == 0
        ]


@dataclass(frozen=True)
class GeneratedModule:
    destination: str
    filename: str
    text: str


def _line_of(buffer: str, offset: int) -> int:
    return buffer.count("\n", 0, offset) + 1


def split_source(
    buffer: str,
    rules: Sequence[ClassificationRule],
    keywords: Mapping[str, UnitKind] | None = None,
) -> SplitResult:
    """Scan, classify and aggregate every registration in buffer."""
    if keywords is None:
        keywords = DEFAULT_KEYWORDS

    result = SplitResult(
        occurrences={kw: 0 for kw in keywords},
        extracted={kw: 0 for kw in keywords},
    )

    for keyword, scanned in iter_registrations(buffer, keywords):
        result.occurrences[keyword] += 1

        if isinstance(scanned, ScanFailure):
            result.failures.append(scanned)
            logger.warning(
                "Skipping %s at line %d: %s | %s",
                keyword, _line_of(buffer, scanned.offset), scanned, scanned.excerpt,
            )
            continue

        unit = scanned
        result.extracted[keyword] += 1
        result.units.append(unit)
        line = _line_of(buffer, unit.keyword_offset)

        destination = classify(unit.name, rules)
        if destination is None:
            result.unmapped.append(
                UnmappedName(name=unit.name, kind=unit.kind, offset=unit.keyword_offset, line=line)
            )
            logger.warning("Unmapped %s: %s (line %d)", unit.kind.value, unit.name, line)
            continue

        candidates = matching_destinations(unit.name, rules)
        if len(candidates) > 1:
            result.ambiguous.append(
                AmbiguousName(
                    name=unit.name,
                    kind=unit.kind,
                    offset=unit.keyword_offset,
                    line=line,
                    chosen=destination,
                    candidates=tuple(candidates),
                )
            )
            logger.warning(
                "Ambiguous %s: %s matches %s; using %s",
                unit.kind.value, unit.name, ", ".join(candidates), destination,
            )

        add(result.buckets, destination, unit)

    logger.info(
        "Extracted %d units (%d failures, %d unmapped)",
        len(result.units), len(result.failures), len(result.unmapped),
    )
    return result


def generate_modules(
    result: SplitResult,
    config: SplitConfig,
    skip: Iterable[str] = (),
    extension: str = DEFAULT_EXTENSION,
) -> tuple[list[GeneratedModule], list[GenerationFailure]]:
    """Render a module for every non-empty bucket not in skip.

    A GenerationError affects only its own destination.
    """
    skipped = set(skip)
    modules: list[GeneratedModule] = []
    failures: list[GenerationFailure] = []

    for destination, bucket in result.buckets.items():
        if destination in skipped:
            logger.info("Skipping %s (already complete)", destination)
            continue
        try:
            manifest = build_manifest(config.profile_for(destination), bucket)
            text = generate(destination, bucket, manifest)
        except GenerationError as e:
            logger.error("Cannot generate %s: %s", destination, e)
            failures.append(GenerationFailure(destination=destination, message=str(e)))
            continue
        if text is None:
            continue
        modules.append(GeneratedModule(destination, module_filename(destination, extension), text))

    return modules, failures


def build_report(
    result: SplitResult,
    rules: Sequence[ClassificationRule],
    source: str = "",
    generation_failures: Iterable[GenerationFailure] = (),
    output_files: Mapping[str, str] | None = None,
) -> RunReport:
    """Fold a SplitResult and generation outcome into the RunReport."""
    encountered = {u.name for u in result.units}
    missing = [name for name in explicit_names(rules) if name not in encountered]
    return report(
        result.units,
        result.buckets,
        result.unmapped,
        source=source,
        ambiguous=result.ambiguous,
        scan_failures=result.failures,
        generation_failures=generation_failures,
        missing_rule_names=missing,
        fatal_keywords=result.fatal_keywords,
        output_files=output_files,
    )


def _write_text(path: Path, text: str, backup: bool = False) -> None:
    if backup and path.exists():
        backup_path = path.with_name(path.name + ".backup")
        shutil.copyfile(path, backup_path)
        logger.info("Backed up %s to %s", path.name, backup_path.name)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(text)


def run_split(
    source_path: str | Path,
    out_dir: str | Path,
    config: SplitConfig,
    skip: Iterable[str] = (),
    extension: str = DEFAULT_EXTENSION,
    backup: bool = False,
    dry_run: bool = False,
) -> RunReport:
    """Run the full pipeline over a source file.

    Writes one module per generated destination plus registrations.json and
    split-report.json into out_dir (nothing is written when dry_run).

    Raises:
        OSError: If the source cannot be read or out_dir cannot be written.
    """
    source_path = Path(source_path)
    out_dir = Path(out_dir)

    with open(source_path, encoding="utf-8") as f:
        buffer = f.read()
    logger.info("Read %d characters from %s", len(buffer), source_path)

    result = split_source(buffer, config.rules, config.keywords)
    modules, generation_failures = generate_modules(result, config, skip, extension)

    output_files: dict[str, str] = {}
    if not dry_run:
        out_dir.mkdir(parents=True, exist_ok=True)
        for module in modules:
            _write_text(out_dir / module.filename, module.text, backup=backup)
            output_files[module.destination] = module.filename
            logger.info("Generated %s", out_dir / module.filename)

        registrations = registrations_to_dict(result.buckets)
        _write_text(out_dir / REGISTRATIONS_FILENAME, json.dumps(registrations, indent=2) + "\n")

    run_report = build_report(
        result,
        config.rules,
        source=str(source_path),
        generation_failures=generation_failures,
        output_files=output_files,
    )

    if not dry_run:
        _write_text(out_dir / REPORT_FILENAME, json.dumps(report_to_dict(run_report), indent=2) + "\n")

    logger.debug("%s", format_summary(run_report))
    return run_report
