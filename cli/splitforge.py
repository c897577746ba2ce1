#!/usr/bin/env python3
"""
SplitForge CLI: split a monolithic registration file into destination modules.

Usage:
    python splitforge.py --source src/index.ts --out-dir src/split
    python splitforge.py --source src/index.ts --out-dir out --rules my_rules.yaml
    python splitforge.py --source src/index.ts --out-dir out --skip figma --backup
    python splitforge.py --source src/index.ts --out-dir out --dry-run --json

Options:
    --source PATH        Source file to scan (required)
    --out-dir DIR        Directory for generated modules and the report (required)
    --rules PATH         YAML overrides for keywords / rules / destinations
    --ext EXT            Extension of generated modules (default: .ts)
    --skip DEST          Don't generate DEST (repeatable); still reported
    --backup             Copy existing modules to <file>.backup before overwriting
    --dry-run            Scan and report only, write nothing
    --json               Print the run report as JSON on stdout
    --verbose / -v       Debug logging

Exit codes:
    0  completed (unmapped names are warnings)
    1  I/O failure or invalid configuration
    2  usage error
    3  every occurrence of some keyword failed to scan
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure src/ is importable
_SCRIPT_DIR = Path(__file__).resolve().parent
_SRC_DIR = _SCRIPT_DIR.parent / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

EXIT_OK = 0
EXIT_IO = 1
EXIT_MALFORMED = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="splitforge",
        description="SplitForge: split registration statements into per-destination modules",
        epilog="Unmapped names are listed on stderr; add rules and re-run.",
    )
    parser.add_argument(
        "--source",
        type=str,
        required=True,
        help="Path to the source file to scan",
    )
    parser.add_argument(
        "--out-dir",
        type=str,
        required=True,
        help="Directory to write generated modules and split-report.json into",
    )
    parser.add_argument(
        "--rules",
        type=str,
        default=None,
        help="YAML file overriding the built-in keywords, rules and destinations",
    )
    parser.add_argument(
        "--ext",
        type=str,
        default=".ts",
        help="Extension of generated module files (default: .ts)",
    )
    parser.add_argument(
        "--skip",
        action="append",
        default=[],
        metavar="DEST",
        help="Destination to leave ungenerated (repeatable)",
    )
    parser.add_argument(
        "--backup",
        action="store_true",
        help="Back up existing modules to <file>.backup before overwriting",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Scan and report without writing any file",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the run report as JSON on stdout",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    from source_splitter import run_split
    from split_config import load_split_config
    from split_report import format_summary, report_to_dict

    ext = args.ext if args.ext.startswith(".") else f".{args.ext}"

    try:
        config = load_split_config(args.rules)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_IO

    unknown_skips = sorted(set(args.skip) - {r.destination for r in config.rules})
    if unknown_skips:
        print(f"Warning: --skip names no known destination: {', '.join(unknown_skips)}", file=sys.stderr)

    try:
        run_report = run_split(
            args.source,
            args.out_dir,
            config,
            skip=args.skip,
            extension=ext,
            backup=args.backup,
            dry_run=args.dry_run,
        )
    except OSError as e:
        failing = e.filename or args.source
        print(f"Error: {failing}: {e.strerror or e}", file=sys.stderr)
        return EXIT_IO

    print(format_summary(run_report), file=sys.stderr)
    if args.dry_run:
        print("\n(dry run: no files written)", file=sys.stderr)
    else:
        print(f"\nOutput directory: {args.out_dir}", file=sys.stderr)

    if args.json:
        print(json.dumps(report_to_dict(run_report), indent=2))

    if run_report.fatal_keywords:
        print(
            f"\nError: every occurrence failed to scan for: "
            f"{', '.join(run_report.fatal_keywords)}",
            file=sys.stderr,
        )
        return EXIT_MALFORMED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
