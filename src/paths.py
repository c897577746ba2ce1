"""Centralized path resolution for SplitForge.

All modules should import paths from here rather than computing them locally.
This module resolves paths relative to the project root (parent of src/).
"""

from __future__ import annotations

from pathlib import Path

# Project root: parent of the src/ directory
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Core directories
REFERENCES_DIR = PROJECT_ROOT / "references"

# Key reference files
CALL_HEAD_GRAMMAR_PATH = REFERENCES_DIR / "registration_head.lark"
SPLIT_CONFIG_PATH = REFERENCES_DIR / "split_config.yaml"

# Output file names written next to the generated modules
REPORT_FILENAME = "split-report.json"
REGISTRATIONS_FILENAME = "registrations.json"
