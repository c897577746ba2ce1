"""
Name Classifier: maps a registration name to its destination module.

Rules are injected, never read from module state, so classify() is a pure
function of (name, rules). Evaluation order is fixed:

  1. every EXPLICIT_NAMES rule, in table order (exact membership)
  2. every PREFIX / PATTERN rule, in table order (case-sensitive)

The first matching rule wins. A name that matches nothing is unmapped
(None); the caller records it, it is never dropped.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from split_ir import ClassificationRule, RuleKind

UNMAPPED = None


def ordered_rules(rules: Sequence[ClassificationRule]) -> list[ClassificationRule]:
    """Rules in evaluation order: explicit name sets first, then the rest.

    Relative order within each group is preserved.
    """
    explicit = [r for r in rules if r.kind is RuleKind.EXPLICIT_NAMES]
    others = [r for r in rules if r.kind is not RuleKind.EXPLICIT_NAMES]
    return explicit + others


def classify(name: str, rules: Sequence[ClassificationRule]) -> str | None:
    """Return the destination of the first rule matching name, or UNMAPPED."""
    for rule in ordered_rules(rules):
        if rule.matches(name):
            return rule.destination
    return UNMAPPED


def matching_destinations(name: str, rules: Sequence[ClassificationRule]) -> list[str]:
    """All distinct destinations whose rules match name, in evaluation order."""
    destinations: list[str] = []
    for rule in ordered_rules(rules):
        if rule.matches(name) and rule.destination not in destinations:
            destinations.append(rule.destination)
    return destinations


def explicit_names(rules: Iterable[ClassificationRule]) -> list[str]:
    """Every name listed by an explicit rule, deduplicated.

    Grouped by rule in table order and sorted within each rule.
    """
    seen: set[str] = set()
    names: list[str] = []
    for rule in rules:
        if rule.kind is not RuleKind.EXPLICIT_NAMES:
            continue
        for name in sorted(rule.matcher):
            if name not in seen:
                seen.add(name)
                names.append(name)
    return names
