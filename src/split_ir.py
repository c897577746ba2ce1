"""
SplitForge Intermediate Representation (IR).

Typed dataclass layer shared by the scanner, classifier, aggregator,
module generator and reporter. Captures one run of the splitter in a form
that can be:
  - Classified against an injected rule table
  - Grouped per destination without re-deriving names or kinds from text
  - Rendered to destination modules and serialized into a run report
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

# ============================================================
# Extracted Units
# ============================================================


class UnitKind(str, Enum):
    """What a registration statement declares."""

    OPERATION = "operation"
    PROMPT_TEMPLATE = "prompt"


@dataclass(frozen=True)
class SourceRange:
    """Half-open [start, end) offset range into the scanned buffer."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start

    def __repr__(self) -> str:
        return f"SourceRange({self.start}, {self.end})"


@dataclass(frozen=True)
class ExtractedUnit:
    """One registration statement lifted out of the source buffer.

    raw_text is exactly buffer[source_range.start:source_range.end]: from the
    start of the keyword's line through the statement terminator.
    keyword_offset points at the keyword itself and is what diagnostics cite.
    """

    name: str
    kind: UnitKind
    raw_text: str
    source_range: SourceRange
    keyword_offset: int

    def __repr__(self) -> str:
        return f"ExtractedUnit({self.kind.value} {self.name!r} @{self.keyword_offset})"


class FailureReason(str, Enum):
    UNTERMINATED_STRING = "unterminated_string"
    UNTERMINATED_COMMENT = "unterminated_comment"
    UNBALANCED_DELIMITERS = "unbalanced_delimiters"
    MISSING_TERMINATOR = "missing_terminator"
    MISSING_NAME = "missing_name"


@dataclass(frozen=True)
class ScanFailure:
    """A keyword occurrence that could not be extracted.

    resume_offset is where the driver continues looking for the next keyword.
    """

    offset: int
    reason: FailureReason
    message: str
    resume_offset: int
    excerpt: str = ""

    def __str__(self) -> str:
        return f"offset {self.offset}: [{self.reason.value}] {self.message}"


ScanResult = Union[ExtractedUnit, ScanFailure]


# ============================================================
# Classification Rules
# ============================================================


class RuleKind(str, Enum):
    EXPLICIT_NAMES = "names"
    PREFIX = "prefix"
    PATTERN = "pattern"


@dataclass(frozen=True)
class ClassificationRule:
    """Maps matching unit names to a destination module.

    matcher is a frozenset of literal names for EXPLICIT_NAMES, a prefix
    string for PREFIX, and a regular expression anchored at the start of the
    name for PATTERN.
    """

    kind: RuleKind
    matcher: Union[frozenset, str]
    destination: str

    def matches(self, name: str) -> bool:
        if self.kind is RuleKind.EXPLICIT_NAMES:
            return name in self.matcher
        if self.kind is RuleKind.PREFIX:
            return name.startswith(self.matcher)
        return re.match(self.matcher, name) is not None

    def __repr__(self) -> str:
        if self.kind is RuleKind.EXPLICIT_NAMES:
            shown = f"{len(self.matcher)} names"
        else:
            shown = repr(self.matcher)
        return f"ClassificationRule({self.kind.value} {shown} -> {self.destination})"


# ============================================================
# Aggregation
# ============================================================


@dataclass
class RegistrationBucket:
    """Units classified to one destination, in first-encounter order."""

    destination: str
    prompts: list[ExtractedUnit] = field(default_factory=list)
    operations: list[ExtractedUnit] = field(default_factory=list)
    _seen: set[int] = field(default_factory=set, repr=False)

    @property
    def prompt_count(self) -> int:
        return len(self.prompts)

    @property
    def operation_count(self) -> int:
        return len(self.operations)

    def is_empty(self) -> bool:
        return not self.prompts and not self.operations

    def contains(self, unit: ExtractedUnit) -> bool:
        return unit.source_range.start in self._seen

    def append(self, unit: ExtractedUnit) -> bool:
        """Add unit to the sequence for its kind, once per source offset.

        Returns False if the unit was already in the bucket.
        """
        if self.contains(unit):
            return False
        if unit.kind is UnitKind.PROMPT_TEMPLATE:
            self.prompts.append(unit)
        else:
            self.operations.append(unit)
        self._seen.add(unit.source_range.start)
        return True


# ============================================================
# Generation
# ============================================================

CONFIG_FIELD_TYPES = ("string", "list", "flag", "int", "json")


@dataclass(frozen=True)
class ConfigField:
    """One constructor configuration field of a collaborator service."""

    name: str
    env: str
    kind: str = "string"
    required: bool = True
    default: str | None = None


@dataclass(frozen=True)
class DestinationProfile:
    """Collaborator facts declared for a destination in the configuration."""

    destination: str
    service: str | None = None
    config_type: str | None = None
    register_function: str | None = None
    server_name: str | None = None
    imports: tuple[str, ...] = ()
    config: tuple[ConfigField, ...] = ()


@dataclass(frozen=True)
class GenerationManifest:
    """Everything the module generator needs for one destination."""

    destination: str
    service: str
    config_type: str
    register_function: str
    operation_count: int
    prompt_count: int
    imports: tuple[str, ...] = ()
    config: tuple[ConfigField, ...] = ()
    server_name: str | None = None


# ============================================================
# Reporting
# ============================================================


@dataclass(frozen=True)
class UnmappedName:
    name: str
    kind: UnitKind
    offset: int
    line: int


@dataclass(frozen=True)
class AmbiguousName:
    """A unit whose name matched rules for more than one destination."""

    name: str
    kind: UnitKind
    offset: int
    line: int
    chosen: str
    candidates: tuple[str, ...]


@dataclass(frozen=True)
class DestinationCount:
    destination: str
    operations: int
    prompts: int
    output_file: str | None = None


@dataclass(frozen=True)
class GenerationFailure:
    destination: str
    message: str


@dataclass(frozen=True)
class RunReport:
    """Immutable summary of one splitter run."""

    source: str
    total_units: int
    destinations: tuple[DestinationCount, ...]
    unmapped: tuple[UnmappedName, ...] = ()
    ambiguous: tuple[AmbiguousName, ...] = ()
    scan_failures: tuple[ScanFailure, ...] = ()
    generation_failures: tuple[GenerationFailure, ...] = ()
    missing_rule_names: tuple[str, ...] = ()
    fatal_keywords: tuple[str, ...] = ()

    def count_for(self, destination: str) -> DestinationCount | None:
        for entry in self.destinations:
            if entry.destination == destination:
                return entry
        return None

    @property
    def classified_units(self) -> int:
        return sum(d.operations + d.prompts for d in self.destinations)
