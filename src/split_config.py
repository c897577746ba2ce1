"""Split configuration loader for SplitForge.

Loads the registration keywords, the ordered classification rule table and
the per-destination collaborator profiles from YAML. The built-in defaults
live in references/split_config.yaml; an override file replaces only the
top-level sections it defines.

Usage:
    from split_config import load_split_config

    config = load_split_config()                    # built-in defaults
    config = load_split_config("my_rules.yaml")     # defaults + overrides
    config.rules, config.keywords, config.destinations
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from paths import SPLIT_CONFIG_PATH
from split_ir import (
    CONFIG_FIELD_TYPES,
    ClassificationRule,
    ConfigField,
    DestinationProfile,
    RuleKind,
    UnitKind,
)

_KIND_NAMES = {kind.value: kind for kind in UnitKind}
_RULE_KEYS = ("names", "prefix", "pattern")


@dataclass
class SplitConfig:
    """Complete parsed configuration."""
    keywords: dict[str, UnitKind]
    rules: list[ClassificationRule]
    destinations: dict[str, DestinationProfile] = field(default_factory=dict)

    def profile_for(self, destination: str) -> DestinationProfile:
        """The declared profile, or an empty one if the destination has none."""
        return self.destinations.get(destination, DestinationProfile(destination=destination))


# ============================================================
# Section Parsers
# ============================================================

def _parse_keywords(raw: Any, source: str) -> dict[str, UnitKind]:
    if not isinstance(raw, dict) or not raw:
        raise ValueError(f"Invalid split config: 'keywords' must be a non-empty mapping in {source}")
    keywords: dict[str, UnitKind] = {}
    for keyword, kind_name in raw.items():
        if not isinstance(keyword, str) or "(" not in keyword:
            raise ValueError(
                f"Invalid keyword {keyword!r} in {source}: a keyword must include "
                f"the call's opening parenthesis, e.g. 'server.tool('"
            )
        if kind_name not in _KIND_NAMES:
            raise ValueError(
                f"Invalid kind {kind_name!r} for keyword {keyword!r} in {source}: "
                f"expected one of {sorted(_KIND_NAMES)}"
            )
        keywords[keyword] = _KIND_NAMES[kind_name]
    return keywords


def _parse_rule(index: int, rdata: Any, source: str) -> ClassificationRule:
    if not isinstance(rdata, dict):
        raise ValueError(f"Invalid rule #{index} in {source}: expected a mapping")
    destination = rdata.get("destination")
    if not destination or not isinstance(destination, str):
        raise ValueError(f"Invalid rule #{index} in {source}: missing 'destination'")

    present = [key for key in _RULE_KEYS if key in rdata]
    if len(present) != 1:
        raise ValueError(
            f"Invalid rule #{index} ({destination}) in {source}: expected exactly one "
            f"of {list(_RULE_KEYS)}, got {present}"
        )
    key = present[0]
    value = rdata[key]

    if key == "names":
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValueError(f"Invalid rule #{index} ({destination}) in {source}: 'names' must be a list of strings")
        return ClassificationRule(RuleKind.EXPLICIT_NAMES, frozenset(value), destination)

    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid rule #{index} ({destination}) in {source}: '{key}' must be a non-empty string")
    if key == "prefix":
        return ClassificationRule(RuleKind.PREFIX, value, destination)
    try:
        re.compile(value)
    except re.error as e:
        raise ValueError(f"Invalid rule #{index} ({destination}) in {source}: bad pattern {value!r}: {e}") from e
    return ClassificationRule(RuleKind.PATTERN, value, destination)


def _parse_rules(raw: Any, source: str) -> list[ClassificationRule]:
    if not isinstance(raw, list):
        raise ValueError(f"Invalid split config: 'rules' must be a list in {source}")
    return [_parse_rule(i, rdata, source) for i, rdata in enumerate(raw)]


def _parse_config_field(destination: str, fdata: Any, source: str) -> ConfigField:
    if not isinstance(fdata, dict) or "field" not in fdata or "env" not in fdata:
        raise ValueError(
            f"Invalid config field for {destination} in {source}: "
            f"each entry needs 'field' and 'env'"
        )
    kind = fdata.get("type", "string")
    if kind not in CONFIG_FIELD_TYPES:
        raise ValueError(
            f"Invalid config field type {kind!r} for {destination}.{fdata['field']} "
            f"in {source}: expected one of {list(CONFIG_FIELD_TYPES)}"
        )
    default = fdata.get("default")
    return ConfigField(
        name=str(fdata["field"]),
        env=str(fdata["env"]),
        kind=kind,
        required=bool(fdata.get("required", True)),
        default=None if default is None else str(default),
    )


def _parse_destinations(raw: Any, source: str) -> dict[str, DestinationProfile]:
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid split config: 'destinations' must be a mapping in {source}")
    destinations: dict[str, DestinationProfile] = {}
    for name, ddata in raw.items():
        ddata = ddata or {}
        if not isinstance(ddata, dict):
            raise ValueError(f"Invalid destination {name!r} in {source}: expected a mapping")
        service = ddata.get("service")
        destinations[name] = DestinationProfile(
            destination=name,
            service=service,
            config_type=ddata.get("config_type") or (
                service.replace("Service", "Config") if service else None
            ),
            register_function=ddata.get("register_function"),
            server_name=ddata.get("server_name"),
            imports=tuple(ddata.get("imports") or []),
            config=tuple(
                _parse_config_field(name, fdata, source)
                for fdata in ddata.get("config") or []
            ),
        )
    return destinations


# ============================================================
# Public API
# ============================================================

def parse_split_config(
    raw: Any,
    source: str = "<config>",
    base: SplitConfig | None = None,
) -> SplitConfig:
    """Build a SplitConfig from an already-loaded YAML document.

    Sections missing from raw are taken from base; without a base, 'keywords'
    and 'rules' are required.

    Raises:
        ValueError: If the document is malformed.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid split config: expected a mapping at top level in {source}")

    unknown = sorted(set(raw) - {"keywords", "rules", "destinations"})
    if unknown:
        raise ValueError(f"Invalid split config: unknown sections {unknown} in {source}")

    if base is None and ("keywords" not in raw or "rules" not in raw):
        raise ValueError(f"Invalid split config: missing 'keywords' or 'rules' key in {source}")

    keywords = _parse_keywords(raw["keywords"], source) if "keywords" in raw else dict(base.keywords)
    rules = _parse_rules(raw["rules"], source) if "rules" in raw else list(base.rules)
    if "destinations" in raw:
        destinations = _parse_destinations(raw["destinations"], source)
    elif base is not None:
        destinations = dict(base.destinations)
    else:
        destinations = {}

    return SplitConfig(keywords=keywords, rules=rules, destinations=destinations)


def load_split_config(
    config_path: str | Path | None = None,
    defaults_path: str | Path | None = None,
) -> SplitConfig:
    """Load the split configuration.

    Args:
        config_path: Optional override file. Its sections replace the
            corresponding default sections.
        defaults_path: Path to the defaults. Defaults to
            references/split_config.yaml.

    Returns:
        SplitConfig with keywords, rules and destination profiles.

    Raises:
        FileNotFoundError: If a config file doesn't exist.
        ValueError: If a config is malformed.
    """
    base_path = Path(defaults_path) if defaults_path else SPLIT_CONFIG_PATH
    base = parse_split_config(_read_yaml(base_path), str(base_path))
    if config_path is None:
        return base
    path = Path(config_path)
    return parse_split_config(_read_yaml(path), str(path), base=base)


def config_from_text(text: str, base: SplitConfig | None = None) -> SplitConfig:
    """Parse YAML text (e.g. posted to the HTTP surface) over base."""
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid split config YAML: {e}") from e
    return parse_split_config(raw, "<inline>", base=base)


def _read_yaml(path: Path) -> Any:
    if not path.exists():
        raise FileNotFoundError(f"Split config not found: {path}")
    with open(path) as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid split config YAML in {path}: {e}") from e
