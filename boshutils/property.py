"""Nested property values: string-keyed maps, lists and primitives."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict, List

import yaml

Property = Any
PropertyMap = Dict[str, Property]
PropertyList = List[Property]


class PropertyError(ValueError):
    """Raised when raw data cannot be turned into properties."""


def build_map(raw_properties: Mapping[Any, Any]) -> PropertyMap:
    """Build a string-keyed map, converting nested maps and lists."""
    result: PropertyMap = {}
    for name, value in raw_properties.items():
        if not isinstance(name, str):
            raise PropertyError(f"Map contains non-string key {name!r}")
        result[name] = build(value)
    return result


def build_list(raw_properties: Any) -> PropertyList:
    """Build a list, converting nested maps and lists."""
    return [build(value) for value in raw_properties]


def build(value: Any) -> Property:
    """Build a map, a list, or return a primitive unchanged."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        return build_map(value)
    if isinstance(value, (list, tuple)):
        return build_list(value)
    return value


def map_from_yaml(text: str | bytes) -> PropertyMap:
    """Parse a YAML document whose top level is a mapping into a property map."""
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as err:
        raise PropertyError(f"Parsing YAML: {err}") from err
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise PropertyError(f"Expected a YAML mapping but found {type(raw).__name__}")
    return build_map(raw)