"""
Schema graph: key name → definitions, each with a declared type and the key
names allowed beneath it.

The graph is the simplified form the schema matcher searches.  It can be
written by hand (``{"spec": [{"type": "object", "children": ["replicas"]}]}``)
or derived from a JSON Schema with :meth:`SchemaGraph.from_json_schema`.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class SchemaGraphError(Exception):
    """The schema graph itself is inconsistent (e.g. a child key with no entry)."""


class SchemaType(str, Enum):
    STRING = 'string'
    NUMBER = 'number'
    INTEGER = 'integer'
    BOOLEAN = 'boolean'
    OBJECT = 'object'
    ARRAY = 'array'
    NULL = 'null'
    ANY = 'any'

    @classmethod
    def parse(cls, name: str) -> SchemaType:
        try:
            return cls(name.lower())
        except ValueError:
            raise SchemaGraphError(f'unknown schema type {name!r}') from None

    @classmethod
    def for_value(cls, value: Any) -> frozenset[SchemaType]:
        """Every declared type that *value* satisfies.

        Numbers, integral or not, satisfy both ``number`` and ``integer``.
        """
        if value is None:
            kinds = {cls.NULL}
        elif isinstance(value, bool):
            kinds = {cls.BOOLEAN}
        elif isinstance(value, (int, float)):
            kinds = {cls.NUMBER, cls.INTEGER}
        elif isinstance(value, str):
            kinds = {cls.STRING}
        elif isinstance(value, Mapping):
            kinds = {cls.OBJECT}
        elif isinstance(value, (list, tuple)):
            kinds = {cls.ARRAY}
        else:
            kinds = set()
        return frozenset(kinds | {cls.ANY})


@dataclass(frozen=True)
class SchemaDefinition:
    type: SchemaType
    children: tuple[str, ...] = ()

    def accepts(self, value: Any) -> bool:
        return self.type in SchemaType.for_value(value)


class SchemaGraph(Mapping):
    """Read-only ``key → tuple[SchemaDefinition, ...]`` mapping."""

    def __init__(self, definitions: Mapping[str, tuple[SchemaDefinition, ...]]):
        self._definitions = {key: tuple(defs) for key, defs in definitions.items()}

    def __getitem__(self, key: str) -> tuple[SchemaDefinition, ...]:
        return self._definitions[key]

    def __iter__(self):
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __repr__(self) -> str:
        return f'SchemaGraph({len(self)} keys)'

    def definitions(self, key: str) -> tuple[SchemaDefinition, ...]:
        """Definitions for *key*; a missing key is a defect in the graph."""
        try:
            return self._definitions[key]
        except KeyError:
            raise SchemaGraphError(f'key {key!r} is referenced but has no definition') from None

    def dangling_children(self) -> list[tuple[str, str]]:
        """``(parent, child)`` pairs whose child key has no entry."""
        return [
            (key, child)
            for key, defs in self._definitions.items()
            for d in defs
            for child in d.children
            if child not in self._definitions
        ]

    # -- construction ------------------------------------------------------

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SchemaGraph:
        """Build from ``{key: [{"type": ..., "children": [...]}, ...]}``."""
        definitions = {}
        for key, entries in data.items():
            if isinstance(entries, Mapping):
                entries = [entries]
            definitions[key] = tuple(
                SchemaDefinition(
                    type=SchemaType.parse(entry.get('type', 'any')),
                    children=tuple(entry.get('children', ())),
                )
                for entry in entries
            )
        return cls(definitions)

    @classmethod
    def from_json_schema(cls, schema: Mapping[str, Any]) -> SchemaGraph:
        """Derive the key graph from a JSON Schema's nested ``properties``.

        Every property name becomes a key; its definitions list the declared
        type(s) and the names of its own properties (for arrays, those of
        ``items``).  A name used at several places collects all its distinct
        definitions under one key.
        """
        definitions: dict[str, list[SchemaDefinition]] = {}
        seen: set[int] = set()

        def visit(properties: Mapping[str, Any]) -> None:
            for name, subschema in properties.items():
                if not isinstance(subschema, Mapping):
                    continue
                children = _property_names(subschema)
                bucket = definitions.setdefault(name, [])
                for type_name in _declared_types(subschema):
                    definition = SchemaDefinition(SchemaType.parse(type_name), tuple(children))
                    if definition not in bucket:
                        bucket.append(definition)
                if id(subschema) in seen:
                    continue
                seen.add(id(subschema))
                visit(_nested_properties(subschema))

        visit(_nested_properties(schema))
        return cls(definitions)


def _declared_types(schema: Mapping[str, Any]) -> list[str]:
    declared = schema.get('type')
    if isinstance(declared, str):
        return [declared]
    if isinstance(declared, list) and declared:
        return [t for t in declared if isinstance(t, str)]
    if 'properties' in schema:
        return ['object']
    if 'items' in schema:
        return ['array']
    return ['any']


def _nested_properties(schema: Mapping[str, Any]) -> Mapping[str, Any]:
    properties = schema.get('properties')
    if isinstance(properties, Mapping):
        return properties
    items = schema.get('items')
    if isinstance(items, Mapping) and isinstance(items.get('properties'), Mapping):
        return items['properties']
    return {}


def _property_names(schema: Mapping[str, Any]) -> list[str]:
    return list(_nested_properties(schema))


def load_schema_graph(path: str | Path) -> SchemaGraph:
    """Load a schema graph from a JSON or YAML file.

    A file that looks like a JSON Schema (``$schema`` or ``properties`` at the
    top level) goes through :meth:`SchemaGraph.from_json_schema`; anything
    else is read as a plain graph.
    """
    path = Path(path)
    text = path.read_text(encoding='utf-8')
    if path.suffix.lower() == '.json':
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, Mapping):
        raise SchemaGraphError(f'{path}: expected a mapping at the top level')

    if '$schema' in data or isinstance(data.get('properties'), Mapping):
        graph = SchemaGraph.from_json_schema(data)
    else:
        graph = SchemaGraph.from_mapping(data)

    dangling = graph.dangling_children()
    if dangling:
        logger.warning('load_schema_graph: %s has %d child key(s) without a definition: %s',
                       path, len(dangling), ', '.join(child for _, child in dangling[:5]))
    logger.debug('load_schema_graph: %s → %r', path, graph)
    return graph
