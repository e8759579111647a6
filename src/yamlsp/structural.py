"""
Structural JSON Schema validation behind :meth:`ParsedDocument.get_schemas`.

Given a schema and an offset, report every AST node on the path from the root
down to the offset together with the subschema that applies to it and whether
the node's value satisfies that subschema.  Only ``properties``,
``additionalProperties`` and ``items`` are followed; references and
combinators are left to ``jsonschema`` when it validates each node.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from jsonschema.validators import validator_for

from yamlsp.ast import (
    ASTNode,
    AnchorReferenceNode,
    MappingContainerNode,
    SequenceNode,
    to_python,
)

logger = logging.getLogger(__name__)


@dataclass
class SchemaMatch:
    node: ASTNode
    schema: Mapping[str, Any]
    valid: bool


class JsonSchemaValidator:

    def validate(self, root: ASTNode | None, schema: Mapping[str, Any],
                 matches: list[SchemaMatch], offset: int) -> None:
        """Append a :class:`SchemaMatch` to *matches* for each node containing *offset*.

        Raises ``jsonschema.exceptions.SchemaError`` if *schema* itself is invalid.
        """
        validator_cls = validator_for(schema)
        validator_cls.check_schema(schema)
        self._walk(root, schema, validator_cls(schema), matches, offset)
        logger.debug('JsonSchemaValidator: %d match(es) at offset %d', len(matches), offset)

    def _walk(self, node, schema, root_validator, matches, offset) -> None:
        while node is not None and isinstance(schema, Mapping):
            if not node.contains(offset):
                return
            # evolve() keeps the root resolver, so local $refs still resolve.
            valid = root_validator.evolve(schema=schema).is_valid(to_python(node))
            matches.append(SchemaMatch(node, schema, valid))
            node, schema = self._step(node, schema, offset)

    def _step(self, node: ASTNode, schema: Mapping[str, Any],
              offset: int) -> tuple[ASTNode | None, Any]:
        """The child of *node* holding *offset* and its subschema."""
        if isinstance(node, AnchorReferenceNode):
            return None, None
        if isinstance(node, MappingContainerNode):
            properties = schema.get('properties', {})
            for pair in node.mappings:
                value = pair.value
                if value is None or not value.contains(offset):
                    continue
                if pair.key in properties:
                    return value, properties[pair.key]
                return value, schema.get('additionalProperties')
            return None, None
        if isinstance(node, SequenceNode):
            items = schema.get('items')
            for item in node.items:
                if item is not None and item.contains(offset):
                    return item, items
            return None, None
        return None, None
