"""
Schema matcher.

Walks a document's AST and checks every key against a :class:`SchemaGraph`:

* the key must exist in the graph at all (``UnknownKey``);
* the path from the top-level key down to the node must exist in the graph
  (``SchemaMismatch``);
* a scalar value must have one of the types declared for its key
  (``TypeMismatch``).

All findings are warnings collected by an :class:`ErrorCollector`; a bad key
never stops the walk, but the subtree of an unknown key is not inspected.

Diagnostics carry a *line* computed by counting visited scalars and mappings.
It tracks source lines for ordinary block YAML but is not guaranteed to equal
them; consumers wanting exact positions should use the node offsets.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any

from lsprotocol import types as lsp

from yamlsp.ast import ASTNode, MappingContainerNode, MappingNode, ScalarNode, located
from yamlsp.document import ParsedDocument
from yamlsp.schema import SchemaDefinition, SchemaGraph

logger = logging.getLogger(__name__)


class SchemaWarning(str, Enum):
    UNKNOWN_KEY = 'UnknownKey'
    SCHEMA_MISMATCH = 'SchemaMismatch'
    TYPE_MISMATCH = 'TypeMismatch'


@dataclass
class SchemaDiagnostic:
    node: ASTNode
    message: str
    severity: lsp.DiagnosticSeverity
    start_line: int
    end_line: int
    code: SchemaWarning

    @property
    def start_offset(self) -> int | None:
        return located(self.node).start

    @property
    def end_offset(self) -> int | None:
        return located(self.node).end


class ErrorCollector:
    """Accumulates the diagnostics of one validation run."""

    def __init__(self):
        self._results: list[SchemaDiagnostic] = []

    def add_error_result(self, node: ASTNode, message: str, severity: lsp.DiagnosticSeverity,
                         start_line: int, end_line: int,
                         code: SchemaWarning) -> SchemaDiagnostic:
        result = SchemaDiagnostic(node, message, severity, start_line, end_line, code)
        self._results.append(result)
        return result

    def get_error_results(self) -> list[SchemaDiagnostic]:
        return list(self._results)

    def __len__(self) -> int:
        return len(self._results)


class SchemaMatcher:
    """Validate one :class:`ParsedDocument` against a :class:`SchemaGraph`.

    Create a fresh matcher per run; :meth:`run` walks the whole document.
    """

    def __init__(self, graph: SchemaGraph, document: ParsedDocument):
        self.graph = graph
        self.document = document
        self.line_count = 0
        self.error_collector = ErrorCollector()

    # -- traversal ---------------------------------------------------------

    def run(self) -> SchemaMatcher:
        stack = [self.document.root] if self.document.root is not None else []
        while stack:
            node = stack.pop()
            if self.visit(node):
                stack.extend(reversed(node.children()))
        logger.debug('SchemaMatcher: %d node line(s), %d warning(s)',
                     self.line_count, len(self.error_collector))
        return self

    def visit(self, node: ASTNode) -> bool:
        """Check *node*; return False to skip its subtree."""
        if isinstance(node, ScalarNode):
            parent = self.document.parent(node)
            if isinstance(parent, MappingNode) and parent.value is node:
                self.validate(node, parent.key, node.value)
            elif isinstance(parent, MappingNode):
                # Keys are checked through their pair.
                return False
            self.line_count += 1
        elif isinstance(node, MappingNode):
            if node.key is None:
                # Complex keys have no name in the graph.
                logger.debug('SchemaMatcher: skipping pair with a %s key',
                             node.key_node.kind if node.key_node else 'missing')
                return False
            result = self.validate(node, node.key, node.key)
            if result is not None and result.code is SchemaWarning.UNKNOWN_KEY:
                return False
        elif isinstance(node, MappingContainerNode):
            self.line_count += 1
        return True

    # -- checks ------------------------------------------------------------

    def validate(self, node: ASTNode, key: str | None, value: Any) -> SchemaDiagnostic | None:
        if key not in self.graph:
            return self._report(node, SchemaWarning.UNKNOWN_KEY, f'Unknown key "{key}"')
        definitions = self.match(node)
        if not definitions:
            return self._report(node, SchemaWarning.SCHEMA_MISMATCH,
                                f'"{key}" is not allowed at this position')
        if not self.verify_type(definitions, value, node):
            expected = ' | '.join(sorted({d.type.value for d in definitions}))
            return self._report(node, SchemaWarning.TYPE_MISMATCH,
                                f'Value of "{key}" should be of type {expected}')
        return None

    def verify_type(self, definitions: tuple[SchemaDefinition, ...], value: Any,
                    node: ASTNode) -> bool:
        if isinstance(node, ScalarNode):
            return any(d.accepts(value) for d in definitions)
        return True

    def ancestor_keys(self, node: ASTNode) -> list[str | None]:
        """Keys of the pairs enclosing *node*, nearest first."""
        return [a.key for a in self.document.ancestors(node) if isinstance(a, MappingNode)]

    def match(self, node: ASTNode) -> tuple[SchemaDefinition, ...]:
        """Definitions for *node*'s key at its position, or ``()`` if the
        graph has no path matching the node's ancestors."""
        chain = self.ancestor_keys(node)
        is_pair = isinstance(node, MappingNode)
        if not chain:
            return self.graph.get(node.key, ()) if is_pair else ()
        if len(chain) == 1 and not is_pair:
            return self.graph.get(chain[0], ())

        route = tuple(reversed(chain))
        if is_pair:
            return self.search(route, node.key, len(chain) + 1)
        return self.search(route, chain[0], len(chain))

    def search(self, route: tuple[str | None, ...], target: str | None,
               length: int) -> tuple[SchemaDefinition, ...]:
        """Breadth-first search for a graph path of *length* keys ending in
        *target* whose prefix follows *route* (top-level key first).

        Only paths whose last key sits on *route* are extended, so the
        frontier never leaves the real ancestor chain.
        """
        frontier: deque[tuple[str, ...]] = deque()
        seen: set[tuple[str, ...]] = set()

        def extend(path: tuple[str, ...], definitions: tuple[SchemaDefinition, ...]) -> None:
            for definition in definitions:
                for child in definition.children:
                    candidate = path + (child,)
                    if candidate not in seen:
                        seen.add(candidate)
                        frontier.append(candidate)

        extend((route[0],), self.graph.get(route[0], ()))
        while frontier:
            path = frontier.popleft()
            last = path[-1]
            if len(path) == length and last == target:
                return self.graph.definitions(last)
            if len(path) <= len(route) and last == route[len(path) - 1]:
                extend(path, self.graph.definitions(last))
        return ()

    def _report(self, node: ASTNode, code: SchemaWarning, message: str) -> SchemaDiagnostic:
        line = max(self.line_count - 1, 0)
        return self.error_collector.add_error_result(
            node, message, lsp.DiagnosticSeverity.Warning, line, line, code,
        )

    def get_error_results(self) -> list[SchemaDiagnostic]:
        return self.error_collector.get_error_results()


def validate_document(graph: SchemaGraph, document: ParsedDocument) -> SchemaMatcher:
    """Run a fresh :class:`SchemaMatcher` over *document* and return it."""
    return SchemaMatcher(graph, document).run()
