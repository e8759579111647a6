"""
Uniform YAML AST.

The tree is independent of the parser's native node types.  Five node kinds
exist:

* :class:`ScalarNode` – a plain, quoted or block scalar.
* :class:`MappingNode` – one ``key: value`` pair.  It is a wrapper and has no
  range of its own; its key and value carry the positions.
* :class:`MappingContainerNode` – a mapping, i.e. an ordered list of pairs.
* :class:`SequenceNode` – a sequence.
* :class:`AnchorReferenceNode` – an alias (``*name``).

Ownership runs root → children only.  Upward navigation goes through a
:class:`ParentIndex` built once per parse; nodes never point at their parent.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator


@dataclass(eq=False)
class ASTNode:
    start: int | None
    end: int | None
    tag: str | None = None
    comment_before: str | None = field(default=None, repr=False)
    comment: str | None = field(default=None, repr=False)

    kind = 'node'

    @property
    def range(self) -> tuple[int, int] | None:
        if self.start is None or self.end is None:
            return None
        return self.start, self.end

    def contains(self, offset: int) -> bool:
        return self.range is not None and self.start <= offset <= self.end

    def children(self) -> list[ASTNode]:
        return []


@dataclass(eq=False)
class ScalarNode(ASTNode):
    value: Any = None
    raw: str = ''
    style: str | None = None

    kind = 'scalar'


@dataclass(eq=False)
class MappingNode(ASTNode):
    key_node: ASTNode | None = None
    value: ASTNode | None = None

    kind = 'mapping'

    @property
    def key(self) -> str | None:
        """The key as text; complex (non-scalar) keys yield ``None``."""
        if isinstance(self.key_node, ScalarNode):
            return self.key_node.raw
        return None

    def children(self) -> list[ASTNode]:
        return [n for n in (self.key_node, self.value) if n is not None]


@dataclass(eq=False)
class MappingContainerNode(ASTNode):
    mappings: list[MappingNode] = field(default_factory=list)

    kind = 'map'

    def children(self) -> list[ASTNode]:
        return list(self.mappings)


@dataclass(eq=False)
class SequenceNode(ASTNode):
    items: list[ASTNode] = field(default_factory=list)

    kind = 'sequence'

    def children(self) -> list[ASTNode]:
        return list(self.items)


@dataclass(eq=False)
class AnchorReferenceNode(ASTNode):
    anchor: str = ''
    # Non-owning: the anchored node lives elsewhere in the tree.
    target: ASTNode | None = field(default=None, repr=False)

    kind = 'alias'


def located(node: ASTNode) -> ASTNode:
    """*node* itself, or for a pair the key node that carries its position."""
    if isinstance(node, MappingNode) and node.key_node is not None:
        return node.key_node
    return node


def walk(root: ASTNode | None) -> Iterator[ASTNode]:
    """Yield every node under *root* in pre-order (document order)."""
    if root is None:
        return
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children()))


class ParentIndex:
    """Child → parent lookup table for one AST, built once."""

    def __init__(self, root: ASTNode | None):
        self._parents: dict[ASTNode, ASTNode] = {}
        for node in walk(root):
            for child in node.children():
                self._parents[child] = node

    def parent(self, node: ASTNode) -> ASTNode | None:
        return self._parents.get(node)

    def ancestors(self, node: ASTNode) -> Iterator[ASTNode]:
        """Yield the proper ancestors of *node*, nearest first."""
        parent = self._parents.get(node)
        while parent is not None:
            yield parent
            parent = self._parents.get(parent)

    def __len__(self) -> int:
        return len(self._parents)


def to_python(node: ASTNode | None, _active: frozenset[int] = frozenset()) -> Any:
    """Convert *node* into plain Python data (dict / list / scalar values).

    Aliases are followed; a recursive alias collapses to ``None``.
    """
    if node is None or id(node) in _active:
        return None
    active = _active | {id(node)}
    if isinstance(node, ScalarNode):
        return node.value
    if isinstance(node, AnchorReferenceNode):
        return to_python(node.target, active)
    if isinstance(node, SequenceNode):
        return [to_python(item, active) for item in node.items]
    if isinstance(node, MappingContainerNode):
        result = {}
        for pair in node.mappings:
            key = to_python(pair.key_node, active)
            if isinstance(key, (list, dict)):
                # Unhashable complex key: fall back to its text form.
                key = str(key)
            result[key] = to_python(pair.value, active)
        return result
    return None
