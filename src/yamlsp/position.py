"""
Offset → AST node resolution.

Used by completion and hover to find the node a cursor belongs to.  On a line
with content the innermost node whose range contains the offset wins.  On a
blank line (where the user is about to type) the node closest to the cursor is
chosen and then lifted to the ancestor whose indentation matches the cursor's,
since that is the mapping a new key would be inserted into.
"""
from __future__ import annotations

import math

from yamlsp.ast import ASTNode, MappingNode, ScalarNode, walk
from yamlsp.document import ParsedDocument
from yamlsp.text import TextBuffer, indentation


class PositionIndex:

    def __init__(self, document: ParsedDocument, buffer: TextBuffer):
        self.document = document
        self.buffer = buffer

    def resolve(self, offset: int) -> tuple[ASTNode | None, bool]:
        """Return ``(node, is_blank_line)`` for *offset*.

        The flag is set whenever *node* comes from the closest-node search:
        on a blank line, and on a line no node covers (``---``, a comment
        outside the root).  Otherwise *node* contains *offset*.
        """
        line, _ = self.buffer.position(offset)
        if not self.buffer.line_content(line).strip():
            return self.closest_node(offset), True

        node = self.containing_node(offset)
        if node is None:
            return self.closest_node(offset), True
        return node, False

    def containing_node(self, offset: int) -> ASTNode | None:
        """Innermost node whose range contains *offset*.

        A node that does not contain the offset is not descended into; this
        relies on child ranges always nesting inside their parent's.
        Range-less wrappers neither match nor prune.
        """
        best = None
        stack = [self.document.root] if self.document.root is not None else []
        while stack:
            node = stack.pop()
            if node.range is not None:
                if not node.contains(offset):
                    continue
                best = node
            stack.extend(reversed(node.children()))
        return best

    def closest_node(self, offset: int) -> ASTNode | None:
        best = None
        best_diff = math.inf
        max_start = self.document.start
        for node in walk(self.document.root):
            if node.range is None:
                continue
            diff = abs(node.end - offset)
            if max_start <= node.start and diff <= best_diff:
                best, best_diff, max_start = node, diff, node.start

        if isinstance(best, ScalarNode) and best.value is None:
            return best

        line, column = self.buffer.position(offset)
        indent = indentation(self.buffer.line_content(line), column)
        if indent == column:
            best = self._parent_by_indentation(indent, best)
        return best

    def _parent_by_indentation(self, indent: int, node: ASTNode | None) -> ASTNode | None:
        while True:
            if node is None:
                return self.document.root
            if node.range is not None:
                _, column = self.buffer.position(node.start)
                if column == indent or column == 0:
                    return node
                parent = self.document.parent(node)
                if parent is None:
                    return node
                node = parent
            elif isinstance(node, MappingNode):
                node = self.document.parent(node)
            else:
                return node
