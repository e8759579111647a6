"""
YAML parsing boundary.

PyYAML does the grammar work.  This module adapts its output to what the rest
of the package needs:

* the token stream (``yaml.scan``), shared by every document of a stream;
* one :class:`NativeDocument` per ``---`` section, composed with a loader that
  keeps aliases as :class:`AliasNode` instead of splicing in the anchored node
  (otherwise one node would have two parents);
* comments.  PyYAML's scanner discards them, so they are recovered from the
  source text, using the token spans to skip ``#`` characters that belong to
  scalars, and attributed to the nearest native node;
* :func:`convert`, which builds the uniform AST from a native document.
"""
from __future__ import annotations

import logging
import re
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Iterator

import yaml
from yaml.composer import ComposerError
from yaml.constructor import ConstructorError, SafeConstructor

from yamlsp.ast import (
    ASTNode,
    AnchorReferenceNode,
    MappingContainerNode,
    MappingNode,
    ScalarNode,
    SequenceNode,
)

logger = logging.getLogger(__name__)

STANDARD_TAG_PREFIX = 'tag:yaml.org,2002:'

# Scalar tags whose values are constructed into Python objects.  Everything
# else (timestamps, binary, custom tags, ...) keeps its source text.
_CONSTRUCTED_TAGS = frozenset(
    STANDARD_TAG_PREFIX + name for name in ('null', 'bool', 'int', 'float', 'str')
)

# Tokens whose text may legitimately contain '#'.
_TEXT_TOKENS = (
    yaml.ScalarToken, yaml.TagToken, yaml.AnchorToken, yaml.AliasToken,
    yaml.DirectiveToken,
)

_COMMENT_RE = re.compile(r'(?:^|(?<=[ \t]))#', re.MULTILINE)


# ---------------------------------------------------------------------------
# Native structures
# ---------------------------------------------------------------------------

class AliasNode(yaml.Node):
    """An unresolved ``*alias``; ``value`` is the anchored native node."""
    id = 'alias'

    def __init__(self, anchor, target, start_mark, end_mark):
        super().__init__(None, target, start_mark, end_mark)
        self.anchor = anchor


@dataclass
class Comment:
    offset: int      # index of the '#'
    line: int        # 0-based
    text: str        # text after '#', trailing whitespace stripped
    inline: bool     # True when content precedes it on the same line


@dataclass
class NativeDocument:
    """One composed document plus everything PyYAML reported while building it."""
    root: yaml.Node | None
    start: int
    end: int
    errors: list[yaml.YAMLError] = field(default_factory=list)
    comment_before: str | None = None
    comment: str | None = None
    comments_before: dict[yaml.Node, str] = field(default_factory=dict, repr=False)
    inline_comments: dict[yaml.Node, str] = field(default_factory=dict, repr=False)


class _ComposingLoader(yaml.SafeLoader):
    def compose_node(self, parent, index):
        if self.check_event(yaml.AliasEvent):
            event = self.get_event()
            if event.anchor not in self.anchors:
                raise ComposerError(None, None, 'found undefined alias %r' % event.anchor,
                                    event.start_mark)
            return AliasNode(event.anchor, self.anchors[event.anchor],
                             event.start_mark, event.end_mark)
        return super().compose_node(parent, index)


def walk_native(root: yaml.Node | None) -> Iterator[yaml.Node]:
    """Pre-order walk over a native tree; aliases are leaves."""
    stack = [root] if root is not None else []
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, yaml.SequenceNode):
            children = list(node.value)
        elif isinstance(node, yaml.MappingNode):
            children = [part for pair in node.value for part in pair]
        else:
            children = []
        stack.extend(reversed(children))


# ---------------------------------------------------------------------------
# Scanning / composing
# ---------------------------------------------------------------------------

def scan_tokens(text: str) -> list[yaml.Token]:
    """Return the token stream for *text*, up to the first scanner error."""
    tokens: list[yaml.Token] = []
    try:
        for token in yaml.scan(text, Loader=yaml.SafeLoader):
            tokens.append(token)
    except yaml.YAMLError as exc:
        logger.debug('scan_tokens: stopped after %d tokens: %s', len(tokens), exc)
    return tokens


def compose_documents(text: str, tokens: list[yaml.Token]) -> list[NativeDocument]:
    """Compose every document of *text*.

    Composition stops at the first error; the error is recorded on the
    document being built at that point (a fresh, root-less document if the
    failure happened between documents).
    """
    documents: list[NativeDocument] = []
    current: NativeDocument | None = None
    loader = _ComposingLoader(text)
    try:
        while loader.check_node():
            start_event = loader.get_event()
            current = NativeDocument(root=None, start=start_event.start_mark.index,
                                     end=len(text))
            documents.append(current)
            current.root = loader.compose_node(None, None)
            end_event = loader.get_event()
            current.end = end_event.end_mark.index
            loader.anchors = {}
            current = None
    except yaml.YAMLError as exc:
        if current is None:
            current = NativeDocument(root=None, start=error_offset(exc), end=len(text))
            documents.append(current)
        current.errors.append(exc)
        logger.debug('compose_documents: %s', exc)
    finally:
        loader.dispose()

    _distribute_comments(documents, scan_comments(text, tokens))
    return documents


def error_offset(exc: yaml.YAMLError) -> int:
    mark = getattr(exc, 'problem_mark', None) or getattr(exc, 'context_mark', None)
    if mark is not None:
        return mark.index
    return getattr(exc, 'position', 0) or 0


def error_message(exc: yaml.YAMLError) -> str:
    problem = getattr(exc, 'problem', None)
    if problem:
        context = getattr(exc, 'context', None)
        return f'{context}, {problem}' if context else problem
    return str(exc)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

def scan_comments(text: str, tokens: list[yaml.Token]) -> list[Comment]:
    """Find every comment in *text* in source order."""
    spans = sorted(
        (t.start_mark.index, t.end_mark.index)
        for t in tokens
        if isinstance(t, _TEXT_TOKENS) and t.end_mark.index > t.start_mark.index
    )
    span_starts = [s for s, _ in spans]

    comments: list[Comment] = []
    skip_until = -1
    for m in _COMMENT_RE.finditer(text):
        pos = m.start()
        if pos < skip_until:
            continue
        i = bisect_right(span_starts, pos) - 1
        if i >= 0 and spans[i][0] <= pos < spans[i][1]:
            continue
        line_start = text.rfind('\n', 0, pos) + 1
        line_end = text.find('\n', pos)
        if line_end == -1:
            line_end = len(text)
        comments.append(Comment(
            offset=pos,
            line=text.count('\n', 0, pos),
            text=text[pos + 1:line_end].rstrip(),
            inline=bool(text[line_start:pos].strip()),
        ))
        skip_until = line_end
    return comments


def _join(existing: str | None, text: str) -> str:
    return text if existing is None else f'{existing}\n{text}'


def _distribute_comments(documents: list[NativeDocument], comments: list[Comment]) -> None:
    if not documents:
        return
    remaining = list(comments)
    for i, doc in enumerate(documents):
        last = i == len(documents) - 1
        mine = [c for c in remaining if last or c.offset < doc.end]
        remaining = remaining[len(mine):]
        _attach_comments(doc, mine)


def _attach_comments(doc: NativeDocument, comments: list[Comment]) -> None:
    nodes = list(walk_native(doc.root))
    root_start = doc.root.start_mark.index if doc.root is not None else None

    for c in comments:
        if root_start is None or c.offset < root_start:
            doc.comment_before = _join(doc.comment_before, c.text)
            continue
        host = _inline_host(nodes, c) if c.inline else _following_node(nodes, c)
        if host is None:
            doc.comment = _join(doc.comment, c.text)
        elif c.inline:
            doc.inline_comments[host] = _join(doc.inline_comments.get(host), c.text)
        else:
            doc.comments_before[host] = _join(doc.comments_before.get(host), c.text)


def _following_node(nodes: list[yaml.Node], c: Comment) -> yaml.Node | None:
    for node in nodes:
        if node.start_mark.index > c.offset:
            return node
    return None


def _inline_host(nodes: list[yaml.Node], c: Comment) -> yaml.Node | None:
    """The node ending last before *c* on the comment's line."""
    host, best_end = None, -1
    for node in nodes:
        end = node.end_mark
        if end.line == c.line and best_end <= end.index <= c.offset:
            host, best_end = node, end.index
    return host


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

def custom_tag_kinds(custom_tags: list[str]) -> dict[str, set[str]]:
    """Parse ``["!Ref", "!Seq sequence"]`` into ``{'!Ref': {'scalar'}, ...}``."""
    kinds: dict[str, set[str]] = {}
    for entry in custom_tags:
        parts = entry.split()
        if not parts:
            continue
        kind = parts[1].lower() if len(parts) > 1 else 'scalar'
        kinds.setdefault(parts[0], set()).add(kind)
    return kinds


def unresolved_tags(doc: NativeDocument, custom_tags: list[str]) -> list[yaml.Node]:
    """Native nodes carrying a local tag not declared in *custom_tags* for their kind."""
    kinds = custom_tag_kinds(custom_tags)
    found = []
    for node in walk_native(doc.root):
        tag = node.tag
        if not tag or not tag.startswith('!'):
            continue
        if node.id not in kinds.get(tag, ()):
            found.append(node)
    return found


# ---------------------------------------------------------------------------
# Native → AST
# ---------------------------------------------------------------------------

class _Converter:
    def __init__(self, document: NativeDocument):
        self.document = document
        self.constructor = SafeConstructor()
        self.converted: dict[yaml.Node, ASTNode] = {}

    def convert(self, node: yaml.Node | None) -> ASTNode | None:
        if node is None:
            return None
        start, end = node.start_mark.index, node.end_mark.index

        if isinstance(node, AliasNode):
            result = AnchorReferenceNode(start, end, anchor=node.anchor,
                                         target=self.converted.get(node.value))
        elif isinstance(node, yaml.ScalarNode):
            result = ScalarNode(start, end, tag=node.tag, value=self._scalar_value(node),
                                raw=node.value, style=node.style)
        elif isinstance(node, yaml.SequenceNode):
            result = SequenceNode(start, end, tag=node.tag)
            self.converted[node] = result
            result.items = [self.convert(item) for item in node.value]
        elif isinstance(node, yaml.MappingNode):
            result = MappingContainerNode(start, end, tag=node.tag)
            self.converted[node] = result
            for key, value in node.value:
                result.mappings.append(MappingNode(
                    None, None, key_node=self.convert(key), value=self.convert(value),
                ))
        else:
            raise TypeError(f'unexpected native node {node!r}')

        self.converted[node] = result
        result.comment_before = self.document.comments_before.get(node)
        result.comment = self.document.inline_comments.get(node)
        return result

    def _scalar_value(self, node: yaml.ScalarNode):
        if node.tag not in _CONSTRUCTED_TAGS:
            return node.value
        try:
            return self.constructor.construct_object(node)
        except (ConstructorError, ValueError):
            return node.value


def convert(node: yaml.Node | None, document: NativeDocument) -> ASTNode | None:
    """Build the AST for *node*, a native node belonging to *document*."""
    return _Converter(document).convert(node)
