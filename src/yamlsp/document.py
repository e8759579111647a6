"""
Per-document parse cache.

Each open document is stored as a ``ParsedDocumentSet``: one
:class:`ParsedDocument` per YAML document in the stream plus the token stream
they share.  Parsing is synchronous (YAML files are typically small) and is
redone only when the document version or the custom-tag configuration changes.
Parse errors and tag warnings are derived from the native PyYAML result on
demand so they can be published as LSP diagnostics without re-parsing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, NamedTuple

from lsprotocol import types as lsp

from yamlsp import parser
from yamlsp.ast import ASTNode, ParentIndex, located, walk

if TYPE_CHECKING:
    import yaml
    from yamlsp.structural import SchemaMatch

logger = logging.getLogger(__name__)

# Code attached to every parser diagnostic (the parser has no finer taxonomy).
UNDEFINED_ERROR_CODE = 0


@dataclass
class ParserOptions:
    custom_tags: list[str] = field(default_factory=list)


@dataclass
class DocumentDiagnostic:
    message: str
    severity: lsp.DiagnosticSeverity
    start_offset: int
    end_offset: int
    to_line_end: bool = True
    code: int | str = UNDEFINED_ERROR_CODE


class SourceText(NamedTuple):
    """The minimal text-document shape the cache needs."""
    uri: str
    version: int
    source: str


class ParsedDocument:
    """One YAML document: AST root, native parse result and derived data.

    Assigning :attr:`native` converts the native tree into the AST right away;
    the root must be available synchronously.  Instances are never modified
    after :func:`parse_yaml` returns them.
    """

    def __init__(self, native: parser.NativeDocument | None = None,
                 custom_tags: list[str] | None = None, structural_validator=None):
        self.root: ASTNode | None = None
        self.custom_tags = list(custom_tags or [])
        self._native: parser.NativeDocument | None = None
        self._parents = ParentIndex(None)
        self._line_comments: list[str] | None = None
        self._structural_validator = structural_validator
        if native is not None:
            self.native = native

    @property
    def native(self) -> parser.NativeDocument | None:
        return self._native

    @native.setter
    def native(self, document: parser.NativeDocument) -> None:
        self._native = document
        self.root = parser.convert(document.root, document)
        self._parents = ParentIndex(self.root)
        self._line_comments = None

    @property
    def start(self) -> int:
        return self._native.start if self._native else 0

    @property
    def end(self) -> int:
        return self._native.end if self._native else 0

    # -- navigation --------------------------------------------------------

    def parent(self, node: ASTNode) -> ASTNode | None:
        return self._parents.parent(node)

    def ancestors(self, node: ASTNode):
        return self._parents.ancestors(node)

    # -- derived data ------------------------------------------------------

    @property
    def line_comments(self) -> list[str]:
        """All comments as ``#``-prefixed lines, computed on first access.

        Order: the document's leading comment block, then each node's leading
        block and inline comment in document order, then the trailing comment.
        """
        if self._line_comments is None:
            self._line_comments = self._collect_line_comments()
        return self._line_comments

    def _collect_line_comments(self) -> list[str]:
        comments: list[str] = []
        native = self._native
        if native is None:
            return comments
        if native.comment_before is not None:
            comments.extend(f'#{line}' for line in native.comment_before.split('\n'))
        for node in walk(self.root):
            if node.comment_before is not None:
                comments.extend(f'#{line}' for line in node.comment_before.split('\n'))
            if node.comment is not None:
                comments.append(f'#{node.comment}')
        if native.comment is not None:
            comments.append(f'#{native.comment}')
        return comments

    @property
    def errors(self) -> list[DocumentDiagnostic]:
        if self._native is None:
            return []
        return [_error_to_diagnostic(exc) for exc in self._native.errors]

    @property
    def warnings(self) -> list[DocumentDiagnostic]:
        if self._native is None:
            return []
        return [_tag_warning(node)
                for node in parser.unresolved_tags(self._native, self.custom_tags)]

    def get_schemas(self, schema: dict, node: ASTNode) -> list[SchemaMatch]:
        """Return the structural-validator matches for *schema* at *node*.

        A pair is located by its key, so its matches end at the mapping
        holding it.
        """
        if self._structural_validator is None:
            from yamlsp.structural import JsonSchemaValidator
            self._structural_validator = JsonSchemaValidator()
        matches: list[SchemaMatch] = []
        offset = located(node).start
        if offset is None:
            return matches
        self._structural_validator.validate(self.root, schema, matches, offset)
        return matches


@dataclass
class ParsedDocumentSet:
    documents: list[ParsedDocument] = field(default_factory=list)
    tokens: list[yaml.Token] = field(default_factory=list)
    source: str = ''


def _error_to_diagnostic(exc: yaml.YAMLError) -> DocumentDiagnostic:
    offset = parser.error_offset(exc)
    return DocumentDiagnostic(
        message=parser.error_message(exc),
        severity=lsp.DiagnosticSeverity.Error,
        start_offset=offset,
        end_offset=offset,
        to_line_end=True,
    )


def _tag_warning(node: yaml.Node) -> DocumentDiagnostic:
    return DocumentDiagnostic(
        message=f'Unresolved tag: {node.tag}',
        severity=lsp.DiagnosticSeverity.Warning,
        start_offset=node.start_mark.index,
        end_offset=node.end_mark.index,
        to_line_end=True,
    )


def parse_yaml(text: str, options: ParserOptions | None = None) -> ParsedDocumentSet:
    """Parse *text* into a :class:`ParsedDocumentSet`."""
    options = options or ParserOptions()
    tokens = parser.scan_tokens(text)
    natives = parser.compose_documents(text, tokens)
    documents = [ParsedDocument(native, custom_tags=options.custom_tags) for native in natives]
    return ParsedDocumentSet(documents=documents, tokens=tokens, source=text)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

@dataclass
class DocumentCacheEntry:
    version: int
    parser_options: ParserOptions
    document: ParsedDocumentSet


class DocumentCache:
    """Single-slot, per-URI cache of parsed documents.

    An entry is reused only while both the document version and the custom-tag
    list (compared element-wise) are unchanged; anything else reparses and
    replaces the entry.  Callers must apply text changes for a URI before
    issuing requests that depend on the new version; no locking is done here.
    """

    def __init__(self):
        self._entries: dict[str, DocumentCacheEntry] = {}

    def get(self, document, parser_options: ParserOptions | None = None,
            add_root_object: bool = False) -> ParsedDocumentSet:
        """Return the parsed form of *document* (anything with ``uri``,
        ``version`` and ``source``), reparsing only when stale.

        With *add_root_object*, whitespace-only text is parsed as ``{}`` so
        schema logic has a root mapping to attach to.
        """
        options = parser_options or ParserOptions()
        uri = document.uri
        entry = self._entries.get(uri)
        if (entry is not None
                and entry.version == document.version
                and list(entry.parser_options.custom_tags) == list(options.custom_tags)):
            logger.debug('DocumentCache: hit %s (version %s)', uri, document.version)
            return entry.document

        text = document.source
        if add_root_object and not text.strip():
            text = '{' + text + '}'
        parsed = parse_yaml(text, options)
        logger.debug('DocumentCache: parsed %s (version %s) → %d document(s)',
                     uri, document.version, len(parsed.documents))
        self._entries[uri] = DocumentCacheEntry(
            version=document.version,
            parser_options=ParserOptions(custom_tags=list(options.custom_tags)),
            document=parsed,
        )
        return parsed

    def forget(self, uri: str) -> None:
        self._entries.pop(uri, None)

    def clear(self) -> None:
        """Drop every entry (tests only)."""
        self._entries.clear()

    def __contains__(self, uri: str) -> bool:
        return uri in self._entries

    def __len__(self) -> int:
        return len(self._entries)
