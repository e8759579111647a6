"""
yamlsp Language Server.

Registers LSP capabilities and wires the document cache, schema matcher and
position index to pygls.
"""
from __future__ import annotations

import logging
from urllib.parse import unquote, urlparse

from pygls.lsp.server import LanguageServer
from lsprotocol import types as lsp

logger = logging.getLogger(__name__)

from yamlsp import __version__
from yamlsp.ast import ASTNode, MappingNode, ScalarNode
from yamlsp.config import Settings, load_settings, settings_from_configuration
from yamlsp.document import DocumentCache, ParsedDocumentSet, SourceText
from yamlsp.handlers import get_diagnostics, get_schema_diagnostics
from yamlsp.matcher import validate_document
from yamlsp.position import PositionIndex
from yamlsp.schema import SchemaGraph, SchemaGraphError, load_schema_graph
from yamlsp.text import TextBuffer

# ---------------------------------------------------------------------------
# Server instance + per-session state
# ---------------------------------------------------------------------------

server = LanguageServer(
    'yamlsp', __version__,
    text_document_sync_kind=lsp.TextDocumentSyncKind.Full,
)

# Latest text per open URI (populated on open/change).
_sources: dict[str, SourceText] = {}

# Parsed documents, keyed by URI and refreshed on version change.
_cache = DocumentCache()

_settings = Settings()

# Overrides given on the command line; re-applied under each initialize.
_cli_overrides: dict = {}

# Schema graph for the current settings, or None when no schema is configured.
_schema_graph: SchemaGraph | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_log_level(raw: str | None) -> None:
    """Set the root logger level from a string like 'debug', 'warning', etc."""
    if not raw:
        return
    level = getattr(logging, str(raw).upper(), None)
    if isinstance(level, int):
        logging.getLogger().setLevel(level)


def _apply_settings(settings: Settings) -> None:
    """Install *settings* and (re)load the schema graph they name."""
    global _settings, _schema_graph
    previous = _settings
    _settings = settings
    _apply_log_level(settings.log_level)
    if settings.schema_path == previous.schema_path and _schema_graph is not None:
        return
    _schema_graph = None
    if settings.schema_path:
        try:
            _schema_graph = load_schema_graph(settings.schema_path)
        except (OSError, ValueError, SchemaGraphError):
            logger.warning('_apply_settings: cannot load schema %s', settings.schema_path,
                           exc_info=True)


def configure(overrides: dict) -> None:
    """Install command-line *overrides* before the server starts."""
    global _cli_overrides
    _cli_overrides = dict(overrides)
    _apply_settings(load_settings(overrides=_cli_overrides))


def _parsed(uri: str) -> ParsedDocumentSet | None:
    source = _sources.get(uri)
    if source is None:
        return None
    return _cache.get(source, _settings.parser_options(),
                      add_root_object=_schema_graph is not None)


def _compute_diagnostics(uri: str) -> list[lsp.Diagnostic]:
    doc_set = _parsed(uri)
    if doc_set is None:
        return []
    diags = get_diagnostics(doc_set)
    if _schema_graph is None or not _settings.validate:
        return diags

    buffer = TextBuffer(doc_set.source)
    for doc in doc_set.documents:
        try:
            matcher = validate_document(_schema_graph, doc)
        except SchemaGraphError:
            logger.error('_compute_diagnostics: schema graph defect while validating %s',
                         uri, exc_info=True)
            continue
        diags.extend(get_schema_diagnostics(matcher.get_error_results(), buffer))
    return diags


def _publish_diagnostics(uri: str) -> None:
    diags = _compute_diagnostics(uri)
    logger.debug('_publish_diagnostics: %s → %d diagnostics', uri, len(diags))
    server.text_document_publish_diagnostics(
        lsp.PublishDiagnosticsParams(uri=uri, diagnostics=diags)
    )


def _revalidate_open_documents() -> None:
    for uri in list(_sources):
        try:
            _publish_diagnostics(uri)
        except Exception:
            logger.warning('_revalidate_open_documents: failed for %s', uri, exc_info=True)


def _root_to_path(root_uri: str | None) -> str | None:
    if not root_uri:
        return None
    if root_uri.startswith('file://'):
        return unquote(urlparse(root_uri).path)
    return root_uri


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@server.feature(lsp.INITIALIZE)
def on_initialize(params: lsp.InitializeParams):
    workspace_root = _root_to_path(params.root_uri)
    opts = getattr(params, 'initialization_options', None)
    _apply_settings(load_settings(workspace_root, opts, _cli_overrides))
    logger.info('yamlsp %s initialised (root=%s, schema=%s)',
                __version__, workspace_root, _settings.schema_path)


@server.feature(lsp.WORKSPACE_DID_CHANGE_CONFIGURATION)
def did_change_configuration(params: lsp.DidChangeConfigurationParams):
    """Handle live config changes (e.g. the user edits ``yaml.customTags``)."""
    settings = getattr(params, 'settings', None) or {}
    _apply_settings(settings_from_configuration(_settings, settings))
    _revalidate_open_documents()


# ---------------------------------------------------------------------------
# Text document synchronisation
# ---------------------------------------------------------------------------

@server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
def did_open(params: lsp.DidOpenTextDocumentParams):
    td = params.text_document
    _sources[td.uri] = SourceText(td.uri, td.version, td.text)
    _publish_diagnostics(td.uri)


@server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
def did_change(params: lsp.DidChangeTextDocumentParams):
    uri = params.text_document.uri
    _sources[uri] = SourceText(uri, params.text_document.version,
                               params.content_changes[-1].text)
    _publish_diagnostics(uri)


@server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
def did_close(params: lsp.DidCloseTextDocumentParams):
    uri = params.text_document.uri
    _sources.pop(uri, None)
    _cache.forget(uri)
    server.text_document_publish_diagnostics(
        lsp.PublishDiagnosticsParams(uri=uri, diagnostics=[])
    )


# ---------------------------------------------------------------------------
# Node resolution
# ---------------------------------------------------------------------------

def _describe(node: ASTNode | None, buffer: TextBuffer) -> dict | None:
    if node is None:
        return None
    info: dict = {'kind': node.kind}
    if node.range is not None:
        start_line, start_col = buffer.position(node.start)
        end_line, end_col = buffer.position(node.end)
        info['range'] = {
            'start': {'line': start_line, 'character': start_col},
            'end': {'line': end_line, 'character': end_col},
        }
    if isinstance(node, MappingNode):
        info['key'] = node.key
    elif isinstance(node, ScalarNode):
        info['value'] = node.raw
    return info


@server.command('yamlsp.resolveNode')
def cmd_resolve_node(uri: str, line: int, character: int):
    """Return the AST node at a position, as used for completion and hover.

    Result: ``{'node': {...} | None, 'isBlankLine': bool, 'keyPath': [...]}``.
    """
    doc_set = _parsed(uri)
    if doc_set is None:
        return None
    buffer = TextBuffer(doc_set.source)
    offset = buffer.offset(line, character)
    doc = next((d for d in doc_set.documents if d.start <= offset <= d.end),
               doc_set.documents[-1] if doc_set.documents else None)
    if doc is None:
        return {'node': None, 'isBlankLine': True, 'keyPath': []}

    node, is_blank = PositionIndex(doc, buffer).resolve(offset)
    key_path: list = []
    if node is not None:
        chain = [node, *doc.ancestors(node)]
        key_path = [n.key for n in reversed(chain) if isinstance(n, MappingNode)]
    return {'node': _describe(node, buffer), 'isBlankLine': is_blank, 'keyPath': key_path}
