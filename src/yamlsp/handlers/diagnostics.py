"""Convert parser and schema findings into LSP Diagnostic objects."""
from __future__ import annotations

from lsprotocol import types as lsp

from yamlsp.document import DocumentDiagnostic, ParsedDocumentSet
from yamlsp.matcher import SchemaDiagnostic
from yamlsp.text import TextBuffer


def _range(buffer: TextBuffer, start: int, end: int, to_line_end: bool) -> lsp.Range:
    start_line, start_col = buffer.position(start)
    if to_line_end:
        end_line = start_line
        end_col = len(buffer.line_content(start_line))
    else:
        end_line, end_col = buffer.position(max(start, end))
    return lsp.Range(
        start=lsp.Position(line=start_line, character=start_col),
        end=lsp.Position(line=end_line, character=end_col),
    )


def to_lsp_diagnostic(diag: DocumentDiagnostic, buffer: TextBuffer) -> lsp.Diagnostic:
    return lsp.Diagnostic(
        range=_range(buffer, diag.start_offset, diag.end_offset, diag.to_line_end),
        message=diag.message,
        severity=diag.severity,
        code=diag.code,
        source='yamlsp',
    )


def get_diagnostics(doc_set: ParsedDocumentSet) -> list[lsp.Diagnostic]:
    """Return LSP ``Diagnostic`` objects for every parse error and warning in *doc_set*."""
    buffer = TextBuffer(doc_set.source)
    diags: list[lsp.Diagnostic] = []
    for doc in doc_set.documents:
        diags.extend(to_lsp_diagnostic(d, buffer) for d in doc.errors)
        diags.extend(to_lsp_diagnostic(d, buffer) for d in doc.warnings)
    return diags


def get_schema_diagnostics(results: list[SchemaDiagnostic],
                           buffer: TextBuffer) -> list[lsp.Diagnostic]:
    """Return LSP ``Diagnostic`` objects for schema-matcher results.

    The node offsets are used for the range; the matcher's counted line is
    only a fallback for nodes without a position.
    """
    diags: list[lsp.Diagnostic] = []
    for result in results:
        if result.start_offset is not None:
            rng = _range(buffer, result.start_offset, result.end_offset, False)
        else:
            rng = lsp.Range(
                start=lsp.Position(line=result.start_line, character=0),
                end=lsp.Position(line=result.end_line,
                                 character=len(buffer.line_content(result.end_line))),
            )
        diags.append(lsp.Diagnostic(
            range=rng,
            message=result.message,
            severity=result.severity,
            code=result.code.value,
            source='yamlsp-schema',
        ))
    return diags
