"""Tests for yamlsp.server: diagnostics, settings and node resolution."""
from __future__ import annotations

import pytest

import yamlsp.server as srv
from yamlsp.config import Settings
from yamlsp.document import DocumentCache, SourceText
from yamlsp.schema import SchemaGraph, SchemaGraphError

GRAPH = SchemaGraph.from_mapping({
    'kind': [{'type': 'string'}],
    'spec': [{'type': 'object', 'children': ['replicas']}],
    'replicas': [{'type': 'integer'}],
})

K8S = "kind: Pod\nspec:\n  replicas: 3"


@pytest.fixture
def session(monkeypatch):
    """Fresh per-test server state."""
    monkeypatch.setattr(srv, '_sources', {})
    monkeypatch.setattr(srv, '_cache', DocumentCache())
    monkeypatch.setattr(srv, '_settings', Settings())
    monkeypatch.setattr(srv, '_schema_graph', None)

    def open_document(uri: str, text: str, version: int = 1) -> str:
        srv._sources[uri] = SourceText(uri, version, text)
        return uri

    return open_document


class TestComputeDiagnostics:
    def test_unknown_uri(self, session):
        assert srv._compute_diagnostics('file:///tmp/missing.yaml') == []

    def test_parse_error_without_schema(self, session):
        uri = session('file:///tmp/bad.yaml', 'a: b: c\n')
        diags = srv._compute_diagnostics(uri)
        assert len(diags) == 1
        assert diags[0].source == 'yamlsp'

    def test_schema_warnings_added(self, session, monkeypatch):
        monkeypatch.setattr(srv, '_schema_graph', GRAPH)
        uri = session('file:///tmp/pod.yaml', 'kind: Pod\nspec:\n  replicas: "three"\n')
        diags = srv._compute_diagnostics(uri)
        assert [d.code for d in diags] == ['TypeMismatch']

    def test_validation_can_be_disabled(self, session, monkeypatch):
        monkeypatch.setattr(srv, '_schema_graph', GRAPH)
        monkeypatch.setattr(srv, '_settings', Settings(validate=False))
        uri = session('file:///tmp/pod.yaml', 'unknown: 1\n')
        assert srv._compute_diagnostics(uri) == []

    def test_unknown_key_hides_dangling_child(self, session, monkeypatch):
        graph = SchemaGraph.from_mapping({
            'spec': [{'type': 'object', 'children': ['template']}],
            'name': [{'type': 'string'}],
        })
        monkeypatch.setattr(srv, '_schema_graph', graph)
        uri = session('file:///tmp/pod.yaml', "spec:\n  template:\n    name: x\n")
        # "template" is unknown, so the walk never reaches the dangling edge.
        diags = srv._compute_diagnostics(uri)
        assert [d.code for d in diags] == ['UnknownKey']

    def test_graph_defect_is_logged(self, session, monkeypatch, caplog):
        def broken(graph, document):
            raise SchemaGraphError("key 'template' is referenced but has no definition")

        monkeypatch.setattr(srv, '_schema_graph', GRAPH)
        monkeypatch.setattr(srv, 'validate_document', broken)
        uri = session('file:///tmp/pod.yaml', K8S)
        assert srv._compute_diagnostics(uri) == []
        assert 'schema graph defect' in caplog.text

    def test_custom_tags_from_settings(self, session, monkeypatch):
        uri = session('file:///tmp/cfn.yaml', 'ref: !Ref x\n')
        assert len(srv._compute_diagnostics(uri)) == 1
        monkeypatch.setattr(srv, '_settings', Settings(custom_tags=('!Ref',)))
        assert srv._compute_diagnostics(uri) == []


class TestApplySettings:
    def test_schema_loaded_from_path(self, session, tmp_path):
        path = tmp_path / 'graph.yaml'
        path.write_text("kind:\n  type: string\n")
        srv._apply_settings(Settings(schema_path=str(path)))
        assert srv._schema_graph is not None
        assert 'kind' in srv._schema_graph

    def test_unreadable_schema_leaves_no_graph(self, session, tmp_path):
        srv._apply_settings(Settings(schema_path=str(tmp_path / 'missing.json')))
        assert srv._schema_graph is None

    def test_root_uri_to_path(self):
        assert srv._root_to_path('file:///home/me/my%20project') == '/home/me/my project'
        assert srv._root_to_path(None) is None


class TestResolveNode:
    def test_scalar_value(self, session):
        uri = session('file:///tmp/pod.yaml', K8S)
        result = srv.cmd_resolve_node(uri, 2, 12)
        assert result['isBlankLine'] is False
        assert result['keyPath'] == ['spec', 'replicas']
        node = result['node']
        assert node['kind'] == 'scalar'
        assert node['value'] == '3'
        assert node['range']['start'] == {'line': 2, 'character': 12}

    def test_blank_line(self, session):
        uri = session('file:///tmp/pod.yaml', "kind: Pod\nspec:\n  replicas: 3\n  \n")
        result = srv.cmd_resolve_node(uri, 3, 2)
        assert result['isBlankLine'] is True
        assert result['node']['kind'] == 'map'
        assert result['keyPath'] == ['spec']

    def test_empty_document(self, session):
        uri = session('file:///tmp/empty.yaml', '')
        assert srv.cmd_resolve_node(uri, 0, 0) == {
            'node': None, 'isBlankLine': True, 'keyPath': [],
        }

    def test_unknown_uri(self, session):
        assert srv.cmd_resolve_node('file:///tmp/missing.yaml', 0, 0) is None
