"""Tests for yamlsp.cli."""
from __future__ import annotations

import logging
from pathlib import Path

import pytest

import yamlsp.server as srv
from yamlsp.cli import _build_parser, _overrides, yamlsp
from yamlsp.config import Settings


def _parse(*argv: str):
    return _build_parser().parse_args(list(argv))


class TestArguments:
    def test_defaults(self):
        args = _parse()
        assert args.stdio is False
        assert args.tcp is None
        assert args.log_level is None
        assert _overrides(args) == {}

    def test_tcp_port(self):
        assert _parse('--tcp', '2087').tcp == 2087

    def test_stdio_and_tcp_exclusive(self):
        with pytest.raises(SystemExit):
            _parse('--stdio', '--tcp', '2087')

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            yamlsp(['--version'])
        assert exc.value.code == 0
        assert capsys.readouterr().out.startswith('yamlsp ')

    def test_log_level_case_insensitive(self):
        assert _parse('--log-level', 'DEBUG').log_level == 'debug'
        with pytest.raises(SystemExit):
            _parse('--log-level', 'verbose')


class TestOverrides:
    def test_settings_options(self, tmp_path):
        args = _parse('--schema', str(tmp_path / 'graph.yaml'),
                      '--custom-tag', '!Ref', '--custom-tag', '!Seq sequence',
                      '--no-validate', '--log-level', 'info')
        assert _overrides(args) == {
            'schema': str((tmp_path / 'graph.yaml').resolve()),
            'customTags': ['!Ref', '!Seq sequence'],
            'validate': False,
            'logLevel': 'info',
        }

    def test_relative_schema_made_absolute(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        schema = _overrides(_parse('--schema', 'graph.yaml'))['schema']
        assert Path(schema).is_absolute()
        assert Path(schema).parent == tmp_path.resolve()

    def test_overrides_flow_into_settings(self, monkeypatch):
        monkeypatch.setattr(srv, '_settings', Settings())
        monkeypatch.setattr(srv, '_schema_graph', None)
        monkeypatch.setattr(srv, '_cli_overrides', {})
        root = logging.getLogger()
        previous = root.level
        try:
            srv.configure(_overrides(_parse('--custom-tag', '!Ref', '--log-level', 'debug')))
            assert root.level == logging.DEBUG
        finally:
            root.setLevel(previous)
        assert srv._settings.custom_tags == ('!Ref',)
        assert srv._settings.log_level == 'debug'
        assert srv._cli_overrides == {'customTags': ['!Ref'], 'logLevel': 'debug'}
