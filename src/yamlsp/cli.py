"""
Command line for the ``yamlsp`` server.

    yamlsp                              # serve over stdio
    yamlsp --tcp 2087                   # serve on a local TCP port
    yamlsp --schema graph.yaml --custom-tag '!Ref' --log-level debug

Options other than the transport become settings overrides.  They sit above
``.yamlsp.toml`` and below what the client sends, so an editor can still
change them (see :mod:`yamlsp.config`).
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from yamlsp import __version__

LOG_LEVELS = ('debug', 'info', 'warning', 'error', 'critical')


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog='yamlsp',
        description='YAML language server with schema-graph validation.',
    )
    p.add_argument('--version', action='version', version=f'yamlsp {__version__}')

    transport = p.add_argument_group('transport')
    mode = transport.add_mutually_exclusive_group()
    mode.add_argument('--stdio', action='store_true',
                      help='serve over stdin/stdout (the default)')
    mode.add_argument('--tcp', metavar='PORT', type=int,
                      help='serve on 127.0.0.1:PORT instead of stdio')

    settings = p.add_argument_group('settings')
    settings.add_argument('--schema', metavar='PATH', type=Path,
                          help='schema graph file (.json or .yaml)')
    settings.add_argument('--custom-tag', metavar='TAG', action='append',
                          dest='custom_tags',
                          help="accept a custom tag, e.g. '!Ref' or '!Seq sequence'; repeatable")
    settings.add_argument('--no-validate', action='store_false', dest='validate',
                          help='only report syntax errors')
    settings.add_argument('--log-level', metavar='LEVEL', type=str.lower,
                          choices=LOG_LEVELS,
                          help='one of ' + ', '.join(LOG_LEVELS) + ' (default: warning)')
    return p


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Settings keys for the options actually given on the command line."""
    overrides: dict[str, Any] = {}
    if args.schema is not None:
        overrides['schema'] = str(args.schema.expanduser().resolve())
    if args.custom_tags:
        overrides['customTags'] = args.custom_tags
    if not args.validate:
        overrides['validate'] = False
    if args.log_level:
        overrides['logLevel'] = args.log_level
    return overrides


def yamlsp(argv: list[str] | None = None) -> None:
    """Entry point for the ``yamlsp`` command."""
    args = _build_parser().parse_args(argv)
    # stdout carries the protocol in stdio mode.
    logging.basicConfig(
        level=logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    from yamlsp import server as srv

    srv.configure(_overrides(args))
    if args.tcp is not None:
        srv.server.start_tcp('127.0.0.1', args.tcp)
    else:
        srv.server.start_io()


if __name__ == '__main__':
    yamlsp()
