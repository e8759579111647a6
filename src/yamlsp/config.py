"""
Settings resolution for yamlsp.

Settings come from a cascade, later sources overriding earlier ones:

1. Built-in defaults.
2. A ``.yamlsp.toml`` project config file in the workspace root.
3. Command-line options (``--schema``, ``--custom-tag``, ``--log-level``).
4. ``initializationOptions`` sent by the LSP client.
5. ``workspace/didChangeConfiguration`` settings (the ``yaml`` section).

Client payloads use the editor's camelCase keys (``customTags``, ``schema``,
``validate``, ``logLevel``); the TOML file may use either spelling.
"""
from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from yamlsp.document import ParserOptions

logger = logging.getLogger(__name__)

PROJECT_CONFIG_NAME = '.yamlsp.toml'

_KEY_ALIASES = {
    'customTags': 'custom_tags',
    'custom_tags': 'custom_tags',
    'schema': 'schema_path',
    'schema_path': 'schema_path',
    'validate': 'validate',
    'logLevel': 'log_level',
    'log_level': 'log_level',
}


@dataclass(frozen=True)
class Settings:
    custom_tags: tuple[str, ...] = ()
    schema_path: str | None = None
    validate: bool = True
    log_level: str | None = None
    workspace_root: str | None = field(default=None, compare=False)

    def parser_options(self) -> ParserOptions:
        return ParserOptions(custom_tags=list(self.custom_tags))

    def merged(self, options: dict[str, Any] | None) -> Settings:
        """Return a copy with the recognised keys of *options* applied."""
        if not options:
            return self
        changes: dict[str, Any] = {}
        for raw_key, value in options.items():
            key = _KEY_ALIASES.get(raw_key)
            if key is None:
                continue
            if key == 'custom_tags':
                value = tuple(str(tag) for tag in (value or ()))
            elif key == 'validate':
                value = bool(value)
            elif key == 'schema_path' and value:
                value = self._resolve_path(str(value))
            changes[key] = value
        return replace(self, **changes)

    def _resolve_path(self, value: str) -> str:
        path = Path(value).expanduser()
        if not path.is_absolute() and self.workspace_root:
            path = Path(self.workspace_root) / path
        return str(path)


def read_project_config(workspace_root: str | None) -> dict[str, Any]:
    """Parse ``.yamlsp.toml`` in *workspace_root*; return ``{}`` if absent or broken."""
    if not workspace_root:
        return {}
    config_path = Path(workspace_root) / PROJECT_CONFIG_NAME
    if not config_path.exists():
        return {}
    try:
        data = tomllib.loads(config_path.read_text(encoding='utf-8'))
    except (OSError, tomllib.TOMLDecodeError):
        logger.warning('read_project_config: cannot read %s', config_path, exc_info=True)
        return {}
    # Allow either a flat file or a [yaml] table.
    section = data.get('yaml', data)
    return section if isinstance(section, dict) else {}


def load_settings(workspace_root: str | None = None,
                  init_options: Any = None,
                  overrides: dict[str, Any] | None = None) -> Settings:
    """Build :class:`Settings` from defaults, the project file, command-line
    *overrides* and *init_options*, in that order.
    """
    settings = Settings(workspace_root=workspace_root)
    settings = settings.merged(read_project_config(workspace_root))
    settings = settings.merged(overrides)
    settings = settings.merged(_options_dict(init_options))
    return settings


def settings_from_configuration(current: Settings, payload: Any) -> Settings:
    """Apply a ``workspace/didChangeConfiguration`` payload to *current*."""
    if not isinstance(payload, dict):
        return current
    return current.merged(_options_dict(payload.get('yaml')))


def _options_dict(options: Any) -> dict[str, Any]:
    if options is None:
        return {}
    if isinstance(options, dict):
        return options
    # Some clients send a typed object; fall back to its attributes.
    return {key: getattr(options, key) for key in _KEY_ALIASES if hasattr(options, key)}
