"""
Settings resolution for isolsp.

Each setting is resolved through a cascade, highest priority first:

1. Client settings supplied via ``initializationOptions`` or
   ``workspace/didChangeConfiguration`` (under the ``isotope`` key).
2. A ``.isotope.toml`` project file in the workspace root.
3. Built-in defaults.

Client settings use the editor's dotted names (``executable.path``,
``build.outputDirectory``, ``validation.enabled``); both the flat dotted
form and the nested form are accepted.  The project file uses the same
names as nested TOML tables.
"""
from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

PROJECT_CONFIG_NAME = '.isotope.toml'

DEFAULT_EXECUTABLE = 'isotope'
DEFAULT_OUTPUT_DIRECTORY = './output'


def _default_state_dir() -> Path:
    xdg = os.environ.get('XDG_STATE_HOME')
    if xdg:
        return Path(xdg)
    return Path.home() / '.local' / 'state'


@dataclass(frozen=True)
class Settings:
    executable_path: str = DEFAULT_EXECUTABLE
    output_directory: str = DEFAULT_OUTPUT_DIRECTORY
    validation_enabled: bool = True
    state_dir: Path | None = None
    workspace_root: Path | None = None
    log_level: str | None = None

    @property
    def history_path(self) -> Path:
        """Location of the persisted build history."""
        base = self.state_dir if self.state_dir is not None else _default_state_dir()
        return base / 'isolsp' / 'build_history.json'

    def resolved_output_directory(self) -> Path:
        """Output directory, resolved against the workspace root when relative."""
        out = Path(self.output_directory).expanduser()
        if not out.is_absolute() and self.workspace_root is not None:
            out = self.workspace_root / out
        return out


# Client/project key -> Settings field
_KEYS = {
    'executable.path': 'executable_path',
    'build.outputDirectory': 'output_directory',
    'validation.enabled': 'validation_enabled',
    'stateDirectory': 'state_dir',
    'logLevel': 'log_level',
}


def _lookup(data: Mapping[str, Any], dotted: str) -> Any:
    """Look *dotted* up in *data*, flat (``{'a.b': 1}``) or nested (``{'a': {'b': 1}}``)."""
    if dotted in data:
        return data[dotted]
    node: Any = data
    for part in dotted.split('.'):
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return node


def _coerce(field_name: str, value: Any) -> Any:
    if field_name == 'validation_enabled':
        if isinstance(value, str):
            return value.strip().lower() not in ('false', '0', 'no', 'off', '')
        return bool(value)
    if field_name == 'state_dir':
        return Path(str(value)).expanduser()
    return str(value)


def overrides_from_mapping(data: Mapping[str, Any] | None) -> dict[str, Any]:
    """Extract ``Settings`` field overrides from a client or project mapping."""
    if not isinstance(data, Mapping):
        return {}
    out: dict[str, Any] = {}
    for key, field_name in _KEYS.items():
        value = _lookup(data, key)
        if value is None or value == '':
            continue
        out[field_name] = _coerce(field_name, value)
    return out


def _read_project_config(workspace_root: Path | None) -> dict[str, Any]:
    """Parse ``.isotope.toml`` in *workspace_root* and return overrides."""
    if workspace_root is None:
        return {}
    config_path = workspace_root / PROJECT_CONFIG_NAME
    if not config_path.is_file():
        return {}
    try:
        data = tomllib.loads(config_path.read_text(encoding='utf-8'))
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning('ignoring unreadable %s: %s', config_path, e)
        return {}
    return overrides_from_mapping(data)


class SettingsResolver:
    """Holds the client-supplied settings and resolves the effective :class:`Settings`.

    The project file is re-read on every :meth:`resolve` call so edits to
    ``.isotope.toml`` take effect without restarting the server.
    """

    def __init__(self, workspace_root: Path | str | None = None):
        self._workspace_root = Path(workspace_root) if workspace_root else None
        self._client: dict[str, Any] = {}

    @property
    def workspace_root(self) -> Path | None:
        return self._workspace_root

    def set_client_settings(self, data: Mapping[str, Any] | None) -> None:
        """Replace the client-supplied settings (the ``isotope`` section)."""
        self._client = overrides_from_mapping(data)

    def resolve(self) -> Settings:
        settings = Settings(workspace_root=self._workspace_root)
        project = _read_project_config(self._workspace_root)
        if project:
            settings = replace(settings, **project)
        if self._client:
            settings = replace(settings, **self._client)
        return settings
