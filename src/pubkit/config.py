# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""Configuration loading from ``pubkit.toml``.

The file is optional. Without it every ecosystem gets a default
workspace rooted at the current directory, with members taken from the
native workspace declaration (``package.json`` ``workspaces``, Cargo
``[workspace] members``, ``[tool.uv.workspace] members``).

Example::

    concurrency = 6

    [workspace.js]
    ecosystem = "js"
    root = "js"
    dist_tag = "next"

    [workspace.rust]
    ecosystem = "rust"
    root = "rust"
    tiers = [["acme-types"], ["acme-core"], ["acme-cli", "acme-macros"]]
    settle_delay = 120

    [workspace.py]
    ecosystem = "python"
    root = "py"
    exclude = ["*-sample"]

Ecosystem defaults::

    ┌──────────┬──────────────┬──────────────┬──────────────────────────┐
    │ Ecosystem│ settle_delay │ upload_delay │ Why                      │
    ├──────────┼──────────────┼──────────────┼──────────────────────────┤
    │ js       │ 0            │ 0            │ npm indexes immediately  │
    │ rust     │ 120          │ 10           │ crates.io index lags     │
    │ python   │ 0            │ 20           │ PyPI upload rate limits  │
    └──────────┴──────────────┴──────────────┴──────────────────────────┘

All ecosystems retry rate-limited uploads up to 8 times, backing off
from 60 s and doubling up to a 600 s cap.
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

from pubkit.backends.workspace import Ecosystem
from pubkit.errors import E, PubkitError
from pubkit.logging import get_logger
from pubkit.net import DEFAULT_POOL_SIZE, DEFAULT_TIMEOUT

logger = get_logger(__name__)

# The config file name at the workspace root.
CONFIG_FILENAME = 'pubkit.toml'

_LABEL_RE = re.compile(r'[a-z][a-z0-9-]*')

VALID_KEYS: frozenset[str] = frozenset({
    'concurrency',
    'http_pool_size',
    'http_timeout',
    'workspace',
})

VALID_WORKSPACE_KEYS: frozenset[str] = frozenset({
    'backoff_base',
    'backoff_cap',
    'dist_tag',
    'ecosystem',
    'exclude',
    'max_attempts',
    'members',
    'registry_url',
    'root',
    'settle_delay',
    'strict_tiers',
    'tiers',
    'upload_delay',
    'upload_url',
    'version',
})

ALLOWED_ECOSYSTEMS: frozenset[str] = frozenset(e.value for e in Ecosystem)

DEFAULT_CONCURRENCY = 4

# Per-ecosystem overrides of the WorkspaceConfig defaults.
ECOSYSTEM_DEFAULTS: dict[str, dict[str, float]] = {
    'js': {},
    'rust': {'settle_delay': 120.0, 'upload_delay': 10.0},
    'python': {'upload_delay': 20.0},
}

_NUMBER = (int, float)

_GLOBAL_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'concurrency': int,
    'http_pool_size': int,
    'http_timeout': _NUMBER,
}

_WORKSPACE_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'backoff_base': _NUMBER,
    'backoff_cap': _NUMBER,
    'dist_tag': str,
    'ecosystem': str,
    'exclude': list,
    'max_attempts': int,
    'members': list,
    'registry_url': str,
    'root': str,
    'settle_delay': _NUMBER,
    'strict_tiers': bool,
    'tiers': list,
    'upload_delay': _NUMBER,
    'upload_url': str,
    'version': str,
}

# Keys that must be strictly positive when present.
_POSITIVE_KEYS = frozenset({'concurrency', 'http_pool_size', 'http_timeout', 'max_attempts', 'backoff_base', 'backoff_cap'})
_NON_NEGATIVE_KEYS = frozenset({'settle_delay', 'upload_delay'})


@dataclass(frozen=True)
class WorkspaceConfig:
    """One ``[workspace.<label>]`` section: a single-ecosystem workspace.

    Attributes:
        label: Section name (``"js"``, ``"rust"``, ``"py"``).
        ecosystem: ``"js"``, ``"rust"`` or ``"python"``.
        root: Workspace root, relative to the config file.
        members: Member directory globs. Empty means "use the native
            workspace declaration".
        exclude: Package-name globs to leave out.
        tiers: Static publish tiers (lists of package names). Empty
            means "compute from the dependency graph".
        strict_tiers: Fail when static tiers contradict the manifests.
        dist_tag: npm dist-tag for publish and reconciliation.
        settle_delay: Seconds between tiers after real uploads.
        upload_delay: Seconds a worker waits after each real upload.
        max_attempts: Upload attempts before giving up on a rate limit.
        backoff_base: First rate-limit backoff in seconds.
        backoff_cap: Largest single backoff in seconds.
        registry_url: Alternative registry base URL. Existence and dist-tag
            queries go here; for npm it is also where packages are published.
        upload_url: Upload endpoint when it differs from ``registry_url``:
            twine's ``--repository-url`` (e.g. TestPyPI's legacy endpoint),
            cargo's ``--index``, or npm's ``--registry``.
        version: Version override for every package (rust lockstep).
    """

    label: str = ''
    ecosystem: str = ''
    root: str = '.'
    members: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    tiers: list[list[str]] = field(default_factory=list)
    strict_tiers: bool = True
    dist_tag: str = 'next'
    settle_delay: float = 0.0
    upload_delay: float = 0.0
    max_attempts: int = 8
    backoff_base: float = 60.0
    backoff_cap: float = 600.0
    registry_url: str = ''
    upload_url: str = ''
    version: str = ''

    @property
    def ecosystem_enum(self) -> Ecosystem:
        """The ecosystem as an :class:`Ecosystem`."""
        return Ecosystem(self.ecosystem)

    @property
    def publish_url(self) -> str:
        """Where uploads go; empty means the tool's default registry."""
        if self.upload_url:
            return self.upload_url
        return self.registry_url if self.ecosystem == Ecosystem.JS.value else ''


@dataclass(frozen=True)
class PubkitConfig:
    """Validated configuration for a pubkit run.

    Attributes:
        concurrency: Packages in flight per tier.
        http_pool_size: Max connections in the registry HTTP pool.
        http_timeout: Registry request timeout in seconds.
        workspaces: Workspace sections keyed by label.
        config_path: The file that was loaded, or ``None``.
    """

    concurrency: int = DEFAULT_CONCURRENCY
    http_pool_size: int = DEFAULT_POOL_SIZE
    http_timeout: float = DEFAULT_TIMEOUT
    workspaces: dict[str, WorkspaceConfig] = field(default_factory=dict)
    config_path: Path | None = None

    def workspace_for(self, ecosystem: Ecosystem, label: str = '') -> WorkspaceConfig:
        """Pick the workspace section to use for ``ecosystem``.

        An explicit ``label`` must exist and match the ecosystem. Without
        one, the first section for the ecosystem wins; with none at all,
        the ecosystem defaults apply.

        Raises:
            PubkitError: ``label`` is unknown or names another ecosystem.
        """
        if label:
            ws = self.workspaces.get(label)
            if ws is None:
                known = ', '.join(sorted(self.workspaces)) or '(none)'
                raise PubkitError(
                    code=E.CONFIG_UNKNOWN_WORKSPACE,
                    message=f"No [workspace.{label}] section in {CONFIG_FILENAME}",
                    hint=f'Known workspaces: {known}',
                )
            if ws.ecosystem != ecosystem.value:
                raise PubkitError(
                    code=E.CONFIG_UNKNOWN_WORKSPACE,
                    message=f"[workspace.{label}] is a {ws.ecosystem} workspace, not {ecosystem.value}",
                    hint='Pick a workspace of the ecosystem being published.',
                )
            return ws
        for ws in self.workspaces.values():
            if ws.ecosystem == ecosystem.value:
                return ws
        return default_workspace(ecosystem)


def default_workspace(ecosystem: Ecosystem, label: str = '') -> WorkspaceConfig:
    """Return the defaults for ``ecosystem`` when no section configures it."""
    return WorkspaceConfig(
        label=label or ecosystem.value,
        ecosystem=ecosystem.value,
        **ECOSYSTEM_DEFAULTS[ecosystem.value],
    )


def _is_instance(value: object, expected: type | tuple[type, ...]) -> bool:
    # TOML booleans are ints to isinstance; never accept one for a number.
    if isinstance(value, bool) and expected is not bool:
        return False
    return isinstance(value, expected)


def _validate_value_type(
    key: str,
    value: Any,  # noqa: ANN401 - dynamic config values
    type_map: dict[str, type | tuple[type, ...]],
    *,
    context: str = CONFIG_FILENAME,
) -> None:
    """Raise if a config value has the wrong type or range."""
    expected = type_map.get(key)
    if expected is None:
        return
    if not _is_instance(value, expected):
        type_name = expected.__name__ if isinstance(expected, type) else 'a number'
        raise PubkitError(
            code=E.CONFIG_INVALID_VALUE,
            message=f"'{key}' must be {type_name}, got {type(value).__name__}",
            hint=f'Check the value of {key} in {context}.',
        )
    if key in _POSITIVE_KEYS and value <= 0:
        raise PubkitError(
            code=E.CONFIG_INVALID_VALUE,
            message=f"'{key}' must be greater than 0, got {value}",
            hint=f'Check the value of {key} in {context}.',
        )
    if key in _NON_NEGATIVE_KEYS and value < 0:
        raise PubkitError(
            code=E.CONFIG_INVALID_VALUE,
            message=f"'{key}' must not be negative, got {value}",
            hint=f'Check the value of {key} in {context}.',
        )


def _validate_string_list(key: str, items: list[object], context: str) -> None:
    """Raise if any item in a list is not a string."""
    for item in items:
        if not isinstance(item, str):
            raise PubkitError(
                code=E.CONFIG_INVALID_VALUE,
                message=f"'{key}' items must be strings, got {type(item).__name__}: {item!r}",
                hint=f'Each {key} entry should be a string in {context}.',
            )


def _validate_tiers(tiers: list[object], context: str) -> list[list[str]]:
    """Validate ``tiers`` as a list of lists of package names."""
    result: list[list[str]] = []
    for index, tier in enumerate(tiers):
        if not isinstance(tier, list):
            raise PubkitError(
                code=E.CONFIG_INVALID_VALUE,
                message=f"tiers[{index}] must be a list of package names, got {type(tier).__name__}",
                hint=f'Example: tiers = [["core"], ["cli", "plugin"]] in {context}.',
            )
        _validate_string_list(f'tiers[{index}]', tier, context)
        result.append([str(name) for name in tier])
    return result


def _validate_workspace_label(label: str) -> None:
    """Raise if a workspace label contains invalid characters."""
    if not _LABEL_RE.fullmatch(label):
        raise PubkitError(
            code=E.CONFIG_INVALID_KEY,
            message=f"Workspace label '{label}' is invalid",
            hint='Labels must start with a lowercase letter and contain only lowercase letters, digits, and hyphens.',
        )


def _parse_workspace_section(
    label: str,
    raw: dict[str, Any],  # noqa: ANN401
) -> WorkspaceConfig:
    """Parse and validate a single ``[workspace.<label>]`` section."""
    context = f'[workspace.{label}]'

    _validate_workspace_label(label)

    for key in raw:
        if key not in VALID_WORKSPACE_KEYS:
            suggestion = difflib.get_close_matches(key, VALID_WORKSPACE_KEYS, n=1, cutoff=0.6)
            hint = f"Did you mean '{suggestion[0]}'?" if suggestion else f'Check valid keys for {context}.'
            raise PubkitError(
                code=E.CONFIG_INVALID_KEY,
                message=f"Unknown key '{key}' in {context}",
                hint=hint,
            )

    for key, value in raw.items():
        _validate_value_type(key, value, _WORKSPACE_TYPE_MAP, context=context)

    ecosystem = raw.get('ecosystem', '')
    if not ecosystem:
        if label not in ALLOWED_ECOSYSTEMS:
            raise PubkitError(
                code=E.CONFIG_INVALID_VALUE,
                message=f'{context} has no ecosystem',
                hint=f'Add ecosystem = one of {sorted(ALLOWED_ECOSYSTEMS)}.',
            )
        ecosystem = label
    if ecosystem not in ALLOWED_ECOSYSTEMS:
        raise PubkitError(
            code=E.CONFIG_INVALID_VALUE,
            message=f"ecosystem must be one of {sorted(ALLOWED_ECOSYSTEMS)}, got '{ecosystem}'",
            hint=f'Check the ecosystem value in {context}.',
        )

    for list_key in ('members', 'exclude'):
        if list_key in raw:
            _validate_string_list(list_key, raw[list_key], context)

    kwargs: dict[str, Any] = {**ECOSYSTEM_DEFAULTS[ecosystem], **raw}  # noqa: ANN401
    kwargs['ecosystem'] = ecosystem
    if 'tiers' in kwargs:
        kwargs['tiers'] = _validate_tiers(kwargs['tiers'], context)
    for number_key in ('settle_delay', 'upload_delay', 'backoff_base', 'backoff_cap'):
        if number_key in kwargs:
            kwargs[number_key] = float(kwargs[number_key])

    if kwargs.get('backoff_cap', 600.0) < kwargs.get('backoff_base', 60.0):
        raise PubkitError(
            code=E.CONFIG_INVALID_VALUE,
            message=f'{context} backoff_cap is smaller than backoff_base',
            hint='The cap bounds every backoff; it must be at least the base.',
        )

    # crates.io and PyPI serve queries and uploads from different URLs.
    if kwargs.get('registry_url') and not kwargs.get('upload_url') and ecosystem != Ecosystem.JS.value:
        raise PubkitError(
            code=E.CONFIG_INVALID_VALUE,
            message=f'{context} sets registry_url but not upload_url',
            hint='Set upload_url too, or existence checks and uploads would hit different registries.',
        )

    return WorkspaceConfig(label=label, **kwargs)


def load_config(workspace_root: Path) -> PubkitConfig:
    """Load and validate configuration from ``pubkit.toml``.

    Args:
        workspace_root: Directory containing ``pubkit.toml``.

    Returns:
        A validated :class:`PubkitConfig`; defaults if there is no file.

    Raises:
        PubkitError: If the file cannot be parsed or has invalid config.
    """
    config_path = workspace_root / CONFIG_FILENAME

    if not config_path.is_file():
        logger.debug('no_pubkit_config', path=str(config_path))
        return PubkitConfig(config_path=None)

    try:
        text = config_path.read_text(encoding='utf-8')
    except OSError as exc:
        raise PubkitError(
            code=E.CONFIG_INVALID,
            message=f'Failed to read {config_path}: {exc}',
        ) from exc

    try:
        raw: dict[str, Any] = tomlkit.parse(text).unwrap()  # noqa: ANN401
    except tomlkit.exceptions.TOMLKitError as exc:
        raise PubkitError(
            code=E.CONFIG_INVALID,
            message=f'Failed to parse {config_path}: {exc}',
            hint='Fix the TOML syntax error.',
        ) from exc

    workspace_raw: dict[str, Any] = {}  # noqa: ANN401
    if 'workspace' in raw:
        section = raw.pop('workspace')
        if not isinstance(section, dict):
            raise PubkitError(
                code=E.CONFIG_INVALID_VALUE,
                message=f"'workspace' must be a table, got {type(section).__name__}",
                hint='Use [workspace.<label>] sections.',
            )
        workspace_raw = section

    for key in raw:
        if key not in VALID_KEYS:
            all_keys = VALID_KEYS | VALID_WORKSPACE_KEYS
            suggestion = difflib.get_close_matches(key, all_keys, n=1, cutoff=0.6)
            if suggestion and suggestion[0] in VALID_WORKSPACE_KEYS:
                hint = f"'{suggestion[0]}' is a workspace key. Move it under [workspace.<label>]."
            elif suggestion:
                hint = f"Did you mean '{suggestion[0]}'?"
            else:
                hint = f'Valid top-level keys: {", ".join(sorted(VALID_KEYS))}.'
            raise PubkitError(
                code=E.CONFIG_INVALID_KEY,
                message=f"Unknown key '{key}' in {CONFIG_FILENAME}",
                hint=hint,
            )

    for key, value in raw.items():
        _validate_value_type(key, value, _GLOBAL_TYPE_MAP)

    workspaces: dict[str, WorkspaceConfig] = {}
    for ws_label, section in workspace_raw.items():
        if not isinstance(section, dict):
            raise PubkitError(
                code=E.CONFIG_INVALID_VALUE,
                message=f'[workspace.{ws_label}] must be a table, got {type(section).__name__}',
            )
        workspaces[ws_label] = _parse_workspace_section(ws_label, section)

    global_kwargs: dict[str, Any] = dict(raw)  # noqa: ANN401
    if 'http_timeout' in global_kwargs:
        global_kwargs['http_timeout'] = float(global_kwargs['http_timeout'])

    logger.debug('loaded_pubkit_config', path=str(config_path), workspaces=sorted(workspaces))
    return PubkitConfig(**global_kwargs, workspaces=workspaces, config_path=config_path)


__all__ = [
    'CONFIG_FILENAME',
    'ECOSYSTEM_DEFAULTS',
    'PubkitConfig',
    'VALID_KEYS',
    'VALID_WORKSPACE_KEYS',
    'WorkspaceConfig',
    'default_workspace',
    'load_config',
]
