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

"""``Cargo.toml`` reader.

Layout handled::

    rust/
    ├── Cargo.toml       ← [workspace] members + [workspace.package] version
    ├── core/
    │   └── Cargo.toml   ← [package] name = "acme-core", version.workspace = true
    └── cli/
        └── Cargo.toml   ← depends on acme-core = { path = "../core", version = "2.0.0" }

Version handling:

    A crate's version is either a literal string or
    ``version.workspace = true``, which inherits the nearest ancestor
    ``[workspace.package].version``. An explicit override (``--version``)
    wins over both.

Privacy:

    ``publish = false`` and a ``publish = [...]`` list without
    ``"crates-io"`` both mean "never upload to crates.io".

Dependencies:

    Only ``[dependencies]``, ``[build-dependencies]`` and their
    ``[target.*]`` variants constrain publish order. Dev-dependencies are
    stripped by ``cargo publish`` and may legitimately form cycles.
    Renamed dependencies (``foo = { package = "real-name" }``) are recorded
    under the real package name.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pubkit.backends.workspace._io import read_toml, require_str
from pubkit.backends.workspace._types import Ecosystem, Package
from pubkit.errors import E, PubkitError
from pubkit.logging import get_logger

log = get_logger('pubkit.backends.workspace.cargo')

MANIFEST = 'Cargo.toml'

_ORDERING_TABLES = ('dependencies', 'build-dependencies')


def _dependency_names(table: object) -> set[str]:
    """Package names declared in one dependency table."""
    names: set[str] = set()
    if not isinstance(table, dict):
        return names
    for key, spec in table.items():
        if isinstance(spec, dict) and isinstance(spec.get('package'), str):
            names.add(spec['package'])
        else:
            names.add(str(key))
    return names


def parse_dependencies(doc: dict[str, Any]) -> list[str]:  # noqa: ANN401
    """Return the sorted crate names that must be published before this one."""
    deps: set[str] = set()
    for key in _ORDERING_TABLES:
        deps |= _dependency_names(doc.get(key))

    target = doc.get('target')
    if isinstance(target, dict):
        for target_table in target.values():
            if isinstance(target_table, dict):
                for key in _ORDERING_TABLES:
                    deps |= _dependency_names(target_table.get(key))
    return sorted(deps)


def _is_private(package_table: dict[str, Any]) -> bool:  # noqa: ANN401
    publish = package_table.get('publish', True)
    if publish is False:
        return True
    if isinstance(publish, list):
        return 'crates-io' not in publish
    return False


async def find_workspace_version(crate_dir: Path) -> str | None:
    """Return ``[workspace.package].version`` of the enclosing workspace.

    Walks from ``crate_dir`` upwards and stops at the first
    ``Cargo.toml`` that declares ``[workspace]``.
    """
    for directory in (crate_dir, *crate_dir.parents):
        manifest = directory / MANIFEST
        if not manifest.is_file():
            continue
        doc = await read_toml(manifest)
        workspace = doc.get('workspace')
        if isinstance(workspace, dict):
            version = workspace.get('package', {}).get('version')
            return version if isinstance(version, str) and version else None
    return None


async def workspace_members(root: Path) -> list[str]:
    """Member globs from the ``[workspace]`` table of ``root/Cargo.toml``."""
    manifest = root / MANIFEST
    if not manifest.is_file():
        return []
    doc = await read_toml(manifest)
    workspace = doc.get('workspace')
    if not isinstance(workspace, dict):
        return []
    members = workspace.get('members', [])
    return [m for m in members if isinstance(m, str)]


async def read_crate(crate_dir: Path, *, version_override: str | None = None) -> Package | None:
    """Read one crate's ``Cargo.toml``.

    Args:
        crate_dir: Directory that may contain a ``Cargo.toml``.
        version_override: Use this version for the crate regardless of
            what the manifest says.

    Returns:
        The crate descriptor, or ``None`` when there is no manifest or the
        manifest is a virtual workspace root with no ``[package]``.

    Raises:
        PubkitError: The manifest exists but its identity is unusable.
    """
    manifest = crate_dir / MANIFEST
    if not manifest.is_file():
        return None

    doc = await read_toml(manifest)
    package_table = doc.get('package')
    if not isinstance(package_table, dict):
        log.debug('virtual_manifest', path=str(manifest))
        return None

    name = require_str(package_table, 'name', manifest)

    raw_version = package_table.get('version')
    if version_override:
        version = version_override
    elif isinstance(raw_version, str) and raw_version.strip():
        version = raw_version.strip()
    elif isinstance(raw_version, dict) and raw_version.get('workspace') is True:
        inherited = await find_workspace_version(crate_dir)
        if inherited is None:
            raise PubkitError(
                code=E.MANIFEST_INVALID,
                message=f'{manifest}: version.workspace = true but no [workspace.package] version was found',
                hint='Set [workspace.package].version in the workspace Cargo.toml or pass --version.',
            )
        version = inherited
    else:
        raise PubkitError(
            code=E.MANIFEST_INVALID,
            message=f'{manifest}: missing [package].version',
            hint='Set a version string or version.workspace = true.',
        )

    return Package(
        name=name,
        version=version,
        path=crate_dir,
        manifest_path=manifest,
        ecosystem=Ecosystem.RUST,
        is_private=_is_private(package_table),
        all_deps=parse_dependencies(doc),
        version_overridden=bool(version_override) and raw_version != version_override,
    )


__all__ = [
    'find_workspace_version',
    'parse_dependencies',
    'read_crate',
    'workspace_members',
]
