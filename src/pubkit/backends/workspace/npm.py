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

"""``package.json`` reader.

Identity comes from ``name`` and ``version``; ``"private": true`` marks a
package that must never be published. Publish order is constrained by
``dependencies``, ``peerDependencies`` and ``optionalDependencies``;
``devDependencies`` never reach consumers and are ignored.

Dependency specs are not inspected here: a dependency on a workspace
package constrains order whether it says ``workspace:*`` or ``^2.0.0``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pubkit.backends.workspace._io import read_json_object, require_str
from pubkit.backends.workspace._types import Ecosystem, Package

MANIFEST = 'package.json'

_ORDERING_SECTIONS = ('dependencies', 'peerDependencies', 'optionalDependencies')


def _is_private(data: dict[str, Any]) -> bool:  # noqa: ANN401
    return data.get('private') is True


def parse_dependencies(data: dict[str, Any]) -> list[str]:  # noqa: ANN401
    """Sorted names from the order-relevant dependency sections."""
    names: set[str] = set()
    for section in _ORDERING_SECTIONS:
        table = data.get(section)
        if isinstance(table, dict):
            names.update(str(k) for k in table)
    return sorted(names)


async def workspace_members(root: Path) -> list[str]:
    """Globs from the root ``package.json`` ``workspaces`` field.

    Accepts both the array form and Yarn's ``{"packages": [...]}`` form.
    """
    manifest = root / MANIFEST
    if not manifest.is_file():
        return []
    data = await read_json_object(manifest)
    workspaces = data.get('workspaces', [])
    if isinstance(workspaces, dict):
        workspaces = workspaces.get('packages', [])
    if not isinstance(workspaces, list):
        return []
    return [w for w in workspaces if isinstance(w, str)]


async def read_package_json(pkg_dir: Path, *, version_override: str | None = None) -> Package | None:
    """Read one ``package.json``; ``None`` if the directory has none."""
    manifest = pkg_dir / MANIFEST
    if not manifest.is_file():
        return None

    data = await read_json_object(manifest)
    name = require_str(data, 'name', manifest)
    version = version_override or require_str(data, 'version', manifest)

    return Package(
        name=name,
        version=version,
        path=pkg_dir,
        manifest_path=manifest,
        ecosystem=Ecosystem.JS,
        is_private=_is_private(data),
        all_deps=parse_dependencies(data),
        version_overridden=bool(version_override) and data.get('version') != version_override,
    )


__all__ = [
    'parse_dependencies',
    'read_package_json',
    'workspace_members',
]
