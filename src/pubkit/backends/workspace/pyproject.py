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

"""``pyproject.toml`` reader (PEP 621 ``[project]`` table)."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from packaging.requirements import InvalidRequirement, Requirement

from pubkit.backends.workspace._io import read_toml, require_str
from pubkit.backends.workspace._types import Ecosystem, Package
from pubkit.errors import E, PubkitError
from pubkit.logging import get_logger

log = get_logger('pubkit.backends.workspace.pyproject')

MANIFEST = 'pyproject.toml'

PRIVATE_CLASSIFIER = 'Private :: Do Not Upload'


def normalize_name(name: str) -> str:
    """Normalize a distribution name per PEP 503."""
    return re.sub(r'[-_.]+', '-', name).lower()


def _requirement_name(spec: str) -> str | None:
    try:
        return normalize_name(Requirement(spec).name)
    except InvalidRequirement:
        log.debug('invalid_requirement', spec=spec)
        return None


def parse_dependencies(project: dict[str, Any]) -> list[str]:  # noqa: ANN401
    """Normalized names from ``dependencies`` and ``optional-dependencies``."""
    specs: list[str] = [d for d in project.get('dependencies', []) if isinstance(d, str)]
    optional = project.get('optional-dependencies', {})
    if isinstance(optional, dict):
        for group in optional.values():
            if isinstance(group, list):
                specs.extend(d for d in group if isinstance(d, str))
    names = {n for n in (_requirement_name(s) for s in specs) if n}
    return sorted(names)


async def workspace_members(root: Path) -> list[str]:
    """Member globs from ``[tool.uv.workspace]`` in ``root/pyproject.toml``."""
    manifest = root / MANIFEST
    if not manifest.is_file():
        return []
    doc = await read_toml(manifest)
    members = doc.get('tool', {}).get('uv', {}).get('workspace', {}).get('members', [])
    return [m for m in members if isinstance(m, str)]


async def read_pyproject(pkg_dir: Path, *, version_override: str | None = None) -> Package | None:
    """Read one ``pyproject.toml``.

    Returns ``None`` without a manifest or without a ``[project]`` table
    (a uv workspace root that only orchestrates members).

    Raises:
        PubkitError: ``name`` is missing, or ``version`` is missing or
            declared dynamic (it cannot be known without building).
    """
    manifest = pkg_dir / MANIFEST
    if not manifest.is_file():
        return None

    doc = await read_toml(manifest)
    project = doc.get('project')
    if not isinstance(project, dict):
        return None

    name = normalize_name(require_str(project, 'name', manifest))
    if version_override:
        version = version_override
    elif 'version' in project.get('dynamic', []):
        raise PubkitError(
            code=E.MANIFEST_INVALID,
            message=f'{manifest}: version is dynamic',
            hint='Only static [project].version values can be checked against PyPI before building.',
        )
    else:
        version = require_str(project, 'version', manifest)

    classifiers = project.get('classifiers', [])
    return Package(
        name=name,
        version=version,
        path=pkg_dir,
        manifest_path=manifest,
        ecosystem=Ecosystem.PYTHON,
        is_private=PRIVATE_CLASSIFIER in classifiers,
        all_deps=parse_dependencies(project),
        version_overridden=bool(version_override) and project.get('version') != version_override,
    )


__all__ = [
    'PRIVATE_CLASSIFIER',
    'normalize_name',
    'parse_dependencies',
    'read_pyproject',
    'workspace_members',
]
