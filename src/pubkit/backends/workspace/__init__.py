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

"""Workspace package discovery across npm, Cargo and uv workspaces.

Reads member globs (from ``pubkit.toml`` or the native workspace file),
parses each member's manifest and classifies dependencies as internal
(another package of the same workspace) or not.

Data Flow::

    members globs ──► expand (relative to root) ──► read_package() per dir
                                                         │
                         ┌───────────────────────────────┼────────────────┐
                         ▼                               ▼                ▼
                    Package                    InvalidManifest         None
                    (kept)                     (skipped-invalid)   (not a package)
                         │
                         ▼
              exclude globs / --filter ──► internal_deps filled in

Exclusion applies to package *names* (``"*-example"``), the ``--filter``
flag is a plain substring match, as the shell scripts did with
``grep``. The version map returned alongside covers every parsed package,
excluded or not, because a path dependency on an excluded crate still
needs a concrete version when manifests are rewritten.

Usage::

    from pubkit.backends.workspace import discover_packages

    found = await discover_packages(Path('rust'), Ecosystem.RUST)
    for pkg in found.packages:
        print(pkg.name, pkg.version, pkg.internal_deps)
"""

from __future__ import annotations

import dataclasses
import fnmatch
from dataclasses import dataclass, field
from pathlib import Path

from pubkit.backends.workspace import cargo, npm, pyproject
from pubkit.backends.workspace._types import Ecosystem, InvalidManifest, Package
from pubkit.errors import E, PubkitError
from pubkit.logging import get_logger

logger = get_logger(__name__)

__all__ = [
    'DiscoveryResult',
    'Ecosystem',
    'InvalidManifest',
    'Package',
    'discover_packages',
    'native_members',
    'read_package',
]


@dataclass
class DiscoveryResult:
    """Outcome of scanning a workspace.

    Attributes:
        packages: Packages selected for this run, sorted by name.
        invalid: Directories whose manifest could not be read.
        version_map: ``name -> version`` for every parsed package,
            including ones removed by ``exclude`` or ``--filter``.
    """

    packages: list[Package] = field(default_factory=list)
    invalid: list[InvalidManifest] = field(default_factory=list)
    version_map: dict[str, str] = field(default_factory=dict)


async def read_package(
    pkg_dir: Path,
    ecosystem: Ecosystem,
    *,
    version_override: str | None = None,
) -> Package | None:
    """Read the manifest of ``pkg_dir`` for ``ecosystem``."""
    if ecosystem == Ecosystem.RUST:
        return await cargo.read_crate(pkg_dir, version_override=version_override)
    if ecosystem == Ecosystem.JS:
        return await npm.read_package_json(pkg_dir, version_override=version_override)
    return await pyproject.read_pyproject(pkg_dir, version_override=version_override)


async def native_members(root: Path, ecosystem: Ecosystem) -> list[str]:
    """Member globs declared by the ecosystem's own workspace file."""
    if ecosystem == Ecosystem.RUST:
        return await cargo.workspace_members(root)
    if ecosystem == Ecosystem.JS:
        return await npm.workspace_members(root)
    return await pyproject.workspace_members(root)


def _expand_member_globs(root: Path, members: list[str]) -> list[Path]:
    """Expand member globs into directories, keeping first-seen order."""
    found: dict[Path, None] = {}
    for pattern in members:
        pattern = pattern.strip().removeprefix('./').rstrip('/')
        if pattern in ('', '.'):
            candidates = [root]
        else:
            candidates = sorted(root.glob(pattern))
        for candidate in candidates:
            if candidate.is_dir():
                found.setdefault(candidate.resolve(), None)
    return list(found)


def _excluded(name: str, exclude: list[str]) -> bool:
    return any(fnmatch.fnmatch(name, pat) for pat in exclude)


async def discover_packages(
    root: Path,
    ecosystem: Ecosystem,
    *,
    members: list[str] | None = None,
    exclude: list[str] | None = None,
    name_filter: str | None = None,
    version_override: str | None = None,
) -> DiscoveryResult:
    """Discover the packages of one ecosystem under ``root``.

    Args:
        root: Workspace root; member globs are relative to it.
        ecosystem: Which manifest format to read.
        members: Member globs. Defaults to the native workspace file.
        exclude: Package-name globs to drop.
        name_filter: Keep only packages whose name contains this string.
        version_override: Force this version on every package (Cargo's
            ``--version`` flag).

    Returns:
        A :class:`DiscoveryResult`.

    Raises:
        PubkitError: The root does not exist, no members are declared,
            or two members share a name.
    """
    if not root.is_dir():
        raise PubkitError(
            code=E.WORKSPACE_NOT_FOUND,
            message=f'Workspace root {root} does not exist',
            hint='Pass --root or set "root" in the [workspace.<label>] section of pubkit.toml.',
        )

    globs = list(members) if members else await native_members(root, ecosystem)
    if not globs:
        raise PubkitError(
            code=E.WORKSPACE_NOT_FOUND,
            message=f'No {ecosystem.value} workspace members declared under {root}',
            hint='Declare members in the workspace file or in pubkit.toml (members = ["packages/*"]).',
        )

    result = DiscoveryResult()
    parsed: list[Package] = []
    seen: dict[str, Path] = {}
    for pkg_dir in _expand_member_globs(root, globs):
        try:
            pkg = await read_package(pkg_dir, ecosystem, version_override=version_override)
        except PubkitError as exc:
            logger.warning('manifest_invalid', path=str(pkg_dir), reason=exc.message)
            result.invalid.append(InvalidManifest(path=pkg_dir, reason=exc.message))
            continue
        if pkg is None:
            continue
        if pkg.name in seen:
            raise PubkitError(
                code=E.WORKSPACE_DUPLICATE_PACKAGE,
                message=f"Duplicate package name '{pkg.name}' found at {pkg_dir} and {seen[pkg.name]}",
                hint='Each package in the workspace must have a unique name.',
            )
        seen[pkg.name] = pkg_dir
        parsed.append(pkg)

    result.version_map = {p.name: p.version for p in parsed}

    selected = [p for p in parsed if not _excluded(p.name, exclude or [])]
    if name_filter:
        selected = [p for p in selected if name_filter in p.name]

    names = {p.name for p in selected}
    result.packages = sorted(
        (
            dataclasses.replace(p, internal_deps=sorted(d for d in p.all_deps if d in names and d != p.name))
            for p in selected
        ),
        key=lambda p: p.name,
    )
    logger.info(
        'discovered_packages',
        ecosystem=ecosystem.value,
        count=len(result.packages),
        invalid=len(result.invalid),
    )
    return result
