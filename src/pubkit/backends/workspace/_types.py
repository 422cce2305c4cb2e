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

"""Shared types for the workspace subpackage."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

__all__ = [
    'Ecosystem',
    'InvalidManifest',
    'Package',
]


class Ecosystem(str, Enum):
    """A package ecosystem and the registry it publishes to."""

    JS = 'js'
    RUST = 'rust'
    PYTHON = 'python'

    @property
    def manifest_name(self) -> str:
        """File name of the per-package manifest."""
        return _MANIFEST_NAMES[self]

    @property
    def registry_name(self) -> str:
        """Human name of the target registry."""
        return _REGISTRY_NAMES[self]


_MANIFEST_NAMES: dict[Ecosystem, str] = {
    Ecosystem.JS: 'package.json',
    Ecosystem.RUST: 'Cargo.toml',
    Ecosystem.PYTHON: 'pyproject.toml',
}

_REGISTRY_NAMES: dict[Ecosystem, str] = {
    Ecosystem.JS: 'npm',
    Ecosystem.RUST: 'crates.io',
    Ecosystem.PYTHON: 'PyPI',
}


@dataclass(frozen=True)
class Package:
    """A package descriptor read from its manifest.

    Immutable for the duration of a publish run.

    Attributes:
        name: Registry name (e.g. ``"@acme/core"``, ``"acme-core"``).
        version: Version string in the registry's own format.
        path: Package directory.
        manifest_path: ``package.json``, ``Cargo.toml`` or ``pyproject.toml``.
        ecosystem: Which registry this package goes to.
        is_private: Never published (``"private": true``,
            ``publish = false``, ``Private :: Do Not Upload``).
        internal_deps: Workspace packages (same ecosystem) this one
            depends on. Filled in by discovery.
        all_deps: Every declared same-registry dependency name.
        version_overridden: ``version`` was forced by an override and differs
            from what the manifest declares.
    """

    name: str
    version: str
    path: Path
    manifest_path: Path
    ecosystem: Ecosystem = Ecosystem.JS
    is_private: bool = False
    internal_deps: list[str] = field(default_factory=list)
    all_deps: list[str] = field(default_factory=list)
    version_overridden: bool = False


@dataclass(frozen=True)
class InvalidManifest:
    """A manifest that exists but does not yield a usable identity.

    Attributes:
        path: The package directory.
        reason: Why the name or version could not be determined.
    """

    path: Path
    reason: str
