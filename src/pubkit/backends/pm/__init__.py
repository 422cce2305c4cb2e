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

"""Package manager protocol for pubkit.

The :class:`PackageManager` protocol defines the async interface for
checking, building and uploading one package. Implementations:

- :class:`~pubkit.backends.pm.cargo.CargoBackend` (``cargo``)
- :class:`~pubkit.backends.pm.npm.NpmBackend` (``npm``)
- :class:`~pubkit.backends.pm.twine.TwineBackend` (``python -m build`` + ``twine``)

Uploads return a typed :class:`UploadResult`; the text matching that
produces it lives in :func:`classify_upload` only.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pubkit.backends._run import CommandResult
from pubkit.backends.pm._classify import classify_upload as classify_upload, error_excerpt as error_excerpt
from pubkit.backends.pm._types import UploadResult as UploadResult, UploadStatus as UploadStatus
from pubkit.backends.pm.cargo import CargoBackend as CargoBackend
from pubkit.backends.pm.npm import NpmBackend as NpmBackend
from pubkit.backends.pm.twine import TwineBackend as TwineBackend
from pubkit.backends.workspace._types import Ecosystem, Package

__all__ = [
    'CargoBackend',
    'NpmBackend',
    'PackageManager',
    'TwineBackend',
    'UploadResult',
    'UploadStatus',
    'classify_upload',
    'create_package_manager',
    'error_excerpt',
]


@runtime_checkable
class PackageManager(Protocol):
    """Protocol for per-package check, build and upload operations.

    All methods are async to avoid blocking the event loop when
    shelling out to ``cargo``, ``npm`` or ``twine``.
    """

    async def check(self, package: Package) -> list[CommandResult]:
        """Run lint, format and test steps. Failures are advisory."""
        ...

    async def build(self, package: Package) -> CommandResult:
        """Build or verify the package without uploading it."""
        ...

    async def upload(self, package: Package, *, dry_run: bool = False) -> UploadResult:
        """Upload the package and classify the registry's answer.

        Args:
            package: The package to upload.
            dry_run: Log the command without executing.
        """
        ...

    async def clean(self, package: Package) -> None:
        """Remove build outputs, if the backend produces any."""
        ...


def create_package_manager(
    ecosystem: Ecosystem,
    *,
    tag: str = 'next',
    upload_url: str = '',
) -> CargoBackend | NpmBackend | TwineBackend:
    """Return the package manager backend for ``ecosystem``.

    Args:
        ecosystem: Which tool to drive.
        tag: npm dist-tag for ``npm publish``.
        upload_url: Upload target (cargo ``--index``, npm ``--registry``,
            twine ``--repository-url``); empty for the default registry.
    """
    if ecosystem == Ecosystem.RUST:
        return CargoBackend(index_url=upload_url)
    if ecosystem == Ecosystem.JS:
        return NpmBackend(tag=tag, registry_url=upload_url)
    return TwineBackend(repository_url=upload_url)
