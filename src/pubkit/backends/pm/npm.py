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

"""npm package manager backend.

Commands::

    check / build   npm pack --dry-run
    upload          npm publish --tag <tag> --access public
    add_dist_tag    npm dist-tag add <name>@<version> <tag>

Packages are expected to be built already (``dist/`` committed by the
workspace build); ``npm pack --dry-run`` verifies that the tarball can be
assembled from the files the manifest lists.
"""

from __future__ import annotations

import asyncio

from pubkit.backends._run import CommandResult, run_command
from pubkit.backends.pm._classify import classify_upload
from pubkit.backends.pm._types import UploadResult
from pubkit.backends.workspace._types import Package
from pubkit.logging import get_logger

log = get_logger('pubkit.backends.pm.npm')

DEFAULT_TAG = 'next'


class NpmBackend:
    """npm :class:`~pubkit.backends.pm.PackageManager` implementation.

    Args:
        tag: Dist-tag applied by ``npm publish``.
        registry_url: Alternative registry (``--registry``), empty for
            the one configured in ``.npmrc``.
    """

    def __init__(self, *, tag: str = DEFAULT_TAG, registry_url: str = '') -> None:
        """Initialize with the publish tag and optional registry URL."""
        self._tag = tag
        self._registry_url = registry_url

    def _registry_args(self) -> list[str]:
        return ['--registry', self._registry_url] if self._registry_url else []

    async def check(self, package: Package) -> list[CommandResult]:
        """Verify the tarball can be packed."""
        return [await self.build(package)]

    async def build(self, package: Package) -> CommandResult:
        """Run ``npm pack --dry-run`` in the package directory."""
        log.info('build', package=package.name)
        return await asyncio.to_thread(run_command, ['npm', 'pack', '--dry-run'], cwd=package.path)

    async def upload(self, package: Package, *, dry_run: bool = False) -> UploadResult:
        """Run ``npm publish`` with the configured tag."""
        cmd = ['npm', 'publish', '--tag', self._tag, '--access', 'public', *self._registry_args()]
        log.info('upload', package=package.name, tag=self._tag, dry_run=dry_run)
        result = await asyncio.to_thread(run_command, cmd, cwd=package.path, dry_run=dry_run)
        return classify_upload(result)

    async def clean(self, package: Package) -> None:
        """``npm pack --dry-run`` leaves nothing behind."""

    async def add_dist_tag(self, name: str, version: str, tag: str, *, dry_run: bool = False) -> CommandResult:
        """Point ``tag`` at ``name@version``."""
        cmd = ['npm', 'dist-tag', 'add', f'{name}@{version}', tag, *self._registry_args()]
        return await asyncio.to_thread(run_command, cmd, dry_run=dry_run)

    async def whoami(self) -> CommandResult:
        """Run ``npm whoami``; succeeds only with a valid auth token."""
        return await asyncio.to_thread(run_command, ['npm', 'whoami', *self._registry_args()], timeout=60)


__all__ = [
    'DEFAULT_TAG',
    'NpmBackend',
]
