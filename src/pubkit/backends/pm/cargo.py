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

"""Rust/Cargo package manager backend.

The :class:`CargoBackend` implements the
:class:`~pubkit.backends.pm.PackageManager` protocol via the ``cargo``
CLI. Every command runs inside the crate directory, so the crate's own
(possibly rewritten) ``Cargo.toml`` is the one that gets packaged.

Authentication is handled by cargo itself, via ``CARGO_REGISTRY_TOKEN``
or ``~/.cargo/credentials.toml``.

All methods are async; blocking subprocess calls are dispatched to
``asyncio.to_thread()`` to avoid blocking the event loop.
"""

from __future__ import annotations

import asyncio

from pubkit.backends._run import CommandResult, run_command
from pubkit.backends.pm._classify import classify_upload
from pubkit.backends.pm._types import UploadResult
from pubkit.backends.workspace._types import Package
from pubkit.logging import get_logger

log = get_logger('pubkit.backends.pm.cargo')


class CargoBackend:
    """Rust :class:`~pubkit.backends.pm.PackageManager` implementation.

    Args:
        index_url: Alternative registry index (``--index``), empty for
            crates.io.
    """

    def __init__(self, *, index_url: str = '') -> None:
        """Initialize with an optional registry index."""
        self._index_url = index_url

    def _index_args(self) -> list[str]:
        return ['--index', self._index_url] if self._index_url else []

    async def check(self, package: Package) -> list[CommandResult]:
        """Run ``cargo fmt --check``, ``cargo clippy`` and ``cargo test``."""
        steps = [
            ['cargo', 'fmt', '--all', '--', '--check'],
            ['cargo', 'clippy'],
            ['cargo', 'test'],
        ]
        results: list[CommandResult] = []
        for cmd in steps:
            log.info('check_step', package=package.name, step=cmd[1])
            results.append(await asyncio.to_thread(run_command, cmd, cwd=package.path))
        return results

    async def build(self, package: Package) -> CommandResult:
        """Package and verify the crate with ``cargo publish --dry-run``.

        ``--allow-dirty`` is required because the manifest may have been
        rewritten for this publish.
        """
        cmd = ['cargo', 'publish', '--dry-run', '--allow-dirty', *self._index_args()]
        log.info('build', package=package.name)
        return await asyncio.to_thread(run_command, cmd, cwd=package.path)

    async def upload(self, package: Package, *, dry_run: bool = False) -> UploadResult:
        """Publish the crate. Verification already happened in :meth:`build`."""
        cmd = ['cargo', 'publish', '--allow-dirty', '--no-verify', *self._index_args()]
        log.info('upload', package=package.name, dry_run=dry_run)
        result = await asyncio.to_thread(run_command, cmd, cwd=package.path, dry_run=dry_run)
        return classify_upload(result)

    async def clean(self, package: Package) -> None:
        """Nothing to clean; ``target/`` is shared by the workspace."""


__all__ = [
    'CargoBackend',
]
