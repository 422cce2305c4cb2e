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

"""Fake PackageManager backend for tests.

Provides a configurable :class:`FakePM` that satisfies the full
:class:`~pubkit.backends.pm.PackageManager` protocol and records every
call in :attr:`FakePM.calls` as ``(operation, package_name)``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from pubkit.backends._run import CommandResult
from pubkit.backends.pm import UploadResult, UploadStatus
from pubkit.backends.workspace import Package

OK = CommandResult(command=[], return_code=0, stdout='', stderr='')
"""A successful no-op ``CommandResult`` for use as a default return value."""


def failed(stderr: str = 'error: boom', *, command: list[str] | None = None) -> CommandResult:
    """A failed ``CommandResult`` with ``stderr``."""
    return CommandResult(command=command or ['fake'], return_code=1, stdout='', stderr=stderr)


class FakePM:
    """Configurable PackageManager test double."""

    def __init__(
        self,
        *,
        builds: dict[str, CommandResult] | None = None,
        uploads: dict[str, list[UploadStatus]] | None = None,
        checks: dict[str, list[CommandResult]] | None = None,
        on_upload: Callable[[Package], None] | None = None,
        upload_error: dict[str, Exception] | None = None,
    ) -> None:
        """Initialize with per-package scripted results.

        Args:
            builds: Build result per package name (default :data:`OK`).
            uploads: Upload statuses per package name, consumed one per
                call; the last one repeats. Default ``UPLOADED``.
            checks: Check step results per package name.
            on_upload: Called with the package at the start of every
                upload, e.g. to inspect the rewritten manifest.
            upload_error: Exception to raise from ``upload`` per package.
        """
        self._builds = builds or {}
        self._uploads = {name: list(statuses) for name, statuses in (uploads or {}).items()}
        self._checks = checks or {}
        self._on_upload = on_upload
        self._upload_error = upload_error or {}
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _step(self, op: str, package: Package) -> None:
        self.calls.append((op, package.name))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        # Yield so concurrent workers interleave.
        await asyncio.sleep(0)
        self.in_flight -= 1

    def count(self, op: str, name: str) -> int:
        """Number of ``op`` calls for ``name``."""
        return self.calls.count((op, name))

    async def check(self, package: Package) -> list[CommandResult]:
        """Return scripted check results."""
        await self._step('check', package)
        return self._checks.get(package.name, [OK])

    async def build(self, package: Package) -> CommandResult:
        """Return the scripted build result."""
        await self._step('build', package)
        return self._builds.get(package.name, OK)

    async def upload(self, package: Package, *, dry_run: bool = False) -> UploadResult:
        """Return the next scripted upload status."""
        await self._step('upload', package)
        if self._on_upload is not None:
            self._on_upload(package)
        if package.name in self._upload_error:
            raise self._upload_error[package.name]
        script = self._uploads.get(package.name)
        status = UploadStatus.UPLOADED
        if script:
            status = script.pop(0) if len(script) > 1 else script[0]
        if status == UploadStatus.FAILED:
            return UploadResult(status=status, message='error: upload rejected', result=failed('error: upload rejected'))
        return UploadResult(status=status)

    async def clean(self, package: Package) -> None:
        """Record the clean."""
        self.calls.append(('clean', package.name))
