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

"""Python package manager backend: ``python -m build`` plus ``twine``.

Build artifacts land in ``<package>/dist``. A stale ``dist/`` would make
``twine upload dist/*`` re-upload old files, so :meth:`TwineBackend.build`
cleans first. In upload-only mode the existing ``dist/`` is uploaded
as-is.
"""

from __future__ import annotations

import asyncio
import shutil
import sys
from pathlib import Path

from pubkit.backends._run import CommandResult, run_command
from pubkit.backends.pm._classify import classify_upload
from pubkit.backends.pm._types import UploadResult, UploadStatus
from pubkit.backends.workspace._types import Package
from pubkit.logging import get_logger

log = get_logger('pubkit.backends.pm.twine')

BUILD_OUTPUTS = ('dist', 'build')


def dist_artifacts(package_dir: Path) -> list[Path]:
    """Wheels and sdists currently in ``package_dir/dist``."""
    dist = package_dir / 'dist'
    if not dist.is_dir():
        return []
    return sorted(p for p in dist.iterdir() if p.suffix == '.whl' or p.name.endswith('.tar.gz'))


def _clean_outputs(package_dir: Path) -> None:
    for name in BUILD_OUTPUTS:
        shutil.rmtree(package_dir / name, ignore_errors=True)
    for egg_info in package_dir.glob('*.egg-info'):
        shutil.rmtree(egg_info, ignore_errors=True)


class TwineBackend:
    """PyPI :class:`~pubkit.backends.pm.PackageManager` implementation.

    Args:
        python: Interpreter used for ``-m build``. Defaults to the one
            running pubkit.
        repository_url: Upload endpoint (``--repository-url``), empty for
            twine's default.
    """

    def __init__(self, *, python: str = sys.executable, repository_url: str = '') -> None:
        """Initialize with the build interpreter and upload endpoint."""
        self._python = python
        self._repository_url = repository_url

    async def clean(self, package: Package) -> None:
        """Remove ``dist/``, ``build/`` and ``*.egg-info``."""
        await asyncio.to_thread(_clean_outputs, package.path)

    async def build(self, package: Package) -> CommandResult:
        """Build sdist and wheel; a build that produces nothing is a failure."""
        await self.clean(package)
        log.info('build', package=package.name)
        result = await asyncio.to_thread(
            run_command,
            [self._python, '-m', 'build', '--no-isolation'],
            cwd=package.path,
        )
        if result.ok and not dist_artifacts(package.path):
            return CommandResult(
                command=result.command,
                return_code=1,
                stdout=result.stdout,
                stderr='error: build produced no files in dist/',
                duration=result.duration,
            )
        return result

    async def check(self, package: Package) -> list[CommandResult]:
        """Build, then run ``twine check`` on the artifacts."""
        built = await self.build(package)
        if not built.ok:
            return [built]
        files = [str(p) for p in dist_artifacts(package.path)]
        checked = await asyncio.to_thread(run_command, ['twine', 'check', *files], cwd=package.path)
        return [built, checked]

    async def upload(self, package: Package, *, dry_run: bool = False) -> UploadResult:
        """Run ``twine upload`` on every file in ``dist/``."""
        files = [str(p) for p in dist_artifacts(package.path)]
        if not files and not dry_run:
            return UploadResult(status=UploadStatus.FAILED, message=f'no artifacts in {package.path / "dist"}')
        cmd = ['twine', 'upload', '--non-interactive']
        if self._repository_url:
            cmd.extend(['--repository-url', self._repository_url])
        cmd.extend(files)
        log.info('upload', package=package.name, files=len(files), dry_run=dry_run)
        result = await asyncio.to_thread(run_command, cmd, cwd=package.path, dry_run=dry_run)
        return classify_upload(result)


__all__ = [
    'TwineBackend',
    'dist_artifacts',
]
