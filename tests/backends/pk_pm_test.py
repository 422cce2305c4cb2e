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

"""Tests for pubkit.backends.pm backends."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
from pubkit.backends._run import CommandResult
from pubkit.backends.pm import (
    CargoBackend,
    NpmBackend,
    PackageManager,
    TwineBackend,
    UploadStatus,
    create_package_manager,
)
from pubkit.backends.workspace import Ecosystem, Package
from pubkit.logging import configure_logging

configure_logging(quiet=True)


class Recorder:
    """Stand-in for run_command that records invocations."""

    def __init__(self, *results: CommandResult) -> None:
        """Initialize with results returned in order; the last repeats."""
        self.results = list(results)
        self.calls: list[tuple[list[str], dict[str, Any]]] = []

    def __call__(self, cmd: list[str], **kwargs: Any) -> CommandResult:  # noqa: ANN401
        """Record and answer."""
        self.calls.append((cmd, kwargs))
        if not self.results:
            return CommandResult(command=cmd, return_code=0, dry_run=kwargs.get('dry_run', False))
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]

    @property
    def commands(self) -> list[list[str]]:
        """Just the argv lists."""
        return [cmd for cmd, _ in self.calls]


def _pkg(path: Path, ecosystem: Ecosystem = Ecosystem.RUST, name: str = 'acme-core') -> Package:
    return Package(
        name=name,
        version='1.2.0',
        path=path,
        manifest_path=path / ecosystem.manifest_name,
        ecosystem=ecosystem,
    )


class TestProtocol:
    """Every backend satisfies PackageManager."""

    def test_backends_implement_protocol(self) -> None:
        """Test backends implement protocol."""
        for backend in (CargoBackend(), NpmBackend(), TwineBackend()):
            assert isinstance(backend, PackageManager)

    def test_factory(self) -> None:
        """Each ecosystem maps to its backend."""
        assert isinstance(create_package_manager(Ecosystem.RUST), CargoBackend)
        assert isinstance(create_package_manager(Ecosystem.JS), NpmBackend)
        assert isinstance(create_package_manager(Ecosystem.PYTHON), TwineBackend)

    @pytest.mark.asyncio
    async def test_factory_passes_upload_url(self, tmp_path: Path) -> None:
        """The upload target reaches every tool's command line."""
        runner = Recorder()
        with (
            patch('pubkit.backends.pm.cargo.run_command', runner),
            patch('pubkit.backends.pm.npm.run_command', runner),
            patch('pubkit.backends.pm.twine.run_command', runner),
        ):
            await create_package_manager(Ecosystem.RUST, upload_url='sparse+http://localhost:8000/').upload(_pkg(tmp_path))
            await create_package_manager(Ecosystem.JS, upload_url='http://localhost:4873').upload(
                _pkg(tmp_path, Ecosystem.JS)
            )
            dist = tmp_path / 'dist'
            dist.mkdir()
            (dist / 'acme_core-1.2.0-py3-none-any.whl').write_bytes(b'')
            await create_package_manager(Ecosystem.PYTHON, upload_url='https://test.pypi.org/legacy/').upload(
                _pkg(tmp_path, Ecosystem.PYTHON)
            )

        cargo_cmd, npm_cmd, twine_cmd = runner.commands
        assert cargo_cmd[-2:] == ['--index', 'sparse+http://localhost:8000/']
        assert npm_cmd[-2:] == ['--registry', 'http://localhost:4873']
        assert twine_cmd[twine_cmd.index('--repository-url') + 1] == 'https://test.pypi.org/legacy/'


class TestCargoBackend:
    """Tests for CargoBackend."""

    @pytest.mark.asyncio
    async def test_build_is_publish_dry_run(self, tmp_path: Path) -> None:
        """build packages and verifies with cargo publish --dry-run."""
        runner = Recorder()
        with patch('pubkit.backends.pm.cargo.run_command', runner):
            result = await CargoBackend().build(_pkg(tmp_path))

        assert result.ok
        assert runner.commands == [['cargo', 'publish', '--dry-run', '--allow-dirty']]
        assert runner.calls[0][1]['cwd'] == tmp_path

    @pytest.mark.asyncio
    async def test_upload_skips_verification(self, tmp_path: Path) -> None:
        """upload passes --no-verify and forwards dry_run."""
        runner = Recorder()
        with patch('pubkit.backends.pm.cargo.run_command', runner):
            upload = await CargoBackend().upload(_pkg(tmp_path), dry_run=True)

        assert upload.status == UploadStatus.UPLOADED
        assert '--no-verify' in runner.commands[0]
        assert runner.calls[0][1]['dry_run'] is True

    @pytest.mark.asyncio
    async def test_upload_rate_limited(self, tmp_path: Path) -> None:
        """A 429 from crates.io is classified as rate limited."""
        runner = Recorder(
            CommandResult(
                command=['cargo'],
                return_code=101,
                stderr='error: failed to publish: status 429 Too Many Requests',
            )
        )
        with patch('pubkit.backends.pm.cargo.run_command', runner):
            upload = await CargoBackend().upload(_pkg(tmp_path))

        assert upload.status == UploadStatus.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_check_runs_three_steps(self, tmp_path: Path) -> None:
        """check runs fmt, clippy and test even if one fails."""
        runner = Recorder(
            CommandResult(command=['cargo', 'fmt'], return_code=1, stderr='Diff in src/lib.rs'),
            CommandResult(command=['cargo', 'clippy'], return_code=0),
        )
        with patch('pubkit.backends.pm.cargo.run_command', runner):
            results = await CargoBackend().check(_pkg(tmp_path))

        assert [cmd[1] for cmd in runner.commands] == ['fmt', 'clippy', 'test']
        assert [r.ok for r in results] == [False, True, True]


class TestNpmBackend:
    """Tests for NpmBackend."""

    @pytest.mark.asyncio
    async def test_upload_uses_tag(self, tmp_path: Path) -> None:
        """npm publish carries the configured dist-tag."""
        runner = Recorder()
        with patch('pubkit.backends.pm.npm.run_command', runner):
            await NpmBackend(tag='beta').upload(_pkg(tmp_path, Ecosystem.JS))

        assert runner.commands[0] == ['npm', 'publish', '--tag', 'beta', '--access', 'public']

    @pytest.mark.asyncio
    async def test_registry_url(self, tmp_path: Path) -> None:
        """A registry URL is passed through."""
        runner = Recorder()
        with patch('pubkit.backends.pm.npm.run_command', runner):
            await NpmBackend(registry_url='http://localhost:4873').upload(_pkg(tmp_path, Ecosystem.JS))

        assert runner.commands[0][-2:] == ['--registry', 'http://localhost:4873']

    @pytest.mark.asyncio
    async def test_publish_over_existing(self, tmp_path: Path) -> None:
        """npm's EPUBLISHCONFLICT is a duplicate, not a failure."""
        runner = Recorder(
            CommandResult(
                command=['npm'],
                return_code=1,
                stderr='npm ERR! code EPUBLISHCONFLICT\nnpm ERR! cannot publish over the previously published versions',
            )
        )
        with patch('pubkit.backends.pm.npm.run_command', runner):
            upload = await NpmBackend().upload(_pkg(tmp_path, Ecosystem.JS))

        assert upload.status == UploadStatus.ALREADY_EXISTS
        assert upload.ok

    @pytest.mark.asyncio
    async def test_add_dist_tag(self) -> None:
        """dist-tag add names package@version and the tag."""
        runner = Recorder()
        with patch('pubkit.backends.pm.npm.run_command', runner):
            await NpmBackend().add_dist_tag('@acme/core', '1.2.0', 'next', dry_run=True)

        assert runner.commands[0] == ['npm', 'dist-tag', 'add', '@acme/core@1.2.0', 'next']
        assert runner.calls[0][1]['dry_run'] is True

    @pytest.mark.asyncio
    async def test_build_is_pack_dry_run(self, tmp_path: Path) -> None:
        """check and build both pack without writing a tarball."""
        runner = Recorder()
        with patch('pubkit.backends.pm.npm.run_command', runner):
            results = await NpmBackend().check(_pkg(tmp_path, Ecosystem.JS))

        assert len(results) == 1
        assert runner.commands == [['npm', 'pack', '--dry-run']]


class TestTwineBackend:
    """Tests for TwineBackend."""

    @pytest.mark.asyncio
    async def test_build_without_artifacts_fails(self, tmp_path: Path) -> None:
        """A build that leaves dist/ empty is reported as failed."""
        runner = Recorder()
        with patch('pubkit.backends.pm.twine.run_command', runner):
            result = await TwineBackend(python='python3').build(_pkg(tmp_path, Ecosystem.PYTHON))

        assert not result.ok
        assert 'no files' in result.stderr
        assert runner.commands == [['python3', '-m', 'build', '--no-isolation']]

    @pytest.mark.asyncio
    async def test_build_cleans_stale_dist(self, tmp_path: Path) -> None:
        """Old artifacts are removed before building."""
        stale = tmp_path / 'dist' / 'acme_core-0.9.0-py3-none-any.whl'
        stale.parent.mkdir()
        stale.write_text('old')

        def _build(cmd: list[str], **kwargs: Any) -> CommandResult:  # noqa: ANN401
            assert not stale.exists()
            (tmp_path / 'dist').mkdir(exist_ok=True)
            (tmp_path / 'dist' / 'acme_core-1.2.0.tar.gz').write_text('new')
            return CommandResult(command=cmd, return_code=0)

        with patch('pubkit.backends.pm.twine.run_command', _build):
            result = await TwineBackend().build(_pkg(tmp_path, Ecosystem.PYTHON))

        assert result.ok
        assert [p.name for p in (tmp_path / 'dist').iterdir()] == ['acme_core-1.2.0.tar.gz']

    @pytest.mark.asyncio
    async def test_upload_lists_artifacts(self, tmp_path: Path) -> None:
        """twine upload is given every wheel and sdist."""
        dist = tmp_path / 'dist'
        dist.mkdir()
        (dist / 'acme_core-1.2.0-py3-none-any.whl').write_text('')
        (dist / 'acme_core-1.2.0.tar.gz').write_text('')
        (dist / 'notes.txt').write_text('')
        runner = Recorder()
        with patch('pubkit.backends.pm.twine.run_command', runner):
            upload = await TwineBackend(repository_url='https://test.pypi.org/legacy/').upload(
                _pkg(tmp_path, Ecosystem.PYTHON)
            )

        cmd = runner.commands[0]
        assert upload.status == UploadStatus.UPLOADED
        assert cmd[:5] == ['twine', 'upload', '--non-interactive', '--repository-url', 'https://test.pypi.org/legacy/']
        assert [Path(f).name for f in cmd[5:]] == ['acme_core-1.2.0-py3-none-any.whl', 'acme_core-1.2.0.tar.gz']

    @pytest.mark.asyncio
    async def test_upload_without_artifacts(self, tmp_path: Path) -> None:
        """Nothing to upload is a failure without running twine."""
        runner = Recorder()
        with patch('pubkit.backends.pm.twine.run_command', runner):
            upload = await TwineBackend().upload(_pkg(tmp_path, Ecosystem.PYTHON))

        assert upload.status == UploadStatus.FAILED
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_upload_duplicate_file(self, tmp_path: Path) -> None:
        """PyPI's 'File already exists' is a duplicate."""
        dist = tmp_path / 'dist'
        dist.mkdir()
        (dist / 'acme_core-1.2.0.tar.gz').write_text('')
        runner = Recorder(
            CommandResult(
                command=['twine'],
                return_code=1,
                stderr="HTTPError: 400 Bad Request from https://upload.pypi.org/legacy/\nFile already exists.",
            )
        )
        with patch('pubkit.backends.pm.twine.run_command', runner):
            upload = await TwineBackend().upload(_pkg(tmp_path, Ecosystem.PYTHON))

        assert upload.status == UploadStatus.ALREADY_EXISTS

    @pytest.mark.asyncio
    async def test_clean(self, tmp_path: Path) -> None:
        """clean removes dist, build and egg-info directories."""
        for name in ('dist', 'build', 'acme_core.egg-info', 'src'):
            (tmp_path / name).mkdir()

        await TwineBackend().clean(_pkg(tmp_path, Ecosystem.PYTHON))

        assert sorted(p.name for p in tmp_path.iterdir()) == ['src']
