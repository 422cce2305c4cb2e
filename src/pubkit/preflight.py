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

"""Preflight checks before publishing.

A publish run that discovers halfway through that ``twine`` is missing
or that no crates.io token is set has already uploaded half a tier.
These checks run first and turn such problems into one fatal error.

Check order::

    1. Tools          → cargo / npm / twine + build on PATH
    2. Credentials    → registry token in env or credential file
                        (skipped for dry runs and non-upload modes)
    3. Stale backups  → .pubkit.bak files from an interrupted run

Credential sources::

    ┌──────────┬───────────────────────────────┬──────────────────────────────┐
    │ Ecosystem│ Environment                   │ Files / commands             │
    ├──────────┼───────────────────────────────┼──────────────────────────────┤
    │ rust     │ CARGO_REGISTRY_TOKEN          │ $CARGO_HOME/credentials.toml │
    │ python   │ TWINE_PASSWORD                │ ~/.pypirc                    │
    │ js       │ NPM_TOKEN, NODE_AUTH_TOKEN    │ ~/.npmrc _authToken,         │
    │          │                               │ npm whoami                   │
    └──────────┴───────────────────────────────┴──────────────────────────────┘

All system access (environment, home directory, ``which``, module
lookup, ``npm whoami``) is injectable so tests never touch the host.
"""

from __future__ import annotations

import importlib.util
import os
import shutil
from collections.abc import Awaitable, Callable, Mapping, Sequence
from pathlib import Path

from pubkit.backends._run import CommandResult
from pubkit.backends.pm import NpmBackend
from pubkit.backends.workspace import Ecosystem, Package
from pubkit.errors import E, ErrorCode, PubkitError
from pubkit.logging import get_logger
from pubkit.publisher import PublishMode
from pubkit.rewrite import find_stale_backups

logger = get_logger(__name__)

# Modes that never upload and so need no credentials.
_NO_UPLOAD_MODES = frozenset({PublishMode.BUILD_ONLY, PublishMode.CHECK, PublishMode.VERIFY})


class PreflightResult:
    """Collects preflight check results.

    Attributes:
        passed: Names of checks that passed.
        warnings: Names of checks that produced warnings.
        failed: Names of checks that failed.
        errors: Failed check name to message.
        hints: Check name to fix suggestion.
        codes: Failed check name to error code.
    """

    def __init__(self) -> None:
        """Initialize with empty result lists."""
        self.passed: list[str] = []
        self.warnings: list[str] = []
        self.failed: list[str] = []
        self.errors: dict[str, str] = {}
        self.warning_messages: dict[str, str] = {}
        self.hints: dict[str, str] = {}
        self.codes: dict[str, ErrorCode] = {}

    def add_pass(self, name: str) -> None:
        """Record a passing check."""
        self.passed.append(name)
        logger.debug('preflight_pass', check=name)

    def add_warning(self, name: str, message: str, *, hint: str = '') -> None:
        """Record a non-blocking warning."""
        self.warnings.append(name)
        self.warning_messages[name] = message
        if hint:
            self.hints[name] = hint
        logger.warning('preflight_warning', check=name, message=message)

    def add_failure(self, name: str, message: str, *, code: ErrorCode, hint: str = '') -> None:
        """Record a blocking failure."""
        self.failed.append(name)
        self.errors[name] = message
        self.codes[name] = code
        if hint:
            self.hints[name] = hint
        logger.error('preflight_fail', check=name, message=message)

    @property
    def ok(self) -> bool:
        """Return True if no checks failed."""
        return len(self.failed) == 0

    def summary(self) -> str:
        """Return a human-readable summary."""
        total = len(self.passed) + len(self.warnings) + len(self.failed)
        parts = []
        if self.passed:
            parts.append(f'{len(self.passed)} passed')
        if self.warnings:
            parts.append(f'{len(self.warnings)} warnings')
        if self.failed:
            parts.append(f'{len(self.failed)} failed')
        return f'{total} checks: ' + ', '.join(parts) if parts else '0 checks'

    def raise_if_failed(self) -> None:
        """Raise the first failure as a :class:`PubkitError`.

        Every failure's message is included so one run reports them all.
        """
        if self.ok:
            return
        first = self.failed[0]
        message = '; '.join(self.errors[name] for name in self.failed)
        raise PubkitError(code=self.codes[first], message=message, hint=self.hints.get(first, ''))


def _required_tools(ecosystem: Ecosystem, mode: PublishMode) -> list[str]:
    if ecosystem == Ecosystem.RUST:
        return ['cargo']
    if ecosystem == Ecosystem.JS:
        return ['npm']
    return [] if mode == PublishMode.BUILD_ONLY else ['twine']


_TOOL_HINTS: dict[Ecosystem, str] = {
    Ecosystem.RUST: 'Install the Rust toolchain from https://rustup.rs.',
    Ecosystem.JS: 'Install Node.js, which ships npm.',
    Ecosystem.PYTHON: "Run 'pip install build twine' in the interpreter running pubkit.",
}


def _check_tools(
    result: PreflightResult,
    ecosystem: Ecosystem,
    mode: PublishMode,
    *,
    which: Callable[[str], str | None],
    find_module: Callable[[str], object | None],
) -> None:
    """Check that the ecosystem's command-line tools are installed."""
    check_name = 'tools'
    missing = [tool for tool in _required_tools(ecosystem, mode) if which(tool) is None]
    if ecosystem == Ecosystem.PYTHON and mode != PublishMode.UPLOAD_ONLY and find_module('build') is None:
        missing.append('build (python module)')

    if missing:
        result.add_failure(
            check_name,
            f'Required tools not found: {", ".join(missing)}',
            code=E.PREFLIGHT_MISSING_TOOL,
            hint=_TOOL_HINTS[ecosystem],
        )
    else:
        result.add_pass(check_name)


def _npmrc_has_token(path: Path) -> bool:
    if not path.is_file():
        return False
    try:
        text = path.read_text(encoding='utf-8')
    except OSError:
        return False
    return any('_authToken' in line and not line.lstrip().startswith(('#', ';')) for line in text.splitlines())


async def _has_credentials(
    ecosystem: Ecosystem,
    *,
    env: Mapping[str, str],
    home: Path,
    whoami: Callable[[], Awaitable[CommandResult]],
) -> bool:
    if ecosystem == Ecosystem.RUST:
        if env.get('CARGO_REGISTRY_TOKEN'):
            return True
        cargo_home = Path(env['CARGO_HOME']) if env.get('CARGO_HOME') else home / '.cargo'
        return (cargo_home / 'credentials.toml').is_file() or (cargo_home / 'credentials').is_file()

    if ecosystem == Ecosystem.PYTHON:
        return bool(env.get('TWINE_PASSWORD')) or (home / '.pypirc').is_file()

    if env.get('NPM_TOKEN') or env.get('NODE_AUTH_TOKEN'):
        return True
    if _npmrc_has_token(home / '.npmrc'):
        return True
    result = await whoami()
    return result.ok


_CREDENTIAL_HINTS: dict[Ecosystem, str] = {
    Ecosystem.RUST: "Set CARGO_REGISTRY_TOKEN or run 'cargo login'.",
    Ecosystem.JS: "Set NPM_TOKEN or run 'npm login'.",
    Ecosystem.PYTHON: 'Set TWINE_USERNAME=__token__ and TWINE_PASSWORD, or create ~/.pypirc.',
}


async def _check_credentials(
    result: PreflightResult,
    ecosystem: Ecosystem,
    *,
    env: Mapping[str, str],
    home: Path,
    whoami: Callable[[], Awaitable[CommandResult]],
) -> None:
    """Check that some registry credential is available."""
    check_name = 'credentials'
    if await _has_credentials(ecosystem, env=env, home=home, whoami=whoami):
        result.add_pass(check_name)
    else:
        result.add_failure(
            check_name,
            f'No {ecosystem.registry_name} credentials found',
            code=E.PREFLIGHT_MISSING_CREDENTIALS,
            hint=_CREDENTIAL_HINTS[ecosystem],
        )


def _check_stale_backups(result: PreflightResult, packages: Sequence[Package]) -> None:
    """Fail if an interrupted run left manifest backups behind."""
    check_name = 'stale_backups'
    dirs = {pkg.path for pkg in packages} | {pkg.manifest_path.parent for pkg in packages}
    stale = find_stale_backups(dirs)
    if stale:
        result.add_failure(
            check_name,
            f'Manifest backups from an interrupted run: {", ".join(str(p) for p in stale)}',
            code=E.PREFLIGHT_STALE_BACKUP,
            hint="Run 'pubkit restore' to put the original manifests back.",
        )
    else:
        result.add_pass(check_name)


async def run_preflight(
    ecosystem: Ecosystem,
    *,
    packages: Sequence[Package],
    mode: PublishMode = PublishMode.PUBLISH,
    dry_run: bool = False,
    env: Mapping[str, str] | None = None,
    home: Path | None = None,
    which: Callable[[str], str | None] = shutil.which,
    find_module: Callable[[str], object | None] = importlib.util.find_spec,
    whoami: Callable[[], Awaitable[CommandResult]] | None = None,
) -> PreflightResult:
    """Run all preflight checks for one ecosystem.

    Args:
        ecosystem: The ecosystem about to be published.
        packages: The packages that will be processed.
        mode: Publish mode; non-upload modes skip the credential check.
        dry_run: Skip the credential check.
        env: Environment to read tokens from (default ``os.environ``).
        home: Home directory for credential files (default ``Path.home()``).
        which: Executable lookup (default :func:`shutil.which`).
        find_module: Module lookup for the ``build`` frontend.
        whoami: Async ``npm whoami`` runner, the last-resort npm check.

    Returns:
        A :class:`PreflightResult`. Call
        :meth:`PreflightResult.raise_if_failed` to abort on failures.
    """
    result = PreflightResult()
    env = os.environ if env is None else env
    home = Path.home() if home is None else home
    whoami = whoami or NpmBackend().whoami

    _check_tools(result, ecosystem, mode, which=which, find_module=find_module)

    if dry_run or mode in _NO_UPLOAD_MODES:
        logger.debug('preflight_credentials_skipped', dry_run=dry_run, mode=mode.value)
    else:
        await _check_credentials(result, ecosystem, env=env, home=home, whoami=whoami)

    _check_stale_backups(result, packages)

    logger.info('preflight_complete', ecosystem=ecosystem.value, summary=result.summary())
    return result


__all__ = [
    'PreflightResult',
    'run_preflight',
]
