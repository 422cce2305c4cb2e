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

"""Structured errors for pubkit.

Every error carries a ``PK-NAMED-KEY`` code, a message and an optional
hint. Only configuration-class errors are raised out of a publish run;
per-package problems become :class:`~pubkit.publisher.PackageOutcome`
records instead.

Error classes::

    ┌──────────────────────┬───────────────────────────┬──────────────────┐
    │ Class                │ Example                   │ Effect           │
    ├──────────────────────┼───────────────────────────┼──────────────────┤
    │ Configuration        │ CARGO_REGISTRY_TOKEN unset │ abort, exit 1    │
    │ Identity             │ package.json without name │ skip package     │
    │ Already published    │ "already exists" on upload │ success (skip)   │
    │ Rate limit           │ HTTP 429 from twine        │ backoff + retry  │
    │ Build / verify       │ cargo publish --dry-run ✗ │ package failed   │
    │ Upload               │ anything else              │ package failed   │
    └──────────────────────┴───────────────────────────┴──────────────────┘

Code categories::

    PK-CONFIG-*       Configuration file errors
    PK-WORKSPACE-*    Package discovery errors
    PK-MANIFEST-*     Manifest read/rewrite errors
    PK-GRAPH-*        Dependency graph and tier errors
    PK-PREFLIGHT-*    Tool and credential checks
    PK-BUILD-*        Build errors
    PK-PUBLISH-*      Upload errors

Usage::

    from pubkit.errors import E, PubkitError

    raise PubkitError(
        code=E.PREFLIGHT_MISSING_CREDENTIALS,
        message='No crates.io token found.',
        hint='Set CARGO_REGISTRY_TOKEN or run `cargo login`.',
    )
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from typing import TextIO

from rich.console import Console
from rich.markup import escape as rich_escape


class ErrorCode(str, Enum):
    """All pubkit diagnostic codes."""

    # Configuration
    CONFIG_INVALID = 'PK-CONFIG-INVALID'
    CONFIG_INVALID_KEY = 'PK-CONFIG-INVALID-KEY'
    CONFIG_INVALID_VALUE = 'PK-CONFIG-INVALID-VALUE'
    CONFIG_UNKNOWN_WORKSPACE = 'PK-CONFIG-UNKNOWN-WORKSPACE'

    # Workspace discovery
    WORKSPACE_NOT_FOUND = 'PK-WORKSPACE-NOT-FOUND'
    WORKSPACE_DUPLICATE_PACKAGE = 'PK-WORKSPACE-DUPLICATE-PACKAGE'

    # Manifests
    MANIFEST_INVALID = 'PK-MANIFEST-INVALID'
    MANIFEST_REWRITE_FAILED = 'PK-MANIFEST-REWRITE-FAILED'
    MANIFEST_RESTORE_FAILED = 'PK-MANIFEST-RESTORE-FAILED'

    # Graph / tiers
    GRAPH_CYCLE_DETECTED = 'PK-GRAPH-CYCLE-DETECTED'
    GRAPH_TIER_DRIFT = 'PK-GRAPH-TIER-DRIFT'

    # Preflight
    PREFLIGHT_MISSING_TOOL = 'PK-PREFLIGHT-MISSING-TOOL'
    PREFLIGHT_MISSING_CREDENTIALS = 'PK-PREFLIGHT-MISSING-CREDENTIALS'
    PREFLIGHT_STALE_BACKUP = 'PK-PREFLIGHT-STALE-BACKUP'

    # Build / publish
    BUILD_FAILED = 'PK-BUILD-FAILED'
    PUBLISH_FAILED = 'PK-PUBLISH-FAILED'
    PUBLISH_RATE_LIMITED = 'PK-PUBLISH-RATE-LIMITED'


E = ErrorCode


@dataclass(frozen=True)
class ErrorInfo:
    """Code, message and hint for one diagnostic."""

    code: ErrorCode
    message: str
    hint: str = ''


class PubkitError(Exception):
    """Base exception for all pubkit errors.

    Args:
        code: The error code from :class:`ErrorCode`.
        message: What went wrong.
        hint: How to fix it, if known.
    """

    def __init__(self, code: ErrorCode, message: str, hint: str = '') -> None:
        """Initialize with an error code, message, and optional hint."""
        self.info = ErrorInfo(code=code, message=message, hint=hint)
        super().__init__(f'[{code.value}] {message}')

    @property
    def code(self) -> ErrorCode:
        """The error code."""
        return self.info.code

    @property
    def message(self) -> str:
        """What went wrong, without the code prefix."""
        return self.info.message

    @property
    def hint(self) -> str:
        """Suggestion for fixing this error, or empty string."""
        return self.info.hint


ERRORS: dict[ErrorCode, ErrorInfo] = {
    E.CONFIG_INVALID_KEY: ErrorInfo(
        code=E.CONFIG_INVALID_KEY,
        message='pubkit.toml contains a key pubkit does not recognize.',
        hint='Check the spelling; the error message suggests the closest valid key.',
    ),
    E.MANIFEST_INVALID: ErrorInfo(
        code=E.MANIFEST_INVALID,
        message='A manifest exists but its name or version cannot be determined.',
        hint='The package is skipped. Fix the manifest and re-run; published packages are skipped automatically.',
    ),
    E.MANIFEST_RESTORE_FAILED: ErrorInfo(
        code=E.MANIFEST_RESTORE_FAILED,
        message='A manifest rewritten for publishing could not be restored.',
        hint="Run 'pubkit restore' to move the .pubkit.bak backups back into place.",
    ),
    E.GRAPH_CYCLE_DETECTED: ErrorInfo(
        code=E.GRAPH_CYCLE_DETECTED,
        message='Circular dependency between workspace packages.',
        hint='Packages in a cycle cannot be published in dependency order. Break the cycle.',
    ),
    E.GRAPH_TIER_DRIFT: ErrorInfo(
        code=E.GRAPH_TIER_DRIFT,
        message='A static tier lists a package before one of its dependencies.',
        hint='Move the package to a later tier, remove the static tiers, or set strict_tiers = false.',
    ),
    E.PREFLIGHT_MISSING_TOOL: ErrorInfo(
        code=E.PREFLIGHT_MISSING_TOOL,
        message='A required command-line tool is not on PATH.',
        hint='Install the toolchain for the ecosystem being published (cargo, npm, twine).',
    ),
    E.PREFLIGHT_MISSING_CREDENTIALS: ErrorInfo(
        code=E.PREFLIGHT_MISSING_CREDENTIALS,
        message='No registry credentials were found.',
        hint='Export the registry token (CARGO_REGISTRY_TOKEN, TWINE_PASSWORD, NPM_TOKEN) or log in.',
    ),
    E.PREFLIGHT_STALE_BACKUP: ErrorInfo(
        code=E.PREFLIGHT_STALE_BACKUP,
        message='A manifest backup from an interrupted run is still on disk.',
        hint="Run 'pubkit restore' before publishing again.",
    ),
    E.PUBLISH_RATE_LIMITED: ErrorInfo(
        code=E.PUBLISH_RATE_LIMITED,
        message='The registry kept rate-limiting uploads after every retry.',
        hint='Re-run later, or raise upload_delay / backoff_base in pubkit.toml.',
    ),
}


def explain(code: str) -> str | None:
    """Return a detailed explanation for an error code, or ``None`` if unknown."""
    try:
        error_code = ErrorCode(code)
    except ValueError:
        return None

    info = ERRORS.get(error_code)
    if info is None:
        return f'{code}: No detailed explanation available.'

    lines = [f'{code}: {info.message}']
    if info.hint:
        lines.append(f'  Hint: {info.hint}')
    return '\n'.join(lines)


def render_error(exc: PubkitError, *, file: TextIO | None = None) -> None:
    """Render an error in Rust-compiler style.

    Output format::

        error[PK-PREFLIGHT-MISSING-TOOL]: cargo not found on PATH.
          |
          = hint: Install the Rust toolchain from https://rustup.rs.

    Args:
        exc: The error to render.
        file: Output stream (defaults to ``sys.stderr``).
    """
    out = file or sys.stderr

    if out.isatty():
        console = Console(file=out, highlight=False)
        msg = rich_escape(exc.info.message)
        console.print(
            f'[bold red]error[/bold red][bold red]\\[{exc.code.value}][/bold red][bold]: {msg}[/bold]',
        )
        if exc.hint:
            console.print('  [dim]|[/dim]')
            console.print(f'  [dim]=[/dim] [cyan]hint[/cyan]: {rich_escape(exc.hint)}')
        console.print()
    else:
        print(f'error[{exc.code.value}]: {exc.info.message}', file=out)  # noqa: T201 - CLI output
        if exc.hint:
            print('  |', file=out)  # noqa: T201 - CLI output
            print(f'  = hint: {exc.hint}', file=out)  # noqa: T201 - CLI output
        print(file=out)  # noqa: T201 - CLI output


__all__ = [
    'E',
    'ERRORS',
    'ErrorCode',
    'ErrorInfo',
    'PubkitError',
    'explain',
    'render_error',
]
