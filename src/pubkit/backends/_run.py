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

"""Central subprocess abstraction for pubkit.

Every external tool call (``cargo``, ``npm``, ``twine``, ``python -m
build``) goes through :func:`run_command`, which gives:

- one structured log event per invocation;
- dry-run support: the command is logged, not executed, and a synthetic
  success result is returned;
- a missing executable or a timeout reported as a failed
  :class:`CommandResult` instead of an exception, so a worker records
  it as a per-package failure;
- a single result type whose :attr:`CommandResult.output` is what the
  upload classifier pattern-matches.
"""

from __future__ import annotations

import os
import subprocess  # noqa: S404 - subprocess is the core purpose of this module
import time
from dataclasses import dataclass, field
from pathlib import Path

from pubkit.logging import get_logger

log = get_logger('pubkit.backends.run')

# Long enough for `cargo publish` of a large crate on a cold cache.
DEFAULT_TIMEOUT_SECONDS = 900

# Exit codes shells and timeout(1) use for "command not found" and "timed out".
COMMAND_NOT_FOUND = 127
COMMAND_TIMED_OUT = 124


@dataclass(frozen=True)
class CommandResult:
    """Result of a subprocess invocation.

    Attributes:
        command: The command that was executed.
        return_code: Process exit code (0 = success).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration: Wall-clock duration in milliseconds.
        dry_run: The command was only logged.
        env_overrides: Extra environment variables passed to the process.
    """

    command: list[str]
    return_code: int
    stdout: str = ''
    stderr: str = ''
    duration: float = 0.0
    dry_run: bool = False
    env_overrides: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the command succeeded."""
        return self.return_code == 0

    @property
    def command_str(self) -> str:
        """The command as a single shell-style string."""
        return ' '.join(self.command)

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as a terminal would have shown it."""
        if self.stdout and self.stderr:
            return f'{self.stdout}\n{self.stderr}'
        return self.stdout or self.stderr


def _text(value: str | bytes | None) -> str:
    if value is None:
        return ''
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return value


def run_command(
    cmd: list[str],
    *,
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
    timeout: int = DEFAULT_TIMEOUT_SECONDS,
    dry_run: bool = False,
) -> CommandResult:
    """Execute a command with logging and dry-run support.

    Never raises for a process-level problem: a missing executable
    becomes exit code 127 and a timeout exit code 124, each with an
    ``error:`` line on stderr so the failure excerpt picks it up.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        env: Extra environment variables, merged over the current ones.
        timeout: Seconds before the process is killed.
        dry_run: Log the command without executing it.

    Returns:
        A :class:`CommandResult`.
    """
    overrides = dict(env or {})
    cmd_str = ' '.join(cmd)
    log.debug('run_command', cmd=cmd_str, cwd=str(cwd or '.'), dry_run=dry_run)

    if dry_run:
        log.info('dry_run', cmd=cmd_str)
        return CommandResult(command=cmd, return_code=0, dry_run=True, env_overrides=overrides)

    start = time.monotonic()
    try:
        proc = subprocess.run(  # noqa: S603 -- trusted inputs from backends
            cmd,
            cwd=cwd,
            env={**os.environ, **overrides} if overrides else None,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        log.error('command_not_found', cmd=cmd_str)
        return CommandResult(
            command=cmd,
            return_code=COMMAND_NOT_FOUND,
            stderr=f'error: {cmd[0]}: command not found',
            env_overrides=overrides,
        )
    except subprocess.TimeoutExpired as exc:
        elapsed = (time.monotonic() - start) * 1000
        log.error('command_timeout', cmd=cmd_str, timeout=timeout)
        stderr = _text(exc.stderr)
        return CommandResult(
            command=cmd,
            return_code=COMMAND_TIMED_OUT,
            stdout=_text(exc.stdout),
            stderr=f'{stderr}\nerror: {cmd[0]} timed out after {timeout}s'.lstrip('\n'),
            duration=elapsed,
            env_overrides=overrides,
        )

    result = CommandResult(
        command=cmd,
        return_code=proc.returncode,
        stdout=proc.stdout or '',
        stderr=proc.stderr or '',
        duration=(time.monotonic() - start) * 1000,
        env_overrides=overrides,
    )
    if result.ok:
        log.debug('command_ok', cmd=cmd_str, duration=result.duration)
    else:
        # The tail is where cargo, npm and twine put the actual error.
        log.warning(
            'command_failed',
            cmd=cmd_str,
            return_code=result.return_code,
            tail=result.output[-500:],
            duration=result.duration,
        )
    return result


__all__ = [
    'COMMAND_NOT_FOUND',
    'COMMAND_TIMED_OUT',
    'CommandResult',
    'DEFAULT_TIMEOUT_SECONDS',
    'run_command',
]
