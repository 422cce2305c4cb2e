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

"""Tests for pubkit.backends._run module."""

from __future__ import annotations

import sys
from pathlib import Path

from pubkit.backends._run import COMMAND_NOT_FOUND, COMMAND_TIMED_OUT, CommandResult, run_command
from pubkit.logging import configure_logging

configure_logging(quiet=True)


class TestCommandResult:
    """Tests for CommandResult."""

    def test_ok(self) -> None:
        """Test ok."""
        assert CommandResult(command=['true'], return_code=0).ok
        assert not CommandResult(command=['false'], return_code=1).ok

    def test_command_str(self) -> None:
        """Test command str."""
        assert CommandResult(command=['cargo', 'publish'], return_code=0).command_str == 'cargo publish'

    def test_output_combines_streams(self) -> None:
        """stdout comes first, then stderr."""
        result = CommandResult(command=['x'], return_code=1, stdout='Packaging', stderr='error: boom')
        assert result.output == 'Packaging\nerror: boom'
        assert CommandResult(command=['x'], return_code=1, stderr='only err').output == 'only err'


class TestRunCommand:
    """Tests for run_command()."""

    def test_dry_run_does_not_execute(self, tmp_path: Path) -> None:
        """Dry-run returns success without running anything."""
        marker = tmp_path / 'ran'
        result = run_command([sys.executable, '-c', f'open({str(marker)!r}, "w")'], dry_run=True)
        assert result.ok
        assert result.dry_run
        assert not marker.exists()

    def test_captures_output(self) -> None:
        """Test captures output."""
        result = run_command([sys.executable, '-c', 'import sys; print("out"); print("err", file=sys.stderr)'])
        assert result.ok
        assert result.stdout.strip() == 'out'
        assert result.stderr.strip() == 'err'

    def test_nonzero_exit(self) -> None:
        """Test nonzero exit."""
        result = run_command([sys.executable, '-c', 'raise SystemExit(3)'])
        assert result.return_code == 3
        assert not result.ok

    def test_missing_executable(self) -> None:
        """An unknown tool becomes exit code 127, not an exception."""
        result = run_command(['pubkit-no-such-tool-xyz', '--version'])
        assert result.return_code == COMMAND_NOT_FOUND
        assert 'command not found' in result.stderr

    def test_cwd_and_env(self, tmp_path: Path) -> None:
        """cwd and extra env reach the process."""
        result = run_command(
            [sys.executable, '-c', 'import os; print(os.getcwd()); print(os.environ["PUBKIT_TEST"])'],
            cwd=tmp_path,
            env={'PUBKIT_TEST': 'yes'},
        )
        lines = result.stdout.splitlines()
        assert Path(lines[0]).resolve() == tmp_path.resolve()
        assert lines[1] == 'yes'
        assert result.env_overrides == {'PUBKIT_TEST': 'yes'}

    def test_timeout_becomes_result(self) -> None:
        """A hung tool becomes exit code 124 with an error line."""
        result = run_command([sys.executable, '-c', 'import time; time.sleep(30)'], timeout=1)
        assert result.return_code == COMMAND_TIMED_OUT
        assert result.stderr.endswith('timed out after 1s')
        assert result.stderr.startswith('error:')
