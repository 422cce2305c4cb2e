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

"""Tests for pubkit.errors module."""

from __future__ import annotations

import io

from pubkit.errors import E, ERRORS, ErrorCode, PubkitError, explain, render_error


class TestErrorCodes:
    """Tests for the error code catalogue."""

    def test_codes_are_prefixed(self) -> None:
        """Every code uses the PK- prefix."""
        for code in ErrorCode:
            assert code.value.startswith('PK-'), code

    def test_catalogue_keys_match(self) -> None:
        """Each catalogue entry is filed under its own code."""
        for code, info in ERRORS.items():
            assert info.code == code


class TestPubkitError:
    """Tests for PubkitError."""

    def test_fields(self) -> None:
        """Code, message and hint are exposed."""
        exc = PubkitError(code=E.CONFIG_INVALID, message='bad file', hint='fix it')
        assert exc.code == E.CONFIG_INVALID
        assert exc.message == 'bad file'
        assert exc.hint == 'fix it'
        assert str(exc) == '[PK-CONFIG-INVALID] bad file'

    def test_hint_optional(self) -> None:
        """Test hint optional."""
        assert PubkitError(code=E.BUILD_FAILED, message='x').hint == ''


class TestExplain:
    """Tests for explain()."""

    def test_known_code(self) -> None:
        """A catalogued code explains itself with a hint."""
        text = explain('PK-GRAPH-CYCLE-DETECTED')
        assert text is not None
        assert text.startswith('PK-GRAPH-CYCLE-DETECTED: Circular dependency')
        assert 'Hint:' in text

    def test_uncatalogued_code(self) -> None:
        """A valid code without an entry still answers."""
        assert explain('PK-BUILD-FAILED') == 'PK-BUILD-FAILED: No detailed explanation available.'

    def test_unknown_code(self) -> None:
        """Test unknown code."""
        assert explain('PK-NOPE') is None


class TestRenderError:
    """Tests for render_error()."""

    def test_plain_output(self) -> None:
        """Non-TTY output is plain text in compiler style."""
        out = io.StringIO()
        render_error(
            PubkitError(code=E.PREFLIGHT_MISSING_TOOL, message='cargo not found on PATH.', hint='Install Rust.'),
            file=out,
        )
        assert out.getvalue() == (
            'error[PK-PREFLIGHT-MISSING-TOOL]: cargo not found on PATH.\n  |\n  = hint: Install Rust.\n\n'
        )

    def test_no_hint(self) -> None:
        """Test no hint."""
        out = io.StringIO()
        render_error(PubkitError(code=E.CONFIG_INVALID, message='broken'), file=out)
        assert out.getvalue() == 'error[PK-CONFIG-INVALID]: broken\n\n'
