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

"""Tests for pubkit.backends.registry backends."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from pubkit.backends.registry import (
    CratesIoRegistry,
    NpmRegistry,
    PyPIRegistry,
    Registry,
    create_registry,
)
from pubkit.backends.workspace import Ecosystem
from pubkit.logging import configure_logging

configure_logging(quiet=True)


def _mock_response(status_code: int = 200, json_data: object = None) -> MagicMock:
    """Create a mock httpx.Response."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = json_data if json_data is not None else {}
    resp.text = ''
    return resp


@contextmanager
def _patched(module: str, *, response: MagicMock | None = None, error: Exception | None = None) -> Iterator[AsyncMock]:
    """Patch ``http_client`` and ``request_with_retry`` in ``module``."""
    with (
        patch(f'pubkit.backends.registry.{module}.http_client') as mock_client,
        patch(
            f'pubkit.backends.registry.{module}.request_with_retry',
            new_callable=AsyncMock,
            return_value=response,
            side_effect=error,
        ) as mock_request,
    ):
        mock_client.return_value.__aenter__ = AsyncMock(return_value=MagicMock())
        mock_client.return_value.__aexit__ = AsyncMock(return_value=False)
        yield mock_request


class TestRegistryFactory:
    """Tests for create_registry()."""

    def test_implements_protocol(self) -> None:
        """Every registry satisfies the protocol."""
        for registry in (CratesIoRegistry(), NpmRegistry(), PyPIRegistry()):
            assert isinstance(registry, Registry)

    def test_defaults(self) -> None:
        """Each ecosystem gets its public registry."""
        assert create_registry(Ecosystem.RUST)._base_url == 'https://crates.io'
        assert create_registry(Ecosystem.JS)._base_url == 'https://registry.npmjs.org'
        assert create_registry(Ecosystem.PYTHON)._base_url == 'https://pypi.org'

    def test_override_strips_slash(self) -> None:
        """A configured URL replaces the default."""
        registry = create_registry(Ecosystem.JS, base_url='http://localhost:4873/')
        assert isinstance(registry, NpmRegistry)
        assert registry._base_url == 'http://localhost:4873'


class TestCratesIo:
    """Tests for CratesIoRegistry.exists()."""

    @pytest.mark.asyncio
    async def test_true_on_200(self) -> None:
        """Test true on 200."""
        with _patched('crates_io', response=_mock_response(200)) as request:
            assert await CratesIoRegistry().exists('serde', '1.0.200') is True
        assert request.call_args.args[2] == 'https://crates.io/api/v1/crates/serde/1.0.200'

    @pytest.mark.asyncio
    async def test_false_on_404(self) -> None:
        """Test false on 404."""
        with _patched('crates_io', response=_mock_response(404)):
            assert await CratesIoRegistry().exists('nonexistent-crate', '0.0.1') is False

    @pytest.mark.asyncio
    async def test_false_on_network_error(self) -> None:
        """A failed query is not proof of publication."""
        with _patched('crates_io', error=httpx.ConnectError('unreachable')):
            assert await CratesIoRegistry().exists('serde', '1.0.0') is False


class TestNpm:
    """Tests for NpmRegistry."""

    @pytest.mark.asyncio
    async def test_scoped_name_encoded(self) -> None:
        """@scope/name is sent as @scope%2Fname."""
        with _patched('npm', response=_mock_response(200)) as request:
            assert await NpmRegistry().exists('@acme/core', '1.2.0') is True
        assert request.call_args.args[2] == 'https://registry.npmjs.org/@acme%2Fcore/1.2.0'

    @pytest.mark.asyncio
    async def test_false_on_error(self) -> None:
        """Test false on error."""
        with _patched('npm', error=httpx.ReadTimeout('slow')):
            assert await NpmRegistry().exists('left-pad', '1.3.0') is False

    @pytest.mark.asyncio
    async def test_dist_tags(self) -> None:
        """The tag map is returned as strings."""
        tags = {'latest': '1.4.0', 'next': '2.0.0-rc.1'}
        with _patched('npm', response=_mock_response(200, tags)) as request:
            assert await NpmRegistry().dist_tags('@acme/core') == tags
        assert request.call_args.args[2] == 'https://registry.npmjs.org/-/package/@acme%2Fcore/dist-tags'

    @pytest.mark.asyncio
    async def test_dist_tags_missing_package(self) -> None:
        """An unknown package has no tags."""
        with _patched('npm', response=_mock_response(404)):
            assert await NpmRegistry().dist_tags('@acme/new') == {}

    @pytest.mark.asyncio
    async def test_dist_tags_bad_json(self) -> None:
        """Unparseable bodies yield no tags."""
        resp = _mock_response(200)
        resp.json.side_effect = ValueError('not json')
        with _patched('npm', response=resp):
            assert await NpmRegistry().dist_tags('@acme/core') == {}


class TestPyPI:
    """Tests for PyPIRegistry.exists()."""

    @pytest.mark.asyncio
    async def test_url(self) -> None:
        """The JSON API version endpoint is queried."""
        with _patched('pypi', response=_mock_response(200)) as request:
            assert await PyPIRegistry(base_url=PyPIRegistry.TEST_BASE_URL).exists('acme-core', '1.2.0') is True
        assert request.call_args.args[2] == 'https://test.pypi.org/pypi/acme-core/1.2.0/json'

    @pytest.mark.asyncio
    async def test_false_on_404(self) -> None:
        """Test false on 404."""
        with _patched('pypi', response=_mock_response(404)):
            assert await PyPIRegistry().exists('acme-core', '9.9.9') is False
