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

"""Tests for pubkit.net module."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from pubkit.logging import configure_logging
from pubkit.net import USER_AGENT, http_client, request_with_retry

configure_logging(quiet=True)


def _client(statuses: list[int], seen: list[httpx.Request], headers: dict[str, str] | None = None) -> httpx.AsyncClient:
    """A client whose transport answers with ``statuses`` in order."""
    remaining = list(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        status = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        return httpx.Response(status, headers=headers or {})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpClient:
    """Tests for http_client() context manager."""

    @pytest.mark.asyncio
    async def test_user_agent(self) -> None:
        """Every client identifies itself."""
        async with http_client() as client:
            assert client.headers['User-Agent'] == USER_AGENT

    @pytest.mark.asyncio
    async def test_extra_headers(self) -> None:
        """Extra headers are merged."""
        async with http_client(headers={'Accept': 'application/json'}, timeout=5.0) as client:
            assert client.headers['Accept'] == 'application/json'
            assert client.timeout.read == 5.0


class TestRequestWithRetry:
    """Tests for request_with_retry()."""

    @pytest.mark.asyncio
    async def test_404_not_retried(self) -> None:
        """404 is a definite answer."""
        seen: list[httpx.Request] = []
        async with _client([404], seen) as client:
            response = await request_with_retry(client, 'GET', 'https://registry.test/x')
        assert response.status_code == 404
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_retries_5xx_then_succeeds(self) -> None:
        """Transient server errors are retried."""
        seen: list[httpx.Request] = []
        with patch('pubkit.net.asyncio.sleep', new_callable=AsyncMock) as sleep:
            async with _client([503, 502, 200], seen) as client:
                response = await request_with_retry(client, 'GET', 'https://registry.test/x', backoff_base=0.5)
        assert response.status_code == 200
        assert len(seen) == 3
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_retry_after_honoured(self) -> None:
        """A numeric Retry-After sets the delay."""
        seen: list[httpx.Request] = []
        with patch('pubkit.net.asyncio.sleep', new_callable=AsyncMock) as sleep:
            async with _client([429, 200], seen, headers={'Retry-After': '7'}) as client:
                await request_with_retry(client, 'GET', 'https://registry.test/x')
        assert sleep.call_args_list[0].args[0] == 7.0

    @pytest.mark.asyncio
    async def test_exhausted_raises(self) -> None:
        """A status still retryable after the last attempt raises."""
        seen: list[httpx.Request] = []
        with patch('pubkit.net.asyncio.sleep', new_callable=AsyncMock):
            async with _client([500], seen) as client:
                with pytest.raises(httpx.HTTPStatusError):
                    await request_with_retry(client, 'GET', 'https://registry.test/x', max_retries=2)
        assert len(seen) == 3

    @pytest.mark.asyncio
    async def test_connect_error_raises_after_retries(self) -> None:
        """Connection errors propagate once retries run out."""
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ConnectError('refused', request=request)

        with patch('pubkit.net.asyncio.sleep', new_callable=AsyncMock):
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                with pytest.raises(httpx.ConnectError):
                    await request_with_retry(client, 'GET', 'https://registry.test/x', max_retries=1)
        assert calls == 2
