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

"""PyPI registry backend using the PyPI JSON API via :mod:`pubkit.net`."""

from __future__ import annotations

import httpx

from pubkit.logging import get_logger
from pubkit.net import DEFAULT_POOL_SIZE, DEFAULT_TIMEOUT, http_client, request_with_retry

log = get_logger('pubkit.backends.registry.pypi')


class PyPIRegistry:
    """:class:`~pubkit.backends.registry.Registry` implementation for PyPI.

    Args:
        base_url: Base URL for the PyPI JSON API. Defaults to public PyPI;
            use :data:`TEST_BASE_URL` for TestPyPI.
        pool_size: HTTP connection pool size.
        timeout: HTTP request timeout in seconds.
    """

    DEFAULT_BASE_URL: str = 'https://pypi.org'
    TEST_BASE_URL: str = 'https://test.pypi.org'

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        pool_size: int = DEFAULT_POOL_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize with PyPI base URL, pool size, and timeout."""
        self._base_url = base_url.rstrip('/')
        self._pool_size = pool_size
        self._timeout = timeout

    async def exists(self, name: str, version: str) -> bool:
        """Check if a specific version exists on PyPI."""
        url = f'{self._base_url}/pypi/{name}/{version}/json'
        try:
            async with http_client(pool_size=self._pool_size, timeout=self._timeout) as client:
                response = await request_with_retry(client, 'GET', url)
        except httpx.HTTPError as exc:
            log.warning('registry_query_failed', registry='pypi', package=name, version=version, error=str(exc))
            return False
        return response.status_code == 200


__all__ = [
    'PyPIRegistry',
]
