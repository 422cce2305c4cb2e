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

"""crates.io registry backend.

API endpoint used::

    GET /api/v1/crates/{name}/{version}    → 200 if that version exists

crates.io refuses requests without a descriptive ``User-Agent``; the
shared client in :mod:`pubkit.net` always sends one.
"""

from __future__ import annotations

import httpx

from pubkit.logging import get_logger
from pubkit.net import DEFAULT_POOL_SIZE, DEFAULT_TIMEOUT, http_client, request_with_retry

log = get_logger('pubkit.backends.registry.crates_io')


class CratesIoRegistry:
    """crates.io :class:`~pubkit.backends.registry.Registry` implementation.

    Args:
        base_url: Base URL of the registry. Defaults to crates.io.
            Use :data:`TEST_BASE_URL` for a local Alexandrie registry.
        pool_size: HTTP connection pool size.
        timeout: HTTP request timeout in seconds.
    """

    #: Base URL for the production crates.io registry.
    DEFAULT_BASE_URL: str = 'https://crates.io'
    #: Base URL for a local Alexandrie test registry (common default).
    TEST_BASE_URL: str = 'http://localhost:3000'

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        pool_size: int = DEFAULT_POOL_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize with crates.io base URL, pool size, and timeout."""
        self._base_url = base_url.rstrip('/')
        self._pool_size = pool_size
        self._timeout = timeout

    async def exists(self, name: str, version: str) -> bool:
        """Return ``True`` if ``name`` at ``version`` is on crates.io.

        Network failures count as "not published"; the upload that follows
        reports "already exists" if that guess was wrong.
        """
        url = f'{self._base_url}/api/v1/crates/{name}/{version}'
        try:
            async with http_client(pool_size=self._pool_size, timeout=self._timeout) as client:
                response = await request_with_retry(client, 'GET', url)
        except httpx.HTTPError as exc:
            log.warning('registry_query_failed', registry='crates.io', crate=name, version=version, error=str(exc))
            return False

        available = response.status_code == 200
        log.debug('crate_version_checked', crate=name, version=version, status=response.status_code)
        return available


__all__ = [
    'CratesIoRegistry',
]
