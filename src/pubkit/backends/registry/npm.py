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

"""npm registry backend.

API endpoints used:

- ``GET /{package}/{version}`` returns version metadata, 404 if the
  version was never published.
- ``GET /-/package/{package}/dist-tags`` returns the tag map, e.g.
  ``{"latest": "1.4.0", "next": "2.0.0-rc.1"}``.

Scoped packages (e.g. ``@acme/core``) must be URL-encoded as
``@acme%2Fcore`` in the URL path.
"""

from __future__ import annotations

import urllib.parse

import httpx

from pubkit.logging import get_logger
from pubkit.net import DEFAULT_POOL_SIZE, DEFAULT_TIMEOUT, http_client, request_with_retry

log = get_logger('pubkit.backends.registry.npm')


def _encode_package_name(name: str) -> str:
    """URL-encode a package name for the registry API.

    Scoped packages like ``@acme/core`` must be encoded as
    ``@acme%2Fcore`` (the ``/`` becomes ``%2F``).

    Unscoped packages are returned as-is.
    """
    if name.startswith('@'):
        return urllib.parse.quote(name, safe='@')
    return name


class NpmRegistry:
    """Registry implementation for the npm registry.

    Args:
        base_url: Base URL for the npm registry API. Defaults to
            public npm. Use :data:`TEST_BASE_URL` for a local
            Verdaccio or similar test registry.
        pool_size: HTTP connection pool size.
        timeout: HTTP request timeout in seconds.
    """

    #: Base URL for the production npm registry.
    DEFAULT_BASE_URL: str = 'https://registry.npmjs.org'
    #: Base URL for a local Verdaccio test registry (common default).
    TEST_BASE_URL: str = 'http://localhost:4873'

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        pool_size: int = DEFAULT_POOL_SIZE,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize with the npm registry base URL."""
        self._base_url = base_url.rstrip('/')
        self._pool_size = pool_size
        self._timeout = timeout

    async def _get(self, url: str) -> httpx.Response:
        async with http_client(pool_size=self._pool_size, timeout=self._timeout) as client:
            return await request_with_retry(client, 'GET', url)

    async def exists(self, name: str, version: str) -> bool:
        """Check if a specific version exists on the npm registry."""
        url = f'{self._base_url}/{_encode_package_name(name)}/{version}'
        try:
            response = await self._get(url)
        except httpx.HTTPError as exc:
            log.warning('registry_query_failed', registry='npm', package=name, version=version, error=str(exc))
            return False
        return response.status_code == 200

    async def dist_tags(self, name: str) -> dict[str, str]:
        """Return the package's dist-tags, or an empty dict if unavailable."""
        url = f'{self._base_url}/-/package/{_encode_package_name(name)}/dist-tags'
        try:
            response = await self._get(url)
        except httpx.HTTPError as exc:
            log.warning('dist_tags_query_failed', package=name, error=str(exc))
            return {}
        if response.status_code != 200:
            log.debug('dist_tags_not_found', package=name, status=response.status_code)
            return {}
        try:
            data = response.json()
        except ValueError:
            log.warning('dist_tags_parse_error', package=name)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}


__all__ = [
    'NpmRegistry',
]
