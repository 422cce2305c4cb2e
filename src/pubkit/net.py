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

"""HTTP plumbing shared by the registry backends.

- :func:`http_client` yields a pooled :class:`httpx.AsyncClient` that
  always sends a ``User-Agent`` (crates.io rejects anonymous clients).
- :func:`request_with_retry` retries 429/5xx responses and connection
  errors with exponential backoff, honouring ``Retry-After`` when the
  registry sends one.

These retries cover registry *queries* only. Upload retries are the
scheduler's business (see :mod:`pubkit.publisher`).
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Final

import httpx

from pubkit import __version__
from pubkit.logging import get_logger

log = get_logger('pubkit.net')

DEFAULT_POOL_SIZE: Final[int] = 10
DEFAULT_TIMEOUT: Final[float] = 30.0

MAX_RETRIES: Final[int] = 3
RETRY_BACKOFF_BASE: Final[float] = 1.0
# Upper bound for a server-supplied Retry-After value.
MAX_RETRY_AFTER: Final[float] = 60.0

RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})

USER_AGENT: Final[str] = f'pubkit/{__version__} (+https://pypi.org/project/pubkit/)'


@asynccontextmanager
async def http_client(
    *,
    pool_size: int = DEFAULT_POOL_SIZE,
    timeout: float = DEFAULT_TIMEOUT,
    base_url: str = '',
    headers: dict[str, str] | None = None,
) -> AsyncGenerator[httpx.AsyncClient]:
    """Create a managed async HTTP client with connection pooling.

    Args:
        pool_size: Maximum number of connections in the pool.
        timeout: Request timeout in seconds.
        base_url: Optional base URL for all requests.
        headers: Extra default headers, merged over the User-Agent.

    Yields:
        An :class:`httpx.AsyncClient` instance.
    """
    limits = httpx.Limits(
        max_connections=pool_size,
        max_keepalive_connections=pool_size,
    )
    async with httpx.AsyncClient(
        limits=limits,
        timeout=httpx.Timeout(timeout),
        base_url=base_url,
        headers={'User-Agent': USER_AGENT, **(headers or {})},
        follow_redirects=True,
    ) as client:
        yield client


def _retry_after(response: httpx.Response) -> float | None:
    """Parse a numeric ``Retry-After`` header, capped at :data:`MAX_RETRY_AFTER`."""
    value = response.headers.get('Retry-After', '')
    try:
        seconds = float(value)
    except ValueError:
        return None
    return max(0.0, min(seconds, MAX_RETRY_AFTER))


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int = MAX_RETRIES,
    backoff_base: float = RETRY_BACKOFF_BASE,
    **kwargs: object,
) -> httpx.Response:
    """Make an HTTP request, retrying transient failures.

    Args:
        client: The httpx async client to use.
        method: HTTP method.
        url: Request URL.
        max_retries: Retries after the first attempt.
        backoff_base: Base delay in seconds; doubles per attempt.
        **kwargs: Passed through to ``client.request()``.

    Returns:
        The first non-retryable :class:`httpx.Response`.

    Raises:
        httpx.HTTPStatusError: The last attempt still had a retryable status.
        httpx.TransportError: The last attempt failed to connect or timed out.
    """
    last_exception: Exception | None = None
    response: httpx.Response | None = None

    for attempt in range(max_retries + 1):
        try:
            response = await client.request(method, url, **kwargs)  # type: ignore[arg-type]
        except (httpx.ConnectError, httpx.ReadTimeout, httpx.WriteTimeout, httpx.ConnectTimeout) as exc:
            last_exception = exc
            response = None
            delay = backoff_base * (2**attempt)
            log.warning('http_retry_error', url=url, error=str(exc), attempt=attempt + 1, delay=delay)
        else:
            last_exception = None
            if response.status_code not in RETRYABLE_STATUS_CODES:
                return response
            delay = _retry_after(response) or backoff_base * (2**attempt)
            log.warning('http_retry', url=url, status=response.status_code, attempt=attempt + 1, delay=delay)

        if attempt < max_retries:
            await asyncio.sleep(delay)

    if last_exception is not None:
        raise last_exception

    if response is not None:
        response.raise_for_status()
        return response

    msg = 'request_with_retry: no attempts were made'
    raise RuntimeError(msg)


__all__ = [
    'DEFAULT_POOL_SIZE',
    'DEFAULT_TIMEOUT',
    'MAX_RETRIES',
    'RETRYABLE_STATUS_CODES',
    'USER_AGENT',
    'http_client',
    'request_with_retry',
]
