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

"""Registry protocol for pubkit.

The :class:`Registry` protocol is the one question the scheduler asks a
registry before doing any work: "is this exact version already there?".
Implementations:

- :class:`~pubkit.backends.registry.crates_io.CratesIoRegistry` (crates.io API)
- :class:`~pubkit.backends.registry.npm.NpmRegistry` (npm registry API)
- :class:`~pubkit.backends.registry.pypi.PyPIRegistry` (PyPI JSON API)

A negative answer is only a hint. Every failure to get a definite answer
collapses to ``False`` and the upload itself settles the question.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pubkit.backends.registry.crates_io import CratesIoRegistry as CratesIoRegistry
from pubkit.backends.registry.npm import NpmRegistry as NpmRegistry
from pubkit.backends.registry.pypi import PyPIRegistry as PyPIRegistry
from pubkit.backends.workspace._types import Ecosystem
from pubkit.net import DEFAULT_POOL_SIZE, DEFAULT_TIMEOUT

__all__ = [
    'CratesIoRegistry',
    'NpmRegistry',
    'PyPIRegistry',
    'Registry',
    'create_registry',
]


@runtime_checkable
class Registry(Protocol):
    """Protocol for package registry queries."""

    async def exists(self, name: str, version: str) -> bool:
        """Return ``True`` if the exact version is already published.

        Args:
            name: Package name on the registry.
            version: Version string to check.
        """
        ...


def create_registry(
    ecosystem: Ecosystem,
    *,
    base_url: str = '',
    pool_size: int = DEFAULT_POOL_SIZE,
    timeout: float = DEFAULT_TIMEOUT,
) -> CratesIoRegistry | NpmRegistry | PyPIRegistry:
    """Return the registry client for ``ecosystem``.

    Args:
        ecosystem: Which registry to talk to.
        base_url: Override the registry URL; empty for the public one.
        pool_size: HTTP connection pool size.
        timeout: HTTP request timeout in seconds.
    """
    cls: type[CratesIoRegistry] | type[NpmRegistry] | type[PyPIRegistry]
    if ecosystem == Ecosystem.RUST:
        cls = CratesIoRegistry
    elif ecosystem == Ecosystem.JS:
        cls = NpmRegistry
    else:
        cls = PyPIRegistry
    return cls(base_url=base_url or cls.DEFAULT_BASE_URL, pool_size=pool_size, timeout=timeout)
