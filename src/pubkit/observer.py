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

"""Observer protocol and stage enum for publish progress.

Kept apart from the UI so the publisher does not import rich::

    observer.py  ← PublishStage, PublishObserver
      ↑              ↑
      │              │
    ui.py        publisher.py

Stage indicators::

    ⏳ waiting → ✏️  rewriting → 🔨 building → 📤 uploading
    → 🔄 retrying (rate limited, backoff in progress)
    → ✅ published / ❌ failed / ⏭️  skipped
    🧪 checking (check and verify modes)
"""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractContextManager
from enum import Enum
from types import TracebackType


class PublishStage(str, Enum):
    """Pipeline stage for a single package, in pipeline order."""

    WAITING = 'waiting'
    REWRITING = 'rewriting'
    CHECKING = 'checking'
    BUILDING = 'building'
    UPLOADING = 'uploading'
    RETRYING = 'retrying'
    PUBLISHED = 'published'
    FAILED = 'failed'
    SKIPPED = 'skipped'


class PublishObserver(AbstractContextManager['PublishObserver']):
    """Receives publish progress updates.

    Every hook is a no-op by default. Implementations support the
    context manager protocol for setup and teardown of UI resources
    (e.g. Rich Live).
    """

    def init_packages(self, packages: Sequence[tuple[str, int, str]]) -> None:
        """Register all packages as ``(name, tier, version)``, ordered by tier."""

    def on_tier_start(self, tier: int, package_names: list[str]) -> None:
        """Notify that a tier is starting."""

    def on_stage(self, name: str, stage: PublishStage) -> None:
        """Notify that a package has entered a new pipeline stage."""

    def on_retry(self, name: str, attempt: int, delay: float) -> None:
        """Notify that an upload was rate limited and will be retried.

        Args:
            name: Package name.
            attempt: The upload attempt that was rate limited (1-based).
            delay: Seconds until the next attempt.
        """

    def on_error(self, name: str, error: str) -> None:
        """Notify that a package has failed."""

    def on_complete(self) -> None:
        """Notify that the entire publish run is complete."""

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Clean up UI resources."""


__all__ = [
    'PublishObserver',
    'PublishStage',
]
