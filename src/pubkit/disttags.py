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

"""npm dist-tag reconciliation.

After a publish wave, every workspace package's ``next`` tag (or the
configured one) should point at the version in its ``package.json``.
``npm publish --tag next`` does that for packages uploaded in this run;
this pass catches the ones skipped as already published, and anything
moved by hand since.

Idempotent: a tag that already points at the local version is left
alone, so the pass can run any number of times. A failed move is
reported but never fails the command, because the registry may simply
not have the version yet.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from pubkit.backends.pm import NpmBackend
from pubkit.backends.registry import NpmRegistry
from pubkit.backends.workspace import Package
from pubkit.logging import bound_package, get_logger

logger = get_logger(__name__)


class TagAction(str, Enum):
    """What happened to one package's tag."""

    UNCHANGED = 'unchanged'
    MOVED = 'moved'
    WOULD_MOVE = 'would-move'
    FAILED = 'failed'
    SKIPPED_PRIVATE = 'skipped-private'


@dataclass(frozen=True)
class TagOutcome:
    """One package's tag reconciliation.

    Attributes:
        name: Package name.
        version: Local version the tag should point at.
        action: What was done.
        previous: Version the tag pointed at before, empty if unset.
        message: Error text for failures.
    """

    name: str
    version: str
    action: TagAction
    previous: str = ''
    message: str = ''


@dataclass
class TagReport:
    """All tag outcomes of one pass."""

    tag: str
    outcomes: list[TagOutcome] = field(default_factory=list)

    def by_action(self, action: TagAction) -> list[TagOutcome]:
        """Outcomes with the given action."""
        return [o for o in self.outcomes if o.action == action]

    @property
    def exit_code(self) -> int:
        """Always 0: tag failures are reported, not fatal."""
        return 0

    def summary(self) -> str:
        """Return a human-readable summary."""
        counts = [
            f'{len(self.by_action(action))} {action.value}'
            for action in TagAction
            if self.by_action(action)
        ]
        return ', '.join(counts) if counts else 'no packages'


async def _reconcile(
    pkg: Package,
    *,
    registry: NpmRegistry,
    pm: NpmBackend,
    tag: str,
    dry_run: bool,
    semaphore: asyncio.Semaphore,
) -> TagOutcome:
    with bound_package(pkg.name, pkg.ecosystem.value):
        if pkg.is_private:
            return TagOutcome(name=pkg.name, version=pkg.version, action=TagAction.SKIPPED_PRIVATE)

        async with semaphore:
            tags = await registry.dist_tags(pkg.name)
            current = tags.get(tag, '')
            if current == pkg.version:
                logger.debug('dist_tag_unchanged', tag=tag, version=current)
                return TagOutcome(name=pkg.name, version=pkg.version, action=TagAction.UNCHANGED, previous=current)

            if dry_run:
                logger.info('dist_tag_would_move', tag=tag, previous=current, version=pkg.version)
                return TagOutcome(name=pkg.name, version=pkg.version, action=TagAction.WOULD_MOVE, previous=current)

            result = await pm.add_dist_tag(pkg.name, pkg.version, tag)
            if result.ok:
                logger.info('dist_tag_moved', tag=tag, previous=current, version=pkg.version)
                return TagOutcome(name=pkg.name, version=pkg.version, action=TagAction.MOVED, previous=current)

            message = result.stderr.strip().splitlines()[-1] if result.stderr.strip() else f'exit {result.return_code}'
            logger.warning('dist_tag_failed', tag=tag, version=pkg.version, error=message)
            return TagOutcome(
                name=pkg.name,
                version=pkg.version,
                action=TagAction.FAILED,
                previous=current,
                message=message,
            )


async def ensure_dist_tags(
    packages: list[Package],
    *,
    registry: NpmRegistry,
    pm: NpmBackend,
    tag: str = 'next',
    concurrency: int = 4,
    dry_run: bool = False,
) -> TagReport:
    """Point ``tag`` at the local version of every public package.

    Args:
        packages: npm workspace packages.
        registry: Source of the current dist-tags.
        pm: Issues ``npm dist-tag add``.
        tag: The dist-tag to reconcile.
        concurrency: Max packages in flight.
        dry_run: Report moves without making them.

    Returns:
        A :class:`TagReport`, one outcome per package, in input order.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))
    outcomes = await asyncio.gather(
        *(
            _reconcile(pkg, registry=registry, pm=pm, tag=tag, dry_run=dry_run, semaphore=semaphore)
            for pkg in packages
        )
    )
    report = TagReport(tag=tag, outcomes=list(outcomes))
    logger.info('dist_tags_reconciled', tag=tag, summary=report.summary())
    return report


__all__ = [
    'TagAction',
    'TagOutcome',
    'TagReport',
    'ensure_dist_tags',
]
