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

"""Tiered publish scheduler.

Publishes packages tier by tier with semaphore-controlled concurrency
within each tier. Each package goes through::

    private? ──yes──▶ skipped-private
       │no
    registry.exists? ──yes──▶ skipped-already-published
       │no
    ┌──────────────── manifest rewrite guard ────────────────┐
    │  build ──fail──▶ failed-build                          │
    │    │ok                                                 │
    │  upload ──429──▶ sleep min(base·2ⁿ⁻¹, cap) ──▶ upload  │
    │    │                (up to max_attempts)               │
    └────┼───────────────────────────────────────────────────┘
         ├── uploaded        ▶ published
         ├── already exists  ▶ skipped-already-published
         ├── rate limited ×N ▶ failed-rate-limited
         └── other           ▶ failed-upload

Key Concepts::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ What it means                                  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Tier barrier        │ Tier i+1 starts only after every package of   │
    │                     │ tier i has an outcome, plus the settle delay  │
    │                     │ if anything was uploaded (crates.io indexes   │
    │                     │ asynchronously).                              │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Semaphore           │ A sliding window of N concurrent workers.     │
    │                     │ As one finishes, the next starts immediately. │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Keep going          │ A failed package never stops the run. Its     │
    │                     │ dependents are attempted too; the registry    │
    │                     │ rejects them if they really can't resolve.    │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Outcome records     │ Each worker returns one PackageOutcome; the   │
    │                     │ caller reduces them into a PublishResult.     │
    └─────────────────────┴────────────────────────────────────────────────┘

Usage::

    from pubkit.publisher import PublishConfig, publish_tiers

    result = await publish_tiers(
        tiers=tiers,
        registry=CratesIoRegistry(),
        pm=CargoBackend(),
        config=PublishConfig(concurrency=4, settle_delay=120),
    )
    sys.exit(result.exit_code)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass, field
from enum import Enum

from pubkit.backends.pm import PackageManager, UploadResult, UploadStatus, error_excerpt
from pubkit.backends.registry import Registry
from pubkit.backends.workspace import Ecosystem, InvalidManifest, Package
from pubkit.logging import bound_package, get_logger
from pubkit.observer import PublishObserver, PublishStage
from pubkit.rewrite import manifest_rewrite

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class PublishMode(str, Enum):
    """What to do with each package."""

    PUBLISH = 'publish'
    BUILD_ONLY = 'build-only'
    UPLOAD_ONLY = 'upload-only'
    VERIFY = 'verify'
    CHECK = 'check'


class Outcome(str, Enum):
    """Terminal result for one package in one run."""

    PUBLISHED = 'published'
    SKIPPED_PRIVATE = 'skipped-private'
    SKIPPED_ALREADY_PUBLISHED = 'skipped-already-published'
    SKIPPED_INVALID = 'skipped-invalid'
    FAILED_BUILD = 'failed-build'
    FAILED_UPLOAD = 'failed-upload'
    FAILED_RATE_LIMITED = 'failed-rate-limited'
    BUILT = 'built'
    CHECKED = 'checked'
    VERIFIED = 'verified'

    @property
    def is_failure(self) -> bool:
        """Counts against the exit code."""
        return self.value.startswith('failed-')

    @property
    def is_skip(self) -> bool:
        """Nothing was done for this package."""
        return self.value.startswith('skipped-')


@dataclass(frozen=True)
class PublishConfig:
    """Configuration for a publish run.

    Attributes:
        concurrency: Max packages in flight within one tier.
        dry_run: Query registries but log uploads instead of running them.
        mode: See :class:`PublishMode`.
        settle_delay: Seconds to wait after a tier that uploaded
            something, before the next tier starts.
        upload_delay: Seconds a worker holds its slot after a real upload.
        max_attempts: Upload attempts (first try included) before a
            rate-limited package is given up on.
        backoff_base: First rate-limit backoff in seconds.
        backoff_cap: Upper bound for a single backoff.
        rewrite_manifests: Rewrite workspace references while building
            and uploading.
        clean: Remove build outputs after a successful upload.
    """

    concurrency: int = 4
    dry_run: bool = False
    mode: PublishMode = PublishMode.PUBLISH
    settle_delay: float = 0.0
    upload_delay: float = 0.0
    max_attempts: int = 8
    backoff_base: float = 60.0
    backoff_cap: float = 600.0
    rewrite_manifests: bool = True
    clean: bool = True


@dataclass(frozen=True)
class PackageOutcome:
    """What happened to one package.

    Attributes:
        name: Package name.
        version: Version that was considered.
        tier: Tier index the package ran in.
        outcome: The terminal outcome.
        reason: Short suffix for the summary (``"dry run"``,
            ``"rate limited after 8 attempts"``).
        attempts: Upload commands issued.
        detail: Captured output fragment for failures.
        ecosystem: Registry the package belongs to; picks the label style.
    """

    name: str
    version: str
    tier: int
    outcome: Outcome
    reason: str = ''
    attempts: int = 0
    detail: str = ''
    ecosystem: Ecosystem | None = None

    @property
    def label(self) -> str:
        """``name@version`` for npm and crates.io, ``name==version`` for PyPI."""
        if not self.version:
            return self.name
        separator = '==' if self.ecosystem == Ecosystem.PYTHON else '@'
        return f'{self.name}{separator}{self.version}'


@dataclass
class PublishResult:
    """Result of a complete run: one :class:`PackageOutcome` per package."""

    outcomes: list[PackageOutcome] = field(default_factory=list)

    def by_outcome(self, *outcomes: Outcome) -> list[PackageOutcome]:
        """Outcome records matching any of ``outcomes``."""
        return [o for o in self.outcomes if o.outcome in outcomes]

    @property
    def published(self) -> list[PackageOutcome]:
        """Packages uploaded (or that would be, in dry-run)."""
        return self.by_outcome(Outcome.PUBLISHED)

    @property
    def completed(self) -> list[PackageOutcome]:
        """Packages that finished a non-upload mode successfully."""
        return self.by_outcome(Outcome.BUILT, Outcome.CHECKED, Outcome.VERIFIED)

    @property
    def skipped(self) -> list[PackageOutcome]:
        """Packages that were skipped."""
        return [o for o in self.outcomes if o.outcome.is_skip]

    @property
    def failed(self) -> list[PackageOutcome]:
        """Packages that failed."""
        return [o for o in self.outcomes if o.outcome.is_failure]

    @property
    def ok(self) -> bool:
        """Return True if no packages failed."""
        return not self.failed

    @property
    def exit_code(self) -> int:
        """Process exit status: 1 if anything failed, else 0."""
        return 0 if self.ok else 1

    def summary(self) -> str:
        """Return a human-readable summary."""
        parts = []
        if self.published:
            parts.append(f'{len(self.published)} published')
        if self.completed:
            parts.append(f'{len(self.completed)} done')
        if self.skipped:
            parts.append(f'{len(self.skipped)} skipped')
        if self.failed:
            parts.append(f'{len(self.failed)} failed')
        return ', '.join(parts) if parts else 'no packages processed'


def backoff_delay(attempt: int, *, base: float, cap: float) -> float:
    """Seconds to wait after the ``attempt``-th rate-limited upload (1-based)."""
    return min(base * 2 ** (attempt - 1), cap)


def _stage_for(outcome: Outcome) -> PublishStage:
    if outcome.is_failure:
        return PublishStage.FAILED
    if outcome.is_skip:
        return PublishStage.SKIPPED
    return PublishStage.PUBLISHED


@dataclass
class _Worker:
    """Shared collaborators for every package worker of one run."""

    registry: Registry
    pm: PackageManager
    config: PublishConfig
    version_map: dict[str, str]
    observer: PublishObserver
    sleep: Sleep
    semaphore: asyncio.Semaphore
    # Last stage entered per package, to attribute unexpected errors.
    stages: dict[str, PublishStage] = field(default_factory=dict)

    def _finish(
        self,
        pkg: Package,
        tier: int,
        outcome: Outcome,
        *,
        reason: str = '',
        attempts: int = 0,
        detail: str = '',
    ) -> PackageOutcome:
        record = PackageOutcome(
            name=pkg.name,
            version=pkg.version,
            tier=tier,
            outcome=outcome,
            reason=reason,
            attempts=attempts,
            detail=detail,
            ecosystem=pkg.ecosystem,
        )
        if outcome.is_failure:
            self.observer.on_error(pkg.name, reason or outcome.value)
            logger.error('package_failed', outcome=outcome.value, reason=reason)
        else:
            logger.info('package_done', outcome=outcome.value, reason=reason)
        self.observer.on_stage(pkg.name, _stage_for(outcome))
        return record

    def _enter(self, pkg: Package, stage: PublishStage) -> None:
        self.stages[pkg.name] = stage
        self.observer.on_stage(pkg.name, stage)

    async def run(self, pkg: Package, tier: int) -> PackageOutcome:
        """Take one package to a terminal outcome. Never raises ``Exception``."""
        with bound_package(pkg.name, pkg.ecosystem.value):
            if pkg.is_private:
                return self._finish(pkg, tier, Outcome.SKIPPED_PRIVATE, reason='private')

            async with self.semaphore:
                try:
                    if self.config.mode == PublishMode.CHECK:
                        return await self._check(pkg, tier)
                    if self.config.mode == PublishMode.VERIFY:
                        return await self._verify(pkg, tier)
                    return await self._publish(pkg, tier)
                except Exception as exc:  # noqa: BLE001 - converted into a failed outcome
                    logger.exception('package_crashed', error=str(exc))
                    stage = self.stages.get(pkg.name, PublishStage.WAITING)
                    outcome = Outcome.FAILED_UPLOAD if stage == PublishStage.UPLOADING else Outcome.FAILED_BUILD
                    return self._finish(pkg, tier, outcome, reason=str(exc))

    async def _check(self, pkg: Package, tier: int) -> PackageOutcome:
        if await self.registry.exists(pkg.name, pkg.version):
            return self._finish(pkg, tier, Outcome.SKIPPED_ALREADY_PUBLISHED, reason='already published')
        self._enter(pkg, PublishStage.CHECKING)
        results = await self.pm.check(pkg)
        failing = [r for r in results if not r.ok]
        if not failing:
            return self._finish(pkg, tier, Outcome.CHECKED)
        for r in failing:
            logger.warning('check_step_failed', cmd=r.command_str, return_code=r.return_code)
        steps = ', '.join(' '.join(r.command[:2]) for r in failing)
        detail = '\n'.join(error_excerpt(r.output) for r in failing)
        return self._finish(pkg, tier, Outcome.CHECKED, reason=f'warnings: {steps}', detail=detail)

    async def _verify(self, pkg: Package, tier: int) -> PackageOutcome:
        self._enter(pkg, PublishStage.REWRITING)
        with self._rewrite(pkg):
            self._enter(pkg, PublishStage.BUILDING)
            built = await self.pm.build(pkg)
        if built.ok:
            return self._finish(pkg, tier, Outcome.VERIFIED)
        return self._finish(
            pkg, tier, Outcome.FAILED_BUILD, reason='verification failed', detail=error_excerpt(built.output, 5)
        )

    def _rewrite(self, pkg: Package) -> AbstractContextManager[object]:
        if not self.config.rewrite_manifests:
            return nullcontext()
        return manifest_rewrite(pkg, self.version_map)

    async def _publish(self, pkg: Package, tier: int) -> PackageOutcome:
        if await self.registry.exists(pkg.name, pkg.version):
            return self._finish(pkg, tier, Outcome.SKIPPED_ALREADY_PUBLISHED, reason='already published')

        self._enter(pkg, PublishStage.REWRITING)
        with self._rewrite(pkg):
            if self.config.mode != PublishMode.UPLOAD_ONLY:
                self._enter(pkg, PublishStage.BUILDING)
                built = await self.pm.build(pkg)
                if not built.ok:
                    return self._finish(
                        pkg, tier, Outcome.FAILED_BUILD, reason='build failed', detail=error_excerpt(built.output)
                    )
                if self.config.mode == PublishMode.BUILD_ONLY:
                    return self._finish(pkg, tier, Outcome.BUILT)

            upload, attempts = await self._upload_with_backoff(pkg)

        if upload.status == UploadStatus.RATE_LIMITED:
            return self._finish(
                pkg,
                tier,
                Outcome.FAILED_RATE_LIMITED,
                reason=f'rate limited after {attempts} attempts',
                attempts=attempts,
            )
        if upload.status == UploadStatus.ALREADY_EXISTS:
            return self._finish(
                pkg, tier, Outcome.SKIPPED_ALREADY_PUBLISHED, reason='already exists', attempts=attempts
            )
        if upload.status == UploadStatus.FAILED:
            detail = error_excerpt(upload.result.output) if upload.result else ''
            return self._finish(pkg, tier, Outcome.FAILED_UPLOAD, reason=upload.message, attempts=attempts, detail=detail)

        if self.config.dry_run:
            return self._finish(pkg, tier, Outcome.PUBLISHED, reason='dry run', attempts=attempts)

        if self.config.upload_delay > 0:
            logger.debug('upload_delay', seconds=self.config.upload_delay)
            await self.sleep(self.config.upload_delay)
        if self.config.clean:
            await self.pm.clean(pkg)
        return self._finish(pkg, tier, Outcome.PUBLISHED, attempts=attempts)

    async def _upload_with_backoff(self, pkg: Package) -> tuple[UploadResult, int]:
        attempt = 0
        while True:
            attempt += 1
            self._enter(pkg, PublishStage.UPLOADING)
            upload = await self.pm.upload(pkg, dry_run=self.config.dry_run)
            if upload.status != UploadStatus.RATE_LIMITED or attempt >= self.config.max_attempts:
                return upload, attempt
            delay = backoff_delay(attempt, base=self.config.backoff_base, cap=self.config.backoff_cap)
            logger.warning('upload_rate_limited', attempt=attempt, max_attempts=self.config.max_attempts, delay=delay)
            self.observer.on_retry(pkg.name, attempt, delay)
            self._enter(pkg, PublishStage.RETRYING)
            await self.sleep(delay)


def _invalid_outcomes(invalid: Sequence[InvalidManifest]) -> list[PackageOutcome]:
    return [
        PackageOutcome(name=inv.path.name, version='', tier=0, outcome=Outcome.SKIPPED_INVALID, reason=inv.reason)
        for inv in invalid
    ]


async def publish_tiers(
    *,
    tiers: list[list[Package]],
    registry: Registry,
    pm: PackageManager,
    config: PublishConfig,
    version_map: dict[str, str] | None = None,
    observer: PublishObserver | None = None,
    sleep: Sleep = asyncio.sleep,
    invalid: Sequence[InvalidManifest] = (),
) -> PublishResult:
    """Publish ``tiers`` in order and return one outcome per package.

    Args:
        tiers: Packages grouped by tier, earliest first.
        registry: Answers "is this version already published?".
        pm: Builds and uploads packages.
        config: Publish configuration.
        version_map: Versions used when rewriting workspace references.
            Defaults to the versions of the packages in ``tiers``.
        observer: Progress callbacks (``None`` for none).
        sleep: Awaitable sleep, replaceable in tests.
        invalid: Manifests discovery could not read; reported as
            ``skipped-invalid``.

    Returns:
        A :class:`PublishResult` summarizing the outcome.
    """
    if observer is None:
        observer = PublishObserver()
    if version_map is None:
        version_map = {pkg.name: pkg.version for tier in tiers for pkg in tier}

    observer.init_packages([(pkg.name, index, pkg.version) for index, tier in enumerate(tiers) for pkg in tier])

    result = PublishResult(outcomes=_invalid_outcomes(invalid))
    worker = _Worker(
        registry=registry,
        pm=pm,
        config=config,
        version_map=version_map,
        observer=observer,
        sleep=sleep,
        semaphore=asyncio.Semaphore(max(1, config.concurrency)),
    )

    needs_settle = False
    for index, tier in enumerate(tiers):
        if not tier:
            logger.debug('tier_empty', tier=index)
            continue

        if needs_settle:
            logger.info('tier_settle', tier=index, seconds=config.settle_delay)
            await sleep(config.settle_delay)

        logger.info(
            'tier_start',
            tier=index,
            packages=[pkg.name for pkg in tier],
            concurrency=config.concurrency,
        )
        observer.on_tier_start(index, [pkg.name for pkg in tier])

        tasks = [asyncio.create_task(worker.run(pkg, index), name=f'publish-{pkg.name}') for pkg in tier]
        done = await asyncio.gather(*tasks, return_exceptions=True)

        tier_outcomes: list[PackageOutcome] = []
        for pkg, outcome in zip(tier, done, strict=True):
            if isinstance(outcome, PackageOutcome):
                tier_outcomes.append(outcome)
            elif isinstance(outcome, Exception):
                logger.error('package_failed', package=pkg.name, error=str(outcome))
                tier_outcomes.append(
                    PackageOutcome(
                        name=pkg.name,
                        version=pkg.version,
                        tier=index,
                        outcome=Outcome.FAILED_BUILD,
                        reason=str(outcome),
                        ecosystem=pkg.ecosystem,
                    )
                )
            else:
                raise outcome
        result.outcomes.extend(tier_outcomes)

        uploaded = [o for o in tier_outcomes if o.outcome == Outcome.PUBLISHED and not config.dry_run]
        needs_settle = bool(uploaded) and config.settle_delay > 0
        logger.info(
            'tier_complete',
            tier=index,
            published=len(uploaded),
            failed=sum(1 for o in tier_outcomes if o.outcome.is_failure),
        )

    observer.on_complete()
    logger.info(
        'publish_complete',
        summary=result.summary(),
        published=len(result.published),
        skipped=len(result.skipped),
        failed=len(result.failed),
    )
    return result


__all__ = [
    'Outcome',
    'PackageOutcome',
    'PublishConfig',
    'PublishMode',
    'PublishResult',
    'backoff_delay',
    'publish_tiers',
]
