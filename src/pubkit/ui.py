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

"""Progress display and end-of-run summary for publish operations.

Architecture::

    publisher.py                    ui.py
    ┌──────────────┐    callback    ┌────────────────────┐
    │   _Worker    │───────────────▶│ UI implementations │
    └──────────────┘                └─────────┬──────────┘
                                              │
                          ┌───────────────────┼───────────────────┐
                  ┌───────┴───────┐   ┌───────┴───────┐   ┌───────┴──────┐
                  │ RichProgress  │   │ LogProgress   │   │ NullProgress │
                  │   UI (TTY)    │   │   UI (CI)     │   │   (tests)    │
                  └───────────────┘   └───────────────┘   └──────────────┘

The live table goes to stderr. :func:`render_summary` prints the final
per-package table to stdout, so ``pubkit publish-rust > summary.txt``
captures just the summary.

Sliding window::

    When a workspace has more packages than fit, RichProgressUI shows
    only active and recently finished rows, and one collapsed row for
    the rest.
"""

from __future__ import annotations

import sys
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from types import TracebackType

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from pubkit.disttags import TagAction, TagReport
from pubkit.logging import get_logger
from pubkit.observer import PublishObserver, PublishStage
from pubkit.publisher import Outcome, PublishResult

logger = get_logger(__name__)

# Emoji and color for each stage.
_STAGE_DISPLAY: dict[PublishStage, tuple[str, str]] = {
    PublishStage.WAITING: ('⏳', 'dim'),
    PublishStage.REWRITING: ('✏️ ', 'yellow'),
    PublishStage.CHECKING: ('🧪', 'magenta'),
    PublishStage.BUILDING: ('🔨', 'yellow'),
    PublishStage.UPLOADING: ('📤', 'cyan'),
    PublishStage.RETRYING: ('🔄', 'yellow bold'),
    PublishStage.PUBLISHED: ('✅', 'green'),
    PublishStage.FAILED: ('❌', 'red bold'),
    PublishStage.SKIPPED: ('⏭️ ', 'dim'),
}

_TERMINAL_STAGES = frozenset({
    PublishStage.PUBLISHED,
    PublishStage.FAILED,
    PublishStage.SKIPPED,
})

_MAX_VISIBLE_ROWS = 30

# Summary style per outcome.
_OUTCOME_STYLE: dict[Outcome, tuple[str, str]] = {
    Outcome.PUBLISHED: ('✅', 'green'),
    Outcome.BUILT: ('📦', 'green'),
    Outcome.CHECKED: ('🧪', 'green'),
    Outcome.VERIFIED: ('✔️ ', 'green'),
    Outcome.SKIPPED_PRIVATE: ('⏭️ ', 'dim'),
    Outcome.SKIPPED_ALREADY_PUBLISHED: ('⏭️ ', 'dim'),
    Outcome.SKIPPED_INVALID: ('⚠️ ', 'yellow'),
    Outcome.FAILED_BUILD: ('❌', 'red'),
    Outcome.FAILED_UPLOAD: ('❌', 'red'),
    Outcome.FAILED_RATE_LIMITED: ('🔄', 'red'),
}


@dataclass
class _PackageRow:
    """Internal tracking for one package row in the progress table."""

    name: str
    tier: int
    version: str
    stage: PublishStage = PublishStage.WAITING
    start_time: float | None = None
    end_time: float | None = None
    attempts: int = 0
    error: str = ''

    @property
    def elapsed(self) -> float | None:
        """Elapsed time in seconds, or None if not started."""
        if self.start_time is None:
            return None
        end = self.end_time if self.end_time is not None else time.monotonic()
        return end - self.start_time

    @property
    def elapsed_str(self) -> str:
        """Formatted elapsed time string."""
        elapsed = self.elapsed
        if elapsed is None:
            return '-'
        if elapsed < 60:
            return f'{elapsed:.1f}s'
        minutes = int(elapsed // 60)
        seconds = elapsed % 60
        return f'{minutes}m{seconds:.0f}s'

    def advance(self, stage: PublishStage) -> None:
        """Move to ``stage`` and update the timers."""
        self.stage = stage
        if stage not in {PublishStage.WAITING, PublishStage.SKIPPED} and self.start_time is None:
            self.start_time = time.monotonic()
        if stage in _TERMINAL_STAGES:
            self.end_time = time.monotonic()


class NullProgressUI(PublishObserver):
    """No-op observer for tests."""

    def __enter__(self) -> NullProgressUI:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager."""


@dataclass
class LogProgressUI(PublishObserver):
    """Structured-log observer for non-TTY/CI environments.

    Emits one log line per state transition instead of a live table.
    """

    _packages: dict[str, _PackageRow] = field(default_factory=dict)

    def __enter__(self) -> LogProgressUI:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager."""

    def init_packages(self, packages: Sequence[tuple[str, int, str]]) -> None:
        """Register packages."""
        for name, tier, version in packages:
            self._packages[name] = _PackageRow(name=name, tier=tier, version=version)

    def on_tier_start(self, tier: int, package_names: list[str]) -> None:
        """Log tier start."""
        logger.info('ui_tier_start', tier=tier, packages=package_names)

    def on_stage(self, name: str, stage: PublishStage) -> None:
        """Log the stage transition."""
        row = self._packages.get(name)
        if row is None:
            return
        row.advance(stage)
        logger.info('stage_change', package=name, stage=stage.value, elapsed=row.elapsed_str)

    def on_retry(self, name: str, attempt: int, delay: float) -> None:
        """Log the pending retry."""
        row = self._packages.get(name)
        if row is not None:
            row.attempts = attempt
        logger.info('retry_scheduled', package=name, attempt=attempt, delay=delay)

    def on_error(self, name: str, error: str) -> None:
        """Log the error."""
        row = self._packages.get(name)
        if row is not None:
            row.error = error
        logger.error('package_error', package=name, error=error)

    def on_complete(self) -> None:
        """Log completion counts."""
        rows = self._packages.values()
        logger.info(
            'publish_ui_complete',
            published=sum(1 for r in rows if r.stage == PublishStage.PUBLISHED),
            failed=sum(1 for r in rows if r.stage == PublishStage.FAILED),
            skipped=sum(1 for r in rows if r.stage == PublishStage.SKIPPED),
            total=len(self._packages),
        )


@dataclass
class RichProgressUI(PublishObserver):
    """Rich Live table observer for TTY environments."""

    title: str = 'pubkit publish'
    concurrency: int = 4
    _packages: dict[str, _PackageRow] = field(default_factory=dict)
    _package_order: list[str] = field(default_factory=list)
    _errors: list[tuple[str, str]] = field(default_factory=list)
    _console: Console = field(default_factory=lambda: Console(stderr=True))
    _live: Live | None = field(default=None, repr=False)
    _start_time: float = field(default_factory=time.monotonic)
    _total_tiers: int = 0

    def __enter__(self) -> RichProgressUI:
        """Start the Rich Live display."""
        self._start_time = time.monotonic()
        self._live = Live(self._render(), console=self._console, refresh_per_second=4, transient=False)
        self._live.__enter__()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Stop the Rich Live display with a final render."""
        if self._live is not None:
            self._live.update(self._render())
            self._live.__exit__(exc_type, exc_val, exc_tb)
            self._live = None

    def init_packages(self, packages: Sequence[tuple[str, int, str]]) -> None:
        """Register packages and build display order."""
        self._package_order = []
        for name, tier, version in packages:
            self._packages[name] = _PackageRow(name=name, tier=tier, version=version)
            self._package_order.append(name)
        self._total_tiers = max((tier for _, tier, _ in packages), default=-1) + 1
        self._refresh()

    def on_stage(self, name: str, stage: PublishStage) -> None:
        """Update a package's stage and refresh the display."""
        row = self._packages.get(name)
        if row is None:
            return
        row.advance(stage)
        self._refresh()

    def on_retry(self, name: str, attempt: int, delay: float) -> None:
        """Record the attempt count shown next to the stage."""
        row = self._packages.get(name)
        if row is not None:
            row.attempts = attempt
        self._refresh()

    def on_error(self, name: str, error: str) -> None:
        """Record the error for the error panel."""
        row = self._packages.get(name)
        if row is not None:
            row.error = error
        self._errors.append((name, error))
        self._refresh()

    def on_complete(self) -> None:
        """Final refresh."""
        self._refresh()

    def _refresh(self) -> None:
        if self._live is not None:
            self._live.update(self._render())

    def _visible_rows(self) -> list[str]:
        """Active rows first, then the most recently finished, then waiting."""
        if len(self._package_order) <= _MAX_VISIBLE_ROWS:
            return list(self._package_order)
        active = [
            n
            for n in self._package_order
            if self._packages[n].stage not in _TERMINAL_STAGES and self._packages[n].stage != PublishStage.WAITING
        ]
        finished = sorted(
            (n for n in self._package_order if self._packages[n].stage in _TERMINAL_STAGES),
            key=lambda n: self._packages[n].end_time or 0.0,
        )
        waiting = [n for n in self._package_order if self._packages[n].stage == PublishStage.WAITING]
        room = max(0, _MAX_VISIBLE_ROWS - len(active))
        recent = finished[-(room // 2) :] if room // 2 else []
        room -= len(recent)
        chosen = set(active) | set(recent) | set(waiting[:room])
        return [n for n in self._package_order if n in chosen]

    def _render(self) -> Panel:
        """Build the complete display panel."""
        elapsed = time.monotonic() - self._start_time
        rows = self._packages.values()
        published = sum(1 for r in rows if r.stage == PublishStage.PUBLISHED)
        failed = sum(1 for r in rows if r.stage == PublishStage.FAILED)
        skipped = sum(1 for r in rows if r.stage == PublishStage.SKIPPED)
        retrying = sum(1 for r in rows if r.stage == PublishStage.RETRYING)
        waiting = sum(1 for r in rows if r.stage == PublishStage.WAITING)
        active = len(self._packages) - published - failed - skipped - retrying - waiting

        table = Table(show_header=True, header_style='bold', show_edge=False, pad_edge=False, expand=True)
        table.add_column('Tier', width=4, justify='right')
        table.add_column('Package', min_width=20, ratio=3)
        table.add_column('Version', min_width=8, ratio=1)
        table.add_column('Stage', min_width=14, ratio=2)
        table.add_column('Time', width=8, justify='right')

        visible = self._visible_rows()
        for name in visible:
            row = self._packages[name]
            emoji, style = _STAGE_DISPLAY.get(row.stage, ('?', ''))
            label = f'{emoji} {row.stage.value}'
            if row.attempts and row.stage in {PublishStage.RETRYING, PublishStage.UPLOADING}:
                label += f' (attempt {row.attempts + 1})'
            table.add_row(
                str(row.tier),
                Text(row.name, style='bold' if row.stage not in _TERMINAL_STAGES else ''),
                row.version,
                Text(label, style=style),
                row.elapsed_str,
            )
        hidden = len(self._package_order) - len(visible)
        if hidden > 0:
            table.add_row('', Text(f'  … {hidden} more', style='dim italic'), '', '', '')

        parts = []
        if published:
            parts.append(f'[green]✅ {published} published[/]')
        if active:
            parts.append(f'[cyan]⚡ {active} active[/]')
        if retrying:
            parts.append(f'[yellow]🔄 {retrying} retrying[/]')
        if waiting:
            parts.append(f'[dim]⏳ {waiting} waiting[/]')
        if skipped:
            parts.append(f'[dim]⏭️  {skipped} skipped[/]')
        if failed:
            parts.append(f'[red]❌ {failed} failed[/]')
        summary = ' │ '.join(parts) if parts else 'Starting...'
        elapsed_str = f'{elapsed:.1f}s' if elapsed < 60 else f'{elapsed / 60:.1f}m'

        content: Table | Group = table
        if self._errors:
            lines = [f'[red bold]{name}[/]: {message}' for name, message in self._errors[-5:]]
            content = Group(table, Text(''), Panel('\n'.join(lines), title='[red]Errors[/]', border_style='red'))

        title = (
            f'{self.title} - {len(self._packages)} packages across {self._total_tiers} tiers '
            f'(concurrency: {self.concurrency})'
        )
        return Panel(
            content,
            title=f'[bold]{title}[/]',
            subtitle=f'{summary}  │  Elapsed: {elapsed_str}',
            border_style='blue',
            expand=True,
        )


def create_progress_ui(
    *,
    title: str = 'pubkit publish',
    concurrency: int = 4,
    force_tty: bool | None = None,
) -> PublishObserver:
    """Create the progress UI for the environment.

    Returns :class:`RichProgressUI` when stderr is a TTY and
    :class:`LogProgressUI` otherwise. ``force_tty`` overrides detection.
    """
    is_tty = force_tty if force_tty is not None else sys.stderr.isatty()
    if is_tty:
        return RichProgressUI(title=title, concurrency=concurrency)
    return LogProgressUI()


def render_summary(result: PublishResult, console: Console | None = None, *, title: str = 'Publish summary') -> None:
    """Print the per-package outcome table and captured failure output."""
    console = console or Console()

    table = Table(title=title, show_lines=False, expand=False)
    table.add_column('Tier', justify='right')
    table.add_column('Package')
    table.add_column('Version')
    table.add_column('Outcome')
    table.add_column('Reason')

    for record in sorted(result.outcomes, key=lambda o: (o.tier, o.name)):
        emoji, style = _OUTCOME_STYLE[record.outcome]
        table.add_row(
            str(record.tier),
            record.name,
            record.version,
            Text(f'{emoji} {record.outcome.value}', style=style),
            record.reason,
        )
    console.print(table)

    for record in result.failed:
        if record.detail:
            console.print(
                Panel(Text(record.detail), title=f'[red]{record.label}[/]: {record.outcome.value}', border_style='red')
            )

    style = 'green' if result.ok else 'red bold'
    console.print(Text(result.summary(), style=style))


def render_tag_report(report: TagReport, console: Console | None = None) -> None:
    """Print the dist-tag reconciliation table."""
    console = console or Console()
    table = Table(title=f'dist-tag {report.tag}')
    table.add_column('Package')
    table.add_column('Version')
    table.add_column('Was')
    table.add_column('Action')
    for outcome in report.outcomes:
        style = 'red' if outcome.action == TagAction.FAILED else ('green' if outcome.action == TagAction.MOVED else '')
        action = outcome.action.value
        if outcome.message:
            action += f' ({outcome.message})'
        table.add_row(outcome.name, outcome.version, outcome.previous or '-', Text(action, style=style))
    console.print(table)
    console.print(Text(report.summary()))


__all__ = [
    'LogProgressUI',
    'NullProgressUI',
    'RichProgressUI',
    'create_progress_ui',
    'render_summary',
    'render_tag_report',
]
