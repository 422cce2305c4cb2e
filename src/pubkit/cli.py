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

"""CLI entry point for pubkit.

Constructs backend instances and injects them into the pipeline modules.

Subcommands::

    pubkit publish-npm       Publish npm workspace packages
    pubkit publish-rust      Publish crates to crates.io
    pubkit publish-python    Build and upload Python packages to PyPI
    pubkit verify-rust       cargo publish --dry-run for every crate
    pubkit ensure-dist-tags  Point the npm dist-tag at local versions
    pubkit publish-all       npm, crates.io, PyPI, then dist-tags
    pubkit restore           Put back manifests left rewritten by a crash
    pubkit explain           Explain an error code

Usage::

    pubkit publish-rust --dry-run
    pubkit publish-python --filter acme- --parallel 2
    pubkit -w js publish-npm --tag next
    pubkit explain PK-PREFLIGHT-STALE-BACKUP
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import sys
from pathlib import Path
from typing import NoReturn

from rich.console import Console
from rich_argparse import RichHelpFormatter

from pubkit import __version__
from pubkit.backends.pm import NpmBackend, create_package_manager
from pubkit.backends.registry import NpmRegistry, create_registry
from pubkit.backends.workspace import DiscoveryResult, Ecosystem, discover_packages
from pubkit.config import CONFIG_FILENAME, PubkitConfig, WorkspaceConfig, load_config
from pubkit.disttags import ensure_dist_tags
from pubkit.errors import PubkitError, explain, render_error
from pubkit.graph import build_graph, resolve_tiers
from pubkit.logging import configure_logging, get_logger
from pubkit.preflight import run_preflight
from pubkit.publisher import PublishConfig, PublishMode, publish_tiers
from pubkit.rewrite import BACKUP_SUFFIX, restore_backups
from pubkit.ui import create_progress_ui, render_summary, render_tag_report

logger = get_logger(__name__)

# Directories never searched for manifest backups.
_SKIP_DIRS = frozenset({'.git', 'node_modules', 'target', '.venv', 'dist', 'build'})

# publish-all order.
_ALL_ORDER = (Ecosystem.JS, Ecosystem.RUST, Ecosystem.PYTHON)


class _ArgumentParser(argparse.ArgumentParser):
    """Parser whose usage errors exit with status 1 instead of 2."""

    def error(self, message: str) -> NoReturn:
        """Print usage and the error, then exit 1."""
        self.print_usage(sys.stderr)
        self.exit(1, f'{self.prog}: error: {message}\n')


def _find_workspace_root() -> Path:
    """Walk up from CWD to the directory holding ``pubkit.toml``, else CWD."""
    cwd = Path.cwd().resolve()
    for parent in [cwd, *cwd.parents]:
        if (parent / CONFIG_FILENAME).is_file():
            return parent
    return cwd


def _config_root(args: argparse.Namespace) -> Path:
    if args.root is not None:
        return Path(args.root).resolve()
    return _find_workspace_root()


def _publish_config(
    args: argparse.Namespace,
    config: PubkitConfig,
    ws: WorkspaceConfig,
    mode: PublishMode,
) -> PublishConfig:
    """Merge workspace settings with CLI overrides."""
    parallel = getattr(args, 'parallel', None)
    delay = getattr(args, 'delay', None)
    wait = getattr(args, 'wait', None)
    return PublishConfig(
        concurrency=parallel if parallel is not None else config.concurrency,
        dry_run=getattr(args, 'dry_run', False),
        mode=mode,
        settle_delay=wait if wait is not None else ws.settle_delay,
        upload_delay=delay if delay is not None else ws.upload_delay,
        max_attempts=ws.max_attempts,
        backoff_base=ws.backoff_base,
        backoff_cap=ws.backoff_cap,
    )


async def _discover(
    args: argparse.Namespace,
    config_root: Path,
    ws: WorkspaceConfig,
) -> DiscoveryResult:
    version = getattr(args, 'version', None) or ws.version or None
    return await discover_packages(
        (config_root / ws.root).resolve(),
        ws.ecosystem_enum,
        members=ws.members or None,
        exclude=ws.exclude,
        name_filter=getattr(args, 'filter', None),
        version_override=version,
    )


def _static_tiers(ws: WorkspaceConfig, found: DiscoveryResult) -> list[list[str]] | None:
    """Drop names of known packages that were filtered out of this run."""
    if not ws.tiers:
        return None
    selected = {p.name for p in found.packages}
    return [
        [name for name in tier if name in selected or name not in found.version_map]
        for tier in ws.tiers
    ]


async def _run_publish(
    args: argparse.Namespace,
    ecosystem: Ecosystem,
    mode: PublishMode,
    *,
    config_root: Path | None = None,
    config: PubkitConfig | None = None,
    ws: WorkspaceConfig | None = None,
) -> int:
    """Discover, order, preflight and publish one ecosystem."""
    config_root = config_root or _config_root(args)
    config = config or load_config(config_root)
    ws = ws or config.workspace_for(ecosystem, args.workspace or '')
    tag = getattr(args, 'tag', None)
    if tag:
        ws = dataclasses.replace(ws, dist_tag=tag)

    found = await _discover(args, config_root, ws)
    if not found.packages and not found.invalid:
        logger.info('nothing_to_publish', ecosystem=ecosystem.value)
        return 0

    graph = build_graph(found.packages)
    tiers = resolve_tiers(graph, _static_tiers(ws, found), strict=ws.strict_tiers)

    publish_config = _publish_config(args, config, ws, mode)
    preflight = await run_preflight(
        ecosystem,
        packages=found.packages,
        mode=mode,
        dry_run=publish_config.dry_run,
        whoami=NpmBackend(registry_url=ws.publish_url).whoami,
    )
    preflight.raise_if_failed()

    registry = create_registry(
        ecosystem,
        base_url=ws.registry_url,
        pool_size=config.http_pool_size,
        timeout=config.http_timeout,
    )
    pm = create_package_manager(ecosystem, tag=ws.dist_tag, upload_url=ws.publish_url)

    title = f'pubkit {mode.value} {ecosystem.registry_name}'
    with create_progress_ui(title=title, concurrency=publish_config.concurrency) as observer:
        result = await publish_tiers(
            tiers=tiers,
            registry=registry,
            pm=pm,
            config=publish_config,
            version_map=found.version_map,
            observer=observer,
            invalid=found.invalid,
        )

    render_summary(result, Console(), title=f'{ecosystem.registry_name} {mode.value}')
    return result.exit_code


async def _cmd_publish_npm(args: argparse.Namespace) -> int:
    """Handle the ``publish-npm`` subcommand."""
    return await _run_publish(args, Ecosystem.JS, PublishMode.PUBLISH)


async def _cmd_publish_rust(args: argparse.Namespace) -> int:
    """Handle the ``publish-rust`` subcommand."""
    mode = PublishMode.CHECK if args.check else PublishMode.PUBLISH
    return await _run_publish(args, Ecosystem.RUST, mode)


async def _cmd_publish_python(args: argparse.Namespace) -> int:
    """Handle the ``publish-python`` subcommand."""
    if args.build_only:
        mode = PublishMode.BUILD_ONLY
    elif args.upload_only:
        mode = PublishMode.UPLOAD_ONLY
    else:
        mode = PublishMode.PUBLISH
    return await _run_publish(args, Ecosystem.PYTHON, mode)


async def _cmd_verify_rust(args: argparse.Namespace) -> int:
    """Handle the ``verify-rust`` subcommand."""
    return await _run_publish(args, Ecosystem.RUST, PublishMode.VERIFY)


async def _cmd_ensure_dist_tags(
    args: argparse.Namespace,
    *,
    config_root: Path | None = None,
    config: PubkitConfig | None = None,
) -> int:
    """Handle the ``ensure-dist-tags`` subcommand."""
    config_root = config_root or _config_root(args)
    config = config or load_config(config_root)
    ws = config.workspace_for(Ecosystem.JS, args.workspace or '')
    tag = args.tag or ws.dist_tag

    found = await _discover(args, config_root, ws)
    npm = NpmBackend(tag=tag, registry_url=ws.publish_url)
    preflight = await run_preflight(Ecosystem.JS, packages=found.packages, dry_run=args.dry_run, whoami=npm.whoami)
    preflight.raise_if_failed()

    registry = NpmRegistry(
        base_url=ws.registry_url or NpmRegistry.DEFAULT_BASE_URL,
        pool_size=config.http_pool_size,
        timeout=config.http_timeout,
    )
    report = await ensure_dist_tags(
        found.packages,
        registry=registry,
        pm=npm,
        tag=tag,
        concurrency=args.parallel if args.parallel is not None else config.concurrency,
        dry_run=args.dry_run,
    )
    render_tag_report(report, Console())
    return report.exit_code


def _all_workspaces(config_root: Path, config: PubkitConfig, label: str) -> list[WorkspaceConfig]:
    """Workspaces for ``publish-all``, in npm, crates.io, PyPI order."""
    if label:
        ws = config.workspaces.get(label)
        if ws is None:
            # Let workspace_for raise the unknown-workspace error.
            config.workspace_for(Ecosystem.JS, label)
        return [ws] if ws is not None else []
    if config.workspaces:
        return sorted(config.workspaces.values(), key=lambda ws: _ALL_ORDER.index(ws.ecosystem_enum))
    # No config: every ecosystem with a manifest at the root.
    return [
        config.workspace_for(ecosystem) for ecosystem in _ALL_ORDER if (config_root / ecosystem.manifest_name).is_file()
    ]


async def _cmd_publish_all(args: argparse.Namespace) -> int:
    """Handle the ``publish-all`` subcommand.

    A failed package in one registry does not stop the next registry;
    a configuration error stops everything.
    """
    config_root = _config_root(args)
    config = load_config(config_root)
    workspaces = _all_workspaces(config_root, config, args.workspace or '')
    if not workspaces:
        logger.warning('no_workspaces', root=str(config_root))
        return 0

    exit_code = 0
    for ws in workspaces:
        logger.info('publish_all_step', workspace=ws.label, ecosystem=ws.ecosystem)
        code = await _run_publish(
            args,
            ws.ecosystem_enum,
            PublishMode.PUBLISH,
            config_root=config_root,
            config=config,
            ws=ws,
        )
        exit_code = max(exit_code, code)

    if any(ws.ecosystem_enum == Ecosystem.JS for ws in workspaces):
        await _cmd_ensure_dist_tags(args, config_root=config_root, config=config)
    return exit_code


def _find_backups(root: Path) -> list[Path]:
    """Every manifest backup under ``root``."""
    found: list[Path] = []
    stack = [root]
    while stack:
        directory = stack.pop()
        try:
            entries = sorted(directory.iterdir())
        except OSError as exc:
            logger.warning('restore_scan_failed', path=str(directory), error=str(exc))
            continue
        for entry in entries:
            if entry.is_dir() and not entry.is_symlink():
                if entry.name not in _SKIP_DIRS:
                    stack.append(entry)
            elif entry.name.endswith(BACKUP_SUFFIX):
                found.append(entry)
    return sorted(found)


def _cmd_restore(args: argparse.Namespace) -> int:
    """Handle the ``restore`` subcommand."""
    root = _config_root(args)
    backups = _find_backups(root)
    if not backups:
        print('No manifest backups found.')  # noqa: T201 - CLI output
        return 0
    for target in restore_backups(backups, dry_run=args.dry_run):
        verb = 'would restore' if args.dry_run else 'restored'
        print(f'{verb} {target}')  # noqa: T201 - CLI output
    return 0


def _cmd_explain(args: argparse.Namespace) -> int:
    """Handle the ``explain`` subcommand."""
    result = explain(args.code)
    if result is None:
        print(f'Unknown error code: {args.code}')  # noqa: T201 - CLI output
        return 1
    print(result)  # noqa: T201 - CLI output
    return 0


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f'must be at least 1, got {number}')
    return number


def _seconds(value: str) -> float:
    number = float(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f'must not be negative, got {value}')
    return number


def _add_common(parser: argparse.ArgumentParser, *, dry_run: bool = True, filter_: bool = True) -> None:
    if dry_run:
        parser.add_argument('--dry-run', action='store_true', help='Query registries and build, but do not upload.')
    parser.add_argument(
        '--parallel',
        type=_positive_int,
        default=None,
        metavar='N',
        help='Max packages in flight per tier (default: concurrency from pubkit.toml, else 4).',
    )
    if filter_:
        parser.add_argument(
            '--filter',
            default=None,
            metavar='SUBSTRING',
            help='Only packages whose name contains SUBSTRING.',
        )


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured :class:`argparse.ArgumentParser`.
    """
    RichHelpFormatter.styles['argparse.groups'] = 'bold yellow'
    parser = _ArgumentParser(
        prog='pubkit',
        description='Tiered, rate-limit aware publishing for npm, crates.io and PyPI.',
        formatter_class=RichHelpFormatter,
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument(
        '--root',
        default=None,
        metavar='DIR',
        help=f'Directory holding {CONFIG_FILENAME} (default: nearest ancestor that has one, else CWD).',
    )
    parser.add_argument(
        '--workspace',
        '-w',
        metavar='LABEL',
        default=None,
        help='Workspace label from pubkit.toml. Defaults to the first workspace of the ecosystem.',
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Log debug events.')
    parser.add_argument('--quiet', '-q', action='store_true', help='Log only warnings and errors.')
    parser.add_argument('--json-log', action='store_true', help='Log JSON lines instead of console output.')

    subparsers = parser.add_subparsers(dest='command', parser_class=_ArgumentParser)

    npm_parser = subparsers.add_parser('publish-npm', help='Publish npm workspace packages.')
    _add_common(npm_parser)
    npm_parser.add_argument('--tag', default=None, help='npm dist-tag to publish under (default: next).')
    npm_parser.add_argument('--delay', type=_seconds, default=None, help='Seconds to wait after each upload.')

    rust_parser = subparsers.add_parser('publish-rust', help='Publish crates to crates.io.')
    _add_common(rust_parser)
    rust_parser.add_argument(
        '--check', action='store_true', help='Run cargo fmt, clippy and test for unpublished crates only.'
    )
    rust_parser.add_argument('--version', default=None, metavar='X', help='Override the version of every crate.')
    rust_parser.add_argument(
        '--wait',
        type=_seconds,
        default=None,
        metavar='SECONDS',
        help='Seconds to wait for crates.io indexing between tiers (default: 120).',
    )
    rust_parser.add_argument('--delay', type=_seconds, default=None, help='Seconds to wait after each upload.')

    python_parser = subparsers.add_parser('publish-python', help='Build and upload Python packages to PyPI.')
    _add_common(python_parser)
    phase = python_parser.add_mutually_exclusive_group()
    phase.add_argument('--build-only', action='store_true', help='Build distributions, do not upload.')
    phase.add_argument('--upload-only', action='store_true', help='Upload existing dist/ artifacts.')
    python_parser.add_argument(
        '--delay',
        type=_seconds,
        default=None,
        help='Seconds to wait after each upload (default: 20).',
    )

    verify_parser = subparsers.add_parser('verify-rust', help='Run cargo publish --dry-run for every crate.')
    _add_common(verify_parser, dry_run=False)
    verify_parser.add_argument('--version', default=None, metavar='X', help='Override the version of every crate.')

    tags_parser = subparsers.add_parser('ensure-dist-tags', help='Point the npm dist-tag at the local versions.')
    _add_common(tags_parser, filter_=False)
    tags_parser.add_argument('--tag', default=None, help='dist-tag to reconcile (default: next).')

    all_parser = subparsers.add_parser('publish-all', help='Publish npm, crates.io and PyPI, then fix dist-tags.')
    _add_common(all_parser, filter_=False)
    all_parser.add_argument('--tag', default=None, help='npm dist-tag (default: next).')

    restore_parser = subparsers.add_parser('restore', help='Restore manifests from .pubkit.bak backups.')
    restore_parser.add_argument('--dry-run', action='store_true', help='List what would be restored.')

    explain_parser = subparsers.add_parser('explain', help='Explain an error code.')
    explain_parser.add_argument('code', help='Error code (e.g. PK-GRAPH-CYCLE-DETECTED).')

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose, quiet=args.quiet, json_log=args.json_log)

    try:
        command = args.command
        if command == 'publish-npm':
            return asyncio.run(_cmd_publish_npm(args))
        if command == 'publish-rust':
            return asyncio.run(_cmd_publish_rust(args))
        if command == 'publish-python':
            return asyncio.run(_cmd_publish_python(args))
        if command == 'verify-rust':
            return asyncio.run(_cmd_verify_rust(args))
        if command == 'ensure-dist-tags':
            return asyncio.run(_cmd_ensure_dist_tags(args))
        if command == 'publish-all':
            return asyncio.run(_cmd_publish_all(args))
        if command == 'restore':
            return _cmd_restore(args)
        if command == 'explain':
            return _cmd_explain(args)

        parser.print_help()  # noqa: T201 - CLI output
        print(  # noqa: T201 - CLI output
            f'\n{parser.prog}: error: please provide a command',
            file=sys.stderr,
        )
        return 1

    except PubkitError as exc:
        render_error(exc)
        return 1
    except KeyboardInterrupt:
        logger.info('interrupted')
        return 130


def _main() -> None:
    """Wrapper for pyproject.toml [project.scripts] entry point."""
    sys.exit(main())


__all__ = [
    'build_parser',
    'main',
]
