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

"""Ephemeral manifest rewriting for publish-time isolation.

Inside a workspace, packages reference each other by path
(``acme-core = { path = "../core" }``) or by protocol
(``"@acme/core": "workspace:*"``). Registries reject both, so for the
duration of one package's build and upload its manifest is rewritten to
concrete versions, then restored byte-for-byte.

Key Concepts::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ What it means                                  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ephemeral_rewrite   │ Context manager: back up, rewrite, yield,      │
    │                     │ restore. The manifest is borrowed, and goes    │
    │                     │ back exactly as it was.                        │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Crash safety        │ Three layers of protection:                    │
    │                     │ 1. ``finally`` (errors, cancellation)          │
    │                     │ 2. ``atexit`` + SIGTERM/SIGINT handlers        │
    │                     │ 3. ``.pubkit.bak`` file (``pubkit restore``)   │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ SHA-256 verify      │ After restore, the file's hash is compared     │
    │                     │ against the original.                          │
    └─────────────────────┴────────────────────────────────────────────────┘

Several workers rewrite different manifests at the same time, so the
crash-safety hooks are process-wide: one registry of active backups, one
set of signal handlers installed while the registry is non-empty.

Cargo rewrite::

    acme-core = { path = "../core" }                     → acme-core = "2.0.0"
    acme-core = { path = "../core", version = "2.0.0" }  → acme-core = "2.0.0"
    acme-core = { path = "../core", features = ["x"] }   → acme-core = { features = ["x"], version = "2.0.0" }

npm rewrite::

    "workspace:*"   → "2.0.0"
    "workspace:^"   → "^2.0.0"
    "workspace:~"   → "~2.0.0"
    "workspace:^1"  → "^1"

Usage::

    from pubkit.rewrite import manifest_rewrite

    with manifest_rewrite(package, {'acme-core': '2.0.0'}):
        await pm.build(package)
        await pm.upload(package)
    # Cargo.toml is back to its original bytes.
"""

from __future__ import annotations

import atexit
import hashlib
import json
import os
import shutil
import signal
import threading
from collections.abc import Callable, Generator, Iterable
from contextlib import AbstractContextManager, contextmanager, nullcontext
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

from pubkit.backends.workspace._types import Ecosystem, Package
from pubkit.backends.workspace.pyproject import normalize_name
from pubkit.errors import E, PubkitError
from pubkit.logging import get_logger

logger = get_logger(__name__)

BACKUP_SUFFIX = '.pubkit.bak'

CARGO_DEP_TABLES = ('dependencies', 'dev-dependencies', 'build-dependencies')
NPM_DEP_SECTIONS = ('dependencies', 'peerDependencies', 'optionalDependencies', 'devDependencies')

WORKSPACE_PROTOCOL = 'workspace:'

Rewriter = Callable[[Path, dict[str, str]], str]


def _sha256(path: Path) -> str:
    """Compute SHA-256 hash of a file's contents."""
    return hashlib.sha256(path.read_bytes()).hexdigest()


def backup_path_for(manifest_path: Path) -> Path:
    """Where the backup of ``manifest_path`` lives while it is rewritten."""
    return manifest_path.with_name(manifest_path.name + BACKUP_SUFFIX)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding='utf-8')
    except OSError as exc:
        raise PubkitError(
            code=E.MANIFEST_REWRITE_FAILED,
            message=f'Cannot read {path}: {exc}',
            hint=f'Check that {path} exists and is readable.',
        ) from exc


def _write_text(path: Path, text: str) -> None:
    try:
        path.write_text(text, encoding='utf-8')
    except OSError as exc:
        raise PubkitError(
            code=E.MANIFEST_REWRITE_FAILED,
            message=f'Cannot write {path}: {exc}',
            hint=f'Check file permissions for {path}.',
        ) from exc


# Cargo


def _rewrite_cargo_table(table: Any, version_map: dict[str, str], *, dev: bool) -> int:  # noqa: ANN401
    """Rewrite path dependencies in one dependency table, returning the count."""
    if not isinstance(table, dict):
        return 0
    rewritten = 0
    for key in list(table.keys()):
        entry = table[key]
        if not isinstance(entry, dict) or 'path' not in entry:
            continue
        real_name = str(entry.get('package', key))
        version = version_map.get(real_name)
        if version is None:
            continue
        # cargo drops path-only dev-dependencies at publish time.
        if dev and 'version' not in entry:
            continue
        if set(entry.keys()) <= {'path', 'version'}:
            table[key] = version
        else:
            del entry['path']
            entry['version'] = version
        rewritten += 1
    return rewritten


def _pin_cargo_version(doc: Any, version_map: dict[str, str], manifest_path: Path) -> None:  # noqa: ANN401
    """Set ``[package].version`` to the version being published.

    A ``version.workspace = true`` entry is replaced by the literal, so
    the workspace root manifest is never touched.
    """
    package = doc.get('package')
    if not isinstance(package, dict):
        return
    version = version_map.get(str(package.get('name', '')))
    current = package.get('version')
    if version is None or current == version:
        return
    package['version'] = version
    old = current if isinstance(current, str) else 'workspace'
    logger.info('package_version_pinned', path=str(manifest_path), old=old, new=version)


def rewrite_cargo_path_deps(manifest_path: Path, version_map: dict[str, str]) -> str:
    """Replace ``path`` dependencies on workspace crates with versions.

    Covers ``[dependencies]``, ``[dev-dependencies]``,
    ``[build-dependencies]`` and their ``[target.*]`` variants. Entries
    for crates not in ``version_map`` are left alone.
    The crate's own ``[package].version`` is set to its entry in
    ``version_map`` when the two differ (a ``--version`` override).

    Args:
        manifest_path: The crate's ``Cargo.toml``.
        version_map: Crate name to version.

    Returns:
        The original file content.

    Raises:
        PubkitError: The file cannot be read, parsed, or written.
    """
    original_text = _read_text(manifest_path)
    try:
        doc = tomlkit.parse(original_text)
    except tomlkit.exceptions.TOMLKitError as exc:
        raise PubkitError(
            code=E.MANIFEST_REWRITE_FAILED,
            message=f'Cannot parse {manifest_path}: {exc}',
            hint=f'Check that {manifest_path} contains valid TOML.',
        ) from exc

    _pin_cargo_version(doc, version_map, manifest_path)

    count = 0
    for name in CARGO_DEP_TABLES:
        count += _rewrite_cargo_table(doc.get(name), version_map, dev=name == 'dev-dependencies')
    target = doc.get('target')
    if isinstance(target, dict):
        for cfg_table in target.values():
            if isinstance(cfg_table, dict):
                for name in CARGO_DEP_TABLES:
                    count += _rewrite_cargo_table(cfg_table.get(name), version_map, dev=name == 'dev-dependencies')

    _write_text(manifest_path, tomlkit.dumps(doc))
    logger.info('path_deps_rewritten', path=str(manifest_path), rewritten=count)
    return original_text


# Python


def rewrite_pyproject_version(manifest_path: Path, version_map: dict[str, str]) -> str:
    """Set ``[project].version`` to the version being published.

    Siblings are referenced by plain requirement strings, so only the
    package's own version changes. A ``version`` listed in
    ``project.dynamic`` is made static for the build.

    Returns:
        The original file content.

    Raises:
        PubkitError: The file cannot be read, parsed, or written.
    """
    original_text = _read_text(manifest_path)
    try:
        doc = tomlkit.parse(original_text)
    except tomlkit.exceptions.TOMLKitError as exc:
        raise PubkitError(
            code=E.MANIFEST_REWRITE_FAILED,
            message=f'Cannot parse {manifest_path}: {exc}',
            hint=f'Check that {manifest_path} contains valid TOML.',
        ) from exc

    project = doc.get('project')
    if isinstance(project, dict):
        version = version_map.get(normalize_name(str(project.get('name', ''))))
        if version is not None and project.get('version') != version:
            dynamic = project.get('dynamic')
            if isinstance(dynamic, list) and 'version' in dynamic:
                remaining = [str(d) for d in dynamic if d != 'version']
                if remaining:
                    project['dynamic'] = remaining
                else:
                    del project['dynamic']
            logger.info('package_version_pinned', path=str(manifest_path), old=project.get('version'), new=version)
            project['version'] = version

    _write_text(manifest_path, tomlkit.dumps(doc))
    return original_text


# npm


def resolve_workspace_spec(spec: str, version: str) -> str:
    """Turn a ``workspace:`` range into what npm would publish."""
    rest = spec[len(WORKSPACE_PROTOCOL) :]
    if rest in ('*', ''):
        return version
    if rest in ('^', '~'):
        return f'{rest}{version}'
    return rest


def rewrite_npm_workspace_refs(manifest_path: Path, version_map: dict[str, str]) -> str:
    """Replace ``workspace:`` ranges in ``package.json`` with versions.

    The package's own ``version`` is set to its entry in ``version_map``
    when the two differ.

    Returns:
        The original file content.

    Raises:
        PubkitError: The file cannot be read, parsed, or written, or a
            ``workspace:*`` dependency is not a known workspace package.
    """
    original_text = _read_text(manifest_path)
    try:
        data = json.loads(original_text)
    except json.JSONDecodeError as exc:
        raise PubkitError(
            code=E.MANIFEST_REWRITE_FAILED,
            message=f'Cannot parse {manifest_path}: {exc}',
            hint=f'Check that {manifest_path} contains valid JSON.',
        ) from exc

    name = data.get('name')
    version = version_map.get(name) if isinstance(name, str) else None
    if version is not None and data.get('version') != version:
        logger.info('package_version_pinned', path=str(manifest_path), old=data.get('version'), new=version)
        data['version'] = version

    count = 0
    for section in NPM_DEP_SECTIONS:
        deps = data.get(section)
        if not isinstance(deps, dict):
            continue
        for dep, spec in deps.items():
            if not isinstance(spec, str) or not spec.startswith(WORKSPACE_PROTOCOL):
                continue
            version = version_map.get(dep)
            if version is None:
                raise PubkitError(
                    code=E.MANIFEST_REWRITE_FAILED,
                    message=f'{manifest_path}: {dep} uses {spec!r} but is not a workspace package',
                    hint='Add the package to the workspace members or replace the workspace: range.',
                )
            deps[dep] = resolve_workspace_spec(spec, version)
            count += 1

    trailing = '\n' if original_text.endswith('\n') else ''
    _write_text(manifest_path, json.dumps(data, indent=2, ensure_ascii=False) + trailing)
    logger.info('workspace_refs_rewritten', path=str(manifest_path), rewritten=count)
    return original_text


# Crash safety

_active_lock = threading.Lock()
_active_restores: dict[Path, Callable[[], None]] = {}
_previous_handlers: dict[int, Any] = {}
_atexit_registered = False


def restore_all_active() -> None:
    """Restore every manifest that is currently rewritten."""
    with _active_lock:
        restores = list(_active_restores.values())
    for restore in restores:
        restore()


def _signal_handler(signum: int, _frame: object) -> None:
    """Restore on signal, then re-deliver it to the previous handler."""
    restore_all_active()
    previous = _previous_handlers.get(signum, signal.SIG_DFL)
    signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
    os.kill(os.getpid(), signum)


def _register(manifest_path: Path, restore: Callable[[], None]) -> None:
    global _atexit_registered  # noqa: PLW0603
    with _active_lock:
        first = not _active_restores
        _active_restores[manifest_path] = restore
        if not _atexit_registered:
            atexit.register(restore_all_active)
            _atexit_registered = True
    if first and threading.current_thread() is threading.main_thread():
        for signum in (signal.SIGTERM, signal.SIGINT):
            _previous_handlers[signum] = signal.getsignal(signum)
            signal.signal(signum, _signal_handler)


def _unregister(manifest_path: Path) -> None:
    with _active_lock:
        _active_restores.pop(manifest_path, None)
        last = not _active_restores
    if last and _previous_handlers and threading.current_thread() is threading.main_thread():
        for signum, previous in _previous_handlers.items():
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        _previous_handlers.clear()


@contextmanager
def ephemeral_rewrite(
    manifest_path: Path,
    rewriter: Rewriter,
    version_map: dict[str, str],
) -> Generator[Path, None, None]:
    """Rewrite a manifest for the duration of the context.

    Args:
        manifest_path: The manifest to rewrite.
        rewriter: :func:`rewrite_cargo_path_deps` or
            :func:`rewrite_npm_workspace_refs`.
        version_map: Package name to version.

    Yields:
        The path of the rewritten manifest (same as input).

    Raises:
        PubkitError: A backup from an earlier run is in the way, or the
            backup or rewrite failed.
    """
    manifest_path = manifest_path.resolve()
    backup_path = backup_path_for(manifest_path)
    if backup_path.exists():
        raise PubkitError(
            code=E.PREFLIGHT_STALE_BACKUP,
            message=f'Backup {backup_path} already exists',
            hint="Run 'pubkit restore' to put it back before publishing.",
        )

    original_hash = _sha256(manifest_path)
    try:
        shutil.copy2(manifest_path, backup_path)
    except OSError as exc:
        raise PubkitError(
            code=E.MANIFEST_REWRITE_FAILED,
            message=f'Cannot create backup at {backup_path}: {exc}',
            hint=f'Check file permissions for {backup_path.parent}.',
        ) from exc
    logger.debug('backup_created', path=str(backup_path))

    def _restore() -> None:
        if not backup_path.exists():
            return
        try:
            shutil.move(backup_path, manifest_path)
        except OSError:
            logger.error('restore_failed', backup=str(backup_path), target=str(manifest_path))
            return
        restored_hash = _sha256(manifest_path)
        if restored_hash != original_hash:
            logger.error(
                'restore_hash_mismatch',
                path=str(manifest_path),
                expected=original_hash[:12],
                actual=restored_hash[:12],
            )
        else:
            logger.debug('manifest_restored', path=str(manifest_path))

    _register(manifest_path, _restore)
    try:
        rewriter(manifest_path, version_map)
        yield manifest_path
    finally:
        _restore()
        _unregister(manifest_path)


def manifest_rewrite(
    package: Package,
    version_map: dict[str, str],
) -> AbstractContextManager[Path]:
    """Pick the rewrite for ``package``'s ecosystem.

    Python manifests reference siblings by plain requirement strings, so
    they are only rewritten when the version was overridden; otherwise
    they get a no-op context.
    """
    if package.ecosystem == Ecosystem.RUST:
        return ephemeral_rewrite(package.manifest_path, rewrite_cargo_path_deps, version_map)
    if package.ecosystem == Ecosystem.JS:
        return ephemeral_rewrite(package.manifest_path, rewrite_npm_workspace_refs, version_map)
    if package.version_overridden:
        return ephemeral_rewrite(package.manifest_path, rewrite_pyproject_version, version_map)
    return nullcontext(package.manifest_path)


def find_stale_backups(package_dirs: Iterable[Path]) -> list[Path]:
    """Backups left next to manifests by an interrupted run."""
    found: set[Path] = set()
    for directory in package_dirs:
        if directory.is_dir():
            found.update(directory.glob(f'*{BACKUP_SUFFIX}'))
    return sorted(found)


def restore_backups(backups: Iterable[Path], *, dry_run: bool = False) -> list[Path]:
    """Move each backup over the manifest it was taken from.

    Returns:
        The manifest paths that were (or, in dry-run, would be) restored.

    Raises:
        PubkitError: A backup could not be moved back.
    """
    restored: list[Path] = []
    for backup in backups:
        target = backup.with_name(backup.name[: -len(BACKUP_SUFFIX)])
        if dry_run:
            logger.info('would_restore', backup=str(backup), target=str(target))
        else:
            try:
                shutil.move(backup, target)
            except OSError as exc:
                raise PubkitError(
                    code=E.MANIFEST_RESTORE_FAILED,
                    message=f'Cannot restore {target} from {backup}: {exc}',
                    hint=f'Move {backup} over {target} by hand.',
                ) from exc
            logger.info('manifest_restored', target=str(target))
        restored.append(target)
    return restored


__all__ = [
    'BACKUP_SUFFIX',
    'backup_path_for',
    'ephemeral_rewrite',
    'find_stale_backups',
    'manifest_rewrite',
    'resolve_workspace_spec',
    'restore_all_active',
    'restore_backups',
    'rewrite_cargo_path_deps',
    'rewrite_npm_workspace_refs',
    'rewrite_pyproject_version',
]
