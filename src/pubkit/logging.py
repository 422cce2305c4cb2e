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

"""Structured logging for pubkit.

Configures `structlog <https://www.structlog.org/>`_ with two renderers:

- **Console** (default): human-readable, colored when stderr is a TTY.
- **JSON** (``--json-log``): one JSON object per line, for CI log scrapers.

Everything goes to stderr; stdout is reserved for the end-of-run summary.

Publish workers run concurrently, so interleaved log lines need to say
which package they belong to. :func:`bound_package` binds the package
name and ecosystem into structlog's contextvars for the duration of a
worker, and every event logged inside it carries those keys::

    with bound_package('serde-lite', 'rust'):
        log.info('upload_start')   # ... package=serde-lite ecosystem=rust

Usage::

    from pubkit.logging import configure_logging, get_logger

    configure_logging(verbose=True)
    log = get_logger(__name__)
    log.info('tier_start', tier=0, packages=['core'])
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog


def configure_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    json_log: bool = False,
) -> None:
    """Configure structlog and the stdlib root logger.

    Call once at startup. Calling it again reconfigures everything, which
    tests rely on.

    Args:
        verbose: Emit debug events.
        quiet: Only warnings and errors. Wins over ``verbose``.
        json_log: Render JSON lines instead of console output.
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        format='%(message)s',
        stream=sys.stderr,
        level=level,
        force=True,
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_log:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    for handler in logging.root.handlers:
        handler.setFormatter(formatter)

    # httpx logs every request at INFO; registry queries would drown the run.
    http_level = logging.DEBUG if verbose and not quiet else logging.WARNING
    for name in ('httpx', 'httpcore'):
        logging.getLogger(name).setLevel(http_level)


def get_logger(name: str = 'pubkit') -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)


@contextmanager
def bound_package(name: str, ecosystem: str = '') -> Iterator[None]:
    """Attach ``package`` (and ``ecosystem``) to every event in the block.

    Uses contextvars, so each asyncio task sees only its own binding.
    """
    context = {'package': name}
    if ecosystem:
        context['ecosystem'] = ecosystem
    with structlog.contextvars.bound_contextvars(**context):
        yield


__all__ = [
    'bound_package',
    'configure_logging',
    'get_logger',
]
