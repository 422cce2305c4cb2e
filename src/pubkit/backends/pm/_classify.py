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

"""Upload output classification.

``cargo publish``, ``npm publish`` and ``twine upload`` report duplicate
versions and throttling only in their human-readable output. This is the
single place that reads that text; everything downstream works with
:class:`~pubkit.backends.pm._types.UploadStatus`.

Precedence when several markers appear::

    exit 0                     → UPLOADED
    "already exists" & co.     → ALREADY_EXISTS
    "429" / "rate limit" & co. → RATE_LIMITED
    anything else              → FAILED

"Already exists" wins over "rate limit" because a duplicate upload is a
terminal answer, while a retry would only produce the same duplicate.
"""

from __future__ import annotations

from pubkit.backends._run import CommandResult
from pubkit.backends.pm._types import UploadResult, UploadStatus

ALREADY_EXISTS_MARKERS: tuple[str, ...] = (
    'already exists',
    'already uploaded',
    'cannot publish over',
    'previously published',
    'epublishconflict',
)

RATE_LIMIT_MARKERS: tuple[str, ...] = (
    '429',
    'too many requests',
    'rate limit',
)


def error_excerpt(text: str, limit: int = 5) -> str:
    """Return up to ``limit`` lines mentioning ``error``.

    Falls back to the last non-empty lines when no line says ``error``.
    """
    lines = [line.rstrip() for line in text.splitlines() if line.strip()]
    errors = [line for line in lines if 'error' in line.lower()]
    picked = errors[:limit] if errors else lines[-limit:]
    return '\n'.join(picked)


def _first_error_line(text: str) -> str:
    for line in text.splitlines():
        if 'error' in line.lower() and line.strip():
            return line.strip()
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return ''


def classify_upload(result: CommandResult) -> UploadResult:
    """Map an upload command's exit code and output to an :class:`UploadResult`."""
    if result.ok:
        return UploadResult(status=UploadStatus.UPLOADED, result=result)

    text = result.output.lower()
    if any(marker in text for marker in ALREADY_EXISTS_MARKERS):
        return UploadResult(status=UploadStatus.ALREADY_EXISTS, result=result)
    if any(marker in text for marker in RATE_LIMIT_MARKERS):
        return UploadResult(status=UploadStatus.RATE_LIMITED, message='rate limited', result=result)

    message = _first_error_line(result.output) or f'exit code {result.return_code}'
    return UploadResult(status=UploadStatus.FAILED, message=message, result=result)


__all__ = [
    'ALREADY_EXISTS_MARKERS',
    'RATE_LIMIT_MARKERS',
    'classify_upload',
    'error_excerpt',
]
