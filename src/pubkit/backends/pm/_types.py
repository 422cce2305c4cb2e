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

"""Shared types for the package manager subpackage."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pubkit.backends._run import CommandResult

__all__ = [
    'UploadResult',
    'UploadStatus',
]


class UploadStatus(str, Enum):
    """What the registry said about one upload attempt."""

    UPLOADED = 'uploaded'
    ALREADY_EXISTS = 'already_exists'
    RATE_LIMITED = 'rate_limited'
    FAILED = 'failed'


@dataclass(frozen=True)
class UploadResult:
    """Typed outcome of one upload command.

    Attributes:
        status: Classified outcome.
        message: First error line for failures, empty otherwise.
        result: The underlying command result, if a command ran.
    """

    status: UploadStatus
    message: str = ''
    result: CommandResult | None = None

    @property
    def ok(self) -> bool:
        """The version is on the registry after this attempt."""
        return self.status in (UploadStatus.UPLOADED, UploadStatus.ALREADY_EXISTS)
